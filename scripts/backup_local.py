"""
Create a local database snapshot and prune old ones.
Run with: python -m scripts.backup_local
"""

import asyncio
import sys
from prionstudy.database import engine
from prionstudy.services.backup_service import backup_service


async def run() -> int:
    print("Creating local backup...")
    result = await backup_service.create_local_backup()
    if not result["success"]:
        print(f"Error creating local backup: {result['error']}")
        return 1
    print(f"  File: {result['fileName']}")
    print(f"  Size: {result['size'] / 1024:.2f} KB")

    print("Cleaning old backups...")
    cleanup = await backup_service.clean_old_backups()
    if cleanup["success"]:
        print(f"  Deleted: {cleanup['deleted']}  Kept: {cleanup['kept']}  Retention: {cleanup['retentionDays']} days")
    else:
        print(f"  Cleanup error: {cleanup['error']}")

    await engine.dispose()
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(run()))
