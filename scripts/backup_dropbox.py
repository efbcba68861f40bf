"""
Export the consent responses (CSV) and the raw database to Dropbox.
Run with: python -m scripts.backup_dropbox
"""

import asyncio
import sys
from prionstudy.database import engine
from prionstudy.services.backup_service import backup_service


async def run() -> int:
    config = backup_service.check_config()
    print(f"Dropbox: {config['message']}")
    if not config["configured"]:
        return 1

    failed = False
    print("1/2: Exporting CSV to Dropbox...")
    csv_result = await backup_service.export_csv_to_dropbox()
    if csv_result["success"]:
        print(f"  Path: {csv_result['dropboxPath']}  Records: {csv_result['recordCount']}")
    else:
        failed = True
        print(f"  Error exporting CSV: {csv_result['error']}")

    print("2/2: Uploading database to Dropbox...")
    db_result = await backup_service.backup_database_to_dropbox()
    if db_result["success"]:
        print(f"  Path: {db_result['dropboxPath']}  Size: {(db_result['size'] or 0) / 1024:.2f} KB")
    else:
        failed = True
        print(f"  Error uploading database: {db_result['error']}")

    await engine.dispose()
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(asyncio.run(run()))
