"""CSV loading plus the in-memory search/sort used by the admin panel."""
import csv
import functools
import io
import logging
import math
from typing import Optional
import aiofiles

logger = logging.getLogger(__name__)

Record = dict[str, str]


def parse_csv(text: str) -> list[Record]:
    """Rows whose column count differs from the header are dropped."""
    lines = [line for line in text.splitlines() if line.strip()]
    if not lines:
        return []

    reader = csv.reader(io.StringIO("\n".join(lines)))
    headers = [h.strip() for h in next(reader)]
    rows = []
    for values in reader:
        if len(values) != len(headers):
            continue
        rows.append({h: v.strip() for h, v in zip(headers, values)})
    return rows


async def read_csv(path: str) -> list[Record]:
    try:
        async with aiofiles.open(path, "r", encoding="utf-8-sig") as f:
            content = await f.read()
    except OSError as e:
        logger.error("Error reading CSV file %s: %s", path, e)
        raise
    return parse_csv(content)


def missing_headers(records: list[Record], required: tuple[str, ...]) -> list[str]:
    if not records:
        return list(required)
    present = {h.lower() for h in records[0].keys()}
    return [h for h in required if h.lower() not in present]


def search_individuals(individuals: list[Record], query: Optional[str]) -> list[Record]:
    if not query or not query.strip():
        return individuals

    term = query.strip().lower()
    return [
        individual
        for individual in individuals
        if any(value is not None and term in str(value).lower() for value in individual.values())
    ]


def _as_number(value) -> Optional[float]:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    # "NaN" and "inf" cells sort as text
    return number if math.isfinite(number) else None


def sort_individuals(individuals: list[Record], field: str, direction: str = "asc") -> list[Record]:
    """Numeric order when both values parse as numbers, case-insensitive text order otherwise."""
    descending = direction == "desc"

    def compare(a: Record, b: Record) -> int:
        a_val = a.get(field) or ""
        b_val = b.get(field) or ""
        a_num, b_num = _as_number(a_val), _as_number(b_val)
        if a_num is not None and b_num is not None:
            left, right = a_num, b_num
        else:
            left, right = str(a_val).lower(), str(b_val).lower()
        result = (left > right) - (left < right)
        return -result if descending else result

    return sorted(individuals, key=functools.cmp_to_key(compare))


def authenticate_user(credentials: list[Record], username: str, password: str) -> Optional[Record]:
    for cred in credentials:
        if cred.get("user") == username and cred.get("password") == password:
            return {k: v for k, v in cred.items() if k != "password"}
    return None
