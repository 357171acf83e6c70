"""
Serial-number and item-code allocation helpers.

Everything here is pure: callers own the set of used serials and must record
newly allocated serials before asking for the next suggestion.
"""

from __future__ import annotations

import re
from typing import Iterable, List

from .errors import SerialRangeError

SEED_SERIAL = "SN00001"
DEFAULT_SERIAL_PREFIX = "SN"
MIN_SERIAL_DIGITS = 5
MAX_RANGE_SIZE = 100

_SERIAL_PATTERN = re.compile(r"^([a-zA-Z]+)(\d+)$")
# PREFIX<start>~[ignored prefix]<end>
_RANGE_PATTERN = re.compile(r"^(.+?)(\d+)\s*~\s*(\D+)?(\d+)$")


def suggest_next_serial(used_serials: Iterable[str]) -> str:
    used = list(used_serials)
    if not used:
        return SEED_SERIAL

    prefix = DEFAULT_SERIAL_PREFIX
    max_num = 0
    for serial in used:
        match = _SERIAL_PATTERN.match(serial.upper())
        if not match:
            continue
        prefix = match.group(1)
        max_num = max(max_num, int(match.group(2)))

    next_num = str(max_num + 1)
    return f"{prefix}{next_num.zfill(max(MIN_SERIAL_DIGITS, len(next_num)))}"


def is_range_expression(value: str) -> bool:
    return "~" in (value or "")


def expand_serial_range(expression: str) -> List[str]:
    """
    Expand ``PREFIX<start>~<end>`` into discrete serials.

    Input that is not a range, or whose start exceeds its end, comes back as a
    single literal. Ranges of MAX_RANGE_SIZE or more raise SerialRangeError.
    """
    match = _RANGE_PATTERN.match(expression)
    if not match:
        return [expression.strip()]

    prefix, start_token, _, end_token = match.groups()
    start, end = int(start_token), int(end_token)
    if start > end:
        return [expression.strip()]
    if end - start >= MAX_RANGE_SIZE:
        raise SerialRangeError(f"A serial range may contain at most {MAX_RANGE_SIZE} numbers.")

    width = len(start_token)
    return [f"{prefix}{str(num).zfill(width)}" for num in range(start, end + 1)]


def find_duplicate_serials(candidates: Iterable[str], used_serials: Iterable[str]) -> List[str]:
    used = {serial.upper() for serial in used_serials}
    return [serial for serial in candidates if serial and serial.upper() in used]


def suggest_next_code(prefix: str, existing_codes: Iterable[str]) -> str:
    prefix = (prefix or "").strip().upper()
    if not prefix:
        return ""

    pattern = re.compile(rf"^{re.escape(prefix)}(\d+)$")
    max_num = 0
    for code in existing_codes:
        if not code:
            continue
        match = pattern.match(code.upper())
        if match:
            max_num = max(max_num, int(match.group(1)))
    return f"{prefix}{max_num + 1}"
