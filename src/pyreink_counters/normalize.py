"""Parse and validate manual EEPROM address lists; extract candidate addresses from status logs."""

import re
from typing import Iterable

from .errors import MalformedAddressInputError

# 0x + 1-2 hex digits, comma-separated, no spaces
_ADDRESS_LIST_PATTERN = re.compile(r"^0x[0-9a-f]{1,2}(,0x[0-9a-f]{1,2})*$", re.IGNORECASE)

_HEX_TOKEN = re.compile(r"0x[0-9a-f]{1,2}", re.IGNORECASE)

_COUNTER_HINT = re.compile(r"waste|pad|counter", re.IGNORECASE)


def parse_address_list(raw: str) -> list[int]:
    """
    Parse a manual address list such as ``0x2f,0x30,0x31``.

    - Surrounding whitespace is ignored; whitespace inside the list is not.
    - Order is preserved, duplicates are kept (callers decide).

    Raises MalformedAddressInputError before anything touches the device.
    """
    s = raw.strip()
    if not s:
        raise MalformedAddressInputError(raw, "Address list cannot be empty")
    if not _ADDRESS_LIST_PATTERN.match(s):
        raise MalformedAddressInputError(raw)
    return [int(token, 16) for token in s.split(",")]


def format_hex(value: int) -> str:
    """0x-prefixed, two-digit lowercase hex."""
    return f"0x{value:02x}"


def format_address_list(addresses: Iterable[int]) -> str:
    return ",".join(format_hex(a) for a in addresses)


def extract_log_addresses(text: str) -> list[int]:
    """
    Collect 0xNN tokens from status-log text, sorted and de-duplicated.

    Lines mentioning waste/pad/counter are preferred; if none of them carry a
    token, every line is scanned.
    """
    lines = text.splitlines()
    preferred = [line for line in lines if _COUNTER_HINT.search(line)]
    for candidates in (preferred, lines):
        found = {int(tok, 16) for line in candidates for tok in _HEX_TOKEN.findall(line)}
        if found:
            return sorted(found)
    return []
