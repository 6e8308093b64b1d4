"""
Address helpers for Argentine shipping addresses.

Orders created before structured checkout fields existed (or created from
payment metadata) only carry a free-text address such as
"Av. Siempreviva 742, Piso 2, Don Torcuato, Buenos Aires, CP 1611".
"""
import re
from dataclasses import dataclass
from typing import Optional

from constants import POSTAL_CODE_PATTERN, province_code_for

DEFAULT_CITY = 'Buenos Aires'
DEFAULT_POSTAL_CODE = '1611'

_STREET_RE = re.compile(r'^(.+?)\s+(\d+)')
_POSTAL_RE = re.compile(r'\b(\d{4})\b')


@dataclass
class ParsedAddress:
    street: str
    number: str
    city: str
    postal_code: str
    province_code: str


def normalize_postal_code(value) -> Optional[str]:
    """Uppercase/strip a postal code; returns None when it is not a valid CP/CPA prefix."""
    if value is None:
        return None
    code = str(value).strip().upper()
    if not POSTAL_CODE_PATTERN.match(code):
        return None
    return code


def postal_code_number(value) -> Optional[int]:
    code = normalize_postal_code(value)
    if code is None:
        return None
    return int(code[-4:])


def province_code_from_postal(postal_code) -> str:
    """CABA postal codes are 1000-1439; everything else defaults to Buenos Aires province."""
    number = postal_code_number(postal_code)
    if number is not None and 1000 <= number <= 1439:
        return 'C'
    return 'B'


def parse_free_text_address(address: str, province: Optional[str] = None) -> ParsedAddress:
    """
    Best-effort split of a free-text address.

    `<street> <number>, <...>, <city>, ...` with the first 4-digit group
    taken as the postal code.
    """
    text = (address or '').strip()
    parts = [p.strip() for p in text.split(',')]

    street_part = parts[0] if parts else ''
    match = _STREET_RE.match(street_part)
    if match:
        street, number = match.group(1).strip(), match.group(2)
    else:
        street, number = street_part or 'Sin calle', 'S/N'

    if len(parts) > 3 and parts[3]:
        city = parts[3]
    elif len(parts) > 1 and parts[1]:
        city = parts[1]
    else:
        city = DEFAULT_CITY

    postal_match = _POSTAL_RE.search(text)
    postal_code = postal_match.group(1) if postal_match else DEFAULT_POSTAL_CODE

    province_code = province_code_for(province) or province_code_from_postal(postal_code)
    return ParsedAddress(street, number, city, postal_code, province_code)
