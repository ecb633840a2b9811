import re
from typing import List, Optional

DEFAULT_COUNTRY_CODE = "91"
MIN_DIGITS = 10


def digits_only(value: Optional[str]) -> str:
    return re.sub(r"\D", "", value or "")


def mask_phone_number(value: Optional[str]) -> str:
    """Replace every other digit, starting with the first, by ``x``."""
    if not value:
        return ""
    masked = []
    digit_index = 0
    for char in value:
        if char.isdigit():
            masked.append("x" if digit_index % 2 == 0 else char)
            digit_index += 1
        else:
            masked.append(char)
    return "".join(masked)


def is_valid_phone_number(value: Optional[str]) -> bool:
    return len(digits_only(value)) >= MIN_DIGITS


def build_number_variants(value: Optional[str], country_code: str = DEFAULT_COUNTRY_CODE) -> List[str]:
    """Spellings Exotel may use for one number: national, trunk-prefixed, with country code."""
    digits = digits_only(value)
    if not digits:
        return []
    variants = {digits}
    national = digits.lstrip("0")
    if national.startswith(country_code) and len(national) == len(country_code) + MIN_DIGITS:
        national = national[len(country_code):]
    if national:
        variants.add(national)
        variants.add(f"0{national}")
        variants.add(f"{country_code}{national}")
        variants.add(f"+{country_code}{national}")
    return sorted(variants, key=len, reverse=True)
