from __future__ import annotations

import re
import unicodedata

NORTH = "North"
CENTRAL = "Central"
SOUTH = "South"
OTHER = "Other"

CANONICAL_REGIONS = (NORTH, CENTRAL, SOUTH)

REGION_STATES: dict[str, tuple[str, ...]] = {
    NORTH: (
        "Hà Nội", "Hải Phòng", "Bắc Ninh", "Hà Nam", "Ninh Bình", "Nam Định",
        "Thái Bình", "Vĩnh Phúc", "Hải Dương", "Hưng Yên", "Bắc Giang", "Phú Thọ",
        "Thái Nguyên", "Tuyên Quang", "Lạng Sơn", "Cao Bằng", "Bắc Kạn", "Lào Cai",
        "Yên Bái", "Điện Biên", "Lai Châu", "Sơn La", "Hòa Bình", "Hà Giang", "Quảng Ninh",
    ),
    CENTRAL: (
        "Thanh Hóa", "Nghệ An", "Hà Tĩnh", "Quảng Bình", "Quảng Trị", "Thừa Thiên Huế",
        "Đà Nẵng", "Quảng Nam", "Quảng Ngãi", "Bình Định", "Phú Yên", "Khánh Hòa",
        "Ninh Thuận", "Bình Thuận", "Kon Tum", "Gia Lai", "Đắk Lắk", "Đắk Nông", "Lâm Đồng",
    ),
    SOUTH: (
        "Hồ Chí Minh", "Bà Rịa - Vũng Tàu", "Bình Dương", "Bình Phước", "Đồng Nai", "Tây Ninh",
        "Long An", "Đồng Tháp", "Tiền Giang", "An Giang", "Bến Tre", "Vĩnh Long", "Trà Vinh",
        "Hậu Giang", "Kiên Giang", "Sóc Trăng", "Bạc Liêu", "Cà Mau", "Cần Thơ",
    ),
}

_ALIASES: dict[str, str] = {
    "HCM": "Hồ Chí Minh",
    "TPHCM": "Hồ Chí Minh",
    "Sài Gòn": "Hồ Chí Minh",
    "Saigon": "Hồ Chí Minh",
    "Huế": "Thừa Thiên Huế",
    "Vũng Tàu": "Bà Rịa - Vũng Tàu",
}

_PREFIX_RE = re.compile(r"^(thanh pho|tp\.?|tinh)\s+")


def normalize_state(name: str) -> str:
    """Fold case, diacritics, punctuation spacing and administrative prefixes."""
    text = unicodedata.normalize("NFD", name.strip().casefold())
    text = "".join(ch for ch in text if unicodedata.category(ch) != "Mn")
    text = text.replace("đ", "d").replace("-", " ")
    text = " ".join(text.split())
    return _PREFIX_RE.sub("", text)


def _build_table() -> dict[str, str]:
    table: dict[str, str] = {}
    for region, states in REGION_STATES.items():
        for state in states:
            table[normalize_state(state)] = region
    for alias, state in _ALIASES.items():
        table[normalize_state(alias)] = table[normalize_state(state)]
    return table


_STATE_TABLE = _build_table()


def classify(state_name: str | None) -> str:
    """Map a free-text state label to North, Central, South or Other."""
    if not state_name:
        return OTHER
    return _STATE_TABLE.get(normalize_state(state_name), OTHER)


def states_in(region: str) -> tuple[str, ...]:
    return REGION_STATES.get(region, ())


def canonical_region(name: str) -> str | None:
    """Return the canonical spelling of a region name, or None if unknown."""
    for region in (*CANONICAL_REGIONS, OTHER):
        if region.casefold() == name.strip().casefold():
            return region
    return None
