# anpr_pipeline/validation/rules.py
from dataclasses import dataclass, field
from typing import Dict, List

DEFAULT_REGIONS = [
    'ঢাকা', 'চট্টগ্রাম', 'খুলনা', 'রাজশাহী', 'বরিশাল', 'সিলেট', 'রংপুর', 'ময়মনসিংহ'
]

DEFAULT_DIGITS = ['০', '১', '২', '৩', '৪', '৫', '৬', '৭', '৮', '৯']

DEFAULT_SERIES_CATEGORIES = {
    'সখী': 'Private Vehicle',
    'বয': 'Commercial Vehicle',
    'যায়র': 'Government Vehicle',
}

# Bengali block
SCRIPT_RANGE = (0x0980, 0x09FF)

# Consonants/vowels, dependent vowel signs, and the au length mark through rra
LETTER_RANGES = [(0x0985, 0x09B9), (0x09BE, 0x09CC), (0x09D7, 0x09DC)]


@dataclass
class ValidationRules:
    """Allow-lists used by the strict plate format check"""
    regions: List[str] = field(default_factory=lambda: list(DEFAULT_REGIONS))
    digits: List[str] = field(default_factory=lambda: list(DEFAULT_DIGITS))
    series_categories: Dict[str, str] = field(
        default_factory=lambda: dict(DEFAULT_SERIES_CATEGORIES)
    )


def is_script_char(char: str) -> bool:
    return SCRIPT_RANGE[0] <= ord(char) <= SCRIPT_RANGE[1]


def is_script_letter(char: str) -> bool:
    code = ord(char)
    return any(low <= code <= high for low, high in LETTER_RANGES)


def infer_vehicle_type(series: str, series_categories: Dict[str, str]) -> str:
    for marker, category in series_categories.items():
        if marker in series:
            return category
    return 'Unknown'
