"""
Parameter checks shared by the Wikipedia read operations.
"""

import re

from wikigate.services.errors import ValidationError

# Language codes end up in mirror host names, so keep them strict.
LANGUAGE_PATTERN = re.compile(r"^(?:[a-z]{2,3}(?:-[a-z]{2,8})?|simple)$")
DATE_PATTERN = re.compile(r"^\d{4}/\d{2}/\d{2}$")


def validate_language(lang: str) -> str:
    if not isinstance(lang, str) or not LANGUAGE_PATTERN.match(lang):
        raise ValidationError(f"Invalid language code: {lang!r}")
    return lang


def validate_text(value: str, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"'{field}' must be a non-empty string")
    return value.strip()


def validate_range(value: int, field: str, minimum: int, maximum: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"'{field}' must be an integer")
    if not minimum <= value <= maximum:
        raise ValidationError(f"'{field}' must be between {minimum} and {maximum}, got {value}")
    return value


def validate_coordinates(lat: float, lon: float) -> tuple[float, float]:
    if not -90 <= lat <= 90:
        raise ValidationError(f"Latitude out of range: {lat}")
    if not -180 <= lon <= 180:
        raise ValidationError(f"Longitude out of range: {lon}")
    return lat, lon


def validate_choice(value: str, field: str, choices: tuple[str, ...]) -> str:
    if value not in choices:
        raise ValidationError(f"'{field}' must be one of {', '.join(choices)}, got {value!r}")
    return value


def validate_date(value: str) -> str:
    if not DATE_PATTERN.match(value):
        raise ValidationError(f"Date must be formatted YYYY/MM/DD, got {value!r}")
    return value
