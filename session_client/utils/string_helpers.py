"""
String Helpers: key naming convention converter.

The backend speaks camelCase JSON (``firstName``, ``isAdmin``,
``csrfToken``); models in this package use snake_case.  All key
conversion at the response boundary flows through here.
"""

from __future__ import annotations

import re
from typing import Union, overload

__all__ = [
    "to_snake_case",
    "normalize_keys",
]

JsonValue = Union[
    str,
    int,
    float,
    bool,
    None,
    dict[str, "JsonValue"],
    list["JsonValue"],
]

# "TOTPVerified" -> "TOTP_Verified"
_RE_UPPER_RUN = re.compile(r"([A-Z]+)([A-Z][a-z])")

# "isAdmin" -> "is_Admin"
_RE_CAMEL_BOUNDARY = re.compile(r"([a-z\d])([A-Z])")

_RE_MULTI_UNDERSCORE = re.compile(r"_+")


def to_snake_case(name: str) -> str:
    """Convert a camelCase or PascalCase key to snake_case.

    ::

        firstName     -> first_name
        isSuperAdmin  -> is_super_admin
        totpVerified  -> totp_verified
        csrfToken     -> csrf_token
        TOTPVerified  -> totp_verified
    """
    s1 = _RE_UPPER_RUN.sub(r"\1_\2", name)
    s2 = _RE_CAMEL_BOUNDARY.sub(r"\1_\2", s1)
    s3 = _RE_MULTI_UNDERSCORE.sub("_", s2)
    return s3.lower()


@overload
def normalize_keys(data: dict[str, JsonValue]) -> dict[str, JsonValue]: ...


@overload
def normalize_keys(data: list[JsonValue]) -> list[JsonValue]: ...


@overload
def normalize_keys(data: JsonValue) -> JsonValue: ...


def normalize_keys(
    data: Union[dict[str, JsonValue], list[JsonValue], JsonValue],
) -> Union[dict[str, JsonValue], list[JsonValue], JsonValue]:
    """Recursively convert all dictionary keys to snake_case."""
    if isinstance(data, dict):
        return {to_snake_case(k): normalize_keys(v) for k, v in data.items()}
    if isinstance(data, list):
        return [normalize_keys(item) for item in data]
    return data
