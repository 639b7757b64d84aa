"""Order feature normalization.

Feature maps come from order entry forms and CSV imports, so keys and values
are inconsistent: casing varies, values may be lists or nested objects.
Everything the scheduler needs from them goes through this module.
"""

from __future__ import annotations

import re
from typing import Any, Mapping


LOP_FEATURE_KEYS: tuple[str, ...] = (
    "length_of_pull",
    "lengthofpull",
    "lop",
    "lop_adjustment",
)

LOP_NO_ADJUSTMENT_SENTINELS: frozenset[str] = frozenset(
    {
        "",
        "none",
        "standard",
        "std",
        "std_length",
        "standard_length",
        "no_extra_length",
        "std_no_extra_length",
        "no_lop_change",
        "0",
        "normal",
    }
)

# Textual variants ("STD 13.5in", "Standard LOP", "no extra length")
_NO_ADJUSTMENT_FRAGMENTS: tuple[str, ...] = ("std", "standard", "no_extra")

_NESTED_VALUE_KEYS: tuple[str, ...] = ("value", "id", "label", "name")


def _canonical_key(key: object) -> str:
    return re.sub(r"[\s\-_]+", "", str(key or "").strip().lower())


def _canonical_value(value: str) -> str:
    return re.sub(r"[\s\-]+", "_", value.strip().lower())


def normalize_feature_value(value: Any) -> str | None:
    """Reduce a raw feature value to a single stripped string.

    Lists/tuples unwrap to their first meaningful element; mappings to their
    ``value``/``id``/``label``/``name`` entry, else their first meaningful value.
    Returns None when nothing usable is found.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        s = value.replace("\u00a0", " ").strip()
        return s if s else None
    if isinstance(value, (int, float)):
        if value != value:  # NaN from pandas
            return None
        if isinstance(value, float) and value.is_integer():
            return str(int(value))
        return str(value)
    if isinstance(value, Mapping):
        for key in _NESTED_VALUE_KEYS:
            if key in value:
                found = normalize_feature_value(value[key])
                if found is not None:
                    return found
        for v in value.values():
            found = normalize_feature_value(v)
            if found is not None:
                return found
        return None
    if isinstance(value, (list, tuple)):
        for v in value:
            found = normalize_feature_value(v)
            if found is not None:
                return found
        return None
    return None


def get_lop_value(features: Mapping[str, Any] | None) -> str | None:
    """Return the normalized length-of-pull value, if any alias is present."""
    if not features or not isinstance(features, Mapping):
        return None
    wanted = {_canonical_key(k) for k in LOP_FEATURE_KEYS}
    for key, raw in features.items():
        if _canonical_key(key) in wanted:
            value = normalize_feature_value(raw)
            if value is not None:
                return value
    return None


def is_no_adjustment(value: str | None) -> bool:
    if value is None:
        return True
    v = _canonical_value(value)
    if v in LOP_NO_ADJUSTMENT_SENTINELS:
        return True
    return any(fragment in v for fragment in _NO_ADJUSTMENT_FRAGMENTS)


def needs_lop_adjustment(features: Mapping[str, Any] | None) -> bool:
    """True when the order carries a non-standard length-of-pull value."""
    return not is_no_adjustment(get_lop_value(features))
