"""Layering user configuration over the built-in defaults."""

from collections.abc import Collection, Mapping
from typing import Any

# Lists under these keys accumulate instead of being replaced.
ADDITIVE_KEYS = frozenset({"external_prefixes"})


def deep_merge(
    base: Mapping[str, Any],
    update: Mapping[str, Any],
    additive: Collection[str] = ADDITIVE_KEYS,
) -> dict[str, Any]:
    """Return ``base`` with ``update`` layered on top.

    Nested mappings merge key by key. Any other value in ``update`` wins,
    except lists under an ``additive`` key: those keep the base entries in
    order and append each new entry once.
    """
    merged = dict(base)
    for key, value in update.items():
        current = merged.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            merged[key] = deep_merge(current, value, additive)
        elif key in additive and isinstance(current, list) and isinstance(value, list):
            combined = list(current)
            for item in value:
                if item not in combined:
                    combined.append(item)
            merged[key] = combined
        else:
            merged[key] = value
    return merged
