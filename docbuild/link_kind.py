"""Link kinds and the id prefix conventions used to infer them."""

import re
from enum import Enum


class LinkKind(Enum):
    """What sort of destination a target points at."""

    MEMBER = "member"
    TYPE = "type"
    NAMESPACE = "namespace"
    CONCEPTUAL_TOPIC = "conceptual"
    OTHER = "other"


# Member ids: M:Foo.Bar(System.Int32), P:Foo.Baz, Overload:Foo.Bar ...
_KIND_PREFIXES: dict[LinkKind, tuple[str, ...]] = {
    LinkKind.NAMESPACE: ("N:",),
    LinkKind.TYPE: ("T:",),
    LinkKind.MEMBER: ("M:", "P:", "F:", "E:", "Overload:"),
}

GUID_RE = re.compile(
    r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
)


def link_kind_for_id(target_id: str) -> LinkKind:
    """Infer the link kind from an id's prefix (or GUID shape)."""
    for kind, prefixes in _KIND_PREFIXES.items():
        if target_id.startswith(prefixes):
            return kind
    if GUID_RE.match(target_id):
        return LinkKind.CONCEPTUAL_TOPIC
    return LinkKind.OTHER


def strip_id_prefix(target_id: str) -> str:
    """Return the id without its kind prefix (T:Foo.Bar -> Foo.Bar)."""
    for prefixes in _KIND_PREFIXES.values():
        for prefix in prefixes:
            if target_id.startswith(prefix):
                return target_id[len(prefix) :]
    if target_id.startswith("R:"):
        return target_id[2:]
    return target_id


def id_prefixes_for(kind: LinkKind) -> tuple[str, ...]:
    """Prefixes used to expand a bare name into an id of the given kind."""
    return _KIND_PREFIXES.get(kind, ())


def parse_link_kind(value: "str | LinkKind") -> LinkKind:
    """Accept either an enum member or its config spelling ("type", "Member")."""
    if isinstance(value, LinkKind):
        return value
    text = str(value).strip().lower()
    for kind in LinkKind:
        if text in {kind.value, kind.name.lower()}:
            return kind
    msg = f"Unknown link kind: {value!r}"
    raise ValueError(msg)
