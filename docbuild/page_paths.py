"""Helpers for turning API names into page paths, file names and anchors."""

import re

# Conservative: keep letters, digits, underscore, dash.
UNSAFE_RE = re.compile(r"[^A-Za-z0-9_-]+")


def safe_token(name: str, sep: str = "-") -> str:
    """Make a stable filename-ish token.

    Nested types (Outer+Inner), generic arity markers (List`1) and dots are
    normalised so the result can be used as a path segment or file name.
    """
    name = name.replace("+", sep)
    name = name.replace("`", "")
    name = name.replace(".", sep)
    name = UNSAFE_RE.sub(sep, name).strip(sep)
    return name or "Unknown"


def file_name_for_id(target_id: str) -> str:
    """Default output file name for an API id: T:Acme.Widget -> T_Acme_Widget."""
    return safe_token(target_id.replace(":", "_"), sep="_")


def header_slug(s: str) -> str:
    """Generate a GitHub-ish anchor slug: lower, hyphenate non-alnum."""
    s = s.strip().lower()
    s = re.sub(r"[^a-z0-9]+", "-", s)
    s = re.sub(r"-{2,}", "-", s).strip("-")
    return s or "section"


def page_path_for_fullname(api_root: str, full_name: str) -> str:
    """Page path for a dotted name: Foo.Bar.Baz -> /api/Foo/Bar/Baz."""
    parts = [safe_token(p) for p in full_name.split(".")]
    return f"{api_root.rstrip('/')}/{'/'.join(parts)}"
