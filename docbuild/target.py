"""Data model for resolvable link targets."""

from dataclasses import dataclass

from docbuild.link_kind import LinkKind


@dataclass(frozen=True)
class Target:
    """A resolvable destination for an API member or conceptual topic id."""

    id: str
    display_text: str
    url: str = ""
    anchor: str = ""  # fragment within url, without the leading '#'
    link_kind: LinkKind = LinkKind.OTHER

    @property
    def href(self) -> str:
        """The url with its fragment anchor attached."""
        if self.anchor:
            return f"{self.url}#{self.anchor}"
        return self.url
