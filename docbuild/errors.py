"""Exception taxonomy for the documentation build."""


class DocBuildError(Exception):
    """Base class for all build errors."""


class FatalBuildError(DocBuildError):
    """Aborts the whole run (bad configuration, unreadable index source, etc.)."""


class TopicError(DocBuildError):
    """A component failed while transforming a single topic."""

    def __init__(self, topic_key: str, component: str, message: str) -> None:
        """Record which topic and component failed."""
        super().__init__(f"[{component}] topic '{topic_key}': {message}")
        self.topic_key = topic_key
        self.component = component
        self.message = message


class TargetNotFoundError(DocBuildError, KeyError):
    """Raised when an id is not present in a target dictionary."""


class DocumentNotFoundError(DocBuildError, KeyError):
    """Raised when a document id was never indexed."""
