"""Immutable id -> Target mapping built from an ordered list of providers."""

import logging
from collections.abc import Iterable, Iterator, Sequence
from types import MappingProxyType
from typing import Protocol

from docbuild.errors import FatalBuildError, TargetNotFoundError
from docbuild.target import Target

logger = logging.getLogger(__name__)


class TargetProvider(Protocol):
    """A source of targets (reflection metadata, conceptual topics, ...)."""

    name: str

    def load(self) -> Iterable[Target]:
        """Yield every target the source defines."""
        ...


class TargetDictionary:
    """Read-only map of target ids to targets.

    Providers are applied in declared order and a later provider overrides an
    earlier one for the same id. Overrides are logged and remembered in
    ``overridden_ids`` rather than treated as errors.
    """

    def __init__(
        self,
        targets: dict[str, Target],
        overridden_ids: dict[str, list[str]] | None = None,
    ) -> None:
        """Wrap an already-built mapping. Use ``build`` to create one from providers."""
        self._targets = MappingProxyType(dict(targets))
        self.overridden_ids: dict[str, list[str]] = overridden_ids or {}

    @classmethod
    def build(cls, providers: Sequence[TargetProvider]) -> "TargetDictionary":
        """Scan each provider once, in order, and freeze the result.

        Raises FatalBuildError if any provider cannot be read; a partial
        dictionary is never returned.
        """
        targets: dict[str, Target] = {}
        defined_by: dict[str, str] = {}
        overridden: dict[str, list[str]] = {}

        for provider in providers:
            count = 0
            try:
                for target in provider.load():
                    previous = defined_by.get(target.id)
                    if previous is not None:
                        logger.warning(
                            "Target '%s' from provider '%s' overrides provider '%s'",
                            target.id,
                            provider.name,
                            previous,
                        )
                        overridden.setdefault(target.id, [previous]).append(
                            provider.name
                        )
                    targets[target.id] = target
                    defined_by[target.id] = provider.name
                    count += 1
            except FatalBuildError:
                raise
            except Exception as e:
                msg = f"Target provider '{provider.name}' failed: {e}"
                raise FatalBuildError(msg) from e
            logger.info("Loaded %d targets from '%s'", count, provider.name)

        return cls(targets, overridden)

    def lookup(self, target_id: str) -> Target | None:
        """Return the target for an id, or None when it is not defined."""
        return self._targets.get(target_id)

    def __getitem__(self, target_id: str) -> Target:
        try:
            return self._targets[target_id]
        except KeyError:
            raise TargetNotFoundError(target_id) from None

    def __contains__(self, target_id: object) -> bool:
        return target_id in self._targets

    def __len__(self) -> int:
        return len(self._targets)

    def __iter__(self) -> Iterator[str]:
        return iter(self._targets)

    def ids(self) -> list[str]:
        """All defined ids, sorted."""
        return sorted(self._targets)

    def clear(self) -> None:
        """Drop every target. Only called when the owning context is disposed."""
        self._targets = MappingProxyType({})
        self.overridden_ids = {}
