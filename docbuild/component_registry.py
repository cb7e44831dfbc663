"""Maps component type names from configuration to constructors."""

from collections.abc import Callable

from docbuild.build_component import BuildComponent
from docbuild.copy_from_index import CopyFromIndexComponent
from docbuild.errors import FatalBuildError
from docbuild.help_attributes import HelpAttributesComponent
from docbuild.resolve_reference_links import (
    ResolveConceptualLinksComponent,
    ResolveReferenceLinksComponent,
)
from docbuild.save_component import SaveComponent

ComponentFactory = Callable[[str | None], BuildComponent]

BUILTIN_COMPONENTS: tuple[type[BuildComponent], ...] = (
    ResolveReferenceLinksComponent,
    ResolveConceptualLinksComponent,
    CopyFromIndexComponent,
    HelpAttributesComponent,
    SaveComponent,
)


class ComponentRegistry:
    """Explicit registry of component types; nothing is discovered at runtime."""

    def __init__(self) -> None:
        """Start with no registered types."""
        self._factories: dict[str, ComponentFactory] = {}

    def register(self, type_name: str, factory: ComponentFactory) -> None:
        """Register a constructor; re-registering a name replaces it."""
        self._factories[type_name] = factory

    def create(self, type_name: str, name: str | None = None) -> BuildComponent:
        """Construct a component, raising FatalBuildError for unknown types."""
        factory = self._factories.get(type_name)
        if factory is None:
            known = ", ".join(sorted(self._factories)) or "<none>"
            msg = f"Unknown component type '{type_name}' (known: {known})"
            raise FatalBuildError(msg)
        return factory(name)

    def type_names(self) -> list[str]:
        """Registered type names, sorted."""
        return sorted(self._factories)

    def __contains__(self, type_name: object) -> bool:
        return type_name in self._factories


def default_registry() -> ComponentRegistry:
    """A registry holding every built-in component type."""
    registry = ComponentRegistry()
    for cls in BUILTIN_COMPONENTS:
        registry.register(cls.type_name, cls)
    return registry
