"""Runs topics through an ordered list of build components."""

import logging
from collections.abc import Callable, Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from functools import partial
from pathlib import Path
from typing import Any, TypeVar

from docbuild.build_component import BuildComponent, IndexingComponent
from docbuild.build_context import BuildContext
from docbuild.build_report import BuildReport, TopicErrorRecord
from docbuild.component_registry import ComponentRegistry, default_registry
from docbuild.errors import FatalBuildError, TopicError
from docbuild.pipeline_config import ComponentDeclaration
from docbuild.topic import Topic

logger = logging.getLogger(__name__)

T = TypeVar("T")


class EngineState(Enum):
    """Lifecycle of a pipeline engine."""

    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    PROCESSING = "processing"
    DISPOSED = "disposed"


class PipelineEngine:
    """Owns the components and their shared context for one build.

    ``initialize`` creates and initializes every declared component, then
    builds shared indices; any failure there is fatal. ``run`` applies the
    components to each topic in declared order; a failure in ``apply`` only
    stops that topic.
    """

    def __init__(
        self,
        registry: ComponentRegistry | None = None,
        max_workers: int = 1,
        report: BuildReport | None = None,
        base_dir: Path | None = None,
        settings: dict[str, Any] | None = None,
    ) -> None:
        """Create an engine; nothing is loaded until ``initialize``."""
        self.registry = registry or default_registry()
        self.max_workers = max(1, max_workers)
        self.context = BuildContext(report=report, base_dir=base_dir, settings=settings)
        self.components: list[BuildComponent] = []
        self.state = EngineState.UNINITIALIZED

    @property
    def report(self) -> BuildReport:
        """Diagnostics collected so far."""
        return self.context.report

    def initialize(self, declarations: Sequence[ComponentDeclaration]) -> None:
        """Create, initialize and index every component in declared order."""
        self._require(EngineState.UNINITIALIZED, "initialize")
        self.state = EngineState.INITIALIZING
        try:
            for decl in declarations:
                component = self._guard(
                    decl.name,
                    "construction",
                    partial(self.registry.create, decl.type, decl.name),
                )
                self._guard(
                    component.name,
                    "initialize",
                    partial(component.initialize, decl.config, self.context),
                )
                self.components.append(component)

            for component in self.components:
                if isinstance(component, IndexingComponent):
                    self._guard(component.name, "build_index", component.build_index)
        except FatalBuildError:
            logger.exception("Pipeline initialization failed")
            self.dispose()
            raise

        self.state = EngineState.READY
        logger.info(
            "Pipeline ready with %d components: %s",
            len(self.components),
            ", ".join(c.name for c in self.components),
        )

    def _guard(self, name: str, step: str, fn: Callable[[], T]) -> T:
        try:
            return fn()
        except FatalBuildError:
            raise
        except Exception as e:
            msg = f"Component '{name}' failed during {step}: {e}"
            raise FatalBuildError(msg) from e

    def run(self, topics: Iterable[Topic]) -> list[Topic]:
        """Process every topic; output order matches input order."""
        self._require(EngineState.READY, "run")
        self.state = EngineState.PROCESSING
        try:
            topic_list = list(topics)
            if self.max_workers > 1 and len(topic_list) > 1:
                with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                    results = list(pool.map(self._process, topic_list))
            else:
                results = [self._process(t) for t in topic_list]
        finally:
            self.state = EngineState.READY

        summary = self.report.summary()
        logger.info(
            "Processed %d topics: %d failed, %d unresolved links",
            len(results),
            summary["failed_topics"],
            summary["unresolved_links"],
        )
        return results

    def _process(self, topic: Topic) -> Topic:
        document = topic.document
        for component in self.components:
            try:
                result = component.apply(document, topic.key)
            except Exception as e:
                error = TopicError(topic.key, component.name, str(e) or type(e).__name__)
                error.__cause__ = e
                logger.error("%s", error, exc_info=e)
                self.report.add_topic_error(
                    TopicErrorRecord(topic.key, component.name, error.message)
                )
                topic.failed = True
                topic.error = error
                break
            if result is not None:
                document = result
        topic.document = document
        self.report.topic_done()
        return topic

    def dispose(self) -> None:
        """Release caches and dictionaries. Safe to call more than once."""
        if self.state == EngineState.DISPOSED:
            return
        self.context.dispose()
        self.components.clear()
        self.state = EngineState.DISPOSED

    def _require(self, expected: EngineState, action: str) -> None:
        if self.state != expected:
            msg = f"Cannot {action} while the pipeline is {self.state.value}"
            raise FatalBuildError(msg)

    def __enter__(self) -> "PipelineEngine":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.dispose()
