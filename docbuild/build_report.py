"""Collects per-topic failures and unresolved links for the operator."""

import json
import threading
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any


@dataclass(frozen=True)
class TopicErrorRecord:
    """A component's ``apply`` failed on one topic."""

    topic_key: str
    component: str
    message: str


@dataclass(frozen=True)
class ResolutionMiss:
    """A link id that had no target and was rendered through a fallback."""

    topic_key: str
    component: str
    target_id: str
    strategy: str


class BuildReport:
    """Aggregates diagnostics from every component over a run.

    Safe to update from several topic workers at once.
    """

    def __init__(self, config_hash: str = "") -> None:
        """Start an empty report stamped with the configuration hash."""
        self.config_hash = config_hash
        self.topic_errors: list[TopicErrorRecord] = []
        self.resolution_misses: list[ResolutionMiss] = []
        self.topics_processed = 0
        self.start_time = time.time()
        self._lock = threading.Lock()

    def add_topic_error(self, record: TopicErrorRecord) -> None:
        """Record a failed topic."""
        with self._lock:
            self.topic_errors.append(record)

    def add_resolution_miss(self, miss: ResolutionMiss) -> None:
        """Record an unresolved link."""
        with self._lock:
            self.resolution_misses.append(miss)

    def topic_done(self) -> None:
        """Count a topic that went through the pipeline (successfully or not)."""
        with self._lock:
            self.topics_processed += 1

    @property
    def failed_topics(self) -> int:
        """Number of distinct topics with at least one error."""
        return len({r.topic_key for r in self.topic_errors})

    @property
    def unresolved_links(self) -> int:
        """Number of unresolved link occurrences."""
        return len(self.resolution_misses)

    def summary(self) -> dict[str, Any]:
        """Counts suitable for a one-line log message."""
        return {
            "topics_processed": self.topics_processed,
            "failed_topics": self.failed_topics,
            "unresolved_links": self.unresolved_links,
        }

    def generate_report(self, path: str) -> None:
        """Write the full report to a JSON file."""
        with self._lock:
            errors = [asdict(r) for r in self.topic_errors]
            misses = [asdict(m) for m in self.resolution_misses]
        report = {
            "meta": {
                "timestamp": time.time(),
                "duration": time.time() - self.start_time,
                "config_hash": self.config_hash,
            },
            "topic_errors": errors,
            "resolution_misses": misses,
            "stats": self._compute_stats(),
        }
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        Path(path).write_text(json.dumps(report, indent=2), encoding="utf-8")

    def _compute_stats(self) -> dict[str, Any]:
        errors_by_component: dict[str, int] = {}
        for r in self.topic_errors:
            errors_by_component[r.component] = errors_by_component.get(r.component, 0) + 1

        misses_by_id: dict[str, int] = {}
        misses_by_strategy: dict[str, int] = {}
        for m in self.resolution_misses:
            misses_by_id[m.target_id] = misses_by_id.get(m.target_id, 0) + 1
            misses_by_strategy[m.strategy] = misses_by_strategy.get(m.strategy, 0) + 1

        return {
            **self.summary(),
            "errors_by_component": errors_by_component,
            "misses_by_strategy": misses_by_strategy,
            "most_missed": sorted(
                misses_by_id.items(), key=lambda kv: (-kv[1], kv[0])
            )[:20],
        }
