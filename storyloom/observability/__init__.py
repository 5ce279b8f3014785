"""
Observability & Audit Layer

RESPONSIBILITY: Audit trail and metrics for validation runs
ALLOWED INPUTS: Action outcomes and violations reported by the harness
OUTPUTS: AuditLog, MetricsCollector

WHAT THIS LAYER MUST NOT DO:
============================
- Modify system behavior
- Filter or interpret events (only record them)
- Make decisions based on logged data
- Touch the EntityStore

BOUNDARY ENFORCEMENT:
=====================
- Entries are immutable and append-only
- Ordering comes from a monotonic sequence number, never wall-clock
  time, so two identical runs produce identical trails
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple
from enum import Enum
import logging

from ..config import ObservabilityConfig
from ..contracts.base import Rejection, Violation

logger = logging.getLogger(__name__)


# =============================================================================
# AUDIT LOG
# =============================================================================

class AuditEventType(Enum):
    """Explicit audit event types."""
    RUN_STARTED = "run_started"
    ACTION_APPLIED = "action_applied"
    ACTION_REJECTED = "action_rejected"
    VIOLATION_DETECTED = "violation_detected"
    RUN_FINISHED = "run_finished"


@dataclass(frozen=True)
class AuditLogEntry:
    """Immutable audit log entry."""
    sequence: int
    event_type: AuditEventType
    action: str
    entity_id: Optional[str] = None
    metadata: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)


class AuditLog:
    """
    Append-only collector of audit entries.
    """

    def __init__(self):
        self._entries: List[AuditLogEntry] = []

    def collect(
        self,
        event_type: AuditEventType,
        action: str,
        entity_id: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None
    ) -> AuditLogEntry:
        """Append an entry and return it."""
        entry = AuditLogEntry(
            sequence=len(self._entries),
            event_type=event_type,
            action=action,
            entity_id=entity_id,
            metadata=tuple(sorted(metadata.items())) if metadata else ()
        )
        self._entries.append(entry)
        return entry

    def get_entries(self, event_type: Optional[AuditEventType] = None) -> List[AuditLogEntry]:
        """Get entries, optionally filtered."""
        if event_type:
            return [e for e in self._entries if e.event_type == event_type]
        return list(self._entries)

    @property
    def entry_count(self) -> int:
        return len(self._entries)


# =============================================================================
# METRICS COLLECTOR
# =============================================================================

class MetricType(Enum):
    """Types of metrics collected."""
    COUNTER = "counter"
    GAUGE = "gauge"


@dataclass
class MetricDefinition:
    """Definition of a metric to collect."""
    name: str
    metric_type: MetricType
    description: str
    labels: Tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class MetricPoint:
    """Immutable metric data point."""
    metric_name: str
    value: float
    sequence: int
    labels: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)


class MetricsCollector:
    """
    Collect and aggregate run metrics.

    Metrics are append-only series of data points.
    """

    def __init__(self):
        self._metrics: Dict[str, List[MetricPoint]] = {}
        self._definitions: Dict[str, MetricDefinition] = {}
        self._sequence = 0
        self._register_default_metrics()

    def _register_default_metrics(self):
        defaults = [
            MetricDefinition(
                name="actions_applied_total",
                metric_type=MetricType.COUNTER,
                description="Actions applied by the engine",
                labels=("action",)
            ),
            MetricDefinition(
                name="actions_rejected_total",
                metric_type=MetricType.COUNTER,
                description="Actions rejected by a precondition",
                labels=("action",)
            ),
            MetricDefinition(
                name="violations_total",
                metric_type=MetricType.COUNTER,
                description="Invariant violations detected",
                labels=("rule",)
            ),
            MetricDefinition(
                name="run_steps",
                metric_type=MetricType.GAUGE,
                description="Actions consumed by a finished run"
            ),
        ]
        for definition in defaults:
            self.register_metric(definition)

    def register_metric(self, definition: MetricDefinition):
        """Register a new metric definition."""
        self._definitions[definition.name] = definition
        if definition.name not in self._metrics:
            self._metrics[definition.name] = []

    def record(
        self,
        metric_name: str,
        value: float,
        labels: Optional[Dict[str, str]] = None
    ):
        """Record a metric data point."""
        if metric_name not in self._metrics:
            self._metrics[metric_name] = []

        label_tuple = tuple(sorted(labels.items())) if labels else ()
        self._metrics[metric_name].append(MetricPoint(
            metric_name=metric_name,
            value=value,
            sequence=self._sequence,
            labels=label_tuple
        ))
        self._sequence += 1

    def increment(self, metric_name: str, labels: Optional[Dict[str, str]] = None):
        self.record(metric_name, 1.0, labels)

    def get_metric(
        self,
        metric_name: str,
        labels: Optional[Dict[str, str]] = None
    ) -> List[MetricPoint]:
        """Get metric data points, optionally restricted to matching labels."""
        points = self._metrics.get(metric_name, [])
        if labels:
            wanted = set(labels.items())
            points = [p for p in points if wanted.issubset(p.labels)]
        return list(points)

    def get_latest(self, metric_name: str) -> Optional[MetricPoint]:
        """Get the latest value for a metric."""
        points = self._metrics.get(metric_name, [])
        return points[-1] if points else None

    def get_definition(self, metric_name: str) -> Optional[MetricDefinition]:
        return self._definitions.get(metric_name)

    def compute_aggregates(
        self,
        metric_name: str,
        labels: Optional[Dict[str, str]] = None
    ) -> Dict[str, float]:
        """Compute aggregate statistics for a metric."""
        points = self.get_metric(metric_name, labels)

        if not points:
            return {}

        values = [p.value for p in points]

        return {
            'count': len(values),
            'sum': sum(values),
            'min': min(values),
            'max': max(values),
            'avg': sum(values) / len(values),
        }


# =============================================================================
# OBSERVABILITY ENGINE
# =============================================================================

class ObservabilityEngine:
    """
    Central observability hooks for the harness.

    BOUNDARY ENFORCEMENT:
    - ONLY observes, never modifies
    - Provides read-only access to collected data
    """

    def __init__(self, config: Optional[ObservabilityConfig] = None):
        self._config = config or ObservabilityConfig()
        self._audit = AuditLog() if self._config.collect_audit else None
        self._metrics = MetricsCollector() if self._config.collect_metrics else None

    def run_started(self, action_count: int):
        logger.info("Validation run started with %d action(s)", action_count)
        if self._audit:
            self._audit.collect(
                AuditEventType.RUN_STARTED, "run",
                metadata={"actions": str(action_count)}
            )

    def action_applied(self, index: int, action_name: str, event_id: Optional[str]):
        logger.debug("Step %d: %s -> %s", index, action_name, event_id)
        if self._audit:
            self._audit.collect(
                AuditEventType.ACTION_APPLIED, action_name,
                entity_id=event_id, metadata={"step": str(index)}
            )
        if self._metrics:
            self._metrics.increment("actions_applied_total", {"action": action_name})

    def action_rejected(self, index: int, action_name: str, rejection: Rejection):
        logger.debug("Step %d: %s rejected (%s)", index, action_name, rejection.code.name)
        if self._audit:
            self._audit.collect(
                AuditEventType.ACTION_REJECTED, action_name,
                metadata={"step": str(index), "code": rejection.code.name}
            )
        if self._metrics:
            self._metrics.increment("actions_rejected_total", {"action": action_name})

    def violations_detected(self, index: int, violations: List[Violation]):
        for violation in violations:
            logger.warning(
                "Step %d: %s violated by %s: %s",
                index, violation.rule.name, violation.entity_id, violation.message
            )
            if self._audit:
                self._audit.collect(
                    AuditEventType.VIOLATION_DETECTED, violation.rule.name,
                    entity_id=violation.entity_id, metadata={"step": str(index)}
                )
            if self._metrics:
                self._metrics.increment("violations_total", {"rule": violation.rule.name})

    def run_finished(self, steps: int, passed: bool):
        logger.info("Validation run finished after %d step(s): %s", steps, "PASS" if passed else "FAIL")
        if self._audit:
            self._audit.collect(
                AuditEventType.RUN_FINISHED, "run",
                metadata={"steps": str(steps), "passed": str(passed)}
            )
        if self._metrics:
            self._metrics.record("run_steps", float(steps))

    def get_audit_log(self) -> Optional[AuditLog]:
        """Get audit log (read-only access)."""
        return self._audit

    def get_metrics(self) -> Optional[MetricsCollector]:
        """Get metrics collector (read-only access)."""
        return self._metrics

    def generate_audit_report(self) -> Dict:
        """Summarize the trail by event type."""
        entries = self._audit.get_entries() if self._audit else []
        by_type: Dict[str, int] = {}
        for entry in entries:
            by_type[entry.event_type.value] = by_type.get(entry.event_type.value, 0) + 1
        return {
            'total_entries': len(entries),
            'by_event_type': by_type,
        }


__all__ = [
    "AuditEventType",
    "AuditLogEntry",
    "AuditLog",
    "MetricType",
    "MetricDefinition",
    "MetricPoint",
    "MetricsCollector",
    "ObservabilityEngine",
]
