"""
Configuration
=============

Dataclass configuration for the checker, harness and observability layer,
aggregated in EngineConfig.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import FrozenSet, Optional

from .contracts.base import InvariantRule


@dataclass
class CheckerConfig:
    """Invariant checker settings."""
    first_violation_only: bool = False
    enabled_rules: Optional[FrozenSet[InvariantRule]] = None  # None = all rules


@dataclass
class HarnessConfig:
    """Validation harness policy."""
    stop_on_rejection: bool = False
    validate_after_rejection: bool = False


@dataclass
class ObservabilityConfig:
    """Configuration for the audit log and metrics collector."""
    collect_audit: bool = True
    collect_metrics: bool = True


@dataclass
class EngineConfig:
    """Complete configuration for a validation run."""
    checker: Optional[CheckerConfig] = None
    harness: Optional[HarnessConfig] = None
    observability: Optional[ObservabilityConfig] = None

    def __post_init__(self):
        self.checker = self.checker or CheckerConfig()
        self.harness = self.harness or HarnessConfig()
        self.observability = self.observability or ObservabilityConfig()
