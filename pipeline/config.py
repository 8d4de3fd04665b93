"""Immutable per-run pipeline configuration."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from pipeline.errors import PipelineConfigError


@dataclass(frozen=True)
class PipelineConfig:
    """Which stages run and with what publish policy.

    Dependent options are checked here so a misconfigured stage fails at build
    time instead of silently doing nothing.
    """

    fetch_cutoff: datetime
    omit_suspicious: bool = False
    omit_empty_meta: bool = False
    enable_composition: bool = False
    enable_persistence: bool = False
    enable_dedupe: bool = False

    def __post_init__(self) -> None:
        if self.fetch_cutoff.tzinfo is None:
            raise PipelineConfigError("fetch_cutoff must be timezone-aware")
        if self.enable_dedupe and not self.enable_persistence:
            raise PipelineConfigError("enable_dedupe requires enable_persistence")
        if self.omit_empty_meta and not self.enable_composition:
            raise PipelineConfigError("omit_empty_meta requires enable_composition")

    @property
    def should_dedupe(self) -> bool:
        return self.enable_dedupe and self.enable_persistence
