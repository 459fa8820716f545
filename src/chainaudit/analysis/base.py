"""Analyzer protocol — every backend (heuristic or external) satisfies this."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from chainaudit.analysis.models import AnalysisResult


@runtime_checkable
class Analyzer(Protocol):
    """Protocol for analysis backends."""

    name: str

    def is_available(self) -> bool:
        """Whether the backend can run in this environment."""
        ...

    async def run(self, source: str, timeout: float) -> AnalysisResult:
        """Analyze source text. Must report failures in the result, not raise."""
        ...
