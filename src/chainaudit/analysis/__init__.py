"""Vulnerability detection and consensus analysis engine.

The two core calls are :func:`analyze_contract` (source + tool names →
one result per backend) and :func:`get_consensus_analysis` (results →
deduplicated, ranked report). Both take and return plain data types.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence

from chainaudit.analysis.base import Analyzer
from chainaudit.analysis.consensus import DEDUP_KEYS, DedupKey, get_consensus_analysis
from chainaudit.analysis.models import (
    AnalysisResult,
    ConsensusReport,
    Finding,
    FindingType,
    Severity,
)
from chainaudit.analysis.orchestrator import (
    DEFAULT_TIMEOUT,
    AnalysisOrchestrator,
    analyze_contract,
    analyze_contract_sync,
)


async def run_analysis(
    source: str,
    tools: Sequence[str],
    timeout: float = DEFAULT_TIMEOUT,
    dedup_key: str | DedupKey = "overlapping_lines",
    registry: Mapping[str, Analyzer] | None = None,
) -> tuple[list[AnalysisResult], ConsensusReport]:
    """Both core calls in sequence."""
    results = await analyze_contract(source, tools, timeout, registry)
    return results, get_consensus_analysis(results, dedup_key)


__all__ = [
    "DEDUP_KEYS",
    "DEFAULT_TIMEOUT",
    "AnalysisOrchestrator",
    "AnalysisResult",
    "Analyzer",
    "ConsensusReport",
    "Finding",
    "FindingType",
    "Severity",
    "analyze_contract",
    "analyze_contract_sync",
    "get_consensus_analysis",
    "run_analysis",
]
