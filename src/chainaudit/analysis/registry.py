"""Backend registry and the single-tool invocation contract."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from types import MappingProxyType

from chainaudit.analysis.adapters import MythrilAdapter, SlitherAdapter
from chainaudit.analysis.base import Analyzer
from chainaudit.analysis.heuristic import HeuristicAnalyzer
from chainaudit.analysis.models import AnalysisResult

logger = logging.getLogger(__name__)

# Alternative names accepted in tool lists
ALIASES = {"heuristic": "custom"}

_default_registry: Mapping[str, Analyzer] | None = None


def build_registry(tool_paths: Mapping[str, str] | None = None) -> Mapping[str, Analyzer]:
    """Create the read-only name → analyzer mapping.

    ``tool_paths`` overrides the executable used for an external tool.
    """
    tool_paths = tool_paths or {}
    analyzers: list[Analyzer] = [
        HeuristicAnalyzer(),
        SlitherAdapter(tool_paths.get("slither")),
        MythrilAdapter(tool_paths.get("mythril")),
    ]
    return MappingProxyType({a.name: a for a in analyzers})


def default_registry() -> Mapping[str, Analyzer]:
    """Process-wide registry, built on first use and never mutated."""
    global _default_registry
    if _default_registry is None:
        _default_registry = build_registry()
    return _default_registry


def canonical_name(tool_name: str) -> str:
    name = tool_name.strip().lower()
    return ALIASES.get(name, name)


async def invoke(
    tool_name: str,
    source: str,
    timeout: float,
    registry: Mapping[str, Analyzer] | None = None,
) -> AnalysisResult:
    """Run one backend. Failures come back as a failed result, never raised."""
    registry = registry if registry is not None else default_registry()
    name = canonical_name(tool_name)
    analyzer = registry.get(name)
    if analyzer is None:
        return AnalysisResult.failure(tool_name, "unknown tool")
    if not analyzer.is_available():
        return AnalysisResult.failure(name, "tool unavailable")

    try:
        return await analyzer.run(source, timeout)
    except Exception as e:
        logger.exception("Backend %s crashed", name)
        return AnalysisResult.failure(name, f"{type(e).__name__}: {e}")
