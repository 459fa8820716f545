"""Consensus aggregation — merge per-backend findings into one ranked report.

Findings from different backends are grouped when a dedup key says they
describe the same issue. The default key matches same-type findings whose
line sets intersect (or that are both unlocated). Grouping is transitive,
so merging an already-merged report changes nothing.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Callable, Iterable, Mapping, Sequence
from typing import Any

from chainaudit.analysis.models import (
    AnalysisMetrics,
    AnalysisResult,
    ConsensusReport,
    ConsensusSummary,
    Finding,
    Severity,
)
from chainaudit.errors import InvalidRequestError

logger = logging.getLogger(__name__)

DedupKey = Callable[[Finding, Finding], bool]

# Backend whose wording is the canonical baseline for merged findings
PRIMARY_TOOL = "custom"

_CONFIDENCE_RANK = {"LOW": 0, "MEDIUM": 1, "HIGH": 2}


def _same_type(a: Finding, b: Finding) -> bool:
    return a.type.casefold() == b.type.casefold()


def overlapping_lines(a: Finding, b: Finding) -> bool:
    """Same type and intersecting lines (or both unlocated)."""
    if not _same_type(a, b):
        return False
    if not a.line_numbers and not b.line_numbers:
        return True
    return not set(a.line_numbers).isdisjoint(b.line_numbers)


def exact_lines(a: Finding, b: Finding) -> bool:
    """Same type and identical line sets."""
    return _same_type(a, b) and a.line_numbers == b.line_numbers


def type_only(a: Finding, b: Finding) -> bool:
    """Same type anywhere in the source."""
    return _same_type(a, b)


DEDUP_KEYS: dict[str, DedupKey] = {
    "overlapping_lines": overlapping_lines,
    "exact_lines": exact_lines,
    "type_only": type_only,
}


def resolve_dedup_key(key: str | DedupKey) -> DedupKey:
    if callable(key):
        return key
    try:
        return DEDUP_KEYS[key]
    except KeyError:
        raise InvalidRequestError(
            f"Unknown dedup key {key!r}; expected one of {sorted(DEDUP_KEYS)}"
        ) from None


def get_consensus_analysis(
    results: Sequence[AnalysisResult | Mapping[str, Any]],
    dedup_key: str | DedupKey = overlapping_lines,
) -> ConsensusReport:
    """Deduplicate, merge, and rank the findings of all non-failed results."""
    if isinstance(results, (str, bytes)) or not isinstance(results, (list, tuple)):
        raise InvalidRequestError(
            f"results must be a list of analysis results, got {type(results).__name__}"
        )
    same_issue = resolve_dedup_key(dedup_key)
    normalized = [_coerce_result(r) for r in results]

    raw = _flatten(normalized)
    merged = sorted((_merge(g) for g in _group(raw, same_issue)), key=_rank_key)
    return ConsensusReport(
        findings=tuple(merged),
        summary=_summarize(merged, normalized),
        metrics=_combine_metrics(normalized),
        confidence=len(merged) / len(raw) if raw else 1.0,
    )


def _coerce_result(result: AnalysisResult | Mapping[str, Any]) -> AnalysisResult:
    if isinstance(result, AnalysisResult):
        return result
    if isinstance(result, Mapping):
        return AnalysisResult.from_dict(result)
    raise InvalidRequestError(
        f"Expected AnalysisResult or mapping, got {type(result).__name__}"
    )


def _flatten(results: Iterable[AnalysisResult]) -> list[Finding]:
    findings: list[Finding] = []
    for result in results:
        if result.failed:
            continue
        for finding in result.findings:
            if not finding.source_tool:
                finding = dataclasses.replace(finding, source_tool=result.tool)
            findings.append(finding)
    return findings


def _group(findings: list[Finding], same_issue: DedupKey) -> list[list[Finding]]:
    """Connected components of the same-issue relation (union-find)."""
    parent = list(range(len(findings)))

    def find(i: int) -> int:
        while parent[i] != i:
            parent[i] = parent[parent[i]]
            i = parent[i]
        return i

    for i in range(len(findings)):
        for j in range(i + 1, len(findings)):
            if same_issue(findings[i], findings[j]):
                ri, rj = find(i), find(j)
                if ri != rj:
                    parent[rj] = ri

    components: dict[int, list[Finding]] = {}
    for i, finding in enumerate(findings):
        components.setdefault(find(i), []).append(finding)
    return list(components.values())


def _tools_of(finding: Finding) -> list[str]:
    # Merged findings carry their contributors as "a,b,c"
    return [t for t in finding.source_tool.split(",") if t]


def _tool_priority(tool: str) -> tuple[int, str]:
    return (0 if tool == PRIMARY_TOOL else 1, tool)


def _first_non_empty(findings: Iterable[Finding], attr: str) -> str:
    for finding in findings:
        value = getattr(finding, attr)
        if value:
            return value
    return ""


def _merge(group: list[Finding]) -> Finding:
    ordered = sorted(
        group,
        key=lambda f: _tool_priority(min(_tools_of(f), key=_tool_priority, default="")),
    )
    tools = sorted({t for f in group for t in _tools_of(f)}, key=_tool_priority)
    agreement = max([len(tools)] + [f.agreement_count for f in group])

    lines: set[int] = set()
    for finding in group:
        lines.update(finding.line_numbers)

    if agreement > 1:
        confidence = "HIGH"
    else:
        confidence = max(
            (f.confidence for f in group),
            key=lambda c: _CONFIDENCE_RANK.get(c, 0),
        )

    return Finding(
        type=ordered[0].type,
        severity=max((f.severity for f in group), key=lambda s: s.rank),
        title=_first_non_empty(ordered, "title"),
        description=_first_non_empty(ordered, "description"),
        line_numbers=tuple(lines),
        recommendation=_first_non_empty(ordered, "recommendation"),
        source_tool=",".join(tools),
        swc_id=_first_non_empty(ordered, "swc_id"),
        cwe_id=_first_non_empty(ordered, "cwe_id"),
        confidence=confidence,
        code_snippet=_first_non_empty(ordered, "code_snippet"),
        agreement_count=agreement,
    )


def _rank_key(finding: Finding) -> tuple:
    first = finding.first_line
    return (
        -finding.severity.rank,
        -finding.agreement_count,
        first is None,
        first or 0,
        finding.type,
    )


def _summarize(
    merged: list[Finding],
    results: list[AnalysisResult],
) -> ConsensusSummary:
    by_severity = {s: 0 for s in Severity}
    for finding in merged:
        by_severity[finding.severity] += 1
    return ConsensusSummary(
        total_findings=len(merged),
        by_severity=by_severity,
        agreement_count=sum(1 for f in merged if f.agreement_count > 1),
        failed_tools=tuple(r.tool for r in results if r.failed),
        tools=tuple(r.tool for r in results if not r.failed),
    )


def _combine_metrics(results: list[AnalysisResult]) -> AnalysisMetrics | None:
    """Largest measurement across backends; gas estimate from the first that has one."""
    measured = [r.metrics for r in results if not r.failed and r.metrics is not None]
    if not measured:
        return None
    return AnalysisMetrics(
        total_lines=max(m.total_lines for m in measured),
        contracts_analyzed=max(m.contracts_analyzed for m in measured),
        functions_analyzed=max(m.functions_analyzed for m in measured),
        complexity_score=max(m.complexity_score for m in measured),
        gas_estimate=next((m.gas_estimate for m in measured if m.gas_estimate), None),
    )
