"""Analysis data models — findings, per-backend results, and consensus reports."""

from __future__ import annotations

import enum
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from chainaudit.errors import InvalidFindingError

logger = logging.getLogger(__name__)


class Severity(enum.Enum):
    """Finding severity level, CRITICAL (worst) to INFO (best)."""

    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
    INFO = "INFO"

    @property
    def rank(self) -> int:
        """Higher rank means more severe."""
        return _SEVERITY_RANK[self]

    @classmethod
    def coerce(cls, value: Any) -> Severity:
        """Map a str or Severity to a member. Unknown values become INFO."""
        if isinstance(value, Severity):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().upper())
            except ValueError:
                pass
        logger.warning("Unknown severity %r coerced to INFO", value)
        return cls.INFO


_SEVERITY_RANK = {
    Severity.CRITICAL: 4,
    Severity.HIGH: 3,
    Severity.MEDIUM: 2,
    Severity.LOW: 1,
    Severity.INFO: 0,
}


class FindingType:
    """Well-known finding categories. Any non-empty string is a valid type."""

    REENTRANCY = "Reentrancy"
    ACCESS_CONTROL = "AccessControl"
    UNCHECKED_CALL = "UncheckedCall"
    INTEGER_OVERFLOW = "IntegerOverflow"
    TX_ORIGIN = "TxOriginUsage"
    SELFDESTRUCT = "Selfdestruct"
    DELEGATECALL = "Delegatecall"
    TIMESTAMP = "TimestampDependence"
    FRONT_RUNNING = "FrontRunning"
    ORACLE_MANIPULATION = "OracleManipulation"
    DIVISION_BY_ZERO = "DivisionByZero"
    GAS = "GasOptimization"
    EVENT_LOGGING = "EventLogging"
    PARSE_ERROR = "ParseError"
    OTHER = "Other"


@dataclass(frozen=True)
class Finding:
    """A single reported issue, anchored to zero or more source lines."""

    type: str
    severity: Severity
    description: str = ""
    line_numbers: tuple[int, ...] = ()
    recommendation: str = ""
    source_tool: str = ""
    title: str = ""
    swc_id: str = ""
    cwe_id: str = ""
    confidence: str = "MEDIUM"
    code_snippet: str = ""
    agreement_count: int = 1

    def __post_init__(self) -> None:
        if not isinstance(self.type, str) or not self.type.strip():
            raise InvalidFindingError("Finding requires a non-empty type")
        if not isinstance(self.severity, Severity):
            object.__setattr__(self, "severity", Severity.coerce(self.severity))
        object.__setattr__(
            self, "line_numbers", tuple(sorted(set(self.line_numbers)))
        )

    @property
    def first_line(self) -> int | None:
        return self.line_numbers[0] if self.line_numbers else None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], source_tool: str = "") -> Finding:
        """Build a Finding from plain data (camelCase or snake_case keys)."""
        ftype = data.get("type") or data.get("category") or ""
        lines = data.get("lineNumbers", data.get("line_numbers"))
        if lines is None:
            single = data.get("lineNumber", data.get("line"))
            lines = [single] if single is not None else []
        elif isinstance(lines, int):
            lines = [lines]
        elif isinstance(lines, (str, bytes)) or not isinstance(lines, Iterable):
            logger.warning("Ignoring malformed line numbers %r", lines)
            lines = []
        return cls(
            type=str(ftype),
            severity=Severity.coerce(data.get("severity")),
            description=str(data.get("description") or ""),
            line_numbers=tuple(_clean_lines(lines)),
            recommendation=str(data.get("recommendation") or ""),
            source_tool=str(
                data.get("sourceTool") or data.get("source_tool") or source_tool
            ),
            title=str(data.get("title") or ""),
            swc_id=str(data.get("swcId") or data.get("swc_id") or ""),
            cwe_id=str(data.get("cweId") or data.get("cwe_id") or ""),
            confidence=str(data.get("confidence") or "MEDIUM").upper(),
            code_snippet=str(data.get("codeSnippet") or data.get("code_snippet") or ""),
            agreement_count=_agreement(
                data.get("agreementCount") or data.get("agreement_count")
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "severity": self.severity.value,
            "title": self.title,
            "description": self.description,
            "lineNumbers": list(self.line_numbers),
            "recommendation": self.recommendation,
            "sourceTool": self.source_tool,
            "swcId": self.swc_id,
            "cweId": self.cwe_id,
            "confidence": self.confidence,
            "codeSnippet": self.code_snippet,
            "agreementCount": self.agreement_count,
        }


def _clean_lines(lines: Iterable[Any]) -> list[int]:
    cleaned: list[int] = []
    for raw in lines:
        try:
            cleaned.append(int(raw))
        except (TypeError, ValueError):
            continue
    return cleaned


def _agreement(raw: Any) -> int:
    if raw is None:
        return 1
    try:
        return max(int(raw), 1)
    except (TypeError, ValueError):
        logger.warning("Unparseable agreement count %r; using 1", raw)
        return 1


def _duration(raw: Any) -> float:
    try:
        return float(raw or 0.0)
    except (TypeError, ValueError):
        return 0.0


@dataclass(frozen=True)
class AnalysisMetrics:
    """Size and complexity measurements of the analyzed source."""

    total_lines: int = 0
    contracts_analyzed: int = 0
    functions_analyzed: int = 0
    complexity_score: int = 0
    gas_estimate: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalLines": self.total_lines,
            "contractsAnalyzed": self.contracts_analyzed,
            "functionsAnalyzed": self.functions_analyzed,
            "complexityScore": self.complexity_score,
            "gasEstimate": self.gas_estimate,
        }


@dataclass(frozen=True)
class AnalysisResult:
    """Output of one backend for one analysis run."""

    tool: str
    findings: tuple[Finding, ...] = ()
    failed: bool = False
    error: str = ""
    duration: float = 0.0
    metrics: AnalysisMetrics | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "findings", tuple(self.findings))

    @classmethod
    def failure(cls, tool: str, error: str, duration: float = 0.0) -> AnalysisResult:
        """A failed backend contributes no findings and an error note."""
        return cls(tool=tool, failed=True, error=error, duration=duration)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> AnalysisResult:
        """Build a result from plain data, rejecting findings without a type."""
        tool = str(data.get("tool") or "")
        raw_findings = data.get("findings")
        if raw_findings is None:
            raw_findings = data.get("vulnerabilities") or []

        findings: list[Finding] = []
        for raw in raw_findings:
            if isinstance(raw, Finding):
                findings.append(raw)
                continue
            if not isinstance(raw, Mapping):
                logger.warning("Rejected non-mapping finding from %s: %r", tool, raw)
                continue
            try:
                findings.append(Finding.from_dict(raw, source_tool=tool))
            except (InvalidFindingError, TypeError, ValueError) as e:
                logger.warning("Rejected malformed finding from %s: %s", tool, e)

        return cls(
            tool=tool,
            findings=tuple(findings),
            failed=bool(data.get("failed", False)),
            error=str(data.get("error") or ""),
            duration=_duration(data.get("duration")),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "tool": self.tool,
            "findings": [f.to_dict() for f in self.findings],
            "failed": self.failed,
            "duration": round(self.duration, 4),
        }
        if self.error:
            data["error"] = self.error
        if self.metrics is not None:
            data["metrics"] = self.metrics.to_dict()
        return data


@dataclass(frozen=True)
class ConsensusSummary:
    """Counts over the merged finding list."""

    total_findings: int = 0
    by_severity: Mapping[Severity, int] = field(
        default_factory=lambda: MappingProxyType({s: 0 for s in Severity})
    )
    agreement_count: int = 0
    failed_tools: tuple[str, ...] = ()
    tools: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "by_severity", MappingProxyType(dict(self.by_severity))
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalFindings": self.total_findings,
            "bySeverity": {s.value: self.by_severity.get(s, 0) for s in Severity},
            "agreementCount": self.agreement_count,
            "failedTools": list(self.failed_tools),
            "tools": list(self.tools),
        }


@dataclass(frozen=True)
class ConsensusReport:
    """Deduplicated, severity-ranked merge of all backends' findings."""

    findings: tuple[Finding, ...] = ()
    summary: ConsensusSummary = field(default_factory=ConsensusSummary)
    metrics: AnalysisMetrics | None = None
    # Share of raw findings that survived deduplication
    confidence: float = 1.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "findings": [f.to_dict() for f in self.findings],
            "summary": self.summary.to_dict(),
            "metrics": self.metrics.to_dict() if self.metrics else None,
            "confidence": round(self.confidence, 4),
        }
