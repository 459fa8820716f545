"""Tests for analysis data models."""

from __future__ import annotations

import pytest

from chainaudit.analysis.models import (
    AnalysisMetrics,
    AnalysisResult,
    ConsensusReport,
    ConsensusSummary,
    Finding,
    FindingType,
    Severity,
)
from chainaudit.errors import ChainAuditError, InvalidFindingError


class TestSeverity:
    def test_rank_order(self):
        ordered = sorted(Severity, key=lambda s: s.rank, reverse=True)
        assert ordered == [
            Severity.CRITICAL,
            Severity.HIGH,
            Severity.MEDIUM,
            Severity.LOW,
            Severity.INFO,
        ]

    def test_coerce_string(self):
        assert Severity.coerce("high") == Severity.HIGH
        assert Severity.coerce(" Critical ") == Severity.CRITICAL

    def test_coerce_member(self):
        assert Severity.coerce(Severity.LOW) is Severity.LOW

    @pytest.mark.parametrize("value", ["SEVERE", "", None, 3])
    def test_coerce_unknown_is_info(self, value):
        assert Severity.coerce(value) == Severity.INFO


class TestFinding:
    def test_requires_type(self):
        with pytest.raises(InvalidFindingError):
            Finding(type="", severity=Severity.HIGH)
        with pytest.raises(InvalidFindingError):
            Finding(type="   ", severity=Severity.HIGH)

    def test_invalid_finding_is_chainaudit_error(self):
        assert issubclass(InvalidFindingError, ChainAuditError)

    def test_string_severity_coerced(self):
        f = Finding(type="Reentrancy", severity="medium")  # type: ignore[arg-type]
        assert f.severity == Severity.MEDIUM

    def test_lines_sorted_and_unique(self):
        f = Finding(type="Reentrancy", severity=Severity.HIGH, line_numbers=(21, 19, 21))
        assert f.line_numbers == (19, 21)
        assert f.first_line == 19

    def test_first_line_of_unlocated_finding(self):
        assert Finding(type="Other", severity=Severity.INFO).first_line is None

    def test_frozen(self):
        f = Finding(type="Reentrancy", severity=Severity.HIGH)
        with pytest.raises(AttributeError):
            f.severity = Severity.LOW  # type: ignore[misc]

    def test_from_dict_camel_case(self):
        f = Finding.from_dict(
            {
                "type": "Reentrancy",
                "severity": "HIGH",
                "description": "call before write",
                "lineNumbers": [21, 19],
                "recommendation": "use CEI",
                "sourceTool": "slither",
                "swcId": "SWC-107",
            }
        )
        assert f.type == FindingType.REENTRANCY
        assert f.line_numbers == (19, 21)
        assert f.source_tool == "slither"
        assert f.swc_id == "SWC-107"

    def test_from_dict_snake_case_and_single_line(self):
        f = Finding.from_dict(
            {"category": "TxOriginUsage", "severity": "low", "line": "30"},
            source_tool="mythril",
        )
        assert f.type == FindingType.TX_ORIGIN
        assert f.severity == Severity.LOW
        assert f.line_numbers == (30,)
        assert f.source_tool == "mythril"

    def test_from_dict_drops_unusable_lines(self):
        f = Finding.from_dict(
            {"type": "Other", "severity": "INFO", "lineNumbers": [3, None, "x"]}
        )
        assert f.line_numbers == (3,)

    def test_from_dict_without_type(self):
        with pytest.raises(InvalidFindingError):
            Finding.from_dict({"severity": "HIGH"})

    def test_to_dict(self):
        f = Finding(
            type="Reentrancy",
            severity=Severity.CRITICAL,
            line_numbers=(19, 21),
            source_tool="custom",
        )
        data = f.to_dict()
        assert data["type"] == "Reentrancy"
        assert data["severity"] == "CRITICAL"
        assert data["lineNumbers"] == [19, 21]
        assert data["sourceTool"] == "custom"
        assert data["agreementCount"] == 1
        assert Finding.from_dict(data) == f


class TestAnalysisResult:
    def test_failure(self):
        result = AnalysisResult.failure("slither", "tool unavailable")
        assert result.failed
        assert result.findings == ()
        assert result.error == "tool unavailable"

    def test_findings_stored_as_tuple(self):
        result = AnalysisResult(
            tool="custom",
            findings=[Finding(type="Other", severity=Severity.INFO)],  # type: ignore[arg-type]
        )
        assert isinstance(result.findings, tuple)

    def test_from_dict_rejects_typeless_findings(self):
        result = AnalysisResult.from_dict(
            {
                "tool": "mythril",
                "findings": [
                    {"type": "Reentrancy", "severity": "HIGH", "lineNumbers": [5]},
                    {"severity": "HIGH", "lineNumbers": [6]},
                    "not a finding",
                ],
            }
        )
        assert len(result.findings) == 1
        assert result.findings[0].source_tool == "mythril"

    def test_from_dict_vulnerabilities_key(self):
        result = AnalysisResult.from_dict(
            {
                "tool": "custom",
                "vulnerabilities": [{"type": "Other", "severity": "LOW"}],
            }
        )
        assert [f.type for f in result.findings] == ["Other"]

    def test_to_dict(self):
        result = AnalysisResult(
            tool="custom",
            metrics=AnalysisMetrics(total_lines=10, functions_analyzed=2),
        )
        data = result.to_dict()
        assert data["tool"] == "custom"
        assert data["failed"] is False
        assert "error" not in data
        assert data["metrics"]["totalLines"] == 10
        assert data["metrics"]["functionsAnalyzed"] == 2

    def test_failed_to_dict_carries_error(self):
        data = AnalysisResult.failure("mythril", "timed out after 5s").to_dict()
        assert data["failed"] is True
        assert data["error"] == "timed out after 5s"


class TestConsensusReport:
    def test_empty_summary(self):
        data = ConsensusReport().to_dict()
        assert data["findings"] == []
        assert data["summary"]["totalFindings"] == 0
        assert data["summary"]["bySeverity"] == {
            "CRITICAL": 0,
            "HIGH": 0,
            "MEDIUM": 0,
            "LOW": 0,
            "INFO": 0,
        }

    def test_summary_to_dict(self):
        summary = ConsensusSummary(
            total_findings=2,
            by_severity={Severity.HIGH: 2},
            agreement_count=1,
            failed_tools=("mythril",),
            tools=("custom", "slither"),
        )
        data = summary.to_dict()
        assert data["bySeverity"]["HIGH"] == 2
        assert data["bySeverity"]["LOW"] == 0
        assert data["failedTools"] == ["mythril"]
        assert data["tools"] == ["custom", "slither"]

    def test_by_severity_is_read_only(self):
        counts = {Severity.HIGH: 2}
        summary = ConsensusSummary(by_severity=counts)
        counts[Severity.HIGH] = 9
        assert summary.by_severity[Severity.HIGH] == 2
        with pytest.raises(TypeError):
            summary.by_severity[Severity.LOW] = 1  # type: ignore[index]

    def test_report_to_dict_carries_metrics_and_confidence(self):
        report = ConsensusReport(
            metrics=AnalysisMetrics(total_lines=10, gas_estimate=1000),
            confidence=2 / 3,
        )
        data = report.to_dict()
        assert data["metrics"]["totalLines"] == 10
        assert data["metrics"]["gasEstimate"] == 1000
        assert data["confidence"] == 0.6667
