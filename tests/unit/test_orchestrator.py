"""Tests for the analysis orchestrator and backend registry."""

from __future__ import annotations

import asyncio
import time

import pytest
from conftest import FakeAnalyzer, make_finding

from chainaudit.analysis import run_analysis
from chainaudit.analysis.base import Analyzer
from chainaudit.analysis.heuristic import HeuristicAnalyzer
from chainaudit.analysis.models import FindingType, Severity
from chainaudit.analysis.orchestrator import (
    AnalysisOrchestrator,
    analyze_contract,
    analyze_contract_sync,
)
from chainaudit.analysis.registry import build_registry, canonical_name, invoke
from chainaudit.errors import InvalidRequestError


def run_async(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


def _registry(*analyzers):
    return {a.name: a for a in analyzers}


class TestRegistry:
    def test_builtin_backends(self):
        registry = build_registry()
        assert set(registry) == {"custom", "slither", "mythril"}
        assert all(isinstance(a, Analyzer) for a in registry.values())

    def test_registry_is_read_only(self):
        registry = build_registry()
        with pytest.raises(TypeError):
            registry["other"] = HeuristicAnalyzer()  # type: ignore[index]

    def test_tool_path_override(self):
        registry = build_registry({"slither": "/opt/slither/bin/slither"})
        assert registry["slither"].executable == "/opt/slither/bin/slither"
        assert registry["mythril"].executable == "myth"

    def test_canonical_name(self):
        assert canonical_name(" Custom ") == "custom"
        assert canonical_name("heuristic") == "custom"
        assert canonical_name("slither") == "slither"


class TestInvoke:
    def test_unknown_tool(self):
        result = run_async(invoke("nope", "contract A {}", 5, registry={}))
        assert result.failed
        assert result.error == "unknown tool"

    def test_unavailable_tool(self):
        registry = _registry(FakeAnalyzer("slither", available=False))
        result = run_async(invoke("slither", "contract A {}", 5, registry))
        assert result.failed
        assert result.error == "tool unavailable"
        assert registry["slither"].calls == 0

    def test_crash_becomes_failed_result(self):
        registry = _registry(FakeAnalyzer("mythril", error=RuntimeError("segfault")))
        result = run_async(invoke("mythril", "contract A {}", 5, registry))
        assert result.failed
        assert "segfault" in result.error


class TestAnalyzeContract:
    def test_empty_tool_list(self, vulnerable_token: str):
        assert run_async(analyze_contract(vulnerable_token, [])) == []

    def test_custom_backend(self, vulnerable_token: str):
        results = run_async(analyze_contract(vulnerable_token, ["custom"]))
        assert len(results) == 1
        result = results[0]
        assert result.tool == "custom"
        assert not result.failed
        types = {f.type for f in result.findings}
        assert FindingType.REENTRANCY in types
        assert FindingType.ACCESS_CONTROL in types
        assert FindingType.TX_ORIGIN in types

    def test_unknown_tools_ignored(self, vulnerable_token: str):
        results = run_async(
            analyze_contract(vulnerable_token, ["custom", "no-such-tool"])
        )
        assert [r.tool for r in results] == ["custom"]

    def test_only_unknown_tools(self):
        assert run_async(analyze_contract("contract A {}", ["nope"])) == []

    def test_alias_and_duplicates_collapsed(self):
        results = run_async(
            analyze_contract("contract A {}", ["custom", "heuristic", "CUSTOM"])
        )
        assert [r.tool for r in results] == ["custom"]

    def test_results_follow_request_order(self):
        registry = _registry(
            FakeAnalyzer("custom", delay=0.2),
            FakeAnalyzer("slither"),
            FakeAnalyzer("mythril", delay=0.1),
        )
        results = run_async(
            analyze_contract("contract A {}", ["mythril", "custom", "slither"], registry=registry)
        )
        assert [r.tool for r in results] == ["mythril", "custom", "slither"]

    @pytest.mark.parametrize("tools", ["custom", None, 42, {"custom": True}])
    def test_tools_must_be_a_list(self, tools):
        with pytest.raises(InvalidRequestError):
            run_async(analyze_contract("contract A {}", tools))

    def test_tool_names_must_be_strings(self):
        with pytest.raises(InvalidRequestError):
            run_async(analyze_contract("contract A {}", ["custom", 3]))

    def test_source_must_be_a_string(self):
        with pytest.raises(InvalidRequestError):
            run_async(analyze_contract(b"contract A {}", ["custom"]))  # type: ignore[arg-type]

    def test_backend_failure_is_isolated(self):
        finding = make_finding(tool="custom")
        registry = _registry(
            FakeAnalyzer("custom", findings=(finding,)),
            FakeAnalyzer("slither", error=RuntimeError("crashed")),
            FakeAnalyzer("mythril", available=False),
        )
        results = run_async(
            analyze_contract(
                "contract A {}", ["custom", "slither", "mythril"], registry=registry
            )
        )
        by_tool = {r.tool: r for r in results}
        assert by_tool["custom"].findings == (finding,)
        assert by_tool["slither"].failed
        assert by_tool["mythril"].failed
        assert by_tool["mythril"].error == "tool unavailable"

    def test_backends_run_concurrently(self):
        registry = _registry(
            FakeAnalyzer("custom", delay=0.5),
            FakeAnalyzer("slither", delay=0.5),
            FakeAnalyzer("mythril", delay=0.5),
        )
        start = time.monotonic()
        run_async(
            analyze_contract(
                "contract A {}", ["custom", "slither", "mythril"], registry=registry
            )
        )
        assert time.monotonic() - start < 1.4

    def test_cancellation_stops_backends(self):
        slow = FakeAnalyzer("slither", delay=30)
        registry = _registry(slow, FakeAnalyzer("custom"))

        async def scenario():
            task = asyncio.create_task(
                analyze_contract("contract A {}", ["custom", "slither"], registry=registry)
            )
            await asyncio.sleep(0.2)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task
            # No backend task outlives the cancelled analysis
            others = [t for t in asyncio.all_tasks() if t is not asyncio.current_task()]
            return others

        start = time.monotonic()
        assert run_async(scenario()) == []
        assert slow.calls == 1
        assert time.monotonic() - start < 5

    def test_cancellation_does_not_wait_for_heuristic_scan(self, vulnerable_token: str):
        registry = _registry(HeuristicAnalyzer(), FakeAnalyzer("slither", delay=30))
        source = vulnerable_token * 200

        async def scenario():
            task = asyncio.create_task(
                analyze_contract(source, ["custom", "slither"], registry=registry)
            )
            await asyncio.sleep(0.05)
            cancelled_at = time.monotonic()
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task
            return time.monotonic() - cancelled_at

        assert run_async(scenario()) < 1.0

    def test_orchestrator_timeout_is_passed_through(self):
        seen = []

        class Recorder(FakeAnalyzer):
            async def run(self, source, timeout):
                seen.append(timeout)
                return await super().run(source, timeout)

        orchestrator = AnalysisOrchestrator(
            registry=_registry(Recorder("custom")), timeout=12.5
        )
        run_async(orchestrator.analyze_contract("contract A {}", ["custom"]))
        assert seen == [12.5]

    def test_sync_wrapper(self, vulnerable_token: str):
        results = analyze_contract_sync(vulnerable_token, ["custom"])
        assert results[0].tool == "custom"


class TestRunAnalysis:
    def test_end_to_end_vulnerable_token(self, vulnerable_token: str):
        results, report = run_async(run_analysis(vulnerable_token, ["custom"]))
        assert len(results) == 1

        severities = [f.severity for f in report.findings]
        assert severities == sorted(severities, key=lambda s: s.rank, reverse=True)

        top = report.findings[0]
        assert top.type == FindingType.REENTRANCY
        assert top.severity == Severity.CRITICAL
        assert top.line_numbers == (19, 21)

        summary = report.summary
        assert summary.total_findings == len(report.findings)
        assert summary.by_severity[Severity.CRITICAL] == 1
        assert summary.by_severity[Severity.HIGH] == 1
        assert summary.by_severity[Severity.MEDIUM] == 1
        assert summary.tools == ("custom",)
        assert summary.failed_tools == ()

    def test_unavailable_external_tool_still_reports(self, vulnerable_token: str):
        registry = build_registry(
            {"slither": "chainaudit-no-such-slither", "mythril": "chainaudit-no-such-myth"}
        )
        results, report = run_async(
            run_analysis(
                vulnerable_token, ["custom", "slither", "mythril"], registry=registry
            )
        )
        assert [r.tool for r in results] == ["custom", "slither", "mythril"]
        assert report.summary.failed_tools == ("slither", "mythril")
        assert report.summary.by_severity[Severity.CRITICAL] == 1
