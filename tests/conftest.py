"""Shared test fixtures."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from chainaudit.analysis.models import AnalysisResult, Finding, Severity


@pytest.fixture(autouse=True)
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the user's config file and CHAINAUDIT_* variables out of tests."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    for var in (
        "CHAINAUDIT_TOOL_TIMEOUT",
        "CHAINAUDIT_WEB_PORT",
        "CHAINAUDIT_TOOLS",
        "CHAINAUDIT_DEDUP_KEY",
        "CHAINAUDIT_SLITHER_PATH",
        "CHAINAUDIT_MYTHRIL_PATH",
    ):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def fixtures_dir() -> Path:
    return Path(__file__).parent / "fixtures"


@pytest.fixture
def vulnerable_token_path(fixtures_dir: Path) -> Path:
    return fixtures_dir / "VulnerableToken.sol"


@pytest.fixture
def vulnerable_token(vulnerable_token_path: Path) -> str:
    return vulnerable_token_path.read_text(encoding="utf-8")


@pytest.fixture
def safe_vault(fixtures_dir: Path) -> str:
    return (fixtures_dir / "SafeVault.sol").read_text(encoding="utf-8")


@pytest.fixture
def legacy_contract() -> str:
    return """pragma solidity ^0.6.12;

contract Legacy {
    mapping(address => uint) public balances;

    function credit(address to, uint amount) public {
        balances[to] = balances[to] + amount;
    }

    function unsafeAdd(uint256 a, uint256 b) public pure returns (uint256) {
        return a + b;
    }
}
"""


class FakeAnalyzer:
    """In-memory backend used to exercise orchestration and consensus."""

    def __init__(
        self,
        name: str,
        findings: tuple[Finding, ...] = (),
        available: bool = True,
        delay: float = 0.0,
        error: Exception | None = None,
    ) -> None:
        self.name = name
        self._findings = findings
        self._available = available
        self._delay = delay
        self._error = error
        self.calls = 0

    def is_available(self) -> bool:
        return self._available

    async def run(self, source: str, timeout: float) -> AnalysisResult:
        self.calls += 1
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._error is not None:
            raise self._error
        return AnalysisResult(tool=self.name, findings=self._findings)


def make_finding(
    ftype: str = "Reentrancy",
    severity: Severity = Severity.HIGH,
    lines: tuple[int, ...] = (15,),
    tool: str = "custom",
    description: str = "",
    recommendation: str = "",
) -> Finding:
    return Finding(
        type=ftype,
        severity=severity,
        description=description or f"{ftype} reported by {tool}",
        line_numbers=lines,
        recommendation=recommendation or f"Fix the {ftype.lower()} issue",
        source_tool=tool,
    )
