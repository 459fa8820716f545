"""Vulnerability signature catalog for the heuristic analyzer.

Two kinds of entries share one shape:

* ``PATTERNS`` are line patterns: a compiled regex applied to every
  comment-free source line.
* ``STRUCTURAL_RULES`` carry the metadata (type, severity, remediation) of
  the function-level checks in :mod:`chainaudit.analysis.heuristic`; their
  matching logic needs more than one line, so ``regex`` is ``None``.

The catalog is built once at import time and never mutated.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from chainaudit.analysis.models import Finding, FindingType, Severity


@dataclass(frozen=True)
class Pattern:
    """A vulnerability signature with its default severity and remediation."""

    name: str
    finding_type: str
    severity: Severity
    title: str
    description: str
    recommendation: str
    regex: re.Pattern[str] | None = None
    swc_id: str = ""
    cwe_id: str = ""
    confidence: str = "MEDIUM"
    applies_to: Callable[[str], bool] | None = None

    def to_finding(
        self,
        lines: Iterable[int],
        snippet: str = "",
        source_tool: str = "custom",
        severity: Severity | None = None,
    ) -> Finding:
        return Finding(
            type=self.finding_type,
            severity=severity or self.severity,
            title=self.title,
            description=self.description,
            line_numbers=tuple(lines),
            recommendation=self.recommendation,
            source_tool=source_tool,
            swc_id=self.swc_id,
            cwe_id=self.cwe_id,
            confidence=self.confidence,
            code_snippet=snippet,
        )


def _no_oracle_smoothing(clean_source: str) -> bool:
    lowered = clean_source.lower()
    return "twap" not in lowered and "delay" not in lowered


PATTERNS: tuple[Pattern, ...] = (
    Pattern(
        name="unchecked_low_level_call",
        finding_type=FindingType.UNCHECKED_CALL,
        severity=Severity.MEDIUM,
        title="Unchecked Low-Level Call",
        description=(
            "Return value of a low-level call is ignored; a failed call "
            "will not revert the transaction"
        ),
        recommendation=(
            "Check the boolean returned by call/send/delegatecall, e.g. "
            "(bool ok, ) = target.call(data); require(ok);"
        ),
        regex=re.compile(
            r"^\s*(?!require\b|assert\b|if\b|return\b)"
            r"[\w.\[\]]+(?:\([^()]*\))?"
            r"\.(?:call|send|delegatecall)\s*(?:\{[^}]*\}\s*\(|\{[^}]*$|\()"
        ),
        swc_id="SWC-104",
        cwe_id="CWE-252",
        confidence="HIGH",
    ),
    Pattern(
        name="tx_origin_auth",
        finding_type=FindingType.TX_ORIGIN,
        severity=Severity.MEDIUM,
        title="Authorization Through tx.origin",
        description=(
            "tx.origin is compared for authorization; a malicious contract "
            "called by the owner can pass this check"
        ),
        recommendation="Use msg.sender for authorization checks.",
        regex=re.compile(r"(?:==|!=)\s*tx\.origin\b|\btx\.origin\s*(?:==|!=)"),
        swc_id="SWC-115",
        cwe_id="CWE-477",
        confidence="HIGH",
    ),
    Pattern(
        name="selfdestruct",
        finding_type=FindingType.SELFDESTRUCT,
        severity=Severity.CRITICAL,
        title="Selfdestruct Usage Detected",
        description=(
            "Selfdestruct can be used maliciously to destroy the contract "
            "and drain its funds"
        ),
        recommendation=(
            "Avoid selfdestruct. Consider upgrade patterns or pausable "
            "contracts instead."
        ),
        regex=re.compile(r"\b(?:selfdestruct|suicide)\s*\("),
        swc_id="SWC-106",
        cwe_id="CWE-284",
        confidence="HIGH",
    ),
    Pattern(
        name="delegatecall",
        finding_type=FindingType.DELEGATECALL,
        severity=Severity.CRITICAL,
        title="Dangerous Delegatecall",
        description=(
            "Delegatecall executes foreign code in this contract's storage "
            "context; a user-supplied target allows code injection"
        ),
        recommendation=(
            "Only delegatecall into trusted, immutable implementation "
            "addresses."
        ),
        regex=re.compile(r"\.delegatecall\s*\("),
        swc_id="SWC-112",
        cwe_id="CWE-829",
        confidence="MEDIUM",
    ),
    Pattern(
        name="timestamp_dependence",
        finding_type=FindingType.TIMESTAMP,
        severity=Severity.LOW,
        title="Timestamp Dependence",
        description=(
            "block.timestamp can be slightly manipulated by block producers"
        ),
        recommendation=(
            "Do not rely on block.timestamp for randomness or tight timing "
            "windows."
        ),
        regex=re.compile(r"\bblock\.timestamp\b|\bnow\s*[;<>=)+\-]"),
        swc_id="SWC-116",
        cwe_id="CWE-829",
        confidence="MEDIUM",
    ),
    Pattern(
        name="block_number_race",
        finding_type=FindingType.FRONT_RUNNING,
        severity=Severity.MEDIUM,
        title="Block Number Race Condition",
        description=(
            "Gating logic on block.number creates a race during block "
            "propagation that can be front-run"
        ),
        recommendation=(
            "Use commit-reveal schemes or time-based delays for ordering "
            "sensitive logic."
        ),
        regex=re.compile(r"\brequire\s*\([^;]*\bblock\.number\b"),
        swc_id="SWC-114",
        cwe_id="CWE-362",
        confidence="MEDIUM",
    ),
    Pattern(
        name="oracle_spot_price",
        finding_type=FindingType.ORACLE_MANIPULATION,
        severity=Severity.HIGH,
        title="Potential Oracle Manipulation",
        description=(
            "Spot price read without a delay or TWAP mechanism can be "
            "manipulated within a single transaction"
        ),
        recommendation=(
            "Use a time-weighted average price or add a delay before "
            "consuming oracle prices."
        ),
        regex=re.compile(
            r"\buint(?:256)?\s+price\s*=\s*[^;]*"
            r"(?:uniswap|chainlink|getReserves|latestAnswer|price)",
            re.IGNORECASE,
        ),
        cwe_id="CWE-807",
        confidence="MEDIUM",
        applies_to=_no_oracle_smoothing,
    ),
)

STRUCTURAL_RULES: tuple[Pattern, ...] = (
    Pattern(
        name="reentrancy",
        finding_type=FindingType.REENTRANCY,
        severity=Severity.CRITICAL,
        title="Reentrancy Vulnerability",
        description=(
            "External call is made before a state variable is updated; the "
            "callee can re-enter and act on stale state"
        ),
        recommendation=(
            "Apply checks-effects-interactions: update state before the "
            "external call, or use a reentrancy guard such as OpenZeppelin's "
            "ReentrancyGuard."
        ),
        swc_id="SWC-107",
        cwe_id="CWE-841",
        confidence="HIGH",
    ),
    Pattern(
        name="unchecked_call_result",
        finding_type=FindingType.UNCHECKED_CALL,
        severity=Severity.MEDIUM,
        title="Unchecked Low-Level Call",
        description=(
            "The success flag of a low-level call is captured but never "
            "checked"
        ),
        recommendation="require() the returned success flag.",
        swc_id="SWC-104",
        cwe_id="CWE-252",
        confidence="HIGH",
    ),
    Pattern(
        name="missing_access_control",
        finding_type=FindingType.ACCESS_CONTROL,
        severity=Severity.HIGH,
        title="Missing Access Control",
        description=(
            "Privileged state-mutating function is callable by anyone: it "
            "has no onlyOwner-style modifier and no msg.sender check"
        ),
        recommendation=(
            "Restrict the function with an access-control modifier such as "
            "onlyOwner or OpenZeppelin AccessControl roles."
        ),
        swc_id="SWC-105",
        cwe_id="CWE-284",
        confidence="MEDIUM",
    ),
    Pattern(
        name="integer_overflow",
        finding_type=FindingType.INTEGER_OVERFLOW,
        severity=Severity.HIGH,
        title="Integer Overflow/Underflow",
        description=(
            "Unsigned arithmetic without overflow protection (compiler "
            "older than 0.8 and no SafeMath) can wrap around"
        ),
        recommendation=(
            "Upgrade to Solidity >=0.8 or use SafeMath for arithmetic on "
            "unsigned integers."
        ),
        swc_id="SWC-101",
        cwe_id="CWE-190",
        confidence="MEDIUM",
    ),
    Pattern(
        name="unchecked_arithmetic",
        finding_type=FindingType.INTEGER_OVERFLOW,
        severity=Severity.MEDIUM,
        title="Arithmetic in unchecked Block",
        description=(
            "Arithmetic inside an unchecked block skips the compiler's "
            "overflow checks"
        ),
        recommendation=(
            "Keep unchecked blocks to provably bounded arithmetic such as "
            "loop counters."
        ),
        swc_id="SWC-101",
        cwe_id="CWE-190",
        confidence="LOW",
    ),
    Pattern(
        name="division_by_zero",
        finding_type=FindingType.DIVISION_BY_ZERO,
        severity=Severity.MEDIUM,
        title="Potential Division by Zero",
        description="Division by a variable that is never checked against zero",
        recommendation="require() the divisor to be non-zero before dividing.",
        cwe_id="CWE-369",
        confidence="LOW",
    ),
    Pattern(
        name="gas_loop_storage",
        finding_type=FindingType.GAS,
        severity=Severity.LOW,
        title="Gas-Intensive Loop with Storage Operations",
        description=(
            "Loop touching storage on every iteration can exceed the block "
            "gas limit as data grows"
        ),
        recommendation=(
            "Cache storage values in memory, bound the loop, or process in "
            "batches."
        ),
        swc_id="SWC-128",
        cwe_id="CWE-400",
        confidence="MEDIUM",
    ),
    Pattern(
        name="missing_event",
        finding_type=FindingType.EVENT_LOGGING,
        severity=Severity.INFO,
        title="Missing Event for State Change",
        description="Public function changes state without emitting an event",
        recommendation=(
            "Emit events for important state changes so off-chain monitors "
            "can track them."
        ),
        confidence="MEDIUM",
    ),
    Pattern(
        name="duplicate_storage_read",
        finding_type=FindingType.GAS,
        severity=Severity.LOW,
        title="Duplicate Storage Read",
        description="Same storage variable read multiple times without modification",
        recommendation="Cache storage reads in local variables to reduce gas costs.",
        confidence="HIGH",
    ),
    Pattern(
        name="unparseable_input",
        finding_type=FindingType.PARSE_ERROR,
        severity=Severity.INFO,
        title="Input Not Recognized as Solidity",
        description=(
            "No contract, function, or pragma declarations were found; the "
            "input could not be meaningfully analyzed"
        ),
        recommendation="Submit Solidity source code.",
        confidence="LOW",
    ),
)

_CATALOG: dict[str, Pattern] = {p.name: p for p in PATTERNS + STRUCTURAL_RULES}

# Known-benign matches that would otherwise be reported
EXCLUDE_PATTERNS: dict[str, list[re.Pattern[str]]] = {
    # EOA check, not authorization
    "tx_origin_auth": [
        re.compile(r"tx\.origin\s*==\s*msg\.sender"),
        re.compile(r"msg\.sender\s*==\s*tx\.origin"),
    ],
}


def get_pattern(name: str) -> Pattern:
    """Look up a catalog entry by name. Raises KeyError if unknown."""
    return _CATALOG[name]


def recommendation_for(finding_type: str) -> str:
    """Remediation text of the first catalog entry with this type."""
    for pattern in _CATALOG.values():
        if pattern.finding_type == finding_type:
            return pattern.recommendation
    return ""


def is_excluded(pattern_name: str, line: str) -> bool:
    """Check if a matched line is a known false positive for the pattern."""
    return any(p.search(line) for p in EXCLUDE_PATTERNS.get(pattern_name, ()))
