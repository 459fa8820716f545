"""Heuristic analyzer — pattern matching over raw Solidity text.

This is the ``custom`` backend. It needs no compiler: line patterns from the
catalog are applied to comment-free lines, and a handful of function-level
checks (reentrancy, access control, overflow, ...) work on brace-matched
function bodies. An AST-based analyzer can be added later as just another
backend.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time

from chainaudit.analysis.models import AnalysisMetrics, AnalysisResult, Finding
from chainaudit.analysis.patterns import PATTERNS, get_pattern, is_excluded
from chainaudit.analysis.source import (
    SourceFunction,
    count_contracts,
    extract_functions,
    find_block_end,
    looks_like_solidity,
    normalize_newlines,
    offset_to_line,
    pragma_version,
    state_variables,
    strip_comments,
)

logger = logging.getLogger(__name__)

_EXTERNAL_CALL = re.compile(
    r"\.(?:call(?:\.value\s*\([^)]*\))?\s*[{(]|(?:send|transfer)\s*\()"
)
_INDEXED_WRITE = re.compile(
    r"\b([A-Za-z_]\w*)\s*(?:\[[^\]]*\])+\s*(?:[+\-*/%]?=(?!=)|\+\+|--)"
)
_INDEXED_READ = re.compile(r"\b([A-Za-z_]\w*)((?:\s*\[[^\[\]]+\])+)")
_PLAIN_WRITE = re.compile(r"(?<![\w.])([A-Za-z_]\w*)\s*(?:[+\-*/%]?=(?!=)|\+\+|--)")
_DELETE = re.compile(r"\bdelete\s+([A-Za-z_]\w*)")
_REENTRANCY_GUARD = re.compile(r"\bnonReentrant\b|\bnoReentrancy\b")
_CAPTURED_CALL = re.compile(
    r"\(\s*bool\s+(\w+)\s*,?[^)]*\)\s*=\s*[^;]*\.(?:call|send|delegatecall|staticcall)\b"
    r"|\bbool\s+(\w+)\s*=\s*[^;]*\.(?:call|send|delegatecall|staticcall)\b"
)
_GUARD_MODIFIER = re.compile(
    r"\bonly[A-Z_]\w*|\bauth\b|\brequiresAuth\b|\binitializer\b"
)
_SENDER_CHECK = re.compile(
    r"msg\.sender\s*(?:==|!=)|(?:==|!=)\s*msg\.sender"
    r"|tx\.origin\s*(?:==|!=)|(?:==|!=)\s*tx\.origin"
    r"|\bhasRole\s*\(|\b_check(?:Owner|Role)\s*\(|\b_onlyOwner\s*\("
)
_PRIVILEGED_NAME = re.compile(
    r"^(?:mint|set(?:[A-Z_]|$)|update[A-Z_]|change[A-Z_]|pause|unpause"
    r"|upgrade|kill|destroy|initialize|grant|revoke|sweep|rescue|drain"
    r"|emergency|transferOwnership|renounceOwnership|add[A-Z]|remove[A-Z])"
)
_PRIVILEGED_WORDS = ("owner", "admin", "sensitive", "privileged")
_PRIVILEGED_STATE = {
    "owner",
    "_owner",
    "admin",
    "paused",
    "_paused",
    "totalSupply",
    "_totalSupply",
    "implementation",
}
_DANGEROUS_BODY = re.compile(r"\b(?:selfdestruct|suicide)\s*\(|\.delegatecall\s*\(")
_ARITHMETIC = re.compile(r"[\w\])]\s*(?:[+\-*](?![+\-=])\s*[\w(]|[+\-*]=)")
_UINT = re.compile(r"\buint\d*\b")
_UNCHECKED_BLOCK = re.compile(r"\bunchecked\s*\{")
_DIVISION = re.compile(r"[\w\])]\s*/\s*([A-Za-z_][\w.]*)(?![\w.(])")
_FOR_LOOP = re.compile(r"\bfor\s*\(")
_COMPLEXITY_KEYWORDS = re.compile(
    r"\b(?:if|else|for|while|require|assert|revert)\b"
)
_STORAGE_OP = re.compile(r"\w+\[\w+\]\s*[+\-*/]?=(?!=)|=\s*\w+\[\w+\]")
_ANY_EXTERNAL_CALL = re.compile(
    r"\.\s*(?:call|delegatecall|staticcall|transfer|send)\b"
)


def analyze(source: str) -> list[Finding]:
    """Scan source text against the pattern catalog.

    Never raises: empty input yields no findings, and input without any
    Solidity structure yields a single INFO finding.
    """
    if not isinstance(source, str) or not source.strip():
        return []
    try:
        return _analyze(normalize_newlines(source))
    except Exception:
        logger.exception("Heuristic analysis aborted; reporting no findings")
        return []


def _analyze(source: str) -> list[Finding]:
    clean = strip_comments(source)
    if not looks_like_solidity(clean):
        return [get_pattern("unparseable_input").to_finding(())]

    raw_lines = source.split("\n")
    clean_lines = clean.split("\n")
    functions = extract_functions(clean)
    state_vars = state_variables(clean, functions)

    findings = _scan_lines(clean, clean_lines, raw_lines)
    for fn in functions:
        findings.extend(_check_reentrancy(fn, state_vars, raw_lines))
        findings.extend(_check_captured_call(fn, raw_lines))
        findings.extend(_check_access_control(fn, state_vars, raw_lines))
        findings.extend(_check_division(fn, raw_lines))
        findings.extend(_check_missing_event(fn, state_vars, raw_lines))
        findings.extend(_check_duplicate_reads(fn, state_vars, raw_lines))
    findings.extend(_check_overflow(clean, functions, raw_lines))
    findings.extend(_check_unchecked_blocks(clean, raw_lines))
    findings.extend(_check_gas_loops(clean, state_vars, raw_lines))

    logger.debug(
        "Heuristic scan: %d functions, %d state vars, %d findings",
        len(functions),
        len(state_vars),
        len(findings),
    )
    return findings


def _snippet(raw_lines: list[str], *line_numbers: int) -> str:
    return "\n".join(
        raw_lines[n - 1].strip() for n in line_numbers if 0 < n <= len(raw_lines)
    )


def _scan_lines(
    clean: str,
    clean_lines: list[str],
    raw_lines: list[str],
) -> list[Finding]:
    findings: list[Finding] = []
    for pattern in PATTERNS:
        if pattern.applies_to and not pattern.applies_to(clean):
            continue
        for line_num, line in enumerate(clean_lines, start=1):
            if not pattern.regex.search(line):
                continue
            if is_excluded(pattern.name, line):
                continue
            findings.append(
                pattern.to_finding((line_num,), _snippet(raw_lines, line_num))
            )
    return findings


def _state_writes(line: str, state_vars: set[str]) -> set[str]:
    """Identifiers written on this line that are (or look like) contract state."""
    indexed = set(_INDEXED_WRITE.findall(line)) | set(_DELETE.findall(line))
    if not state_vars:
        # No declarations found (snippet input): mapping writes are the signal
        return indexed
    written = indexed | set(_PLAIN_WRITE.findall(line))
    return written & state_vars


def _check_reentrancy(
    fn: SourceFunction,
    state_vars: set[str],
    raw_lines: list[str],
) -> list[Finding]:
    """External call followed by a state write in the same function."""
    if _REENTRANCY_GUARD.search(fn.header):
        return []

    rule = get_pattern("reentrancy")
    findings: list[Finding] = []
    for idx, (call_line, text) in enumerate(fn.lines):
        if not _EXTERNAL_CALL.search(text):
            continue
        for write_line, later in fn.lines[idx + 1 :]:
            if _state_writes(later, state_vars):
                findings.append(
                    rule.to_finding(
                        (call_line, write_line),
                        _snippet(raw_lines, call_line, write_line),
                    )
                )
                break
    return findings


def _check_captured_call(fn: SourceFunction, raw_lines: list[str]) -> list[Finding]:
    """Success flag of a low-level call assigned but never read."""
    rule = get_pattern("unchecked_call_result")
    findings: list[Finding] = []
    for idx, (line_num, text) in enumerate(fn.lines):
        m = _CAPTURED_CALL.search(text)
        if not m:
            continue
        flag = re.compile(rf"\b{re.escape(m.group(1) or m.group(2))}\b")
        # Statements after the call on the same line count as later reads
        rest = text[m.end() :].partition(";")[2]
        if flag.search(rest) or any(
            flag.search(later) for _, later in fn.lines[idx + 1 :]
        ):
            continue
        findings.append(rule.to_finding((line_num,), _snippet(raw_lines, line_num)))
    return findings


def _is_privileged(fn: SourceFunction, state_vars: set[str]) -> bool:
    if _PRIVILEGED_NAME.match(fn.name):
        return True
    lowered = fn.name.lower()
    if any(word in lowered for word in _PRIVILEGED_WORDS):
        return True
    if _DANGEROUS_BODY.search(fn.body):
        return True
    privileged = _PRIVILEGED_STATE & (state_vars or _PRIVILEGED_STATE)
    return any(
        set(_PLAIN_WRITE.findall(text)) & privileged for _, text in fn.lines[1:]
    )


def _check_access_control(
    fn: SourceFunction,
    state_vars: set[str],
    raw_lines: list[str],
) -> list[Finding]:
    """Privileged, state-mutating, externally callable and unguarded."""
    if fn.is_special or not fn.is_externally_callable or not fn.is_state_mutating:
        return []
    if _GUARD_MODIFIER.search(fn.header) or _SENDER_CHECK.search(fn.body):
        return []
    if not _is_privileged(fn, state_vars):
        return []
    rule = get_pattern("missing_access_control")
    return [rule.to_finding((fn.start_line,), _snippet(raw_lines, fn.start_line))]


def _check_division(fn: SourceFunction, raw_lines: list[str]) -> list[Finding]:
    rule = get_pattern("division_by_zero")
    findings: list[Finding] = []
    for idx, (line_num, text) in enumerate(fn.lines):
        for m in _DIVISION.finditer(text):
            divisor = m.group(1)
            if divisor.isupper():
                continue
            name = re.escape(divisor)
            guard = re.compile(
                rf"\b{name}\s*(?:>|!=)\s*0\b|\b0\s*(?:<|!=)\s*{name}\b"
                rf"|\b{name}\s*>=\s*1\b"
            )
            if any(guard.search(prev) for _, prev in fn.lines[: idx + 1]):
                continue
            findings.append(
                rule.to_finding((line_num,), _snippet(raw_lines, line_num))
            )
            break
    return findings


def _check_missing_event(
    fn: SourceFunction,
    state_vars: set[str],
    raw_lines: list[str],
) -> list[Finding]:
    if fn.is_special or not fn.is_externally_callable or not fn.is_state_mutating:
        return []
    if re.search(r"\bemit\s+\w+", fn.body):
        return []
    for line_num, text in fn.lines[1:]:
        if _state_writes(text, state_vars):
            rule = get_pattern("missing_event")
            return [rule.to_finding((line_num,), _snippet(raw_lines, line_num))]
    return []


def _check_duplicate_reads(
    fn: SourceFunction,
    state_vars: set[str],
    raw_lines: list[str],
) -> list[Finding]:
    """Same mapping/array slot read on two lines with no write in between."""
    if not state_vars:
        return []
    rule = get_pattern("duplicate_storage_read")
    findings: list[Finding] = []
    seen: dict[str, int] = {}
    for line_num, text in fn.lines[1:]:
        written = _state_writes(text, state_vars)
        for expr in [e for e in seen if e.split("[", 1)[0] in written]:
            del seen[expr]
        reads = sorted(
            {
                name + re.sub(r"\s+", "", index)
                for name, index in _INDEXED_READ.findall(text)
                if name in state_vars and name not in written
            }
        )
        for expr in reads:
            first = seen.pop(expr, None)
            if first is None:
                seen[expr] = line_num
                continue
            findings.append(
                rule.to_finding(
                    (first, line_num), _snippet(raw_lines, first, line_num)
                )
            )
    return findings


def _arithmetic_lines(lines: list[tuple[int, str]]) -> list[int]:
    return [
        num
        for num, text in lines
        if _ARITHMETIC.search(text) and not text.lstrip().startswith("for")
    ]


def _check_overflow(
    clean: str,
    functions: list[SourceFunction],
    raw_lines: list[str],
) -> list[Finding]:
    """Unsigned arithmetic on compilers without built-in overflow checks."""
    version = pragma_version(clean)
    # No pragma: assume a modern (checked) compiler.
    if version is None or version >= (0, 8):
        return []
    if "SafeMath" in clean or not _UINT.search(clean):
        return []

    rule = get_pattern("integer_overflow")
    findings: list[Finding] = []
    for fn in functions:
        lines = _arithmetic_lines(list(fn.lines[1:]))
        if lines:
            findings.append(rule.to_finding(lines, _snippet(raw_lines, lines[0])))
    return findings


def _check_unchecked_blocks(clean: str, raw_lines: list[str]) -> list[Finding]:
    rule = get_pattern("unchecked_arithmetic")
    clean_lines = clean.split("\n")
    findings: list[Finding] = []
    for m in _UNCHECKED_BLOCK.finditer(clean):
        start = offset_to_line(clean, m.start())
        end = offset_to_line(clean, find_block_end(clean, m.end() - 1))
        block = [(n, clean_lines[n - 1]) for n in range(start, end + 1)]
        # The opening line holds only 'unchecked {'
        lines = _arithmetic_lines(block[1:] if len(block) > 1 else block)
        if lines:
            findings.append(rule.to_finding(lines, _snippet(raw_lines, lines[0])))
    return findings


def _loop_body_span(clean: str, start: int) -> tuple[int, int] | None:
    """Span of a for-loop's braced body, or None for single-statement loops."""
    depth = 0
    idx = clean.find("(", start)
    while idx < len(clean):
        c = clean[idx]
        if c == "(":
            depth += 1
        elif c == ")":
            depth -= 1
            if depth == 0:
                break
        idx += 1
    rest = clean[idx + 1 :]
    stripped = rest.lstrip()
    if not stripped.startswith("{"):
        return None
    brace = idx + 1 + (len(rest) - len(stripped))
    return brace, find_block_end(clean, brace)


def _check_gas_loops(
    clean: str,
    state_vars: set[str],
    raw_lines: list[str],
) -> list[Finding]:
    if not state_vars:
        return []
    rule = get_pattern("gas_loop_storage")
    names = "|".join(re.escape(v) for v in sorted(state_vars))
    storage_access = re.compile(rf"\b(?:{names})\s*(?:\[|\.length\b)")
    findings: list[Finding] = []
    for m in _FOR_LOOP.finditer(clean):
        span = _loop_body_span(clean, m.start())
        if span is None:
            continue
        if storage_access.search(clean[m.start() : span[1] + 1]):
            line_num = offset_to_line(clean, m.start())
            findings.append(rule.to_finding((line_num,), _snippet(raw_lines, line_num)))
    return findings


def compute_metrics(source: str) -> AnalysisMetrics:
    """Size, complexity, and a rough gas estimate for the source."""
    if not isinstance(source, str) or not source:
        return AnalysisMetrics()
    clean = strip_comments(normalize_newlines(source))
    functions = len(re.findall(r"\bfunction\s+\w+", clean))
    storage_ops = len(_STORAGE_OP.findall(clean))
    external_calls = len(_ANY_EXTERNAL_CALL.findall(clean))
    return AnalysisMetrics(
        total_lines=clean.count("\n") + 1,
        contracts_analyzed=count_contracts(clean),
        functions_analyzed=functions,
        complexity_score=len(_COMPLEXITY_KEYWORDS.findall(clean)),
        gas_estimate=storage_ops * 20000 + external_calls * 5000 + functions * 1000,
    )


class HeuristicAnalyzer:
    """The built-in ``custom`` backend."""

    name = "custom"

    def is_available(self) -> bool:
        return True

    def analyze(self, source: str) -> AnalysisResult:
        start = time.monotonic()
        findings = analyze(source)
        return AnalysisResult(
            tool=self.name,
            findings=tuple(findings),
            duration=time.monotonic() - start,
            metrics=compute_metrics(source),
        )

    async def run(self, source: str, timeout: float | None = None) -> AnalysisResult:
        # CPU-bound; keep it off the event loop. A cancelled caller stops
        # waiting at once, the bounded scan finishes in its worker thread.
        return await asyncio.to_thread(self.analyze, source)
