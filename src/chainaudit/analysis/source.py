"""Lightweight Solidity source handling — no compiler, just text structure.

Everything here works on raw text so that malformed or partial contracts
still yield something usable. Line numbers are always 1-based and are
preserved by every transformation (comments and string contents are blanked,
never removed).
"""

from __future__ import annotations

import re
from dataclasses import dataclass

_SOLIDITY_MARKERS = re.compile(
    r"\b(?:pragma\s+solidity|contract\s+\w+|library\s+\w+|interface\s+\w+|function\s+\w+)"
)
_PRAGMA = re.compile(r"pragma\s+solidity\s*[\^~>=<\s]*(\d+)\.(\d+)")
_FUNCTION_START = re.compile(
    r"\b(?:function\s+(\w+)|(constructor|fallback|receive))\s*\("
)
_VISIBILITY = re.compile(r"\b(public|external|internal|private)\b")
_MUTABILITY = re.compile(r"\b(view|pure|constant)\b")
_CONTRACT_START = re.compile(r"\b(?:contract|library|abstract\s+contract)\s+(\w+)")
_STATE_DECL = re.compile(
    r"^\s*(?:mapping\s*\(.*\)|[A-Za-z_][\w.]*(?:\[\d*\])*)"
    r"(?:\s+(?:public|private|internal|immutable|override))*"
    r"\s+([A-Za-z_]\w*)\s*(?:=[^;]*)?;"
)
_NON_STATE_KEYWORDS = {
    "return",
    "emit",
    "using",
    "event",
    "error",
    "import",
    "pragma",
    "delete",
    "revert",
}


@dataclass(frozen=True)
class SourceFunction:
    """A function (or constructor/fallback/receive) located in the source."""

    name: str
    header: str
    start_line: int
    end_line: int
    lines: tuple[tuple[int, str], ...]

    @property
    def visibility(self) -> str:
        m = _VISIBILITY.search(self.header)
        # Pre-0.5 compilers default to public.
        return m.group(1) if m else "public"

    @property
    def is_externally_callable(self) -> bool:
        return self.visibility in ("public", "external")

    @property
    def is_state_mutating(self) -> bool:
        return _MUTABILITY.search(self.header) is None

    @property
    def is_special(self) -> bool:
        return self.name in ("constructor", "fallback", "receive")

    @property
    def body(self) -> str:
        return "\n".join(text for _, text in self.lines)


def normalize_newlines(source: str) -> str:
    return source.replace("\r\n", "\n").replace("\r", "\n")


def split_lines(source: str) -> list[str]:
    """Split on '\\n' only, so indices agree with :func:`offset_to_line`."""
    return normalize_newlines(source).split("\n")


def line_count(source: str) -> int:
    if not source:
        return 0
    return len(split_lines(source))


def looks_like_solidity(source: str) -> bool:
    """Whether the text contains any recognizable Solidity structure."""
    return _SOLIDITY_MARKERS.search(source) is not None


def pragma_version(source: str) -> tuple[int, int] | None:
    """Lower bound (major, minor) of the first solidity pragma, if any."""
    m = _PRAGMA.search(source)
    if not m:
        return None
    return int(m.group(1)), int(m.group(2))


def offset_to_line(text: str, offset: int) -> int:
    return text.count("\n", 0, offset) + 1


def strip_comments(source: str) -> str:
    """Blank out comments and string literal contents, keeping line layout.

    Quote characters are kept so that ``call{value: x}("")`` still parses
    as a call with an argument list.
    """
    out: list[str] = []
    i = 0
    n = len(source)
    while i < n:
        ch = source[i]
        nxt = source[i + 1] if i + 1 < n else ""
        if ch == "/" and nxt == "/":
            while i < n and source[i] != "\n":
                out.append(" ")
                i += 1
        elif ch == "/" and nxt == "*":
            out.append("  ")
            i += 2
            while i < n and not (source[i] == "*" and i + 1 < n and source[i + 1] == "/"):
                out.append("\n" if source[i] == "\n" else " ")
                i += 1
            if i < n:
                out.append("  ")
                i += 2
        elif ch in ('"', "'"):
            quote = ch
            out.append(quote)
            i += 1
            while i < n and source[i] != quote and source[i] != "\n":
                if source[i] == "\\" and i + 1 < n:
                    out.append("  ")
                    i += 2
                    continue
                out.append(" ")
                i += 1
            if i < n and source[i] == quote:
                out.append(quote)
                i += 1
        else:
            out.append(ch)
            i += 1
    return "".join(out)


def find_block_end(text: str, open_brace: int) -> int:
    """Index of the brace closing the one at ``open_brace`` (or end of text)."""
    depth = 0
    for idx in range(open_brace, len(text)):
        c = text[idx]
        if c == "{":
            depth += 1
        elif c == "}":
            depth -= 1
            if depth == 0:
                return idx
    return len(text) - 1


def extract_functions(clean: str) -> list[SourceFunction]:
    """Locate function bodies by brace matching on comment-free source."""
    functions: list[SourceFunction] = []
    lines = clean.split("\n")

    for m in _FUNCTION_START.finditer(clean):
        name = m.group(1) or m.group(2)
        # Header runs up to the body's opening brace; a ';' first means
        # a bodiless declaration (interface or abstract function).
        brace = clean.find("{", m.end())
        semi = clean.find(";", m.end())
        if brace == -1 or (semi != -1 and semi < brace):
            continue

        end = find_block_end(clean, brace)
        start_line = offset_to_line(clean, m.start())
        end_line = offset_to_line(clean, end)
        body = tuple(
            (num, lines[num - 1])
            for num in range(start_line, min(end_line, len(lines)) + 1)
        )
        functions.append(
            SourceFunction(
                name=name,
                header=clean[m.start() : brace],
                start_line=start_line,
                end_line=end_line,
                lines=body,
            )
        )

    return functions


def state_variables(clean: str, functions: list[SourceFunction]) -> set[str]:
    """Names declared at contract level (outside any function body)."""
    inside: set[int] = set()
    for fn in functions:
        inside.update(range(fn.start_line, fn.end_line + 1))

    names: set[str] = set()
    for num, line in enumerate(clean.split("\n"), start=1):
        if num in inside:
            continue
        m = _STATE_DECL.match(line)
        if not m:
            continue
        first_word = line.strip().split(None, 1)[0]
        if first_word in _NON_STATE_KEYWORDS:
            continue
        names.add(m.group(1))
    return names


def count_contracts(clean: str) -> int:
    return len(_CONTRACT_START.findall(clean))
