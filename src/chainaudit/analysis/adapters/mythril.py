"""Mythril adapter — maps mythril's SWC-tagged issues to findings."""

from __future__ import annotations

import json
from pathlib import Path

from chainaudit.analysis.adapters.base import ProcessAdapter, valid_lines
from chainaudit.analysis.models import Finding, FindingType, Severity
from chainaudit.analysis.patterns import recommendation_for
from chainaudit.errors import ToolExecutionError

# SWC registry id → shared finding type
_SWC_TYPES = {
    "101": FindingType.INTEGER_OVERFLOW,
    "104": FindingType.UNCHECKED_CALL,
    "105": FindingType.ACCESS_CONTROL,
    "106": FindingType.SELFDESTRUCT,
    "107": FindingType.REENTRANCY,
    "112": FindingType.DELEGATECALL,
    "114": FindingType.FRONT_RUNNING,
    "115": FindingType.TX_ORIGIN,
    "116": FindingType.TIMESTAMP,
    "128": FindingType.GAS,
}

_SEVERITY = {
    "High": Severity.HIGH,
    "Medium": Severity.MEDIUM,
    "Low": Severity.LOW,
}


class MythrilAdapter(ProcessAdapter):
    """Runs ``myth analyze <file> -o json``."""

    name = "mythril"
    default_executable = "myth"

    def command(self, contract_path: Path) -> list[str]:
        return [self.executable, "analyze", str(contract_path), "-o", "json"]

    def parse(self, output: str, source: str) -> list[Finding]:
        try:
            data = json.loads(output)
        except json.JSONDecodeError as e:
            raise ToolExecutionError(f"mythril produced invalid JSON: {e}") from e
        if not isinstance(data, dict):
            raise ToolExecutionError("mythril output is not a JSON object")
        if data.get("error"):
            raise ToolExecutionError(str(data["error"]))

        findings: list[Finding] = []
        for issue in data.get("issues") or []:
            if not isinstance(issue, dict):
                continue
            swc = str(issue.get("swc-id", "")).strip()
            ftype = _SWC_TYPES.get(swc, FindingType.OTHER)
            lineno = issue.get("lineno")
            findings.append(
                Finding(
                    type=ftype,
                    severity=_SEVERITY.get(str(issue.get("severity", "")), Severity.INFO),
                    title=str(issue.get("title", "")),
                    description=str(issue.get("description", "")).strip(),
                    line_numbers=valid_lines([lineno] if lineno is not None else [], source),
                    recommendation=recommendation_for(ftype),
                    source_tool=self.name,
                    swc_id=f"SWC-{swc}" if swc else "",
                    code_snippet=str(issue.get("code") or ""),
                )
            )
        return findings
