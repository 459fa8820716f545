"""Slither adapter — maps slither detector output to findings."""

from __future__ import annotations

import json
from pathlib import Path

from chainaudit.analysis.adapters.base import ProcessAdapter, valid_lines
from chainaudit.analysis.models import Finding, FindingType, Severity
from chainaudit.analysis.patterns import recommendation_for
from chainaudit.errors import ToolExecutionError

# Slither detector check → shared finding type
_CHECK_TYPES = {
    "reentrancy-eth": FindingType.REENTRANCY,
    "reentrancy-no-eth": FindingType.REENTRANCY,
    "reentrancy-benign": FindingType.REENTRANCY,
    "reentrancy-events": FindingType.REENTRANCY,
    "reentrancy-unlimited-gas": FindingType.REENTRANCY,
    "unchecked-lowlevel": FindingType.UNCHECKED_CALL,
    "unchecked-send": FindingType.UNCHECKED_CALL,
    "unchecked-transfer": FindingType.UNCHECKED_CALL,
    "tx-origin": FindingType.TX_ORIGIN,
    "suicidal": FindingType.SELFDESTRUCT,
    "controlled-delegatecall": FindingType.DELEGATECALL,
    "delegatecall-loop": FindingType.DELEGATECALL,
    "timestamp": FindingType.TIMESTAMP,
    "arbitrary-send-eth": FindingType.ACCESS_CONTROL,
    "arbitrary-send-erc20": FindingType.ACCESS_CONTROL,
    "protected-vars": FindingType.ACCESS_CONTROL,
    "unprotected-upgrade": FindingType.ACCESS_CONTROL,
    "divide-before-multiply": FindingType.INTEGER_OVERFLOW,
    "costly-loop": FindingType.GAS,
    "calls-loop": FindingType.GAS,
    "events-access": FindingType.EVENT_LOGGING,
    "events-maths": FindingType.EVENT_LOGGING,
}

_IMPACT_SEVERITY = {
    "High": Severity.HIGH,
    "Medium": Severity.MEDIUM,
    "Low": Severity.LOW,
    "Informational": Severity.INFO,
    "Optimization": Severity.INFO,
}

# Detectors whose High impact means funds can be drained outright
_CRITICAL_CHECKS = {"reentrancy-eth", "suicidal", "controlled-delegatecall"}

_CONFIDENCE = {"High": "HIGH", "Medium": "MEDIUM", "Low": "LOW"}


class SlitherAdapter(ProcessAdapter):
    """Runs ``slither <file> --json -``."""

    name = "slither"
    default_executable = "slither"

    def command(self, contract_path: Path) -> list[str]:
        return [self.executable, str(contract_path), "--json", "-"]

    def parse(self, output: str, source: str) -> list[Finding]:
        try:
            data = json.loads(output)
        except json.JSONDecodeError as e:
            raise ToolExecutionError(f"slither produced invalid JSON: {e}") from e
        if not isinstance(data, dict):
            raise ToolExecutionError("slither output is not a JSON object")
        if not data.get("success", False):
            raise ToolExecutionError(str(data.get("error") or "slither reported failure"))

        detectors = (data.get("results") or {}).get("detectors") or []
        return [self._to_finding(d, source) for d in detectors if isinstance(d, dict)]

    def _to_finding(self, detector: dict, source: str) -> Finding:
        check = str(detector.get("check", ""))
        impact = str(detector.get("impact", ""))
        ftype = _CHECK_TYPES.get(check, FindingType.OTHER)

        severity = _IMPACT_SEVERITY.get(impact, Severity.INFO)
        if check in _CRITICAL_CHECKS and severity is Severity.HIGH:
            severity = Severity.CRITICAL

        recommendation = recommendation_for(ftype) or (
            f"See the slither documentation for the '{check}' detector."
        )
        return Finding(
            type=ftype,
            severity=severity,
            title=check,
            description=str(detector.get("description", "")).strip(),
            line_numbers=valid_lines(_detector_lines(detector), source),
            recommendation=recommendation,
            source_tool=self.name,
            confidence=_CONFIDENCE.get(str(detector.get("confidence", "")), "MEDIUM"),
        )


def _detector_lines(detector: dict) -> list[int]:
    """Statement-level lines; function/contract elements span too much."""
    elements = [e for e in detector.get("elements") or [] if isinstance(e, dict)]
    lines: list[int] = []
    for element in elements:
        if element.get("type") == "node":
            lines.extend((element.get("source_mapping") or {}).get("lines") or [])
    if not lines and elements:
        first = (elements[0].get("source_mapping") or {}).get("lines") or []
        lines = first[:1]
    return lines
