"""Global configuration — XDG paths, YAML config file, env vars, defaults."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml


def _default_config_dir() -> Path:
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / "chainaudit"
    return Path.home() / ".config" / "chainaudit"


@dataclass
class ChainAuditConfig:
    """Application-wide configuration."""

    config_dir: Path = field(default_factory=_default_config_dir)
    default_tools: list[str] = field(default_factory=lambda: ["custom"])
    tool_timeout: float = 60.0
    tool_paths: dict[str, str] = field(default_factory=dict)
    dedup_key: str = "overlapping_lines"
    web_host: str = "127.0.0.1"
    web_port: int = 8471

    @classmethod
    def load(cls, path: str | Path | None = None) -> ChainAuditConfig:
        """Load config.yaml (if present), then apply environment overrides."""
        config = cls()

        config_path = Path(path) if path else config.config_dir / "config.yaml"
        if path or config_path.is_file():
            config._apply_file(config_path)

        env_timeout = os.environ.get("CHAINAUDIT_TOOL_TIMEOUT")
        if env_timeout:
            config.tool_timeout = float(env_timeout)

        env_port = os.environ.get("CHAINAUDIT_WEB_PORT")
        if env_port:
            config.web_port = int(env_port)

        env_tools = os.environ.get("CHAINAUDIT_TOOLS")
        if env_tools:
            config.default_tools = [t.strip() for t in env_tools.split(",") if t.strip()]

        env_dedup = os.environ.get("CHAINAUDIT_DEDUP_KEY")
        if env_dedup:
            config.dedup_key = env_dedup

        for tool in ("slither", "mythril"):
            env_path = os.environ.get(f"CHAINAUDIT_{tool.upper()}_PATH")
            if env_path:
                config.tool_paths[tool] = env_path

        return config

    def _apply_file(self, path: Path) -> None:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
        if data is None:
            return
        if not isinstance(data, dict):
            raise ValueError("Config YAML must be a mapping")

        tools = data.get("tools", {})
        if isinstance(tools, list):
            self.default_tools = [str(t) for t in tools]
        elif isinstance(tools, dict):
            if "default" in tools:
                self.default_tools = [str(t) for t in tools["default"]]
            if "timeout" in tools:
                self.tool_timeout = float(tools["timeout"])
            for name, exe in (tools.get("paths") or {}).items():
                self.tool_paths[str(name)] = str(exe)

        if "dedup_key" in data:
            self.dedup_key = str(data["dedup_key"])

        web = data.get("web") or {}
        if "port" in web:
            self.web_port = int(web["port"])
