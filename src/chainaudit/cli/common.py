"""Helpers shared by CLI commands."""

from __future__ import annotations

import click

from chainaudit.config import ChainAuditConfig


def load_config(ctx: click.Context) -> ChainAuditConfig:
    """Load configuration from the group's --config option (or defaults)."""
    config_path = (ctx.obj or {}).get("config_path")
    try:
        return ChainAuditConfig.load(config_path)
    except (OSError, ValueError) as e:
        raise click.ClickException(f"Invalid configuration: {e}") from e
