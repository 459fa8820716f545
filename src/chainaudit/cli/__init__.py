"""CLI entry point — Click group with global options."""

from __future__ import annotations

import logging

import click

from chainaudit import __version__


@click.group()
@click.version_option(version=__version__, prog_name="chainaudit")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    help="Path to a YAML config file.",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.pass_context
def main(ctx: click.Context, config_path: str | None, verbose: bool) -> None:
    """chainaudit — smart-contract vulnerability detection with multi-tool consensus."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose

    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _register_commands() -> None:
    from chainaudit.cli.analyze import analyze  # noqa: F811
    from chainaudit.cli.server import server  # noqa: F811
    from chainaudit.cli.tools import tools  # noqa: F811

    main.add_command(analyze)
    main.add_command(tools)
    main.add_command(server)


_register_commands()
