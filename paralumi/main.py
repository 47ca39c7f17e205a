"""
paralumi — CLI entrypoint.

Usage:
    paralumi --help
    paralumi preview --org acme --config-filter tier:blue --stack-name release
    paralumi apply   --org acme --config-filter tier:blue --stack-name release
    paralumi select  --org acme --config-filter tier:blue --stack-name release
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

import click

from paralumi import __version__
from paralumi.core.config.loader import load_settings
from paralumi.core.errors import ConfigError
from paralumi.core.observability.logging_config import resolve_level, setup_logging


@click.group()
@click.version_option(version=__version__, prog_name="paralumi")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "settings_path",
    type=click.Path(exists=False, dir_okay=False),
    default=None,
    help="Path to paralumi.yml (default: auto-detect).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    settings_path: str | None,
) -> None:
    """paralumi — preview or apply one Pulumi stack per matching environment."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug

    setup_logging(
        level=resolve_level(
            debug=debug,
            verbose=verbose,
            quiet=quiet,
            env_level=os.environ.get("PARALUMI_LOG_LEVEL"),
        ),
        log_file=os.environ.get("PARALUMI_LOG_FILE"),
        log_file_level=os.environ.get("PARALUMI_LOG_FILE_LEVEL"),
        quiet_third_party=not debug,
    )

    try:
        ctx.obj["settings"] = load_settings(Path(settings_path) if settings_path else None)
    except ConfigError as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)


# ── Register sub-commands from paralumi/ui/cli/ ───────────────────

from paralumi.ui.cli.operations import apply, preview, select, up

cli.add_command(preview)
cli.add_command(apply)
cli.add_command(up)
cli.add_command(select)


if __name__ == "__main__":
    cli()
