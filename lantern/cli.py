"""Command-line interface for Lantern.

This module defines the CLI commands using Click framework.

Commands:
- build: Build the site into docDir.
- serve: Serve the site from memory with incremental rebuilds.
"""

from __future__ import annotations

from pathlib import Path

import click

from . import __version__
from .errors import BuildError, ConfigError
from .logging import configure_logging

_work_dir_argument = click.argument(
    "work_dir",
    required=False,
    default=".",
    type=click.Path(file_okay=False, path_type=Path),
)
_config_option = click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Alternative site config file (default: WORK_DIR/siteConfig.yml)",
)
_debug_option = click.option("--debug", is_flag=True, help="Print debug messages")


@click.group()
@click.version_option(version=__version__, prog_name="lantern")
def cli():
    """Lantern static site generator."""


@cli.command()
@_work_dir_argument
@_config_option
@_debug_option
def build(work_dir: Path, config_path: Path | None, debug: bool):
    """Build the site into docDir."""
    configure_logging(debug=debug)
    from .build import build_site

    try:
        site = build_site(work_dir, config_path)
    except (ConfigError, BuildError) as exc:
        _report(exc, work_dir)
        raise SystemExit(1) from None
    click.echo(
        f"Built {len(site.posts)} posts and {len(site.pages)} pages into {site.site_config['docDir']}"
    )


@cli.command()
@_work_dir_argument
@_config_option
@_debug_option
@click.option("--ip", default="localhost", show_default=True, help="Interface to listen on")
@click.option("--port", type=int, default=2333, show_default=True, help="Port to run the dev server")
@click.option(
    "--ws-port",
    type=int,
    required=False,
    help="Port for the live reload websocket server (default: PORT + 1)",
)
@click.option("--live-reload", is_flag=True, help="Reload browsers after each rebuild")
def serve(
    work_dir: Path,
    config_path: Path | None,
    debug: bool,
    ip: str,
    port: int,
    ws_port: int | None,
    live_reload: bool,
):
    """Serve the site with incremental rebuilds."""
    configure_logging(debug=debug)
    from .build import serve_site

    try:
        serve_site(work_dir, config_path, ip=ip, port=port, ws_port=ws_port, live_reload=live_reload)
    except (ConfigError, BuildError) as exc:
        _report(exc, work_dir)
        raise SystemExit(1) from None


def _report(exc: Exception, work_dir: Path) -> None:
    if isinstance(exc, BuildError):
        try:
            shown = exc.source_path.resolve().relative_to(work_dir.resolve())
        except ValueError:
            shown = exc.source_path
        click.echo(click.style("Build failed:", fg="red", bold=True), err=True)
        click.echo(click.style(f"  File: {shown}", fg="yellow"), err=True)
        click.echo(click.style(f"  Error: {exc.message}", fg="white"), err=True)
    else:
        click.echo(click.style("Configuration error:", fg="red", bold=True), err=True)
        click.echo(click.style(f"  {exc}", fg="white"), err=True)


def main():
    """Entry point for the CLI application."""
    cli()
