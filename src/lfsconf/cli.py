"""Command line interface for inspecting LFS configuration.

The commands wrap :func:`lfsconf.lfs.load_lfs_config` so operators can review
the effective settings, spot deprecated keys and provision the LFS JWT secret
ahead of a server start.
"""
from __future__ import annotations

import json
import logging
import textwrap
from dataclasses import dataclass
from pathlib import Path
from typing import NoReturn

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from . import __version__
from .config import ConfigError, ConfigStore
from .exit_codes import ExitCode
from .jwt_secret import (
    LFS_JWT_SECRET_LENGTH,
    SecretGenerationError,
    SecretPersistenceError,
    SecretSourceError,
    new_secret_base64,
)
from .lfs import LFSConfig, install_locked, load_lfs_config
from .storage import StorageError

console = Console()

CONFIG_FILE_OPTION = typer.Option(
    None,
    "--config-file",
    "-c",
    dir_okay=False,
    help="Override the path to lfsconf's YAML config file.",
)

JSON_OPTION = typer.Option(
    False,
    "--json",
    help="Emit output as JSON instead of a table.",
)

app = typer.Typer(
    add_completion=False,
    help=textwrap.dedent(
        """
        Inspect Git LFS server configuration and manage its JWT secret.

        Settings are read from the YAML config file and LFSCONF__SECTION__KEY
        environment overrides.
        """
    ).strip(),
)


@dataclass
class RuntimeContext:
    """Options shared by every command."""

    config_file: Path | None
    verbose: bool


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _get_runtime(ctx: typer.Context) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime
    runtime = RuntimeContext(config_file=None, verbose=False)
    ctx.obj = runtime
    return runtime


def _command_error(message: str, *, rc: int = ExitCode.INVALID_CONFIG) -> NoReturn:
    """Print *message* and terminate the command."""
    console.print(f"[red]{escape(message)}[/red]")
    raise typer.Exit(code=int(rc))


def _exit_code_for(exc: ConfigError) -> ExitCode:
    if isinstance(exc, SecretGenerationError):
        return ExitCode.SECRET_GENERATION
    if isinstance(exc, SecretPersistenceError):
        return ExitCode.SECRET_PERSISTENCE
    if isinstance(exc, SecretSourceError):
        return ExitCode.SECRET_SOURCE
    if isinstance(exc, StorageError):
        return ExitCode.STORAGE
    return ExitCode.INVALID_CONFIG


def _load(runtime: RuntimeContext, *, provision_secret: bool) -> tuple[ConfigStore, LFSConfig]:
    try:
        store = ConfigStore.load(runtime.config_file)
        config = load_lfs_config(store, provision_secret=provision_secret)
    except ConfigError as exc:
        _command_error(str(exc), rc=_exit_code_for(exc))
    return store, config


def _print_notices(config: LFSConfig) -> None:
    for notice in config.notices:
        console.print(f"[yellow]WARN[/yellow] {escape(notice.message)}")


@app.callback(invoke_without_command=True)
def _root(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show the lfsconf version and exit.",
    ),
    config_file: Path | None = CONFIG_FILE_OPTION,
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable debug logging.",
    ),
) -> None:
    """Entry point callback invoked for every CLI execution."""
    if version:
        console.print(f"lfsconf {__version__}")
        raise typer.Exit(code=ExitCode.OK)

    _configure_logging(verbose)
    ctx.obj = RuntimeContext(config_file=config_file, verbose=verbose)

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())
        raise typer.Exit(code=ExitCode.OK)


@app.command("show")
def show(ctx: typer.Context, json_output: bool = JSON_OPTION) -> None:
    """Display the effective LFS configuration after merges and migrations."""
    runtime = _get_runtime(ctx)
    _, config = _load(runtime, provision_secret=False)
    data = config.to_dict()

    if json_output:
        console.print_json(data=data)
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Section", style="bold")
    table.add_column("Value")
    for key in ("lfs", "lfs.server", "lfs.client"):
        table.add_row(key, json.dumps(data[key], indent=2, sort_keys=True))
    console.print(table)
    _print_notices(config)


@app.command("check")
def check(ctx: typer.Context) -> None:
    """Validate the configuration without writing anything."""
    runtime = _get_runtime(ctx)
    store, config = _load(runtime, provision_secret=False)
    _print_notices(config)

    if config.lfs.start_server and install_locked(store) and not config.lfs.jwt_secret_bytes:
        console.print(
            "[yellow]WARN[/yellow] No valid LFS_JWT_SECRET is configured; one will be "
            "generated and saved on the next server start."
        )
    console.print(f"[green]Configuration in {store.path} is valid.[/green]")


@app.command("ensure-secret")
def ensure_secret_command(ctx: typer.Context) -> None:
    """Load the LFS JWT secret, generating and saving one when missing."""
    runtime = _get_runtime(ctx)
    store, config = _load(runtime, provision_secret=True)
    _print_notices(config)

    if not config.lfs.start_server:
        console.print("LFS server is disabled; no secret is required.")
        return
    if not install_locked(store):
        console.print("Installation is not locked; secret provisioning skipped.")
        return
    if config.secret_generated:
        console.print(f"[green]Generated a new LFS JWT secret in {store.path}.[/green]")
        return
    console.print("LFS JWT secret already present.")


@app.command("generate-secret")
def generate_secret() -> None:
    """Print a freshly generated LFS JWT secret without saving it."""
    try:
        _, encoded = new_secret_base64(LFS_JWT_SECRET_LENGTH)
    except (OSError, NotImplementedError) as exc:
        _command_error(f"Error generating secret: {exc}", rc=ExitCode.SECRET_GENERATION)
    typer.echo(encoded)


def main() -> None:
    """Console script entry point."""
    app()
