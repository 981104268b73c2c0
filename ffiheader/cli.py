"""ffiheader CLI — generate a C header from a crate root."""

import logging
import sys

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from ffiheader import __version__

console = Console()
err_console = Console(stderr=True)

EXIT_ERROR = 1
EXIT_STALE = 2


def _setup_logging(verbose: bool, quiet: bool):
    level = logging.DEBUG if verbose else logging.ERROR if quiet else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def _load(config_path: str | None):
    from ffiheader.config import ConfigError, load_config

    try:
        return load_config(config_path)
    except ConfigError as e:
        err_console.print(
            f"[red]{escape(f'error[config] {e.code}:')}[/] {escape(e.message)}",
            highlight=False,
            soft_wrap=True,
        )
        if e.suggestion:
            err_console.print(f"  [dim]{escape(e.suggestion)}[/]", soft_wrap=True)
        sys.exit(EXIT_ERROR)


def _fail(error):
    err_console.print(f"[red]{escape(error.describe())}[/]", highlight=False, soft_wrap=True)
    sys.exit(EXIT_ERROR)


@click.group()
@click.version_option(version=__version__)
@click.option("--verbose", "-v", is_flag=True, help="Log every stage in detail")
@click.option("--quiet", "-q", is_flag=True, help="Only log errors")
def main(verbose: bool, quiet: bool):
    """ffiheader — C headers for the exported surface of a crate.

    Reads a crate described in YAML module files, resolves conditional
    compilation, monomorphizes generics, orders declarations and writes
    a single C header.
    """
    _setup_logging(verbose, quiet)


# ── Generate ─────────────────────────────────────────────────────────


@main.command()
@click.argument("crate_root", type=click.Path(exists=True, file_okay=False))
@click.option("--config", "-c", "config_path", default=None, help="YAML configuration file")
@click.option("--output", "-o", default=None, help="Header path (stdout if omitted)")
@click.option("--verify", is_flag=True, help="Fail if the header on disk is out of date")
def generate(crate_root: str, config_path: str | None, output: str | None, verify: bool):
    """Generate a C header for the crate at CRATE_ROOT."""
    from ffiheader.errors import BindgenError
    from ffiheader.pipeline import generate as generate_header
    from ffiheader.pipeline import output_matches, write_output

    config = _load(config_path)
    try:
        text = generate_header(crate_root, config)
    except BindgenError as e:
        _fail(e)

    if verify:
        if output is None:
            raise click.UsageError("--verify needs --output")
        if not output_matches(output, text):
            err_console.print(f"[red]{escape(output)} is out of date[/]", soft_wrap=True)
            sys.exit(EXIT_STALE)
        err_console.print(f"[green]{escape(output)} is up to date[/]", soft_wrap=True)
        return

    if output is None:
        click.echo(text, nl=False)
        return

    changed = write_output(output, text)
    status = "[green]Wrote[/]" if changed else "[dim]Unchanged[/]"
    err_console.print(f"{status} {escape(output)}", highlight=False, soft_wrap=True)


# ── Order ────────────────────────────────────────────────────────────


@main.command()
@click.argument("crate_root", type=click.Path(exists=True, file_okay=False))
@click.option("--config", "-c", "config_path", default=None, help="YAML configuration file")
def order(crate_root: str, config_path: str | None):
    """Show the emission order for the crate at CRATE_ROOT."""
    from ffiheader.errors import BindgenError
    from ffiheader.frontend.yaml_source import load_crate
    from ffiheader.pipeline import Stage, run_pipeline, stage

    config = _load(config_path)
    try:
        with stage(Stage.PARSE):
            nodes = load_crate(crate_root, workers=config.workers)
        stream = run_pipeline(nodes, config)
    except BindgenError as e:
        _fail(e)

    table = Table(title=f"Emission Order ({len(stream)} events)")
    table.add_column("#", style="dim", justify="right")
    table.add_column("Event", style="cyan")
    table.add_column("Export Name", style="green")
    table.add_column("Kind")
    table.add_column("Source")

    for i, event in enumerate(stream):
        item = event.entity
        if item.instance_of:
            template, args = item.instance_of
            source = f"{template}<{', '.join(str(a) for a in args)}>"
        elif item.synthetic:
            source = "(cfg-removed stub)"
        else:
            source = item.name
        table.add_row(
            str(i + 1), event.kind.value, item.export_name, item.kind.value, escape(source)
        )

    console.print(table)
