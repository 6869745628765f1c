"""Click CLI for decoding and dumping GDSII streams."""
from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional

import click

from gdsdump.config import Settings, derive_output_path, load_settings
from gdsdump.log import configure_logging, get_logger
from gdsdump.stream.errors import GDSError

log = get_logger("gdsdump.cli")

_input_path = click.Path(exists=True, dir_okay=False, path_type=Path)


class Context:
    """Holds settings resolved from --config / the default config file."""

    def __init__(self, config: Optional[Path] = None):
        self._config_path = config
        self._settings: Optional[Settings] = None

    @property
    def settings(self) -> Settings:
        if self._settings is None:
            self._settings = load_settings(self._config_path)
        return self._settings

pass_ctx = click.make_pass_decorator(Context)


def _load(path: Path, settings: Settings):
    """Parse a stream into a Library, turning parse errors into CLI errors."""
    from gdsdump.layout.builder import parse_library

    try:
        library = parse_library(path, stop_at_endlib=settings.stop_at_endlib)
    except GDSError as exc:
        raise click.ClickException(f"{path}: {exc}")
    for where, diagnostic in library.all_diagnostics():
        log.warning("diagnostic", where=where, kind=diagnostic.kind,
                    offset=diagnostic.offset, message=diagnostic.message)
    return library


def _write(text: str, output: Optional[str]) -> None:
    if output is None or output == "-":
        click.echo(text, nl=False)
    else:
        Path(output).write_text(text, encoding="utf-8")
        click.echo(f"Written to {output}", err=True)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.option("--log-json", is_flag=True, help="Emit logs as JSON lines on stderr")
@click.option(
    "--config", "-c", "config", default=None,
    type=click.Path(dir_okay=False, path_type=Path),
    help="Path to a TOML config file (default: app config dir)",
)
@click.version_option(package_name="gdsdump")
@click.pass_context
def cli(ctx, verbose: bool, log_json: bool, config: Optional[Path]):
    """gdsdump - GDSII stream decoder.

    Decode a GDSII layout stream into libraries, structures and elements,
    and dump it as indented text, JSON or CSV.
    """
    configure_logging(verbose=verbose, log_json=log_json)
    ctx.obj = Context(config=config)


@cli.command()
@click.argument("source", type=_input_path)
@click.option("--output", "-o", default=None,
              help="Output file (default: SOURCE with .txt suffix, '-' for stdout)")
@click.option("--raw", "mode", flag_value="raw", default=None,
              help="Dump records as they appear in the stream")
@click.option("--tree", "mode", flag_value="tree",
              help="Dump the decoded library tree")
@pass_ctx
def dump(ctx: Context, source: Path, output: Optional[str], mode: Optional[str]):
    """Write an indented text dump of a GDSII stream."""
    from gdsdump.export.text_dump import TextEmitter, write_dump
    from gdsdump.stream.reader import RecordReader

    settings = ctx.settings
    mode = mode or settings.mode
    emitter = TextEmitter(indent=settings.indent, xy_per_line=settings.xy_per_line)
    target = output or str(derive_output_path(source))

    if mode == "tree":
        library = _load(source, settings)
        lines = list(emitter.dump_library(library))
    else:
        try:
            with RecordReader(source, stop_at_endlib=settings.stop_at_endlib) as reader:
                lines = list(emitter.dump_records(reader))
        except GDSError as exc:
            raise click.ClickException(f"{source}: {exc}")

    if target == "-":
        write_dump(lines, sys.stdout, source=source.name)
        return
    with open(target, "w", encoding="utf-8") as out:
        count = write_dump(lines, out, source=source.name)
    click.echo(f"Done: {source} -> {target} ({count:,} lines)", err=True)


@cli.command()
@click.argument("source", type=_input_path)
@pass_ctx
def records(ctx: Context, source: Path):
    """List raw records: offset, name, data type and payload size."""
    from gdsdump.stream.enums import DATA_TYPE_NAMES, lookup_enum
    from gdsdump.stream.reader import RecordReader

    click.echo(f"{'Offset':>10}  {'Record':<13}  {'Data type':<10}  {'Size':>6}")
    click.echo("-" * 46)
    try:
        with RecordReader(source, stop_at_endlib=ctx.settings.stop_at_endlib) as reader:
            for record in reader:
                name = record.name or f"0x{record.record_type:02X}?"
                dtype = lookup_enum(DATA_TYPE_NAMES, record.data_type)
                click.echo(f"{record.offset:>10}  {name:<13}  {dtype:<10}  {record.size:>6}")
    except GDSError as exc:
        raise click.ClickException(f"{source}: {exc}")


@cli.command()
@click.argument("source", type=_input_path)
@pass_ctx
def stats(ctx: Context, source: Path):
    """Show structure / element counts and the layer distribution."""
    from gdsdump.layout.stats import summarize

    library = _load(source, ctx.settings)
    summary = summarize(library)

    click.echo(f"Library:           {summary.name}")
    click.echo(f"User units / DBU:  {summary.user_units_per_db_unit:g}")
    click.echo(f"Meters / DBU:      {summary.meters_per_db_unit:g}")
    click.echo(f"Structures:        {summary.structure_count:,}")
    click.echo(f"Elements:          {summary.element_count:,}")
    for kind, count in sorted(summary.elements_by_kind.items()):
        click.echo(f"  {kind:<16} {count:>8,}")
    if summary.diagnostic_count:
        click.echo(f"Diagnostics:       {summary.diagnostic_count:,}")
    if summary.unknown_record_count:
        click.echo(f"Unknown records:   {summary.unknown_record_count:,}")

    click.echo(f"\n{'Layer':>6}  {'Datatype':>8}  {'Count':>8}")
    click.echo("-" * 26)
    for (layer, datatype), count in sorted(summary.layer_distribution.items()):
        click.echo(f"{layer:>6}  {datatype:>8}  {count:>8,}")


@cli.command()
@click.argument("source", type=_input_path)
@click.option("--format", "fmt", type=click.Choice(["csv", "json"]), required=True)
@click.option("--output", "-o", type=click.Path(), help="Output file path")
@pass_ctx
def export(ctx: Context, source: Path, fmt: str, output: Optional[str]):
    """Export the decoded library as CSV or JSON."""
    library = _load(source, ctx.settings)

    if fmt == "csv":
        from gdsdump.export.csv_export import export_csv
        data = export_csv(library)
    else:
        from gdsdump.export.json_export import export_json
        data = export_json(library) + "\n"

    _write(data, output)
