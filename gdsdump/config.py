"""Dump settings (TOML) and default paths."""
from __future__ import annotations

import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import click

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

DUMP_MODES = ("raw", "tree")


@dataclass
class Settings:
    indent: int = 2
    xy_per_line: int = 4
    mode: str = "raw"
    stop_at_endlib: bool = True


def get_config_path() -> Path:
    """Return the TOML config file path via click.get_app_dir."""
    return Path(click.get_app_dir("gdsdump")) / "config.toml"


def load_settings(path: Optional[Path] = None) -> Settings:
    """Read the [dump] table of the TOML config. Returns defaults if file missing.

    Raises click.UsageError for unreadable files or invalid values.
    """
    path = path or get_config_path()
    if not path.exists():
        return Settings()

    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as exc:
        raise click.UsageError(f"Cannot read config {path}: {exc}")

    dump = data.get("dump", {})
    settings = Settings()
    if "indent" in dump:
        settings.indent = _int_option(dump, "indent", minimum=0, path=path)
    if "xy_per_line" in dump:
        settings.xy_per_line = _int_option(dump, "xy_per_line", minimum=1, path=path)
    if "mode" in dump:
        if dump["mode"] not in DUMP_MODES:
            raise click.UsageError(
                f"Invalid dump.mode {dump['mode']!r} in {path}. Choose from: {', '.join(DUMP_MODES)}"
            )
        settings.mode = dump["mode"]
    if "stop_at_endlib" in dump:
        if not isinstance(dump["stop_at_endlib"], bool):
            raise click.UsageError(f"dump.stop_at_endlib must be true or false in {path}")
        settings.stop_at_endlib = dump["stop_at_endlib"]
    return settings


def _int_option(table: dict, key: str, *, minimum: int, path: Path) -> int:
    value = table[key]
    if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
        raise click.UsageError(f"dump.{key} must be an integer >= {minimum} in {path}")
    return value


def derive_output_path(source: Path) -> Path:
    """Derive the text dump path from the stream path (same name, .txt)."""
    if source.suffix:
        return source.with_suffix(".txt")
    return source.with_name(source.name + ".txt")
