from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional

import click
from rich import console as rich_console
from rich import table as rich_table

from fuzzpatch import logger as fp_logger
from fuzzpatch import settings as fp_settings
from fuzzpatch.patch import (
    AddFile,
    DeleteFile,
    DryRunPatchFileOps,
    FileSystemPatchFileOps,
    PatchParseError,
    UpdateFile,
    apply_patch,
    parse_patch_text,
)

LOG_LEVELS = [lvl.value for lvl in fp_settings.LogLevel]


def _read_patch(patch_file: Optional[str]) -> str:
    if patch_file is None or patch_file == "-":
        return sys.stdin.read()
    return Path(patch_file).read_text(encoding="utf-8")


def _load_settings(config: Optional[Path]) -> fp_settings.Settings:
    if config is None:
        return fp_settings.Settings()
    try:
        return fp_settings.load_settings(config)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--config") from e


@click.group()
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default=None,
    help="Override the configured log level.",
)
@click.option(
    "--config",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="YAML or JSON5 settings file.",
)
@click.option(
    "--log-file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Write log output to this file instead of stderr.",
)
@click.pass_context
def main(
    ctx: click.Context,
    log_level: Optional[str],
    config: Optional[Path],
    log_file: Optional[Path],
) -> None:
    """Parse and apply *** Begin Patch / *** End Patch patches."""
    settings = _load_settings(config)
    fp_logger.configure_logging(
        settings.logging,
        level_override=log_level,
        log_file=str(log_file) if log_file else None,
    )
    ctx.obj = settings


@main.command("parse")
@click.argument("patch_file", required=False)
def parse_cmd(patch_file: Optional[str]) -> None:
    """Parse PATCH_FILE (or stdin) and list its hunks."""
    console = rich_console.Console()
    try:
        parsed = parse_patch_text(_read_patch(patch_file))
    except PatchParseError as e:
        console.print(f"[red]{e.msg}[/red]", markup=True, highlight=False)
        sys.exit(1)

    table = rich_table.Table(title="Hunks")
    table.add_column("#", justify="right")
    table.add_column("Action")
    table.add_column("Path")
    table.add_column("Details")
    for idx, hunk in enumerate(parsed.hunks, start=1):
        if isinstance(hunk, AddFile):
            lines = hunk.contents.count("\n")
            table.add_row(str(idx), "add", hunk.path, f"{lines} line(s)")
        elif isinstance(hunk, DeleteFile):
            table.add_row(str(idx), "delete", hunk.path, "")
        elif isinstance(hunk, UpdateFile):
            details = f"{len(hunk.chunks)} chunk(s)"
            if hunk.move_path:
                details += f", move to {hunk.move_path}"
            table.add_row(str(idx), "update", hunk.path, details)
    console.print(table)


@main.command("apply")
@click.argument("patch_file", required=False)
@click.option(
    "--root",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=Path("."),
    show_default=True,
    help="Workspace root that patch paths are relative to.",
)
@click.option("--dry-run", is_flag=True, help="Validate and report without writing.")
@click.option(
    "--show-log",
    is_flag=True,
    help="Print the log records emitted while applying (filtered by --log-level).",
)
@click.pass_obj
def apply_cmd(
    settings: fp_settings.Settings,
    patch_file: Optional[str],
    root: Path,
    dry_run: bool,
    show_log: bool,
) -> None:
    """Apply PATCH_FILE (or stdin) to files under --root."""
    console = rich_console.Console()
    text = _read_patch(patch_file)

    if dry_run:
        ops: FileSystemPatchFileOps = DryRunPatchFileOps(root, settings.policy)
    else:
        ops = FileSystemPatchFileOps(root, settings.policy)

    with fp_logger.capture_logs() as captured:
        result = apply_patch(text, root, ops=ops)
    style = "green" if result.ok else "red"
    if dry_run:
        console.print("[yellow]Dry run: no files were changed.[/yellow]")
    console.print(result.summary, style=style, markup=False, highlight=False)
    if show_log:
        console.print("Log:", style="bold")
        for entry in captured.entries:
            console.print(f"{entry.level_name}: {entry.message}", markup=False, highlight=False)
    if not result.ok:
        sys.exit(1)


if __name__ == "__main__":
    main()
