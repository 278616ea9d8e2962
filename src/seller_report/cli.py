"""Command-line entry points for the seller report toolkit.

All orchestration in this module is limited to argparse wiring, loading the
runtime context, and rendering the rows produced by the business layer. Keeping
the CLI thin ensures the same parser configuration can be reused by tests,
scripts, or any alternative front-end.
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Iterable, Mapping, MutableMapping, Optional, Sequence

from . import core_logic, data_manager, log
from .data_manager import ReportRow
from .setup_excel import create_input_workbook

OUTPUT_FORMATS = ("table", "json")


@dataclass(frozen=True)
class CommandSpec:
    """Describe how a CLI sub-command is configured and executed."""

    name: str
    help_text: str
    register: Callable[[argparse._SubParsersAction[argparse.ArgumentParser]], argparse.ArgumentParser]
    execute: Callable[[Optional[core_logic.RuntimeContext], argparse.Namespace], int]
    needs_context: bool = True


def build_parser() -> argparse.ArgumentParser:
    """Construct the top-level CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="seller-report",
        description="Build ranked seller reports from sales data.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Optional path to config.ini (defaults to ./config.ini).",
    )
    return parser


def configure_subcommands(
    parser: argparse.ArgumentParser,
) -> Mapping[str, CommandSpec]:
    """Wire all CLI sub-commands onto the supplied parser."""
    subparsers = parser.add_subparsers(dest="command", required=True, title="commands")
    specs = {
        "report": register_report_command(subparsers),
        "init-workbook": register_init_workbook_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return build_command_table(specs.values())


def register_report_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``report``."""
    name = "report"
    help_text = "Compute the ranked seller report."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument(
            "--input",
            type=Path,
            default=None,
            help="Sales data file (.json or .xlsx); defaults to DataFile from config.ini.",
        )
        parser.add_argument("--format", choices=OUTPUT_FORMATS, default="table")
        parser.add_argument(
            "--output",
            type=Path,
            default=None,
            help="Also write the report to this .xlsx file.",
        )
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_report)


def register_init_workbook_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``init-workbook``."""
    name = "init-workbook"
    help_text = "Create an empty input workbook with the expected sheets."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--path", type=Path, required=True)
        parser.add_argument("--force", action="store_true", help="Overwrite an existing workbook.")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(
        name=name,
        help_text=help_text,
        register=registrar,
        execute=run_init_workbook,
        needs_context=False,
    )


def load_runtime_context(config_path: Optional[Path] = None) -> core_logic.RuntimeContext:
    """Resolve the runtime context for CLI operations."""
    target = Path(config_path) if config_path is not None else Path.cwd() / "config.ini"
    context = core_logic.load_runtime_context(target)
    core_logic.ensure_schema_version(context)
    return context


def build_command_table(
    specs: Iterable[CommandSpec],
) -> MutableMapping[str, CommandSpec]:
    """Build an index of command specifications keyed by command name."""
    table: Dict[str, CommandSpec] = {}
    for spec in specs:
        if spec.name in table:
            raise ValueError(f"Duplicate command name: {spec.name}")
        table[spec.name] = spec
    return table


def resolve_command(args: argparse.Namespace, command_table: Mapping[str, CommandSpec]) -> CommandSpec:
    """Return the command selected by the parsed arguments."""
    if not hasattr(args, "command") or args.command is None:
        raise KeyError("No command specified")
    spec = command_table.get(args.command)
    if spec is None:
        raise KeyError(f"Unknown command: {args.command}")
    return spec


def format_report_table(rows: Sequence[ReportRow]) -> str:
    """Render report rows as a fixed-width text table."""
    header = f"{'#':>3}  {'Seller':<12} {'Name':<24} {'Revenue':>12} {'Profit':>12} {'Sales':>6} {'Bonus':>10}  Top products"
    lines = [header, "-" * len(header)]
    for rank, row in enumerate(rows, start=1):
        lines.append(
            f"{rank:>3}  {row.seller_id:<12} {row.name:<24} {row.revenue:>12} {row.profit:>12} "
            f"{row.sales_count:>6} {row.bonus:>10}  {data_manager.format_top_products(row.top_products)}"
        )
    return "\n".join(lines)


def run_report(context: Optional[core_logic.RuntimeContext], args: argparse.Namespace) -> int:
    """Execute the report workflow and print the result."""
    rows = core_logic.build_report(context, source=args.input)
    if args.format == "json":
        print(data_manager.dump_report_json(rows))
    else:
        print(format_report_table(rows))
    if args.output is not None:
        core_logic.persist_report(context, rows, destination=args.output)
    return 0


def run_init_workbook(context: Optional[core_logic.RuntimeContext], args: argparse.Namespace) -> int:
    """Create an empty input workbook at ``--path``."""
    create_input_workbook(args.path, overwrite=args.force)
    return 0


def handle_cli_error(error: Exception) -> int:
    """Convert raised exceptions into user-friendly exit codes."""
    if isinstance(error, core_logic.ReportInputError):
        log.error("%s", error)
        return 2
    if isinstance(error, FileNotFoundError):
        log.error("%s", error)
        return 3
    log.error("%s", error)
    return 1


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point that orchestrates parsing and execution."""
    parser = build_parser()
    command_table = configure_subcommands(parser)
    args = parser.parse_args(argv)
    try:
        spec = resolve_command(args, command_table)
        context = load_runtime_context(getattr(args, "config", None)) if spec.needs_context else None
        return spec.execute(context, args)
    except Exception as error:  # pragma: no cover - centralised error handler tested separately
        return handle_cli_error(error)
