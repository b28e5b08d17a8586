"""Command-line interface for building and querying the unified entity index."""

import sys
import json
import argparse
from typing import List, Optional

from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich import box

from . import __version__
from .audit import BuildAuditLogger
from .config import ConfigManager, EngineConfig
from .errors import CasefileError, ErrorHandler
from .logging_config import setup_logging
from .models import SourceId
from .pipeline import IndexBuilder
from .resolution.match_classifier import MatchClassifier
from .unification.index import UnifiedIndex

# Exit codes; argparse itself exits with 2 on usage errors
EXIT_OK = 0
EXIT_DATA_ERROR = 1

console = Console()


def _entity_table(title: str, entities, limit: int) -> Table:
    table = Table(title=title, box=box.SIMPLE_HEAVY)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Name", style="bold")
    table.add_column("Type")
    table.add_column("Sources", justify="right")
    table.add_column("Flights", justify="right")
    table.add_column("Circled", justify="center")
    table.add_column("Score", justify="right", style="cyan")

    for rank, entity in enumerate(entities[:limit], 1):
        table.add_row(
            str(rank),
            entity.name,
            entity.entity_type.value,
            str(entity.source_count),
            str(entity.flight_count) if entity.flights else "-",
            "yes" if entity.circled else "",
            str(entity.significance_score),
        )
    return table


def _stats_panel(index: UnifiedIndex) -> Panel:
    stats = index.stats
    lines = [
        f"Total entities:         [bold]{stats.total_entities}[/bold]",
        f"Contact list only:      {stats.contact_list_only}",
        f"Flight manifests only:  {stats.flight_manifest_only}",
        f"Case documents only:    {stats.structured_extraction_only}",
        f"OCR corpus only:        {stats.ocr_corpus_only}",
        f"In 2+ sources:          [bold yellow]{stats.multi_source}[/bold yellow]",
        f"In all sources:         {stats.all_sources}",
        f"Circled contacts:       {stats.circled_contacts}",
        f"Frequent flyers:        {stats.frequent_flyers}",
    ]
    return Panel("\n".join(lines), title="Unified Index", border_style="cyan")


def build(args) -> int:
    """Build the index from source files and write the artifacts."""
    manager = ConfigManager(args.config)
    config = manager.load()

    overrides = {}
    if args.mode:
        overrides["cluster_mode"] = args.mode
    if args.blocking:
        overrides["blocking_enabled"] = True
    if args.parallel:
        overrides["parallel_sources"] = True
    if overrides:
        config = EngineConfig.model_validate({**config.model_dump(), **overrides})

    setup_logging(
        format=config.logging.format,
        level="DEBUG" if args.verbose else config.logging.level,
        log_file=config.logging.file,
    )

    paths = {
        SourceId.CONTACT_LIST: args.contacts,
        SourceId.FLIGHT_MANIFEST: args.flights,
        SourceId.STRUCTURED_EXTRACTION: args.extractions,
        SourceId.OCR_CORPUS: args.ocr,
    }
    paths = {source: path for source, path in paths.items() if path}

    audit = BuildAuditLogger()
    builder = IndexBuilder(config, audit=audit, error_handler=ErrorHandler(audit_logger=audit))
    index = builder.build_from_files(paths)
    written = index.write(args.out)

    console.print(_stats_panel(index))
    console.print(_entity_table("Top Entities", index.entities, args.top))
    targets = index.high_value_targets()
    if targets:
        console.print(_entity_table("High-Value Targets", targets, args.top))
    for name, path in written.items():
        console.print(f"[green]Saved {name}[/green] to {path}")
    return EXIT_OK


def match(args) -> int:
    """Classify a pair of names."""
    result = MatchClassifier().classify(args.name_a, args.name_b, args.type)
    style = "green" if result.is_match else "red"
    console.print(
        f"[{style}]{'MATCH' if result.is_match else 'NO MATCH'}[/{style}] "
        f"reason={result.reason.value} confidence={result.confidence:.3f}"
    )
    return EXIT_OK


def show(args) -> int:
    """Print one entity from a written index."""
    index = UnifiedIndex.load(args.index)
    entity = index.get(args.name)
    if entity is None:
        console.print(f"[yellow]No entity named {args.name!r}[/yellow]")
        return EXIT_DATA_ERROR
    console.print_json(json.dumps(entity.model_dump(mode="json")))
    return EXIT_OK


def generate_config(args) -> int:
    manager = ConfigManager()
    if args.output:
        manager.save_template(args.output)
        console.print(f"Configuration template saved to: {args.output}")
    else:
        print(json.dumps(manager.DEFAULT_CONFIG, indent=2))
    return EXIT_OK


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="casefile",
        description="Entity resolution and cross-source unification for investigative records",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Build the index from every source
  casefile build --contacts contacts.json --flights flights.json \\
      --extractions extractions.json --ocr ocr.json --out ./index

  # Compare two names
  casefile match "Maxwell Ghislaine" "Ghislaine Maxwell"

  # Look up an entity in a built index
  casefile show "Ghislaine Maxwell" --index ./index
""",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    build_parser = subparsers.add_parser("build", help="Build the unified entity index")
    build_parser.add_argument("--contacts", help="JSON list of contact-list records")
    build_parser.add_argument("--flights", help="JSON list of flight-manifest records")
    build_parser.add_argument("--extractions", help="JSON list of structured-extraction records")
    build_parser.add_argument("--ocr", help="JSON list of OCR-corpus records")
    build_parser.add_argument("-o", "--out", required=True, help="Output directory")
    build_parser.add_argument("-c", "--config", help="Path to configuration file")
    build_parser.add_argument(
        "--mode", choices=["greedy", "transitive"], help="Clustering mode"
    )
    build_parser.add_argument(
        "--blocking", action="store_true", help="Skip comparisons that cannot match"
    )
    build_parser.add_argument(
        "--parallel", action="store_true", help="Merge sources in worker threads"
    )
    build_parser.add_argument("--top", type=int, default=20, help="Rows to print")
    build_parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")

    match_parser = subparsers.add_parser("match", help="Classify two names")
    match_parser.add_argument("name_a")
    match_parser.add_argument("name_b")
    match_parser.add_argument(
        "--type",
        default="person",
        choices=["person", "organization", "location", "date"],
        help="Entity type of both names",
    )

    show_parser = subparsers.add_parser("show", help="Show one entity from a built index")
    show_parser.add_argument("name")
    show_parser.add_argument("--index", required=True, help="Directory holding the index")

    config_parser = subparsers.add_parser("generate-config", help="Generate configuration template")
    config_parser.add_argument("-o", "--output", help="Save to file (default: print to stdout)")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 2

    if args.command == "build" and not any(
        [args.contacts, args.flights, args.extractions, args.ocr]
    ):
        parser.error("build needs at least one of --contacts, --flights, --extractions, --ocr")

    handler = ErrorHandler()
    try:
        if args.command == "build":
            return build(args)
        elif args.command == "match":
            return match(args)
        elif args.command == "show":
            return show(args)
        elif args.command == "generate-config":
            return generate_config(args)
    except CasefileError as e:
        console.print(f"[red]Error:[/red] {handler.create_user_friendly_message(e)}")
        return EXIT_DATA_ERROR
    except KeyboardInterrupt:
        console.print("\nInterrupted by user")
        return EXIT_DATA_ERROR
    return 2


if __name__ == "__main__":
    sys.exit(main())
