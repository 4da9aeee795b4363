"""Command-line entry point for contact engagement analysis."""

from __future__ import annotations

import argparse
import math
from pathlib import Path

from contact_engagement.analysis.service import needing_attention, summarize
from contact_engagement.batch import (
    BatchCoordinator,
    BatchOptions,
    estimated_analysis_seconds,
    recommended_batch_size,
)
from contact_engagement.core import AppSettings, configure_logging, load_app_settings
from contact_engagement.core.interfaces import AnalysisError
from contact_engagement.core.models import AnalysisResult, ProgressUpdate
from contact_engagement.ingestion import JsonInteractionSource
from contact_engagement.segmentation import DomainSegmentation


def _positive_int(value: str) -> int:
    number = int(value)
    if number <= 0:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got {value}")
    return number


def build_parser() -> argparse.ArgumentParser:
    """Create and configure the CLI argument parser."""
    parser = argparse.ArgumentParser(description="Contact engagement analysis")
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Path to a .env file containing configuration overrides.",
    )
    parser.add_argument(
        "command",
        nargs="?",
        default="info",
        choices=["info", "analyze", "recommend"],
        help="Operation to execute.",
    )
    parser.add_argument(
        "--input",
        type=Path,
        default=None,
        help="JSON file with 'contacts' and 'interactions' arrays (analyze).",
    )
    parser.add_argument(
        "--contacts",
        type=int,
        default=None,
        help="Contact count to size batches for (recommend).",
    )
    parser.add_argument(
        "--batch-size",
        dest="batch_size",
        type=_positive_int,
        default=None,
        help="Override the recommended batch size.",
    )
    parser.add_argument(
        "--concurrency",
        type=_positive_int,
        default=None,
        help="Override the recommended number of concurrent batches.",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=20,
        help="Rows to print after analysis; set to 0 for all (default: 20).",
    )
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Do not print progress updates.",
    )
    return parser


def execute(args: argparse.Namespace, settings: AppSettings) -> int:
    """Execute the requested CLI command and return an exit code."""
    command = args.command
    if command == "info":
        print("Contact engagement analysis is ready.")
        print("Run 'analyze --input export.json' to categorise contacts.")
        print(f"Concurrency ceiling: {settings.batch.concurrency_ceiling}")
        return 0
    if command == "recommend":
        if args.contacts is None:
            print("recommend requires --contacts N")
            return 2
        _run_recommend(settings, args.contacts)
        return 0
    if command == "analyze":
        if args.input is None:
            print("analyze requires --input PATH")
            return 2
        return _run_analyze(settings, args)
    return 2


def main() -> None:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args()

    settings = load_app_settings(env_file=args.env_file)
    configure_logging(settings.logging)
    raise SystemExit(execute(args, settings))


def _run_recommend(settings: AppSettings, contacts: int) -> None:
    coordinator = BatchCoordinator(settings=settings)
    print(f"Contacts: {contacts}")
    print(f"Batch size: {recommended_batch_size(contacts)}")
    print(f"Concurrent batches: {coordinator.recommended_concurrency(contacts)}")
    print(f"Estimated time: ~{estimated_analysis_seconds(contacts)}s")


def _run_analyze(settings: AppSettings, args: argparse.Namespace) -> int:
    source = JsonInteractionSource(args.input)
    segmentation = DomainSegmentation(settings.segmentation)
    coordinator = BatchCoordinator(
        settings=settings,
        segmentation=segmentation if segmentation.enabled else None,
    )
    options = BatchOptions(
        batch_size=args.batch_size,
        max_concurrent_batches=args.concurrency,
        on_progress=None if args.quiet else _print_progress,
    )
    try:
        results = coordinator.analyze_all(
            source.get_contacts(), source.get_interactions(), options
        )
    except AnalysisError as exc:
        print(f"Analysis failed: {exc}")
        return 1

    summary = summarize(results)
    print(
        f"Analysed {summary.total} contact(s): {summary.recent} recent, "
        f"{summary.in_touch} in touch, {summary.inactive} inactive"
    )
    print(f"Average response rate: {summary.average_response_rate:.0%}")
    print(f"Average confidence: {summary.average_confidence_score:.1f}")

    limit = None if args.limit is not None and args.limit <= 0 else args.limit
    _print_table(results[:limit] if limit else results)

    attention = needing_attention(results)
    if attention:
        print(f"{len(attention)} inactive contact(s) worth reconnecting with:")
        for result in attention[:5]:
            print(f"  {_display_name(result)} ({result.response_rate:.0%} response)")
    return 0


def _print_progress(update: ProgressUpdate) -> None:
    eta = f" (~{update.eta_seconds}s left)" if update.eta_seconds is not None else ""
    print(f"[{update.progress:>3}%] {update.message}{eta}")


def _print_table(results: list[AnalysisResult]) -> None:
    if not results:
        print("No contacts found.")
        return
    header = f"{'Category':<9}  {'Score':>5}  {'Rate':>5}  {'Days':>5}  Contact"
    print(header)
    print("-" * len(header))
    for result in results:
        days = result.metrics.days_since_last_contact
        days_text = "-" if math.isinf(days) else str(int(days))
        print(
            f"{result.category.value:<9}  {result.confidence_score:>5}  "
            f"{result.response_rate:>5.0%}  {days_text:>5}  {_display_name(result)}"
        )


def _display_name(result: AnalysisResult) -> str:
    contact = result.contact
    if contact is None:
        return result.contact_id
    if contact.name and contact.email:
        return f"{contact.name} <{contact.email}>"
    return contact.name or contact.email or result.contact_id


if __name__ == "__main__":
    main()
