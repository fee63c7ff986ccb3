"""
Curation reporting CLI - period reports and published listings from the configured store.
"""

import argparse
import json
import sys
from pathlib import Path
from datetime import datetime

# Add the repository root to sys.path so the curation package imports from a checkout
sys.path.insert(0, str(Path(__file__).parent.parent))

from curation.core.dao import get_curation_store
from curation.core.errors import CurationError
from curation.core.registry import CurationRegistry
from curation.core.reporting import to_naive_local
from curation.util.logging import logger


def _parse_when(value: str) -> datetime:
    try:
        return to_naive_local(datetime.fromisoformat(value))
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an ISO date/datetime: {value}")


def report_command(args, registry: CurationRegistry):
    """Print the curation report for [start, end]."""
    if args.start > args.end:
        print("❌ ERROR: --start must not be after --end")
        return 1

    report = registry.generate_curation_report(args.start, args.end)

    if args.json:
        print(json.dumps(report.to_dict(), indent=2))
        return 0

    print(f"📊 Curation report {report.start.isoformat()} .. {report.end.isoformat()}")
    print(f"   Total curations: {report.total_curations}")
    print(f"   Published: {report.published_curations}")
    print(f"   Archived: {report.archived_curations}")
    print(f"   Publication rate: {report.publication_rate:.1f}%")
    print(f"   Average validation score: {report.average_validation_score:.1f}")

    for title, distribution in (("Cultural contexts", report.cultural_distribution),
                                ("Sensitivity levels", report.sensitivity_distribution),
                                ("Verification levels", report.verification_distribution)):
        if distribution:
            print(f"   {title}:")
            for key, count in sorted(distribution.items(), key=lambda item: -item[1]):
                print(f"     - {key}: {count}")

    if report.top_curations:
        print("   Top curations:")
        for entry in report.top_curations:
            print(f"     - {entry['id']} (engagement {entry['engagement']}) {entry['cultural_significance']}")
    return 0


def published_command(args, registry: CurationRegistry):
    """List published curations, most engaged first."""
    records = registry.query_published(args.sensitivity, args.culture)

    if not records:
        print("No published curations match")
        return 0

    print(f"✅ {len(records)} published curation(s)")
    for record in records:
        engagement = record.impact_metrics.community_engagement if record.impact_metrics else 0
        context = record.cultural_context or "unspecified"
        print(f"   {record.id}  [{record.sensitivity_level.value}] {context}  engagement={engagement}")
    return 0


def build_parser():
    parser = argparse.ArgumentParser(
        description="Cultural curation reporting CLI",
        prog="python scripts/curation_report.py"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    report_parser = subparsers.add_parser("report", help="Curation report for a period")
    report_parser.add_argument("--start", required=True, type=_parse_when, help="Period start (ISO 8601)")
    report_parser.add_argument("--end", required=True, type=_parse_when, help="Period end (ISO 8601)")
    report_parser.add_argument("--json", action="store_true", help="Emit the report as JSON")
    report_parser.set_defaults(func=report_command)

    published_parser = subparsers.add_parser("published", help="List published curations")
    published_parser.add_argument("--sensitivity", help="Filter by sensitivity level")
    published_parser.add_argument("--culture", help="Filter by cultural context or traditional element")
    published_parser.set_defaults(func=published_command)

    return parser


def main(argv=None, registry: CurationRegistry = None):
    """Main CLI entry point for curation reporting."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    owns_registry = registry is None
    registry = registry or CurationRegistry(store=get_curation_store())
    try:
        return args.func(args, registry)
    except CurationError as e:
        print(f"❌ {e.error_type}: {e.message}")
        logger.error(f"CLI {args.command} failed: {e.error_type}: {e.message}")
        return 1
    finally:
        if owns_registry:
            registry.close()


if __name__ == "__main__":
    sys.exit(main())
