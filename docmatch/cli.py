"""Command-line interface for ingestion, reconciliation, and supplier policies.

Provides subcommands for ingesting inbound files, running matching cycles
once or on a timer, setting supplier tolerances, and inspecting the status
of a purchase order.
"""

import argparse
import shutil
import sys
from decimal import Decimal, InvalidOperation
from pathlib import Path

from docmatch.ingestion.pipeline import IngestionOutcome, IngestionStatus
from docmatch.matching.engine import CycleReport
from docmatch.models.documents import DocumentKind, SupplierMatchingPolicy
from docmatch.services import Services, build_services
from docmatch.utils.config import load_config
from docmatch.utils.exceptions import DocMatchError
from docmatch.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)

_CHANNELS = [kind.value for kind in DocumentKind]


def _decimal(value: str) -> Decimal:
    """argparse type for exact decimal tolerances."""
    try:
        parsed = Decimal(value)
    except InvalidOperation as exc:
        raise argparse.ArgumentTypeError(f"not a number: {value!r}") from exc
    if parsed < 0:
        raise argparse.ArgumentTypeError(f"must not be negative: {value}")
    return parsed


def ingest_files(
    services: Services, channel: DocumentKind | None = None, files: list[Path] | None = None
) -> list[IngestionOutcome]:
    """Ingest files, either given explicitly or waiting on the channels.

    Args:
        services: Wired application components.
        channel: Channel to drop ``files`` into. Required with ``files``.
        files: Local files to copy into the channel and ingest.

    Returns:
        One outcome per handled file.

    Raises:
        ValueError: ``files`` were given without a channel.
    """
    if not files:
        return services.ingestion.ingest_pending()

    if channel is None:
        raise ValueError("A channel is required when files are given")
    outcomes: list[IngestionOutcome] = []
    for path in files:
        target = services.store.inbound_path(channel, path.name)
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(path, target)
        outcomes.append(services.ingestion.ingest(channel, path.name))
    return outcomes


def _print_outcomes(outcomes: list[IngestionOutcome]) -> None:
    counts = {status: 0 for status in IngestionStatus}
    for outcome in outcomes:
        counts[outcome.status] += 1
        line = f"{outcome.status.value:<10} {outcome.channel.value:<14} {outcome.file_name}"
        if outcome.reason_code and outcome.status == IngestionStatus.INVALID:
            line += f"  ({outcome.reason_code}: {outcome.detail})"
        print(line)

    print(f"\n{'=' * 50}")
    print("Ingestion Complete")
    print(f"{'=' * 50}")
    print(f"Stored:     {counts[IngestionStatus.STORED]}")
    print(f"Duplicates: {counts[IngestionStatus.DUPLICATE]}")
    print(f"Invalid:    {counts[IngestionStatus.INVALID]}")


def _print_cycle(report: CycleReport) -> None:
    print(f"\n{'=' * 50}")
    print("Matching Cycle Complete")
    print(f"{'=' * 50}")
    print(f"Examined:          {report.examined}")
    print(f"Matched:           {report.matched}")
    print(f"Partially matched: {report.partially_matched}")
    print(f"Exceptions:        {report.exceptions}")
    print(f"Pending:           {report.pending}")
    print(f"Failed:            {report.failed}")


def show_status(services: Services, org: str, po_number: str) -> int:
    """Print a purchase order's header and line statuses.

    Returns:
        Process exit code: 0 when found, 1 otherwise.
    """
    po = services.repository.get_purchase_order(org, po_number)
    if po is None:
        print(f"Error: purchase order {po_number} for {org} not found", file=sys.stderr)
        return 1

    supplier = po.supplier.name if po.supplier else "-"
    print(f"PO {po.po_number} ({po.org})  supplier: {supplier}  status: {po.match_status}")
    for line in po.lines:
        print(
            f"  {line.item_code or '-':<16} qty {line.quantity_ordered} "
            f"@ {line.unit_price}  {line.line_status}"
        )
        if line.exception_reason:
            print(f"      {line.exception_reason}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with all subcommands."""
    parser = argparse.ArgumentParser(
        description="Document ingestion and three-way matching",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=None,
        help="Configuration file (default: configs/config.yaml)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    ingest_parser = subparsers.add_parser(
        "ingest", help="Ingest files waiting on the channels, or the given files"
    )
    ingest_parser.add_argument(
        "files", nargs="*", type=Path, help="PDF files to drop into --channel"
    )
    ingest_parser.add_argument(
        "--channel",
        choices=_CHANNELS,
        help="Channel for the given files (invoice, purchaseorder, grndata)",
    )

    subparsers.add_parser("reconcile", help="Run one matching cycle")

    schedule_parser = subparsers.add_parser(
        "schedule", help="Run matching cycles on a timer until interrupted"
    )
    schedule_parser.add_argument(
        "--interval",
        type=int,
        default=None,
        help="Seconds between cycles (default: from config)",
    )

    policy_parser = subparsers.add_parser(
        "policy", help="Set a supplier's matching policy"
    )
    policy_parser.add_argument("supplier", help="Supplier name")
    policy_parser.add_argument(
        "--three-way", action="store_true", help="Require a GRN for every match"
    )
    policy_parser.add_argument(
        "--qty-pct",
        type=_decimal,
        default=Decimal("5"),
        help="Quantity tolerance as a percentage of the ordered quantity",
    )
    policy_parser.add_argument(
        "--price-abs",
        type=_decimal,
        default=Decimal("0.50"),
        help="Unit price tolerance in currency units",
    )

    status_parser = subparsers.add_parser(
        "status", help="Show the match status of a purchase order"
    )
    status_parser.add_argument("org", help="Organisation the PO belongs to")
    status_parser.add_argument("po_number", help="Purchase order number")

    audit_parser = subparsers.add_parser(
        "audit", help="List rejected and duplicate files"
    )
    audit_parser.add_argument(
        "-n", "--limit", type=int, default=20, help="Number of rows (default: 20)"
    )

    return parser


def main(argv: list[str] | None = None) -> None:
    """Parse CLI arguments and dispatch to the appropriate command.

    Args:
        argv: Command-line arguments (defaults to sys.argv).
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    if args.command == "ingest" and args.files:
        if args.channel is None:
            print("Error: --channel is required when files are given", file=sys.stderr)
            sys.exit(1)
        missing = [f for f in args.files if not f.is_file()]
        if missing:
            print(f"Error: {missing[0]} does not exist", file=sys.stderr)
            sys.exit(1)

    config = load_config(args.config)
    setup_logging(config.log_level, config.log_file)
    services = build_services(config)

    try:
        if args.command == "ingest":
            channel = DocumentKind(args.channel) if args.channel else None
            _print_outcomes(ingest_files(services, channel, args.files))
        elif args.command == "reconcile":
            _print_cycle(services.engine.run_cycle())
        elif args.command == "schedule":
            if args.interval is not None:
                services.scheduler.interval_seconds = args.interval
            services.scheduler.run_forever()
        elif args.command == "policy":
            policy = SupplierMatchingPolicy(
                is_3way_matching=args.three_way,
                quantity_variance_pct=args.qty_pct,
                price_variance_absolute=args.price_abs,
            )
            supplier_id = services.repository.set_matching_policy(args.supplier, policy)
            print(f"Policy set for {args.supplier} (supplier id {supplier_id})")
        elif args.command == "status":
            sys.exit(show_status(services, args.org, args.po_number))
        elif args.command == "audit":
            for row in services.repository.list_file_audits(args.limit):
                print(
                    f"{row.created_at:%Y-%m-%d %H:%M:%S}  {row.channel:<14} "
                    f"{row.reason_code:<24} {row.file_name}"
                )
    except DocMatchError as exc:
        logger.error("%s failed: %s", args.command, exc)
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)
    finally:
        services.database.dispose()


if __name__ == "__main__":
    main()
