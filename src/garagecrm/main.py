"""Command line entrypoint for Garage CRM."""

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path

from .aggregate import lead_platform_stats
from .config import load_settings
from .errors import ConfigError
from .ingest import customers_frame, import_jobs_csv, technicians_frame
from .models import TechnicianJobCountPolicy
from .service import CrmService
from .storage import init_db

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s: %(message)s",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="garagecrm", description="Garage CRM job and commission reports"
    )
    parser.add_argument("--db", type=Path, help="SQLite database path")
    parser.add_argument("--log-level", help="Logging level (default from settings)")

    sub = parser.add_subparsers(dest="command")

    p_import = sub.add_parser("import", help="Import jobs from a CSV export")
    p_import.add_argument("file", type=Path)

    p_customers = sub.add_parser("customers", help="Customer totals")
    p_customers.add_argument("--csv", type=Path, help="Write to CSV instead")

    p_techs = sub.add_parser("technicians", help="Technician commissions")
    p_techs.add_argument(
        "--policy",
        choices=[p.value for p in TechnicianJobCountPolicy],
        help="Which jobs count toward a technician's job total",
    )
    p_techs.add_argument("--csv", type=Path, help="Write to CSV instead")

    sub.add_parser("platforms", help="Jobs and revenue per lead platform")
    return parser


def _write_or_print(df, csv_path: Path | None, empty_message: str) -> None:
    if csv_path:
        df.to_csv(csv_path, index=False)
        print(f"Wrote {len(df)} rows to {csv_path}")
    elif df.empty:
        print(empty_message)
    else:
        print(df.to_string(index=False))


def main() -> int:
    """Run the application."""
    parser = build_parser()
    args = parser.parse_args()

    try:
        settings = load_settings()
    except ConfigError as e:
        print(f"Error: {e}")
        return 1

    if args.db:
        settings = replace(settings, db_path=args.db)
    configure_logging(args.log_level or settings.log_level)

    if not args.command:
        parser.print_help()
        return 0

    settings.db_path.parent.mkdir(parents=True, exist_ok=True)
    init_db(settings.db_path)
    service = CrmService(settings)

    if args.command == "import":
        if not args.file.exists():
            print(f"Error: File not found: {args.file}")
            return 1
        counts = import_jobs_csv(args.file, settings.db_path)
        print(f"Imported {len(counts)} jobs from {args.file}")
        return 0

    if args.command == "customers":
        result = service.refresh_customers()
        if not result.ok:
            print(f"Error: {result.error}")
            return 1
        _write_or_print(customers_frame(result.value), args.csv, "No customers found.")
        return 0

    if args.command == "technicians":
        policy = TechnicianJobCountPolicy(args.policy) if args.policy else None
        result = service.refresh_technicians(policy)
        if not result.ok:
            print(f"Error: {result.error}")
            return 1
        _write_or_print(
            technicians_frame(result.value), args.csv, "No technician activity found."
        )
        return 0

    if args.command == "platforms":
        result = service.refresh_jobs()
        if not result.ok:
            print(f"Error: {result.error}")
            return 1
        stats = sorted(
            lead_platform_stats(result.value).values(),
            key=lambda s: s.count,
            reverse=True,
        )
        if not stats:
            print("No jobs found.")
        for stat in stats:
            print(f"{stat.name}: {stat.count} jobs, ${stat.revenue:,.2f}")
        return 0

    return 0


if __name__ == "__main__":
    sys.exit(main())
