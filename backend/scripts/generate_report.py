#!/usr/bin/env python3
"""
Generate a daily labeling report CSV from the command line.

Writes the same CSV as GET /api/v1/reports, for cron jobs and ad-hoc exports.

Usage:
    cd backend
    python scripts/generate_report.py 2025-03-05 device-001
    python scripts/generate_report.py 2025-03-05 device-001 --output reports/

Exit codes:
    0 - Report written
    1 - Invalid date/device or database error
"""
import argparse
import sys
from pathlib import Path

# Add backend directory to path for imports
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

from sqlalchemy.exc import SQLAlchemyError  # noqa: E402

from app.core.database import get_db_session  # noqa: E402
from app.core.exceptions import ValidationError  # noqa: E402
from app.services.report_service import generate_daily_report, render_report_csv  # noqa: E402


def write_report(report_date: str, device_id: str, output_dir: Path) -> Path:
    """Generate the report and write report_<date>_<device>.csv into output_dir."""
    with get_db_session() as db:
        report = generate_daily_report(db, report_date, device_id)

    output_dir.mkdir(parents=True, exist_ok=True)
    path = output_dir / f"report_{report.date}_{report.device_id}.csv"
    path.write_text(render_report_csv(report), encoding="utf-8")
    return path


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        description="Write one device's daily labeling report as CSV"
    )
    parser.add_argument("date", help="Report day (YYYY-MM-DD)")
    parser.add_argument("device_id", help="Device to report on")
    parser.add_argument(
        "--output",
        type=Path,
        default=Path("."),
        help="Directory for the CSV file (default: current directory)"
    )
    args = parser.parse_args(argv)

    try:
        path = write_report(args.date, args.device_id, args.output)
    except ValidationError as e:
        print(f"Invalid arguments: {e.message}", file=sys.stderr)
        return 1
    except SQLAlchemyError as e:
        print(f"Database error: {e}", file=sys.stderr)
        return 1

    print(f"Report written to: {path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
