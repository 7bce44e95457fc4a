"""
CSV import and DataFrame export.

Spreadsheet exports are read as plain strings so coercion stays in
parse.py; blank cells become None.
"""

import logging
from pathlib import Path

import pandas as pd

from .models import CustomerSummary, NormalizedJob, TechnicianStat
from .storage import init_db, insert_job_rows

logger = logging.getLogger(__name__)


def read_job_rows(path: Path) -> list[dict]:
    """Read a CSV export into raw job rows keyed by column label."""
    df = pd.read_csv(path, dtype=str, keep_default_na=False)
    df.columns = [str(c).strip() for c in df.columns]

    rows = []
    for record in df.to_dict(orient="records"):
        rows.append(
            {key: (value if value.strip() else None) for key, value in record.items()}
        )
    logger.info("Read %d rows from %s", len(rows), path)
    return rows


def import_jobs_csv(path: Path, db_path: Path | None = None) -> list[str]:
    """Read a CSV export and store its rows. Returns the stored Count keys."""
    rows = read_job_rows(path)
    init_db(db_path)
    return insert_job_rows(rows, db_path)


def customers_frame(customers: list[CustomerSummary]) -> pd.DataFrame:
    return pd.DataFrame([c.to_dict() for c in customers])


def technicians_frame(stats: list[TechnicianStat]) -> pd.DataFrame:
    """Rounded technician figures, one row per technician."""
    return pd.DataFrame([s.display() for s in stats])


def jobs_frame(jobs: list[NormalizedJob]) -> pd.DataFrame:
    return pd.DataFrame([j.to_dict() for j in jobs])
