"""
SQLite persistence layer for Garage CRM.

Provides CRUD operations for:
- all_jobs rows (flat spreadsheet-style records stored as JSON)
- Technicians
- Pipeline stages
- Company profile, intake form fields and key/value settings
- Roles and users (via SqliteRoleStore / SqliteUserStore)

Lookups of missing rows return None or False; they never raise.
"""

import json
import logging
import re
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path

from .config import DEFAULT_DB_PATH
from .errors import DuplicateFieldError, DuplicateStageError
from .models import (
    Company,
    FieldType,
    FormField,
    PipelineStage,
    Role,
    Setting,
    Technician,
    User,
)
from .parse import (
    FIELD_ADDRESS,
    FIELD_CLIENT_NAME,
    FIELD_COUNT,
    FIELD_EMAIL,
    FIELD_PHONE,
    FIELD_STATUS,
)

logger = logging.getLogger(__name__)

STATUS_DELETED = "Deleted"
STATUS_NEW_LEAD = "New Lead"

DEFAULT_STAGES = [
    ("New Lead", "#3B82F6", 1),
    ("In Progress", "#F59E0B", 2),
    ("Awaiting Parts", "#EF4444", 3),
    ("Pending Payment", "#8B5CF6", 4),
    ("Closed", "#10B981", 5),
    ("Cancelled", "#6B7280", 6),
]

_DIGITS = re.compile(r"\d+")


def get_db_path() -> Path:
    """Get the database path, creating the directory if needed."""
    db_path = DEFAULT_DB_PATH
    db_path.parent.mkdir(parents=True, exist_ok=True)
    return db_path


@contextmanager
def get_connection(db_path: Path | None = None):
    """Context manager for database connections."""
    path = db_path or get_db_path()
    conn = sqlite3.connect(str(path))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    try:
        yield conn
        conn.commit()
    finally:
        conn.close()


# =============================================================================
# DATABASE INITIALIZATION
# =============================================================================


def init_db(db_path: Path | None = None) -> None:
    """Initialize the database schema with all tables."""
    with get_connection(db_path) as conn:
        # Raw job rows; `data` holds the full column -> value mapping
        conn.execute("""
            CREATE TABLE IF NOT EXISTS all_jobs (
                count TEXT PRIMARY KEY,
                data TEXT NOT NULL,
                client_name TEXT,
                status TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)

        conn.execute("""
            CREATE TABLE IF NOT EXISTS technicians (
                technician_id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                email TEXT,
                phone TEXT,
                commission_rate REAL NOT NULL DEFAULT 30,
                status TEXT NOT NULL DEFAULT 'active',
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)

        conn.execute("""
            CREATE TABLE IF NOT EXISTS pipeline_stages (
                stage_id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                color TEXT NOT NULL,
                order_position INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)

        conn.execute("""
            CREATE TABLE IF NOT EXISTS roles (
                role_id TEXT PRIMARY KEY,
                name TEXT NOT NULL UNIQUE,
                display_name TEXT,
                description TEXT,
                permissions TEXT NOT NULL DEFAULT '[]',
                is_system_role INTEGER DEFAULT 0
            )
        """)

        conn.execute("""
            CREATE TABLE IF NOT EXISTS users (
                user_id TEXT PRIMARY KEY,
                email TEXT NOT NULL,
                name TEXT NOT NULL,
                role_id TEXT,
                is_active INTEGER DEFAULT 1,
                last_login TEXT,
                created_at TEXT NOT NULL
            )
        """)

        # Single-row business profile
        conn.execute("""
            CREATE TABLE IF NOT EXISTS companies (
                company_id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                phone TEXT,
                address TEXT,
                email TEXT,
                website TEXT,
                logo_url TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)

        conn.execute("""
            CREATE TABLE IF NOT EXISTS form_fields (
                field_id TEXT PRIMARY KEY,
                name TEXT NOT NULL UNIQUE,
                label TEXT NOT NULL,
                field_type TEXT NOT NULL DEFAULT 'text',
                required INTEGER DEFAULT 0,
                order_position INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)

        # `value` is JSON text
        conn.execute("""
            CREATE TABLE IF NOT EXISTS settings (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)

        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_all_jobs_client ON all_jobs(client_name)"
        )
        conn.execute("CREATE INDEX IF NOT EXISTS idx_all_jobs_status ON all_jobs(status)")
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_technicians_name ON technicians(name)"
        )
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_stages_order "
            "ON pipeline_stages(order_position)"
        )
        conn.execute("CREATE INDEX IF NOT EXISTS idx_users_role ON users(role_id)")
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_form_fields_order "
            "ON form_fields(order_position)"
        )


def reset_db(db_path: Path | None = None) -> None:
    """Drop and recreate all tables. WARNING: Destroys all data."""
    path = db_path or get_db_path()
    if path.exists():
        path.unlink()
    init_db(db_path)


# =============================================================================
# JOB ROW OPERATIONS
# =============================================================================


def count_number(count) -> int:
    """Numeric part of a Count value ("J-0042" -> 42); 0 when there is none."""
    digits = "".join(_DIGITS.findall(str(count or "")))
    return int(digits) if digits else 0


def _row_to_job(row: sqlite3.Row) -> dict:
    data = json.loads(row["data"])
    data[FIELD_COUNT] = row["count"]
    return data


def _write_job_row(conn: sqlite3.Connection, count: str, data: dict, created_at: str):
    conn.execute(
        """
        INSERT OR REPLACE INTO all_jobs (
            count, data, client_name, status, created_at, updated_at
        ) VALUES (?, ?, ?, ?, ?, ?)
        """,
        (
            count,
            json.dumps(data, default=str),
            data.get(FIELD_CLIENT_NAME),
            data.get(FIELD_STATUS),
            created_at,
            datetime.now().isoformat(),
        ),
    )


def insert_job_rows(rows: list[dict], db_path: Path | None = None) -> list[str]:
    """
    Insert raw job rows, returning their Count keys in input order.

    Rows without a Count get the next number after the highest numeric
    Count already stored. A row whose Count exists replaces it.
    """
    now = datetime.now().isoformat()
    counts = []

    with get_connection(db_path) as conn:
        existing = conn.execute("SELECT count FROM all_jobs").fetchall()
        next_number = max((count_number(r["count"]) for r in existing), default=0) + 1

        for row in rows:
            data = dict(row)
            count = str(data.get(FIELD_COUNT) or "").strip()
            if not count:
                count = str(next_number)
            next_number = max(next_number, count_number(count) + 1)
            data[FIELD_COUNT] = count
            _write_job_row(conn, count, data, now)
            counts.append(count)

    logger.info("Stored %d job rows", len(counts))
    return counts


def list_job_rows(
    include_deleted: bool = False, db_path: Path | None = None
) -> list[dict]:
    """All job rows, highest Count first. Soft-deleted rows are skipped by default."""
    with get_connection(db_path) as conn:
        query = "SELECT * FROM all_jobs"
        params: list = []
        if not include_deleted:
            query += " WHERE status IS NULL OR status != ?"
            params.append(STATUS_DELETED)
        rows = conn.execute(query, params).fetchall()

    jobs = [_row_to_job(row) for row in rows]
    jobs.sort(key=lambda r: count_number(r[FIELD_COUNT]), reverse=True)
    return jobs


def get_job_row(count: str, db_path: Path | None = None) -> dict | None:
    """Get a job row by its Count key."""
    with get_connection(db_path) as conn:
        row = conn.execute(
            "SELECT * FROM all_jobs WHERE count = ?", (str(count),)
        ).fetchone()
        if row:
            return _row_to_job(row)
    return None


def update_job_row(
    count: str, updates: dict, db_path: Path | None = None
) -> dict | None:
    """Merge column updates into a stored job row."""
    with get_connection(db_path) as conn:
        row = conn.execute(
            "SELECT * FROM all_jobs WHERE count = ?", (str(count),)
        ).fetchone()
        if not row:
            return None

        data = _row_to_job(row)
        data.update(updates)
        # The key column is not editable through updates
        data[FIELD_COUNT] = row["count"]
        _write_job_row(conn, row["count"], data, row["created_at"])
    return data


def delete_job_row(count: str, db_path: Path | None = None) -> bool:
    """Permanently delete a job row."""
    with get_connection(db_path) as conn:
        cursor = conn.execute("DELETE FROM all_jobs WHERE count = ?", (str(count),))
        return cursor.rowcount > 0


def count_job_rows(include_deleted: bool = False, db_path: Path | None = None) -> int:
    """Count job rows."""
    with get_connection(db_path) as conn:
        if include_deleted:
            row = conn.execute("SELECT COUNT(*) FROM all_jobs").fetchone()
        else:
            row = conn.execute(
                "SELECT COUNT(*) FROM all_jobs WHERE status IS NULL OR status != ?",
                (STATUS_DELETED,),
            ).fetchone()
        return row[0] if row else 0


def soft_delete_job(count: str, db_path: Path | None = None) -> dict | None:
    """Move a job to the Deleted status."""
    return update_job_row(count, {FIELD_STATUS: STATUS_DELETED}, db_path)


def list_deleted_job_rows(db_path: Path | None = None) -> list[dict]:
    """Soft-deleted job rows, highest Count first."""
    with get_connection(db_path) as conn:
        rows = conn.execute(
            "SELECT * FROM all_jobs WHERE status = ?", (STATUS_DELETED,)
        ).fetchall()

    jobs = [_row_to_job(row) for row in rows]
    jobs.sort(key=lambda r: count_number(r[FIELD_COUNT]), reverse=True)
    return jobs


def restore_job(count: str, db_path: Path | None = None) -> dict | None:
    """Bring a soft-deleted job back as a New Lead."""
    return update_job_row(count, {FIELD_STATUS: STATUS_NEW_LEAD}, db_path)


def merge_customers(primary: str, secondary: str, db_path: Path | None = None) -> int:
    """
    Fold every job of `secondary` into `primary`.

    Secondary rows take the primary name; email, phone and address come
    from the primary customer's newest row, falling back to the secondary
    row's own value. Returns the number of rows rewritten.
    """
    if primary == secondary:
        return 0

    with get_connection(db_path) as conn:
        primary_rows = conn.execute(
            "SELECT * FROM all_jobs WHERE client_name = ?", (primary,)
        ).fetchall()
        secondary_rows = conn.execute(
            "SELECT * FROM all_jobs WHERE client_name = ?", (secondary,)
        ).fetchall()

        if not primary_rows or not secondary_rows:
            logger.warning(
                "Cannot merge %r into %r: customer not found", secondary, primary
            )
            return 0

        newest = max(primary_rows, key=lambda r: count_number(r["count"]))
        primary_data = _row_to_job(newest)

        for row in secondary_rows:
            data = _row_to_job(row)
            data[FIELD_CLIENT_NAME] = primary
            for key in (FIELD_EMAIL, FIELD_PHONE, FIELD_ADDRESS):
                data[key] = primary_data.get(key) or data.get(key)
            _write_job_row(conn, row["count"], data, row["created_at"])

    logger.info("Merged %d jobs from %r into %r", len(secondary_rows), secondary, primary)
    return len(secondary_rows)


# =============================================================================
# TECHNICIAN OPERATIONS
# =============================================================================


def _row_to_technician(row: sqlite3.Row) -> Technician:
    """Convert a database row to a Technician object."""
    return Technician(
        technician_id=row["technician_id"],
        name=row["name"],
        email=row["email"],
        phone=row["phone"],
        commission_rate=row["commission_rate"],
        status=row["status"],
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )


def save_technician(tech: Technician, db_path: Path | None = None) -> Technician:
    """Save a technician (insert or update)."""
    tech.updated_at = datetime.now()

    with get_connection(db_path) as conn:
        conn.execute(
            """
            INSERT OR REPLACE INTO technicians (
                technician_id, name, email, phone, commission_rate,
                status, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                tech.technician_id,
                tech.name,
                tech.email,
                tech.phone,
                tech.commission_rate,
                tech.status,
                tech.created_at.isoformat(),
                tech.updated_at.isoformat(),
            ),
        )
    return tech


def get_technician(technician_id: str, db_path: Path | None = None) -> Technician | None:
    """Get a technician by ID."""
    with get_connection(db_path) as conn:
        row = conn.execute(
            "SELECT * FROM technicians WHERE technician_id = ?", (technician_id,)
        ).fetchone()
        if row:
            return _row_to_technician(row)
    return None


def list_technicians(
    active_only: bool = False, db_path: Path | None = None
) -> list[Technician]:
    """List technicians ordered by name."""
    with get_connection(db_path) as conn:
        query = "SELECT * FROM technicians"
        if active_only:
            query += " WHERE status = 'active'"
        query += " ORDER BY name ASC"
        rows = conn.execute(query).fetchall()
        return [_row_to_technician(row) for row in rows]


def update_technician(
    technician_id: str, updates: dict, db_path: Path | None = None
) -> Technician | None:
    """Update specific fields on a technician."""
    tech = get_technician(technician_id, db_path)
    if not tech:
        return None

    for key, value in updates.items():
        if hasattr(tech, key) and key != "technician_id":
            setattr(tech, key, value)

    return save_technician(tech, db_path)


def delete_technician(technician_id: str, db_path: Path | None = None) -> bool:
    """Delete a technician."""
    with get_connection(db_path) as conn:
        cursor = conn.execute(
            "DELETE FROM technicians WHERE technician_id = ?", (technician_id,)
        )
        return cursor.rowcount > 0


# =============================================================================
# PIPELINE STAGE OPERATIONS
# =============================================================================


def _row_to_stage(row: sqlite3.Row) -> PipelineStage:
    return PipelineStage(
        stage_id=row["stage_id"],
        name=row["name"],
        color=row["color"],
        order_position=row["order_position"],
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )


def _save_stage(conn: sqlite3.Connection, stage: PipelineStage) -> None:
    conn.execute(
        """
        INSERT OR REPLACE INTO pipeline_stages (
            stage_id, name, color, order_position, created_at, updated_at
        ) VALUES (?, ?, ?, ?, ?, ?)
        """,
        (
            stage.stage_id,
            stage.name,
            stage.color,
            stage.order_position,
            stage.created_at.isoformat(),
            stage.updated_at.isoformat(),
        ),
    )


def list_stages(db_path: Path | None = None) -> list[PipelineStage]:
    """Stages by order_position; when a name repeats only the first is kept."""
    with get_connection(db_path) as conn:
        rows = conn.execute(
            "SELECT * FROM pipeline_stages ORDER BY order_position ASC, created_at ASC"
        ).fetchall()

    stages = []
    seen = set()
    for row in rows:
        if row["name"] in seen:
            continue
        seen.add(row["name"])
        stages.append(_row_to_stage(row))
    return stages


def get_stage(stage_id: str, db_path: Path | None = None) -> PipelineStage | None:
    """Get a stage by ID."""
    with get_connection(db_path) as conn:
        row = conn.execute(
            "SELECT * FROM pipeline_stages WHERE stage_id = ?", (stage_id,)
        ).fetchone()
        if row:
            return _row_to_stage(row)
    return None


def add_stage(
    name: str,
    color: str = "#6B7280",
    order_position: int | None = None,
    db_path: Path | None = None,
) -> PipelineStage:
    """
    Add a pipeline stage.

    Raises DuplicateStageError when a stage with the same name exists
    (case-insensitive). Without an explicit position the stage goes last.
    """
    with get_connection(db_path) as conn:
        rows = conn.execute("SELECT name, order_position FROM pipeline_stages").fetchall()
        if any(r["name"].lower() == name.lower() for r in rows):
            raise DuplicateStageError(f"A stage named {name!r} already exists")

        if order_position is None:
            order_position = max((r["order_position"] for r in rows), default=0) + 1

        stage = PipelineStage(name=name, color=color, order_position=order_position)
        _save_stage(conn, stage)
    return stage


def update_stage(
    stage_id: str, updates: dict, db_path: Path | None = None
) -> PipelineStage | None:
    """Update specific fields on a stage."""
    stage = get_stage(stage_id, db_path)
    if not stage:
        return None

    for key, value in updates.items():
        if hasattr(stage, key) and key != "stage_id":
            setattr(stage, key, value)
    stage.updated_at = datetime.now()

    with get_connection(db_path) as conn:
        _save_stage(conn, stage)
    return stage


def delete_stage(stage_id: str, db_path: Path | None = None) -> bool:
    """Delete a stage."""
    with get_connection(db_path) as conn:
        cursor = conn.execute(
            "DELETE FROM pipeline_stages WHERE stage_id = ?", (stage_id,)
        )
        return cursor.rowcount > 0


def seed_default_stages(db_path: Path | None = None) -> list[PipelineStage]:
    """Create the default stages if the table is empty."""
    with get_connection(db_path) as conn:
        row = conn.execute("SELECT COUNT(*) FROM pipeline_stages").fetchone()
        if row[0] == 0:
            for name, color, position in DEFAULT_STAGES:
                _save_stage(
                    conn,
                    PipelineStage(name=name, color=color, order_position=position),
                )
            logger.info("Seeded %d default pipeline stages", len(DEFAULT_STAGES))
    return list_stages(db_path)


# =============================================================================
# COMPANY PROFILE
# =============================================================================


def _row_to_company(row: sqlite3.Row) -> Company:
    return Company(
        company_id=row["company_id"],
        name=row["name"],
        phone=row["phone"],
        address=row["address"],
        email=row["email"],
        website=row["website"],
        logo_url=row["logo_url"],
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )


def get_company(db_path: Path | None = None) -> Company | None:
    """The company profile, or None before one has been saved."""
    with get_connection(db_path) as conn:
        row = conn.execute(
            "SELECT * FROM companies ORDER BY created_at ASC LIMIT 1"
        ).fetchone()
        if row:
            return _row_to_company(row)
    return None


def save_company(company: Company, db_path: Path | None = None) -> Company:
    """Save the company profile (insert or update)."""
    company.updated_at = datetime.now()

    with get_connection(db_path) as conn:
        conn.execute(
            """
            INSERT OR REPLACE INTO companies (
                company_id, name, phone, address, email, website,
                logo_url, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                company.company_id,
                company.name,
                company.phone,
                company.address,
                company.email,
                company.website,
                company.logo_url,
                company.created_at.isoformat(),
                company.updated_at.isoformat(),
            ),
        )
    return company


def update_company(updates: dict, db_path: Path | None = None) -> Company:
    """Merge `updates` into the profile, creating it on first use."""
    company = get_company(db_path) or Company()

    for key, value in updates.items():
        if hasattr(company, key) and key not in ("company_id", "created_at"):
            setattr(company, key, value)

    return save_company(company, db_path)


# =============================================================================
# INTAKE FORM FIELDS
# =============================================================================

DEFAULT_FORM_FIELDS = [
    ("customer_name", "Customer Name", FieldType.TEXT, True, 1),
    ("phone", "Phone Number", FieldType.TEL, True, 2),
    ("email", "Email Address", FieldType.EMAIL, False, 3),
]


def _row_to_form_field(row: sqlite3.Row) -> FormField:
    return FormField(
        field_id=row["field_id"],
        name=row["name"],
        label=row["label"],
        field_type=FieldType(row["field_type"]),
        required=bool(row["required"]),
        order_position=row["order_position"],
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )


def _save_form_field(conn: sqlite3.Connection, form_field: FormField) -> None:
    conn.execute(
        """
        INSERT OR REPLACE INTO form_fields (
            field_id, name, label, field_type, required,
            order_position, created_at, updated_at
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            form_field.field_id,
            form_field.name,
            form_field.label,
            form_field.field_type.value,
            int(form_field.required),
            form_field.order_position,
            form_field.created_at.isoformat(),
            form_field.updated_at.isoformat(),
        ),
    )


def list_form_fields(db_path: Path | None = None) -> list[FormField]:
    """Form fields in display order."""
    with get_connection(db_path) as conn:
        rows = conn.execute(
            "SELECT * FROM form_fields ORDER BY order_position ASC, created_at ASC"
        ).fetchall()
        return [_row_to_form_field(row) for row in rows]


def get_form_field(field_id: str, db_path: Path | None = None) -> FormField | None:
    """Get a form field by ID."""
    with get_connection(db_path) as conn:
        row = conn.execute(
            "SELECT * FROM form_fields WHERE field_id = ?", (field_id,)
        ).fetchone()
        if row:
            return _row_to_form_field(row)
    return None


def add_form_field(
    name: str,
    label: str,
    field_type: FieldType = FieldType.TEXT,
    required: bool = False,
    order_position: int | None = None,
    db_path: Path | None = None,
) -> FormField:
    """
    Add a form field. Without an explicit position it goes last.

    Raises DuplicateFieldError when a field with the same name exists.
    """
    with get_connection(db_path) as conn:
        if conn.execute("SELECT 1 FROM form_fields WHERE name = ?", (name,)).fetchone():
            raise DuplicateFieldError(f"A form field named {name!r} already exists")

        if order_position is None:
            row = conn.execute("SELECT MAX(order_position) FROM form_fields").fetchone()
            order_position = (row[0] or 0) + 1

        form_field = FormField(
            name=name,
            label=label,
            field_type=FieldType(field_type),
            required=required,
            order_position=order_position,
        )
        _save_form_field(conn, form_field)
    return form_field


def update_form_field(
    field_id: str, updates: dict, db_path: Path | None = None
) -> FormField | None:
    """Update specific fields on a form field."""
    form_field = get_form_field(field_id, db_path)
    if not form_field:
        return None

    for key, value in updates.items():
        if hasattr(form_field, key) and key != "field_id":
            setattr(form_field, key, value)
    form_field.field_type = FieldType(form_field.field_type)
    form_field.updated_at = datetime.now()

    with get_connection(db_path) as conn:
        _save_form_field(conn, form_field)
    return form_field


def delete_form_field(field_id: str, db_path: Path | None = None) -> bool:
    """Delete a form field."""
    with get_connection(db_path) as conn:
        cursor = conn.execute("DELETE FROM form_fields WHERE field_id = ?", (field_id,))
        return cursor.rowcount > 0


def seed_default_form_fields(db_path: Path | None = None) -> list[FormField]:
    """Create the default intake fields if the table is empty."""
    with get_connection(db_path) as conn:
        row = conn.execute("SELECT COUNT(*) FROM form_fields").fetchone()
        if row[0] == 0:
            for name, label, field_type, required, position in DEFAULT_FORM_FIELDS:
                _save_form_field(
                    conn,
                    FormField(
                        name=name,
                        label=label,
                        field_type=field_type,
                        required=required,
                        order_position=position,
                    ),
                )
            logger.info("Seeded %d default form fields", len(DEFAULT_FORM_FIELDS))
    return list_form_fields(db_path)


# =============================================================================
# SETTINGS
# =============================================================================

DEFAULT_SETTINGS = {
    "company_name": "Smart Garage Doors",
    "default_commission_rate": 30.0,
}


def _row_to_setting(row: sqlite3.Row) -> Setting:
    return Setting(
        key=row["key"],
        value=json.loads(row["value"]),
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )


def list_settings(db_path: Path | None = None) -> list[Setting]:
    """All settings ordered by key."""
    with get_connection(db_path) as conn:
        rows = conn.execute("SELECT * FROM settings ORDER BY key ASC").fetchall()
        return [_row_to_setting(row) for row in rows]


def get_setting(key: str, default=None, db_path: Path | None = None):
    """The value stored under `key`, or `default` when unset."""
    with get_connection(db_path) as conn:
        row = conn.execute("SELECT * FROM settings WHERE key = ?", (key,)).fetchone()
        if row:
            return _row_to_setting(row).value
    return default


def set_setting(key: str, value, db_path: Path | None = None) -> Setting:
    """Store `value` under `key`, keeping the original created_at."""
    now = datetime.now()
    with get_connection(db_path) as conn:
        row = conn.execute(
            "SELECT created_at FROM settings WHERE key = ?", (key,)
        ).fetchone()
        created_at = datetime.fromisoformat(row["created_at"]) if row else now
        conn.execute(
            """
            INSERT OR REPLACE INTO settings (key, value, created_at, updated_at)
            VALUES (?, ?, ?, ?)
            """,
            (key, json.dumps(value), created_at.isoformat(), now.isoformat()),
        )
    return Setting(key=key, value=value, created_at=created_at, updated_at=now)


def delete_setting(key: str, db_path: Path | None = None) -> bool:
    """Delete a setting."""
    with get_connection(db_path) as conn:
        cursor = conn.execute("DELETE FROM settings WHERE key = ?", (key,))
        return cursor.rowcount > 0


def seed_default_settings(db_path: Path | None = None) -> list[Setting]:
    """Store each default setting whose key is not set yet."""
    for key, value in DEFAULT_SETTINGS.items():
        if get_setting(key, db_path=db_path) is None:
            set_setting(key, value, db_path)
    return list_settings(db_path)


# =============================================================================
# ROLE / USER STORES
# =============================================================================


def _row_to_role(row: sqlite3.Row) -> Role:
    return Role(
        role_id=row["role_id"],
        name=row["name"],
        display_name=row["display_name"] or "",
        description=row["description"] or "",
        permissions=json.loads(row["permissions"]),
        is_system_role=bool(row["is_system_role"]),
    )


def _row_to_user(row: sqlite3.Row) -> User:
    return User(
        user_id=row["user_id"],
        email=row["email"],
        name=row["name"],
        role_id=row["role_id"],
        role_name=row["role_name"] or "unknown",
        is_active=bool(row["is_active"]),
        last_login=(
            datetime.fromisoformat(row["last_login"]) if row["last_login"] else None
        ),
        created_at=datetime.fromisoformat(row["created_at"]),
    )


class SqliteRoleStore:
    """Roles persisted in the `roles` table."""

    def __init__(self, db_path: Path | None = None):
        self.db_path = db_path

    def list_roles(self) -> list[Role]:
        with get_connection(self.db_path) as conn:
            rows = conn.execute("SELECT * FROM roles ORDER BY rowid").fetchall()
            return [_row_to_role(row) for row in rows]

    def get_role(self, role_id: str) -> Role | None:
        with get_connection(self.db_path) as conn:
            row = conn.execute(
                "SELECT * FROM roles WHERE role_id = ?", (role_id,)
            ).fetchone()
            if row:
                return _row_to_role(row)
        return None

    def save_role(self, role: Role) -> Role:
        with get_connection(self.db_path) as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO roles (
                    role_id, name, display_name, description,
                    permissions, is_system_role
                ) VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    role.role_id,
                    role.name,
                    role.display_name,
                    role.description,
                    json.dumps(list(role.permissions)),
                    1 if role.is_system_role else 0,
                ),
            )
        return role

    def delete_role(self, role_id: str) -> bool:
        with get_connection(self.db_path) as conn:
            cursor = conn.execute("DELETE FROM roles WHERE role_id = ?", (role_id,))
            return cursor.rowcount > 0


class SqliteUserStore:
    """Users persisted in the `users` table; role names resolved by join."""

    _SELECT = """
        SELECT users.*, roles.name AS role_name
        FROM users LEFT JOIN roles ON roles.role_id = users.role_id
    """

    def __init__(self, db_path: Path | None = None):
        self.db_path = db_path

    def list_users(self) -> list[User]:
        with get_connection(self.db_path) as conn:
            rows = conn.execute(self._SELECT + " ORDER BY users.created_at").fetchall()
            return [_row_to_user(row) for row in rows]

    def get_user(self, user_id: str) -> User | None:
        with get_connection(self.db_path) as conn:
            row = conn.execute(
                self._SELECT + " WHERE users.user_id = ?", (user_id,)
            ).fetchone()
            if row:
                return _row_to_user(row)
        return None

    def save_user(self, user: User) -> User:
        with get_connection(self.db_path) as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO users (
                    user_id, email, name, role_id, is_active, last_login, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    user.user_id,
                    user.email,
                    user.name,
                    user.role_id,
                    1 if user.is_active else 0,
                    user.last_login.isoformat() if user.last_login else None,
                    user.created_at.isoformat(),
                ),
            )
        return user

    def delete_user(self, user_id: str) -> bool:
        with get_connection(self.db_path) as conn:
            cursor = conn.execute("DELETE FROM users WHERE user_id = ?", (user_id,))
            return cursor.rowcount > 0
