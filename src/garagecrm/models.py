"""
Data models for the Garage CRM system.

Entities:
- NormalizedJob: one job row after coercion, immutable once built
- Location / CustomerSummary: customer -> location -> job hierarchy
- TechnicianStat: per-technician performance and commission
- Technician / PipelineStage / Role / User: stored records
"""

from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Generic, TypeVar
from uuid import uuid4

# =============================================================================
# ENUMS
# =============================================================================


class StatusCategory(str, Enum):
    """How a free-text job status counts toward the aggregates."""

    CLOSED = "closed"
    CANCELLED = "cancelled"
    OPEN = "open"


class LeadPlatform(str, Enum):
    """Lead platform codes used in the LP column."""

    THUMBTACK = "TT"
    ANGIES = "AG"
    NETWORX = "NX"
    REFERRAL = "RF"
    FRIEND = "FD"
    PAST_CUSTOMER = "PC"
    WEBSITE = "WS"
    YELP = "YP"
    ELIYA = "EL"
    DAN = "DN"
    FACEBOOK = "FB"
    GOOGLE = "GG"
    CALLBACK = "CB"
    AVI = "AV"
    UNKNOWN = "?"
    BEN = "BN"
    NEXT_DOOR = "ND"
    VALPAK = "VP"
    KNOCK_ON_DOOR = "NOI"
    LEAD_GEN_PRO = "LGP"
    # Any code not listed above; the raw code travels with LeadSource
    OTHER = "other"


LEAD_PLATFORM_NAMES = {
    LeadPlatform.THUMBTACK: "Thumbtack",
    LeadPlatform.ANGIES: "Angies",
    LeadPlatform.NETWORX: "Networx",
    LeadPlatform.REFERRAL: "Referral",
    LeadPlatform.FRIEND: "Friend",
    LeadPlatform.PAST_CUSTOMER: "Past Customer",
    LeadPlatform.WEBSITE: "Website",
    LeadPlatform.YELP: "Yelp",
    LeadPlatform.ELIYA: "Eliya",
    LeadPlatform.DAN: "Dan",
    LeadPlatform.FACEBOOK: "Facebook",
    LeadPlatform.GOOGLE: "Google",
    LeadPlatform.CALLBACK: "CallBack",
    LeadPlatform.AVI: "Avi",
    LeadPlatform.UNKNOWN: "Unknown",
    LeadPlatform.BEN: "Ben",
    LeadPlatform.NEXT_DOOR: "Next Door",
    LeadPlatform.VALPAK: "Valpak",
    LeadPlatform.KNOCK_ON_DOOR: "Knock on Door",
    LeadPlatform.LEAD_GEN_PRO: "Lead Gen Pro",
}


class TechnicianJobCountPolicy(str, Enum):
    """Which jobs count toward a technician's total_jobs."""

    CLOSED_ONLY = "closed_only"
    ALL_JOBS = "all_jobs"


class CustomerType(str, Enum):
    RESIDENTIAL = "residential"
    COMMERCIAL = "commercial"


# =============================================================================
# STATUS / LEAD SOURCE
# =============================================================================

CLOSED_KEYWORDS = ("closed", "completed", "finished")
CANCELLED_KEYWORDS = ("cancelled", "canceled")


@dataclass(frozen=True)
class JobStatus:
    """
    A job status label together with its category.

    The label is kept verbatim; the category is derived by case-insensitive
    substring match. Closed wins over cancelled so the categories never
    overlap.
    """

    label: str
    category: StatusCategory

    @classmethod
    def from_label(cls, label: str | None) -> "JobStatus":
        text = str(label).strip() if label is not None else ""
        if not text:
            return cls(label="Unknown", category=StatusCategory.OPEN)

        lowered = text.lower()
        if any(word in lowered for word in CLOSED_KEYWORDS):
            category = StatusCategory.CLOSED
        elif any(word in lowered for word in CANCELLED_KEYWORDS):
            category = StatusCategory.CANCELLED
        else:
            category = StatusCategory.OPEN
        return cls(label=text, category=category)

    @property
    def is_closed(self) -> bool:
        return self.category is StatusCategory.CLOSED

    @property
    def is_cancelled(self) -> bool:
        return self.category is StatusCategory.CANCELLED


@dataclass(frozen=True)
class LeadSource:
    """A lead platform code; `raw` keeps the original text for OTHER."""

    platform: LeadPlatform
    raw: str = ""

    @classmethod
    def from_code(cls, code: str | None) -> "LeadSource":
        text = str(code).strip() if code is not None else ""
        if not text:
            return cls(platform=LeadPlatform.UNKNOWN, raw="")
        try:
            return cls(platform=LeadPlatform(text.upper()), raw=text)
        except ValueError:
            return cls(platform=LeadPlatform.OTHER, raw=text)

    @property
    def display_name(self) -> str:
        if self.platform is LeadPlatform.OTHER:
            return self.raw
        return LEAD_PLATFORM_NAMES[self.platform]


# =============================================================================
# JOB
# =============================================================================


@dataclass(frozen=True)
class NormalizedJob:
    """
    A single job row after field coercion.

    Monetary fields are already numbers. `revenue`, `costs` and `profit`
    are the figures the aggregates use: the job's own values when it is
    closed, zero otherwise.
    """

    id: str
    customer_key: str
    address: str
    status: JobStatus
    state: str = ""
    email: str = ""
    phone: str = ""
    customer_type: CustomerType = CustomerType.RESIDENTIAL
    title: str = "Untitled Job"
    notes: str = ""
    date: str = ""
    lead_source: LeadSource = field(
        default_factory=lambda: LeadSource(platform=LeadPlatform.UNKNOWN)
    )
    technician_names: tuple[str, ...] = ()
    sales_amount: float = 0.0
    total_costs: float = 0.0
    gross_profit: float = 0.0
    technician_payout: float = 0.0
    company_profit: float = 0.0
    tips: float = 0.0
    payment_breakdown: dict = field(default_factory=dict)
    raw: dict = field(default_factory=dict, compare=False, repr=False)

    @property
    def payment_total(self) -> float:
        """Sum of all payment-method amounts."""
        return sum(self.payment_breakdown.values())

    @property
    def reconciled_revenue(self) -> float:
        """Payment-method sum, or the Sales field when the payments sum to zero."""
        total = self.payment_total
        if total == 0:
            return self.sales_amount
        return total

    @property
    def revenue(self) -> float:
        return self.reconciled_revenue if self.status.is_closed else 0.0

    @property
    def costs(self) -> float:
        return self.total_costs if self.status.is_closed else 0.0

    @property
    def profit(self) -> float:
        return self.gross_profit if self.status.is_closed else 0.0

    def to_dict(self) -> dict:
        """Convert to JSON-serializable dictionary."""
        return {
            "id": self.id,
            "customer": self.customer_key,
            "address": self.address,
            "state": self.state,
            "title": self.title,
            "status": self.status.label,
            "status_category": self.status.category.value,
            "date": self.date,
            "lead_platform": self.lead_source.display_name,
            "technicians": ", ".join(self.technician_names),
            "sales": self.sales_amount,
            "revenue": self.revenue,
            "total_costs": self.total_costs,
            "gross_profit": self.gross_profit,
            "technician_payout": self.technician_payout,
            "company_profit": self.company_profit,
            "tips": self.tips,
            **{f"payment_{k}": v for k, v in self.payment_breakdown.items()},
        }


# =============================================================================
# CUSTOMER / LOCATION AGGREGATES
# =============================================================================


@dataclass
class Location:
    """A service address for a customer, holding jobs in insertion order."""

    key: str
    customer_key: str
    address: str
    state: str = ""
    location_name: str = "Primary Location"
    is_primary: bool = True
    jobs: list[NormalizedJob] = field(default_factory=list)

    @property
    def id(self) -> str:
        return f"{self.customer_key}-{self.key}"


@dataclass
class CustomerSummary:
    """
    A customer built by folding job rows.

    Totals are running sums updated once per job; they are never
    recomputed from the job lists.
    """

    name: str
    email: str = ""
    phone: str = ""
    primary_address: str = ""
    state: str = ""
    notes: str = ""
    customer_type: CustomerType = CustomerType.RESIDENTIAL
    status: str = "active"
    created_at: str = ""
    last_contact: str = ""
    locations: dict[str, Location] = field(default_factory=dict)

    total_jobs: int = 0
    completed_jobs: int = 0
    cancelled_jobs: int = 0
    total_revenue: float = 0.0
    total_costs: float = 0.0
    total_profit: float = 0.0
    technician_payouts: float = 0.0
    company_profit: float = 0.0

    first_job_date: date | None = None
    last_job_date: date | None = None
    tags: list[str] = field(default_factory=list)

    @property
    def id(self) -> str:
        # Customer identity is the raw name string
        return self.name

    def iter_jobs(self):
        for location in self.locations.values():
            yield from location.jobs

    def to_dict(self) -> dict:
        """Convert to a flat JSON-serializable dictionary (no job lists)."""
        return {
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "primary_address": self.primary_address,
            "state": self.state,
            "customer_type": self.customer_type.value,
            "locations": len(self.locations),
            "total_jobs": self.total_jobs,
            "completed_jobs": self.completed_jobs,
            "cancelled_jobs": self.cancelled_jobs,
            "total_revenue": self.total_revenue,
            "total_costs": self.total_costs,
            "total_profit": self.total_profit,
            "technician_payouts": self.technician_payouts,
            "company_profit": self.company_profit,
            "first_job_date": (
                self.first_job_date.isoformat() if self.first_job_date else None
            ),
            "last_job_date": (
                self.last_job_date.isoformat() if self.last_job_date else None
            ),
            "tags": ", ".join(self.tags),
        }


# =============================================================================
# TECHNICIAN AGGREGATES
# =============================================================================


def round_half_up(value: float, step: str = "1") -> Decimal:
    """Round to `step` with ties away from zero, as spreadsheets do."""
    return Decimal(str(value)).quantize(Decimal(step), rounding=ROUND_HALF_UP)


@dataclass
class TechnicianStat:
    """
    Performance figures for one technician.

    Counts are fractional: a job shared by two technicians adds 0.5 to
    each. Values stay unrounded; use display() for presentation.
    """

    name: str
    commission_rate: float  # percent
    total_jobs: float = 0.0
    completed_jobs: float = 0.0
    # Non-closed jobs; only counted under the all_jobs policy
    active_jobs: float = 0.0
    revenue: float = 0.0
    costs: float = 0.0
    profit: float = 0.0

    @property
    def commission(self) -> float:
        return self.revenue * self.commission_rate / 100

    def display(self) -> dict:
        """Rounded figures: one decimal for job counts, whole units for money."""
        return {
            "name": self.name,
            "jobs": float(round_half_up(self.total_jobs, "0.1")),
            "completed_jobs": float(round_half_up(self.completed_jobs, "0.1")),
            "active_jobs": float(round_half_up(self.active_jobs, "0.1")),
            "revenue": int(round_half_up(self.revenue)),
            "commission_rate": self.commission_rate,
            "commission": int(round_half_up(self.commission)),
            "profit": int(round_half_up(self.profit)),
            "costs": int(round_half_up(self.costs)),
        }


# =============================================================================
# STORED RECORDS
# =============================================================================


@dataclass
class Technician:
    """A technician on the roster."""

    technician_id: str = field(default_factory=lambda: str(uuid4()))
    name: str = ""
    email: str | None = None
    phone: str | None = None
    commission_rate: float = 30.0  # percent
    status: str = "active"
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        d = asdict(self)
        d["created_at"] = self.created_at.isoformat()
        d["updated_at"] = self.updated_at.isoformat()
        return d


@dataclass
class PipelineStage:
    """A kanban column in the job pipeline."""

    stage_id: str = field(default_factory=lambda: str(uuid4()))
    name: str = ""
    color: str = "#6B7280"
    order_position: int = 0
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)


@dataclass
class Role:
    """A named set of permissions."""

    role_id: str
    name: str
    display_name: str = ""
    description: str = ""
    permissions: list[str] = field(default_factory=list)
    is_system_role: bool = False
    user_count: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class User:
    """A system user assigned to one role."""

    user_id: str
    email: str
    name: str
    role_id: str
    role_name: str = "unknown"
    is_active: bool = True
    last_login: datetime | None = None
    created_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        d = asdict(self)
        d["created_at"] = self.created_at.isoformat()
        d["last_login"] = self.last_login.isoformat() if self.last_login else None
        return d


@dataclass
class Company:
    """The business profile. There is only ever one."""

    company_id: str = field(default_factory=lambda: str(uuid4()))
    name: str = ""
    phone: str | None = None
    address: str | None = None
    email: str | None = None
    website: str | None = None
    logo_url: str | None = None
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        d = asdict(self)
        d["created_at"] = self.created_at.isoformat()
        d["updated_at"] = self.updated_at.isoformat()
        return d


class FieldType(str, Enum):
    """Input types for custom intake form fields."""

    TEXT = "text"
    TEL = "tel"
    EMAIL = "email"
    NUMBER = "number"
    DATE = "date"
    TEXTAREA = "textarea"


@dataclass
class FormField:
    """A field on the customer intake form."""

    field_id: str = field(default_factory=lambda: str(uuid4()))
    name: str = ""
    label: str = ""
    field_type: FieldType = FieldType.TEXT
    required: bool = False
    order_position: int = 0
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)


@dataclass
class Setting:
    """A key/value application setting. Values are any JSON-serializable data."""

    key: str
    value: object = None
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)


# =============================================================================
# ANALYTICS / RESULT TYPES
# =============================================================================


@dataclass
class JobSummary:
    """Totals for a set of jobs."""

    jobs: int = 0
    revenue: float = 0.0
    profit: float = 0.0
    costs: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class PlatformStat:
    """Job count and revenue for one lead platform."""

    name: str
    count: int = 0
    revenue: float = 0.0


@dataclass
class BoardColumn:
    """One kanban column: a stage and the jobs currently in it."""

    name: str
    color: str
    order_position: int
    jobs: list[NormalizedJob] = field(default_factory=list)


T = TypeVar("T")


@dataclass
class FetchResult(Generic[T]):
    """Outcome of a bulk fetch: a value on success, an error message on failure."""

    ok: bool
    value: T | None = None
    error: str | None = None

    @classmethod
    def success(cls, value: T) -> "FetchResult[T]":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: str) -> "FetchResult[T]":
        return cls(ok=False, error=error)
