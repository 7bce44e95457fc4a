"""
Aggregation over normalized jobs.

Two independent passes over the same job list:
- group_customers: customer -> location -> job hierarchy with running totals
- aggregate_technicians: per-technician fractional attribution and commission

Plus the smaller dashboard figures (lead platforms, period summaries,
kanban board columns).
"""

import logging
from collections.abc import Iterable
from datetime import date, timedelta

from .models import (
    BoardColumn,
    CustomerSummary,
    CustomerType,
    JobSummary,
    Location,
    NormalizedJob,
    PipelineStage,
    PlatformStat,
    Technician,
    TechnicianJobCountPolicy,
    TechnicianStat,
)
from .parse import UNKNOWN_ADDRESS, UNKNOWN_LOCATION, parse_job_date

logger = logging.getLogger(__name__)

HIGH_VALUE_THRESHOLD = 5000.0
REPEAT_CUSTOMER_JOBS = 3
DEFAULT_COMMISSION_RATE = 30.0

TAG_HIGH_VALUE = "High Value"
TAG_REPEAT_CUSTOMER = "Repeat Customer"
TAG_COMMERCIAL = "Commercial"

# Default pipeline ordering and colors for the known status labels
STATUS_ORDER = {
    "New Lead": 1,
    "In Progress": 2,
    "Awaiting Parts": 3,
    "Pending Payment": 4,
    "Closed": 5,
    "Completed": 5,
    "Finished": 5,
    "Cancelled": 6,
    "Canceled": 6,
}
STATUS_COLORS = {
    "New Lead": "#3B82F6",
    "In Progress": "#F59E0B",
    "Awaiting Parts": "#EF4444",
    "Pending Payment": "#8B5CF6",
    "Closed": "#10B981",
    "Completed": "#10B981",
    "Finished": "#10B981",
    "Cancelled": "#6B7280",
    "Canceled": "#6B7280",
}
DEFAULT_STAGE_COLOR = "#6B7280"
UNLISTED_STAGE_ORDER = 7


# =============================================================================
# CUSTOMERS
# =============================================================================


def _new_customer(job: NormalizedJob) -> CustomerSummary:
    return CustomerSummary(
        name=job.customer_key,
        email=job.email,
        phone=job.phone,
        primary_address=job.address,
        state=job.state,
        notes=job.notes,
        customer_type=job.customer_type,
        created_at=job.date,
    )


def _fold_job(customer: CustomerSummary, job: NormalizedJob) -> None:
    """Add one job to its customer's running totals."""
    customer.total_jobs += 1

    if job.status.is_closed:
        customer.total_revenue += job.reconciled_revenue
        customer.total_costs += job.total_costs
        customer.total_profit += job.gross_profit
        customer.technician_payouts += job.technician_payout
        customer.company_profit += job.company_profit
        customer.completed_jobs += 1
    elif job.status.is_cancelled:
        customer.cancelled_jobs += 1

    customer.last_contact = job.date


def assign_tags(
    customer: CustomerSummary,
    high_value_threshold: float = HIGH_VALUE_THRESHOLD,
    repeat_customer_jobs: int = REPEAT_CUSTOMER_JOBS,
) -> list[str]:
    """Tags derived from a customer's final totals."""
    tags = []
    if customer.total_revenue > high_value_threshold:
        tags.append(TAG_HIGH_VALUE)
    if customer.total_jobs > repeat_customer_jobs:
        tags.append(TAG_REPEAT_CUSTOMER)
    if customer.customer_type is CustomerType.COMMERCIAL:
        tags.append(TAG_COMMERCIAL)
    return tags


def _finalize_customer(
    customer: CustomerSummary, high_value_threshold: float, repeat_customer_jobs: int
) -> None:
    dates = sorted(
        d for d in (parse_job_date(job.date) for job in customer.iter_jobs()) if d
    )
    if dates:
        customer.first_job_date = dates[0]
        customer.last_job_date = dates[-1]
    customer.tags = assign_tags(customer, high_value_threshold, repeat_customer_jobs)


def group_customers(
    jobs: Iterable[NormalizedJob],
    high_value_threshold: float = HIGH_VALUE_THRESHOLD,
    repeat_customer_jobs: int = REPEAT_CUSTOMER_JOBS,
) -> list[CustomerSummary]:
    """
    Fold jobs into customers and locations in a single pass.

    Customers are keyed by the exact name string and locations by the
    exact address string. Jobs keep their encounter order within a
    location. The result is ordered by most recent job date, customers
    with no parseable dates last.
    """
    customers: dict[str, CustomerSummary] = {}

    for job in jobs:
        customer = customers.get(job.customer_key)
        if customer is None:
            customer = _new_customer(job)
            customers[job.customer_key] = customer

        location_key = job.address or UNKNOWN_LOCATION
        location = customer.locations.get(location_key)
        if location is None:
            location = Location(
                key=location_key,
                customer_key=job.customer_key,
                address=job.address or UNKNOWN_ADDRESS,
                state=job.state,
            )
            customer.locations[location_key] = location

        location.jobs.append(job)
        _fold_job(customer, job)

    for customer in customers.values():
        _finalize_customer(customer, high_value_threshold, repeat_customer_jobs)

    result = list(customers.values())
    result.sort(key=lambda c: c.last_job_date or date.min, reverse=True)
    # Stable sort: dated customers first, undated keep encounter order
    result.sort(key=lambda c: c.last_job_date is None)

    logger.debug("Grouped jobs into %d customers", len(result))
    return result


def sort_jobs_by_date(jobs: Iterable[NormalizedJob]) -> list[NormalizedJob]:
    """Jobs newest first for display; unparseable dates go last."""
    items = list(jobs)
    items.sort(key=lambda j: parse_job_date(j.date) or date.min, reverse=True)
    items.sort(key=lambda j: parse_job_date(j.date) is None)
    return items


# =============================================================================
# TECHNICIANS
# =============================================================================


def commission_rates(roster: Iterable[Technician]) -> dict[str, float]:
    """Map technician name -> commission rate (percent)."""
    return {tech.name: tech.commission_rate for tech in roster}


def aggregate_technicians(
    jobs: Iterable[NormalizedJob],
    roster: Iterable[Technician] | None = None,
    policy: TechnicianJobCountPolicy = TechnicianJobCountPolicy.CLOSED_ONLY,
    default_rate: float = DEFAULT_COMMISSION_RATE,
) -> list[TechnicianStat]:
    """
    Attribute each job evenly across its technicians.

    A job with n technicians adds 1/n to each one's job count and 1/n of
    its revenue, costs and profit. Jobs without technicians contribute
    nothing. Commission rates come from the roster; names missing from it
    get `default_rate`. Dollar figures only come from closed jobs; `policy` decides
    whether open and cancelled jobs still count toward total_jobs (and
    active_jobs).
    Results are sorted by revenue, highest first.
    """
    rates = commission_rates(roster or ())
    stats: dict[str, TechnicianStat] = {}

    for job in jobs:
        names = job.technician_names
        if not names:
            continue

        closed = job.status.is_closed
        if not closed and policy is TechnicianJobCountPolicy.CLOSED_ONLY:
            continue

        share = 1 / len(names)
        revenue = job.revenue
        costs = job.costs
        profit = job.profit

        for name in names:
            stat = stats.get(name)
            if stat is None:
                stat = TechnicianStat(
                    name=name, commission_rate=rates.get(name, default_rate)
                )
                stats[name] = stat

            stat.total_jobs += share
            if closed:
                stat.completed_jobs += share
            else:
                stat.active_jobs += share
            stat.revenue += revenue * share
            stat.costs += costs * share
            stat.profit += profit * share

    return sorted(stats.values(), key=lambda s: s.revenue, reverse=True)


def jobs_for_technician(
    jobs: Iterable[NormalizedJob], name: str
) -> list[NormalizedJob]:
    """Jobs that list `name` among their technicians, newest first."""
    return sort_jobs_by_date(j for j in jobs if name in j.technician_names)


def unique_technicians(jobs: Iterable[NormalizedJob]) -> list[str]:
    """Every technician name appearing on any job, sorted."""
    return sorted({name for job in jobs for name in job.technician_names})


# =============================================================================
# DASHBOARD FIGURES
# =============================================================================


def summarize_jobs(jobs: Iterable[NormalizedJob]) -> JobSummary:
    """Job count plus closed-job revenue, profit and costs."""
    summary = JobSummary()
    for job in jobs:
        summary.jobs += 1
        summary.revenue += job.revenue
        summary.profit += job.profit
        summary.costs += job.costs
    return summary


def lead_platform_stats(jobs: Iterable[NormalizedJob]) -> dict[str, PlatformStat]:
    """Job count and closed-job revenue per lead platform display name."""
    stats: dict[str, PlatformStat] = {}
    for job in jobs:
        name = job.lead_source.display_name
        stat = stats.setdefault(name, PlatformStat(name=name))
        stat.count += 1
        stat.revenue += job.revenue
    return stats


def filter_jobs_by_period(
    jobs: Iterable[NormalizedJob],
    period: str = "all",
    year: int | None = None,
    month: int | None = None,
    today: date | None = None,
) -> list[NormalizedJob]:
    """
    Keep jobs inside a reporting period.

    period is one of "all", "year", "month" or "week" (since the most
    recent Sunday). Jobs with unparseable dates only survive "all".
    """
    today = today or date.today()
    items = list(jobs)

    if period == "all":
        return items

    year = year or today.year
    month = month or today.month
    # date.weekday(): Monday=0 ... Sunday=6
    week_start = today - timedelta(days=(today.weekday() + 1) % 7)

    result = []
    for job in items:
        job_date = parse_job_date(job.date)
        if job_date is None:
            continue
        if period == "year" and job_date.year == year:
            result.append(job)
        elif period == "month" and (job_date.year, job_date.month) == (year, month):
            result.append(job)
        elif period == "week" and job_date >= week_start:
            result.append(job)
    return result


def stage_order(label: str) -> int:
    return STATUS_ORDER.get(label, UNLISTED_STAGE_ORDER)


def stage_color(label: str) -> str:
    return STATUS_COLORS.get(label, DEFAULT_STAGE_COLOR)


def build_board(
    jobs: Iterable[NormalizedJob], stages: Iterable[PipelineStage]
) -> list[BoardColumn]:
    """
    Place jobs into kanban columns.

    Columns follow the stages' order_position; a job lands in the stage
    whose name matches its status label (case-insensitive). Jobs with no
    matching stage go into a trailing "Other" column, present only when
    non-empty.
    """
    columns = [
        BoardColumn(name=s.name, color=s.color, order_position=s.order_position)
        for s in sorted(stages, key=lambda s: s.order_position)
    ]
    by_name = {c.name.lower(): c for c in columns}
    other = BoardColumn(
        name="Other",
        color=DEFAULT_STAGE_COLOR,
        order_position=max((c.order_position for c in columns), default=0) + 1,
    )

    for job in jobs:
        column = by_name.get(job.status.label.lower(), other)
        column.jobs.append(job)

    if other.jobs:
        columns.append(other)
    return columns
