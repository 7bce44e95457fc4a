"""
Fetch-and-publish service.

Each aggregate (jobs, customers, technicians, stages) is rebuilt from one
bulk read followed by the pure pipeline, then published as a whole new
snapshot. Refetches of the same aggregate are serialized by a lock; a
failed fetch keeps the previous snapshot and reports the error through
FetchResult instead of raising.
"""

import logging
import sqlite3
import threading

from .aggregate import aggregate_technicians, group_customers
from .config import Settings
from .models import (
    CustomerSummary,
    FetchResult,
    NormalizedJob,
    PipelineStage,
    TechnicianJobCountPolicy,
    TechnicianStat,
)
from .parse import normalize_rows
from .storage import list_job_rows, list_stages, list_technicians

logger = logging.getLogger(__name__)

# Database failures plus rows whose stored JSON no longer decodes
FETCH_ERRORS = (sqlite3.Error, ValueError)


class CrmService:
    """Holds the latest published snapshot of each aggregate."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self._locks = {
            name: threading.Lock()
            for name in ("jobs", "customers", "technicians", "stages")
        }
        self._jobs: list[NormalizedJob] = []
        self._customers: list[CustomerSummary] = []
        self._technicians: list[TechnicianStat] = []
        self._stages: list[PipelineStage] = []

    @property
    def jobs(self) -> list[NormalizedJob]:
        return self._jobs

    @property
    def customers(self) -> list[CustomerSummary]:
        return self._customers

    @property
    def technicians(self) -> list[TechnicianStat]:
        return self._technicians

    @property
    def stages(self) -> list[PipelineStage]:
        return self._stages

    def _load_jobs(self) -> list[NormalizedJob]:
        return normalize_rows(list_job_rows(db_path=self.settings.db_path))

    def refresh_jobs(self) -> FetchResult[list[NormalizedJob]]:
        with self._locks["jobs"]:
            try:
                jobs = self._load_jobs()
            except FETCH_ERRORS as e:
                logger.exception("Failed to fetch jobs")
                return FetchResult.failure(str(e))
            self._jobs = jobs
        logger.info("Fetched %d jobs", len(jobs))
        return FetchResult.success(jobs)

    def refresh_customers(self) -> FetchResult[list[CustomerSummary]]:
        with self._locks["customers"]:
            try:
                jobs = self._load_jobs()
            except FETCH_ERRORS as e:
                logger.exception("Failed to fetch customers")
                return FetchResult.failure(str(e))
            customers = group_customers(
                jobs,
                high_value_threshold=self.settings.high_value_threshold,
                repeat_customer_jobs=self.settings.repeat_customer_jobs,
            )
            self._customers = customers
        logger.info("Built %d customers from %d jobs", len(customers), len(jobs))
        return FetchResult.success(customers)

    def refresh_technicians(
        self, policy: TechnicianJobCountPolicy | None = None
    ) -> FetchResult[list[TechnicianStat]]:
        with self._locks["technicians"]:
            try:
                jobs = self._load_jobs()
                roster = list_technicians(db_path=self.settings.db_path)
            except FETCH_ERRORS as e:
                logger.exception("Failed to fetch technicians")
                return FetchResult.failure(str(e))
            stats = aggregate_technicians(
                jobs,
                roster=roster,
                policy=policy or self.settings.technician_job_policy,
                default_rate=self.settings.default_commission_rate,
            )
            self._technicians = stats
        logger.info("Built stats for %d technicians", len(stats))
        return FetchResult.success(stats)

    def refresh_stages(self) -> FetchResult[list[PipelineStage]]:
        with self._locks["stages"]:
            try:
                stages = list_stages(db_path=self.settings.db_path)
            except FETCH_ERRORS as e:
                logger.exception("Failed to fetch pipeline stages")
                return FetchResult.failure(str(e))
            self._stages = stages
        logger.info("Fetched %d pipeline stages", len(stages))
        return FetchResult.success(stages)
