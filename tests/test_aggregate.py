"""
Tests for customer grouping, technician commissions and dashboard figures.
"""

from datetime import date

import pytest

from garagecrm.aggregate import (
    aggregate_technicians,
    build_board,
    filter_jobs_by_period,
    group_customers,
    jobs_for_technician,
    lead_platform_stats,
    sort_jobs_by_date,
    stage_color,
    stage_order,
    summarize_jobs,
    unique_technicians,
)
from garagecrm.models import PipelineStage, Technician, TechnicianJobCountPolicy
from garagecrm.parse import normalize_row, normalize_rows


def make_job(**fields):
    return normalize_row(fields)


@pytest.fixture
def mixed_jobs():
    """A handful of jobs across two customers and three technicians."""
    return normalize_rows(
        [
            {
                "Count": "1",
                "Client Name": "Acme Storage",
                "Address": "12 Dock Rd",
                "Status": "Closed",
                "Date": "2024-03-05",
                "Technician": "Dan, Ben",
                "Customer Type": "commercial",
                "Sales": "$6,000.00",
                "Total Costs": "1000",
                "Gross Profit": "5000",
                "Technician Payout": "1800",
                "Company Profit": "3200",
                "LP": "TT",
            },
            {
                "Count": "2",
                "Client Name": "Acme Storage",
                "Address": "40 Annex Way",
                "Status": "Cancelled",
                "Date": "2024-01-20",
                "Technician": "Dan",
                "Sales": "500",
                "LP": "TT",
            },
            {
                "Count": "3",
                "Client Name": "Jane Doe",
                "Address": "5 Elm St",
                "Status": "Completed",
                "Date": "2024-04-10",
                "Technician": "Luka",
                "Sales": "900",
                "Cash": "500",
                "CC": "300",
                "Total Costs": "200",
                "Gross Profit": "600",
                "LP": "GG",
            },
            {
                "Count": "4",
                "Client Name": "Jane Doe",
                "Address": "5 Elm St",
                "Status": "In Progress",
                "Date": "2024-05-01",
                "Technician": "Luka",
                "Sales": "400",
                "LP": "Billboard",
            },
        ]
    )


class TestGroupCustomers:
    def test_end_to_end_scenario(self):
        jobs = normalize_rows(
            [
                {"Client Name": "A", "Sales": "100", "Status": "Closed", "Technician": "X"},
                {"Client Name": "A", "Sales": "200", "Status": "New Lead", "Technician": "X"},
            ]
        )
        [customer] = group_customers(jobs)
        assert customer.name == "A"
        assert customer.total_jobs == 2
        assert customer.completed_jobs == 1
        assert customer.total_revenue == 100

        [tech] = aggregate_technicians(jobs)
        assert tech.name == "X"
        assert tech.total_jobs == 1
        assert tech.revenue == 100

    def test_locations_keyed_by_address(self, mixed_jobs):
        customers = {c.name: c for c in group_customers(mixed_jobs)}
        acme = customers["Acme Storage"]
        jane = customers["Jane Doe"]

        assert list(acme.locations) == ["12 Dock Rd", "40 Annex Way"]
        assert list(jane.locations) == ["5 Elm St"]
        assert [j.id for j in jane.locations["5 Elm St"].jobs] == ["3", "4"]

    def test_running_totals(self, mixed_jobs):
        customers = {c.name: c for c in group_customers(mixed_jobs)}
        acme = customers["Acme Storage"]

        assert acme.total_jobs == 2
        assert acme.completed_jobs == 1
        assert acme.cancelled_jobs == 1
        assert acme.total_revenue == 6000.0
        assert acme.total_costs == 1000.0
        assert acme.total_profit == 5000.0
        assert acme.technician_payouts == 1800.0
        assert acme.company_profit == 3200.0

        jane = customers["Jane Doe"]
        # Payments (500 + 300) win over the Sales figure
        assert jane.total_revenue == 800.0
        assert jane.completed_jobs == 1
        assert jane.cancelled_jobs == 0

    def test_closed_and_cancelled_partition(self, mixed_jobs):
        for customer in group_customers(mixed_jobs):
            assert customer.completed_jobs + customer.cancelled_jobs <= customer.total_jobs
        for job in mixed_jobs:
            assert not (job.status.is_closed and job.status.is_cancelled)

    def test_dates_and_tags(self, mixed_jobs):
        customers = {c.name: c for c in group_customers(mixed_jobs)}
        acme = customers["Acme Storage"]

        assert acme.first_job_date == date(2024, 1, 20)
        assert acme.last_job_date == date(2024, 3, 5)
        assert acme.tags == ["High Value", "Commercial"]
        assert customers["Jane Doe"].tags == []

    def test_repeat_customer_tag(self):
        jobs = [make_job(**{"Client Name": "Sam", "Status": "New Lead"}) for _ in range(4)]
        [customer] = group_customers(jobs)
        assert customer.tags == ["Repeat Customer"]

    def test_thresholds_are_configurable(self, mixed_jobs):
        customers = {
            c.name: c
            for c in group_customers(
                mixed_jobs, high_value_threshold=500, repeat_customer_jobs=1
            )
        }
        assert "High Value" in customers["Jane Doe"].tags
        assert "Repeat Customer" in customers["Jane Doe"].tags

    def test_sorted_by_last_job_date_with_undated_last(self, mixed_jobs):
        undated = make_job(**{"Client Name": "No Date", "Status": "Closed"})
        customers = group_customers([undated] + mixed_jobs)
        assert [c.name for c in customers] == ["Jane Doe", "Acme Storage", "No Date"]
        assert customers[-1].last_job_date is None

    def test_missing_name_and_address_placeholders(self):
        [customer] = group_customers([make_job(Status="Closed", Sales="50")])
        assert customer.name == "Unknown Customer"
        location = customer.locations["Unknown Location"]
        assert location.address == "Unknown Address"
        assert location.id == "Unknown Customer-Unknown Location"

    def test_distinct_spellings_stay_distinct(self):
        jobs = [
            make_job(**{"Client Name": "Jon Smith"}),
            make_job(**{"Client Name": "John Smith"}),
        ]
        assert len(group_customers(jobs)) == 2

    def test_empty_input(self):
        assert group_customers([]) == []

    def test_sort_jobs_by_date(self, mixed_jobs):
        undated = make_job(Count="9")
        ordered = sort_jobs_by_date([undated] + mixed_jobs)
        assert [j.id for j in ordered] == ["4", "3", "1", "2", "9"]


class TestAggregateTechnicians:
    def test_fractional_attribution(self):
        job = make_job(Status="Closed", Technician="Dan, Ben", Cash="1000")
        stats = {s.name: s for s in aggregate_technicians([job])}

        assert stats["Dan"].revenue == 500.0
        assert stats["Ben"].revenue == 500.0
        assert stats["Dan"].total_jobs == 0.5
        assert stats["Ben"].completed_jobs == 0.5

    def test_revenue_is_conserved(self, mixed_jobs):
        stats = aggregate_technicians(mixed_jobs)
        closed_revenue = sum(j.revenue for j in mixed_jobs if j.technician_names)
        assert sum(s.revenue for s in stats) == pytest.approx(closed_revenue)

    def test_revenue_conserved_across_three_way_split(self):
        job = make_job(Status="Closed", Technician="A, B, C", Sales="100")
        stats = aggregate_technicians([job])
        assert sum(s.revenue for s in stats) == pytest.approx(100.0)
        assert sum(s.total_jobs for s in stats) == pytest.approx(1.0)

    def test_jobs_without_technicians_contribute_nothing(self):
        job = make_job(Status="Closed", Sales="100", Technician=" , ")
        assert aggregate_technicians([job]) == []

    def test_closed_only_policy_is_default(self, mixed_jobs):
        stats = {s.name: s for s in aggregate_technicians(mixed_jobs)}
        assert stats["Dan"].total_jobs == 0.5
        assert stats["Luka"].total_jobs == 1.0

    def test_all_jobs_policy_counts_open_jobs_without_dollars(self, mixed_jobs):
        stats = {
            s.name: s
            for s in aggregate_technicians(
                mixed_jobs, policy=TechnicianJobCountPolicy.ALL_JOBS
            )
        }
        assert stats["Dan"].total_jobs == 1.5
        assert stats["Dan"].completed_jobs == 0.5
        assert stats["Dan"].active_jobs == 1.0
        assert stats["Dan"].revenue == 3000.0
        assert stats["Luka"].total_jobs == 2.0
        assert stats["Luka"].active_jobs == 1.0
        for stat in stats.values():
            assert stat.total_jobs == pytest.approx(stat.completed_jobs + stat.active_jobs)
        assert stats["Luka"].revenue == 800.0

    def test_commission_uses_roster_rate(self, mixed_jobs):
        roster = [Technician(name="Dan", commission_rate=50.0)]
        stats = {s.name: s for s in aggregate_technicians(mixed_jobs, roster=roster)}

        assert stats["Dan"].commission_rate == 50.0
        assert stats["Dan"].commission == pytest.approx(1500.0)
        # Not on the roster: default rate
        assert stats["Ben"].commission_rate == 30.0
        assert stats["Ben"].commission == pytest.approx(900.0)

    def test_default_rate_is_configurable(self, mixed_jobs):
        stats = aggregate_technicians(mixed_jobs, default_rate=10.0)
        assert all(s.commission_rate == 10.0 for s in stats)

    def test_sorted_by_revenue(self, mixed_jobs):
        stats = aggregate_technicians(mixed_jobs)
        assert [s.name for s in stats] == ["Dan", "Ben", "Luka"]

    def test_display_rounding(self):
        job = make_job(Status="Closed", Technician="A, B, C", Sales="100")
        shown = aggregate_technicians([job])[0].display()
        assert shown["jobs"] == 0.3
        assert shown["revenue"] == 33
        assert shown["commission"] == 10

    def test_display_rounds_halves_up(self):
        job = make_job(Status="Closed", Technician="A, B, C, D", Sales="10")
        shown = aggregate_technicians([job])[0].display()
        assert shown["jobs"] == 0.3
        assert shown["revenue"] == 3
        assert shown["commission"] == 1
        assert shown["active_jobs"] == 0.0

    def test_closed_only_policy_has_no_active_jobs(self, mixed_jobs):
        assert all(s.active_jobs == 0.0 for s in aggregate_technicians(mixed_jobs))

    def test_technician_lookups(self, mixed_jobs):
        assert unique_technicians(mixed_jobs) == ["Ben", "Dan", "Luka"]
        assert [j.id for j in jobs_for_technician(mixed_jobs, "Dan")] == ["1", "2"]


class TestDashboardFigures:
    def test_summarize_jobs(self, mixed_jobs):
        summary = summarize_jobs(mixed_jobs)
        assert summary.jobs == 4
        assert summary.revenue == 6800.0
        assert summary.costs == 1200.0
        assert summary.profit == 5600.0

    def test_lead_platform_stats(self, mixed_jobs):
        stats = lead_platform_stats(mixed_jobs)
        assert stats["Thumbtack"].count == 2
        assert stats["Thumbtack"].revenue == 6000.0
        assert stats["Google"].count == 1
        assert stats["Billboard"].revenue == 0.0

    def test_filter_by_period(self, mixed_jobs):
        undated = make_job(Count="9")
        jobs = mixed_jobs + [undated]

        assert len(filter_jobs_by_period(jobs, "all")) == 5
        assert len(filter_jobs_by_period(jobs, "year", year=2024)) == 4
        assert [j.id for j in filter_jobs_by_period(jobs, "month", year=2024, month=4)] == ["3"]
        assert filter_jobs_by_period(jobs, "year", year=2023) == []

    def test_week_starts_on_sunday(self):
        jobs = [
            make_job(Count="sat", Date="2024-05-04"),
            make_job(Count="sun", Date="2024-05-05"),
            make_job(Count="wed", Date="2024-05-08"),
        ]
        # 2024-05-08 is a Wednesday
        week = filter_jobs_by_period(jobs, "week", today=date(2024, 5, 8))
        assert [j.id for j in week] == ["sun", "wed"]

    def test_stage_order_and_color(self):
        assert stage_order("New Lead") == 1
        assert stage_order("Finished") == 5
        assert stage_order("Whatever") == 7
        assert stage_color("Closed") == "#10B981"
        assert stage_color("Whatever") == "#6B7280"

    def test_build_board(self, mixed_jobs):
        stages = [
            PipelineStage(name="Closed", color="#10B981", order_position=5),
            PipelineStage(name="In Progress", color="#F59E0B", order_position=2),
        ]
        columns = build_board(mixed_jobs, stages)

        assert [c.name for c in columns] == ["In Progress", "Closed", "Other"]
        assert [j.id for j in columns[0].jobs] == ["4"]
        assert [j.id for j in columns[1].jobs] == ["1"]
        assert [j.id for j in columns[2].jobs] == ["2", "3"]
        assert columns[2].order_position == 6

    def test_board_without_unmatched_jobs_has_no_other_column(self):
        stages = [PipelineStage(name="New Lead", order_position=1)]
        columns = build_board([make_job(Status="new lead")], stages)
        assert [c.name for c in columns] == ["New Lead"]
        assert len(columns[0].jobs) == 1
