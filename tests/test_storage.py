"""
Tests for the SQLite persistence layer.

Uses a temporary database for isolation.
"""

import tempfile
from pathlib import Path

import pytest

from garagecrm.errors import DuplicateFieldError, DuplicateStageError
from garagecrm.models import Company, FieldType, Role, Technician, User
from garagecrm.storage import (
    DEFAULT_FORM_FIELDS,
    DEFAULT_SETTINGS,
    DEFAULT_STAGES,
    SqliteRoleStore,
    SqliteUserStore,
    add_form_field,
    add_stage,
    count_job_rows,
    count_number,
    delete_form_field,
    delete_job_row,
    delete_setting,
    delete_stage,
    delete_technician,
    get_company,
    get_form_field,
    get_job_row,
    get_setting,
    get_technician,
    init_db,
    insert_job_rows,
    list_deleted_job_rows,
    list_form_fields,
    list_job_rows,
    list_settings,
    list_stages,
    list_technicians,
    merge_customers,
    reset_db,
    restore_job,
    save_company,
    save_technician,
    seed_default_form_fields,
    seed_default_settings,
    seed_default_stages,
    set_setting,
    soft_delete_job,
    update_company,
    update_form_field,
    update_job_row,
    update_stage,
    update_technician,
)


@pytest.fixture
def temp_db():
    """Create a temporary database for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        db_path = Path(tmpdir) / "test_crm.db"
        init_db(db_path)
        yield db_path


class TestJobRows:
    def test_insert_and_get(self, temp_db):
        [count] = insert_job_rows(
            [{"Count": "7", "Client Name": "Jane Doe", "Sales": "$800.00"}], temp_db
        )
        assert count == "7"

        row = get_job_row("7", temp_db)
        assert row["Client Name"] == "Jane Doe"
        assert row["Sales"] == "$800.00"
        assert row["Count"] == "7"

    def test_get_nonexistent_row(self, temp_db):
        assert get_job_row("404", temp_db) is None

    def test_missing_count_gets_next_number(self, temp_db):
        insert_job_rows([{"Count": "J-0041"}], temp_db)
        counts = insert_job_rows([{"Client Name": "A"}, {"Count": ""}], temp_db)
        assert counts == ["42", "43"]

    def test_first_count_in_empty_db(self, temp_db):
        assert insert_job_rows([{"Client Name": "A"}], temp_db) == ["1"]

    def test_list_ordered_by_numeric_count(self, temp_db):
        insert_job_rows([{"Count": "9"}, {"Count": "10"}, {"Count": "2"}], temp_db)
        assert [r["Count"] for r in list_job_rows(db_path=temp_db)] == ["10", "9", "2"]

    def test_list_empty_db(self, temp_db):
        assert list_job_rows(db_path=temp_db) == []
        assert count_job_rows(db_path=temp_db) == 0

    def test_update_merges_fields(self, temp_db):
        insert_job_rows([{"Count": "1", "Client Name": "A", "Status": "New Lead"}], temp_db)
        updated = update_job_row("1", {"Status": "Closed", "Count": "99"}, temp_db)

        assert updated["Status"] == "Closed"
        assert updated["Client Name"] == "A"
        assert updated["Count"] == "1"
        assert get_job_row("1", temp_db)["Status"] == "Closed"

    def test_update_nonexistent_row(self, temp_db):
        assert update_job_row("404", {"Status": "Closed"}, temp_db) is None

    def test_delete_row(self, temp_db):
        insert_job_rows([{"Count": "1"}], temp_db)
        assert delete_job_row("1", temp_db) is True
        assert delete_job_row("1", temp_db) is False
        assert get_job_row("1", temp_db) is None

    def test_soft_delete_and_restore(self, temp_db):
        insert_job_rows([{"Count": "1", "Status": "Closed"}, {"Count": "2"}], temp_db)

        soft_delete_job("1", temp_db)
        assert [r["Count"] for r in list_job_rows(db_path=temp_db)] == ["2"]
        assert [r["Count"] for r in list_deleted_job_rows(temp_db)] == ["1"]
        assert count_job_rows(db_path=temp_db) == 1
        assert count_job_rows(include_deleted=True, db_path=temp_db) == 2
        assert len(list_job_rows(include_deleted=True, db_path=temp_db)) == 2

        restored = restore_job("1", temp_db)
        assert restored["Status"] == "New Lead"
        assert list_deleted_job_rows(temp_db) == []

    def test_count_number(self):
        assert count_number("J-0042") == 42
        assert count_number(17) == 17
        assert count_number(None) == 0
        assert count_number("abc") == 0


class TestMergeCustomers:
    def test_merge_rewrites_secondary_rows(self, temp_db):
        insert_job_rows(
            [
                {"Count": "1", "Client Name": "John Smith", "Email": "john@example.com",
                 "Phone": "", "Address": "1 Main St"},
                {"Count": "2", "Client Name": "Jon Smith", "Email": "jon@example.com",
                 "Phone": "555-0100", "Address": "2 Side St"},
                {"Count": "3", "Client Name": "Someone Else"},
            ],
            temp_db,
        )

        assert merge_customers("John Smith", "Jon Smith", temp_db) == 1

        merged = get_job_row("2", temp_db)
        assert merged["Client Name"] == "John Smith"
        assert merged["Email"] == "john@example.com"
        # Primary has no phone: keep the secondary's
        assert merged["Phone"] == "555-0100"
        assert merged["Address"] == "1 Main St"
        assert get_job_row("3", temp_db)["Client Name"] == "Someone Else"

    def test_merge_unknown_customer(self, temp_db):
        insert_job_rows([{"Count": "1", "Client Name": "A"}], temp_db)
        assert merge_customers("A", "Nobody", temp_db) == 0
        assert merge_customers("A", "A", temp_db) == 0


class TestTechnicians:
    def test_save_and_get(self, temp_db):
        tech = Technician(name="Luka", email="luka@example.com", commission_rate=25.0)
        save_technician(tech, temp_db)

        loaded = get_technician(tech.technician_id, temp_db)
        assert loaded is not None
        assert loaded.name == "Luka"
        assert loaded.commission_rate == 25.0
        assert loaded.status == "active"

    def test_get_nonexistent(self, temp_db):
        assert get_technician("missing", temp_db) is None

    def test_list_sorted_by_name(self, temp_db):
        for name in ["Zed", "Amy", "Max"]:
            save_technician(Technician(name=name), temp_db)
        assert [t.name for t in list_technicians(db_path=temp_db)] == ["Amy", "Max", "Zed"]

    def test_list_active_only(self, temp_db):
        save_technician(Technician(name="Amy"), temp_db)
        save_technician(Technician(name="Old", status="inactive"), temp_db)
        assert [t.name for t in list_technicians(active_only=True, db_path=temp_db)] == ["Amy"]

    def test_update(self, temp_db):
        tech = save_technician(Technician(name="Dan"), temp_db)
        updated = update_technician(tech.technician_id, {"commission_rate": 50.0}, temp_db)
        assert updated.commission_rate == 50.0
        assert get_technician(tech.technician_id, temp_db).commission_rate == 50.0

    def test_update_nonexistent(self, temp_db):
        assert update_technician("missing", {"name": "X"}, temp_db) is None

    def test_delete(self, temp_db):
        tech = save_technician(Technician(name="Dan"), temp_db)
        assert delete_technician(tech.technician_id, temp_db) is True
        assert delete_technician(tech.technician_id, temp_db) is False


class TestPipelineStages:
    def test_seed_default_stages(self, temp_db):
        stages = seed_default_stages(temp_db)
        assert [s.name for s in stages] == [name for name, _, _ in DEFAULT_STAGES]

        # Seeding again is a no-op
        assert len(seed_default_stages(temp_db)) == len(DEFAULT_STAGES)

    def test_add_stage_goes_last(self, temp_db):
        seed_default_stages(temp_db)
        stage = add_stage("Warranty", "#000000", db_path=temp_db)
        assert stage.order_position == 7
        assert list_stages(temp_db)[-1].name == "Warranty"

    def test_add_duplicate_stage_rejected(self, temp_db):
        add_stage("New Lead", db_path=temp_db)
        with pytest.raises(DuplicateStageError):
            add_stage("new lead", db_path=temp_db)

    def test_list_orders_by_position(self, temp_db):
        add_stage("Second", order_position=2, db_path=temp_db)
        add_stage("First", order_position=1, db_path=temp_db)
        assert [s.name for s in list_stages(temp_db)] == ["First", "Second"]

    def test_update_and_delete(self, temp_db):
        stage = add_stage("Quote", db_path=temp_db)
        updated = update_stage(stage.stage_id, {"color": "#123456"}, temp_db)
        assert updated.color == "#123456"
        assert list_stages(temp_db)[0].color == "#123456"

        assert delete_stage(stage.stage_id, temp_db) is True
        assert list_stages(temp_db) == []

    def test_update_nonexistent(self, temp_db):
        assert update_stage("missing", {"name": "X"}, temp_db) is None


class TestCompanyProfile:
    def test_no_company_before_save(self, temp_db):
        assert get_company(temp_db) is None

    def test_save_and_get(self, temp_db):
        save_company(Company(name="Smart Garage Doors", phone="555-0100"), temp_db)

        company = get_company(temp_db)
        assert company.name == "Smart Garage Doors"
        assert company.phone == "555-0100"
        assert company.website is None

    def test_update_merges_into_single_row(self, temp_db):
        first = update_company({"name": "Smart Garage Doors"}, temp_db)
        second = update_company({"email": "office@example.com"}, temp_db)

        assert second.company_id == first.company_id
        assert second.name == "Smart Garage Doors"
        assert second.email == "office@example.com"
        assert second.updated_at >= first.updated_at
        assert get_company(temp_db).email == "office@example.com"


class TestFormFields:
    def test_seed_default_form_fields(self, temp_db):
        fields = seed_default_form_fields(temp_db)
        assert [f.name for f in fields] == ["customer_name", "phone", "email"]
        assert fields[1].field_type is FieldType.TEL
        assert fields[2].required is False

        # Seeding again is a no-op
        assert len(seed_default_form_fields(temp_db)) == len(DEFAULT_FORM_FIELDS)

    def test_add_goes_last(self, temp_db):
        seed_default_form_fields(temp_db)
        added = add_form_field("gate_code", "Gate Code", "number", db_path=temp_db)

        assert added.order_position == 4
        assert added.field_type is FieldType.NUMBER
        assert list_form_fields(temp_db)[-1].name == "gate_code"

    def test_add_duplicate_rejected(self, temp_db):
        add_form_field("phone", "Phone", db_path=temp_db)
        with pytest.raises(DuplicateFieldError):
            add_form_field("phone", "Phone again", db_path=temp_db)
        assert len(list_form_fields(temp_db)) == 1

    def test_list_orders_by_position(self, temp_db):
        add_form_field("second", "Second", order_position=2, db_path=temp_db)
        add_form_field("first", "First", order_position=1, db_path=temp_db)
        assert [f.name for f in list_form_fields(temp_db)] == ["first", "second"]

    def test_update_and_delete(self, temp_db):
        added = add_form_field("notes", "Notes", db_path=temp_db)
        updated = update_form_field(
            added.field_id, {"field_type": "textarea", "required": True}, temp_db
        )
        assert updated.field_type is FieldType.TEXTAREA
        assert get_form_field(added.field_id, temp_db).required is True

        assert delete_form_field(added.field_id, temp_db) is True
        assert get_form_field(added.field_id, temp_db) is None
        assert delete_form_field(added.field_id, temp_db) is False

    def test_update_nonexistent(self, temp_db):
        assert update_form_field("missing", {"label": "X"}, temp_db) is None


class TestSettings:
    def test_missing_setting_returns_default(self, temp_db):
        assert get_setting("company_name", db_path=temp_db) is None
        assert get_setting("company_name", "n/a", db_path=temp_db) == "n/a"

    def test_values_keep_their_json_type(self, temp_db):
        set_setting("default_commission_rate", 12.5, temp_db)
        set_setting("lead_sources", ["TT", "GG"], temp_db)

        assert get_setting("default_commission_rate", db_path=temp_db) == 12.5
        assert get_setting("lead_sources", db_path=temp_db) == ["TT", "GG"]
        assert [s.key for s in list_settings(temp_db)] == [
            "default_commission_rate",
            "lead_sources",
        ]

    def test_overwrite_keeps_created_at(self, temp_db):
        first = set_setting("company_name", "Old Name", temp_db)
        second = set_setting("company_name", "New Name", temp_db)

        assert second.created_at == first.created_at
        assert get_setting("company_name", db_path=temp_db) == "New Name"
        assert len(list_settings(temp_db)) == 1

    def test_seed_keeps_existing_values(self, temp_db):
        set_setting("company_name", "Custom Doors", temp_db)
        settings = {s.key: s.value for s in seed_default_settings(temp_db)}

        assert settings["company_name"] == "Custom Doors"
        assert settings["default_commission_rate"] == (
            DEFAULT_SETTINGS["default_commission_rate"]
        )

    def test_delete(self, temp_db):
        set_setting("company_name", "Doors", temp_db)
        assert delete_setting("company_name", temp_db) is True
        assert delete_setting("company_name", temp_db) is False


class TestRoleAndUserStores:
    def test_role_round_trip(self, temp_db):
        store = SqliteRoleStore(temp_db)
        store.save_role(
            Role(role_id="r1", name="sales", permissions=["jobs.view"], is_system_role=False)
        )

        role = store.get_role("r1")
        assert role.name == "sales"
        assert role.permissions == ["jobs.view"]
        assert role.is_system_role is False
        assert store.get_role("missing") is None
        assert store.delete_role("r1") is True
        assert store.list_roles() == []

    def test_user_role_name_resolved(self, temp_db):
        SqliteRoleStore(temp_db).save_role(Role(role_id="r1", name="dispatcher"))
        users = SqliteUserStore(temp_db)
        users.save_user(User(user_id="u1", email="a@example.com", name="A", role_id="r1"))
        users.save_user(User(user_id="u2", email="b@example.com", name="B", role_id="gone"))

        assert users.get_user("u1").role_name == "dispatcher"
        assert users.get_user("u2").role_name == "unknown"
        assert len(users.list_users()) == 2
        assert users.delete_user("u2") is True
        assert users.get_user("u2") is None


class TestResetDb:
    def test_reset_clears_data(self, temp_db):
        insert_job_rows([{"Count": "1"}], temp_db)
        save_technician(Technician(name="Dan"), temp_db)

        reset_db(temp_db)

        assert list_job_rows(db_path=temp_db) == []
        assert list_technicians(db_path=temp_db) == []
