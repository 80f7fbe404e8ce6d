from datetime import date, datetime, time

import pytest
from fastapi import HTTPException

from opsdesk.models.models import Contract, Expense, Ticket
from opsdesk.services.attendance_service import (
    month_bounds, worked_minutes, worked_hours, format_duration, attendance_percentage
)
from opsdesk.services.billing_service import add_months, next_billing_date
from opsdesk.services.expense_service import parse_tax_rate, build_item, calculate_totals
from opsdesk.services.numbering_service import (
    next_contract_number, next_ticket_number, next_expense_number, next_employee_number
)
from opsdesk.services.settings_service import encode_value
from opsdesk.services.storage_service import format_file_size, format_display_date, secure_filename
from opsdesk.api.common import require_fields


class TestExpenseArithmetic:

    def test_tax_rate_from_label(self):
        assert parse_tax_rate("GST 10%") == 10.0
        assert parse_tax_rate("VAT 7.5") == 7.5
        assert parse_tax_rate("Exempt") == 0.0
        assert parse_tax_rate(None) == 0.0

    def test_item_amount_includes_tax(self):
        item = build_item({"item_name": "Nozzle", "quantity": 2, "unit_price": 50, "tax": "GST 10%"})
        assert item["amount"] == 110.0
        assert item["tax_rate"] == 10.0
        assert item["unit"] == "Pcs"

    def test_item_defaults_quantity_to_one(self):
        item = build_item({"item_name": "Labour", "unit_price": "80"})
        assert item["quantity"] == 1.0
        assert item["amount"] == 80.0

    def test_explicit_amount_wins(self):
        item = build_item({"item_name": "Kit", "quantity": 3, "unit_price": 10, "amount": 25})
        assert item["amount"] == 25.0

    def test_percent_discount(self):
        totals = calculate_totals([{"amount": 100}, {"amount": 50}], 10, "%")
        assert totals == {"sub_total": 150.0, "discount_amount": 15.0, "tax_amount": 0.0, "total": 135.0}

    def test_fixed_discount(self):
        totals = calculate_totals([{"amount": 100}], 30, "fixed")
        assert totals["discount_amount"] == 30.0
        assert totals["total"] == 70.0


class TestBillingDates:

    def test_month_end_clamps(self):
        assert add_months(date(2025, 1, 31), 1) == date(2025, 2, 28)
        assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)

    def test_year_rollover(self):
        assert add_months(date(2025, 11, 15), 3) == date(2026, 2, 15)

    def test_cycles(self):
        today = date(2025, 5, 10)
        assert next_billing_date("Monthly", today) == date(2025, 6, 10)
        assert next_billing_date("Quarterly", today) == date(2025, 8, 10)
        assert next_billing_date("Yearly", today) == date(2026, 5, 10)
        assert next_billing_date("Weekly", today) == date(2025, 6, 10)


class TestAttendanceHelpers:

    def test_month_bounds(self):
        assert month_bounds(2, 2024) == (date(2024, 2, 1), date(2024, 2, 29))
        with pytest.raises(ValueError):
            month_bounds(13, 2024)

    def test_worked_time(self):
        assert worked_minutes(time(9, 0), time(17, 30)) == 510
        assert worked_hours(time(9, 0), time(17, 30)) == 8.5
        assert worked_minutes(time(9, 0), None) is None

    def test_format_duration(self):
        assert format_duration(135) == "2h 15m"
        assert format_duration(None) == "0h 0m"

    def test_percentage(self):
        assert attendance_percentage(15, 30) == 50.0
        assert attendance_percentage(0, 0) == 0.0


class TestFormatting:

    def test_file_size(self):
        assert format_file_size(0) == "0 Bytes"
        assert format_file_size(500) == "500 Bytes"
        assert format_file_size(1536) == "1.5 KB"
        assert format_file_size(1048576) == "1 MB"
        assert format_file_size(None) == "-"

    def test_display_date(self):
        assert format_display_date(datetime(2025, 1, 5, 10, 30)) == "5 Jan 2025"
        assert format_display_date(None) is None

    def test_secure_filename(self):
        assert secure_filename("../../etc/pass wd.txt") == "pass_wd.txt"
        assert secure_filename("") == "file"

    def test_setting_values_encoded(self):
        assert encode_value({"a": 1}) == '{"a": 1}'
        assert encode_value([1, 2]) == "[1, 2]"
        assert encode_value(True) == "true"
        assert encode_value(5) == "5"
        assert encode_value(None) is None


class TestRequiredFields:

    def test_message_lists_all_fields(self):
        with pytest.raises(HTTPException) as exc:
            require_fields({"title": "x"}, ["title", "contract_date", "valid_until"])
        assert exc.value.status_code == 400
        assert exc.value.detail == "title, contract_date, and valid_until are required"

    def test_single_field(self):
        with pytest.raises(HTTPException) as exc:
            require_fields({"subject": "  "}, ["subject"])
        assert exc.value.detail == "subject is required"


class TestNumbering:

    def test_numbers_follow_tenant_counts(self, db, tenants):
        assert next_contract_number(db, tenants.company_a) == "CONTRACT #1"
        assert next_ticket_number(db, tenants.company_a) == "TKT-001"
        assert next_expense_number(db, tenants.company_a) == "EXP#001"
        # admin and employee already have employee rows in company A
        assert next_employee_number(db, tenants.company_a) == "EMP-0003"
        assert next_employee_number(db, tenants.company_b) == "EMP-0001"

    def test_soft_deleted_rows_still_count(self, db, tenants):
        db.add(Contract(company_id=tenants.company_a, contract_number="CONTRACT #1", title="Old",
                        contract_date=date(2025, 1, 1), valid_until=date(2025, 12, 31), is_deleted=True))
        db.add(Ticket(company_id=tenants.company_a, ticket_id="TKT-001", subject="Old"))
        db.add(Expense(company_id=tenants.company_a, expense_number="EXP#001"))
        db.commit()
        assert next_contract_number(db, tenants.company_a) == "CONTRACT #2"
        assert next_ticket_number(db, tenants.company_a) == "TKT-002"
        assert next_expense_number(db, tenants.company_a) == "EXP#002"
        assert next_ticket_number(db, tenants.company_b) == "TKT-001"
