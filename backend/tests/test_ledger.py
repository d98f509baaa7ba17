# Overview: Pytest coverage for manual incomes and expenses.

"""
Ledger Tests

Verifies:
- Non-sale incomes and expenses can be recorded, edited and deleted
- Sale incomes cannot be created, edited or deleted through the ledger
- Writes need ledger access to the entry's location
- Reads show a non-admin their locations plus unlocated entries
"""

from decimal import Decimal

import pytest

from stockflow.errors import Forbidden, InvalidState
from stockflow.models import ActivityEvent, Expense, Income
from stockflow.services import ledger_service, sales_service
from stockflow.services.sale_totals import SaleDraft, SaleDraftItem


@pytest.fixture
def sale_income(db_session, admin, location_1, product, make_row):
    make_row(product, location_1, 10)
    sale = sales_service.record_sale(
        SaleDraft(location_id=location_1.id, items=(SaleDraftItem(product.id, 2, Decimal("4.00")),)),
        admin,
    )
    return db_session.query(Income).filter_by(related_sale_id=sale.id).one()


def income_body(**overrides):
    body = {"source": "Service", "description": "Repair job", "amount": "150.50"}
    body.update(overrides)
    return body


def expense_body(**overrides):
    body = {"category": "Rent", "description": "October rent", "amount": "1200.00"}
    body.update(overrides)
    return body


class TestRecordIncome:

    def test_record(self, client, db_session, manager_headers, location_1):
        resp = client.post(
            "/api/incomes",
            json=income_body(location_id=location_1.id, notes="invoice 42"),
            headers=manager_headers,
        )

        assert resp.status_code == 201, resp.json
        assert resp.json["source"] == "Service"
        assert resp.json["amount_cents"] == 15050
        assert resp.json["related_sale_id"] is None
        assert resp.json["location_id"] == location_1.id

        entry = db_session.query(ActivityEvent).filter_by(action="income_recorded").one()
        assert entry.entity_id == resp.json["id"]

    def test_sale_source_rejected(self, client, db_session, admin_headers):
        resp = client.post("/api/incomes", json=income_body(source="Sale"), headers=admin_headers)

        assert resp.status_code == 400
        assert resp.json["details"] == {"field": "source"}
        assert db_session.query(Income).count() == 0

    @pytest.mark.parametrize("overrides", [
        {"amount": "0"},
        {"amount": "-5"},
        {"amount": "abc"},
        {"amount": None},
        {"description": ""},
        {"description": None},
        {"source": "Gift"},
        {"date": "yesterday"},
    ])
    def test_invalid_payloads(self, client, db_session, admin_headers, overrides):
        resp = client.post("/api/incomes", json=income_body(**overrides), headers=admin_headers)
        assert resp.status_code == 400

    def test_staff_cannot_record(self, client, db_session, staff_headers):
        assert client.post("/api/incomes", json=income_body(), headers=staff_headers).status_code == 403

    def test_manager_cannot_record_at_foreign_location(self, client, db_session, manager_headers, location_2):
        resp = client.post(
            "/api/incomes", json=income_body(location_id=location_2.id), headers=manager_headers
        )
        assert resp.status_code == 403


class TestSaleIncomesAreProtected:

    def test_cannot_edit_sale_income(self, client, db_session, admin_headers, sale_income):
        resp = client.patch(
            f"/api/incomes/{sale_income.id}", json={"amount": "1.00"}, headers=admin_headers
        )

        assert resp.status_code == 409
        db_session.expire_all()
        assert db_session.get(Income, sale_income.id).amount_cents == 800

    def test_cannot_delete_sale_income(self, client, db_session, admin_headers, sale_income):
        resp = client.delete(f"/api/incomes/{sale_income.id}", headers=admin_headers)

        assert resp.status_code == 409
        assert db_session.query(Income).filter_by(id=sale_income.id).count() == 1

    def test_service_raises_invalid_state(self, db_session, admin, sale_income):
        with pytest.raises(InvalidState):
            ledger_service.delete_income(sale_income.id, admin)

    def test_cannot_turn_manual_income_into_sale_income(self, client, db_session, admin, admin_headers):
        income = ledger_service.record_income(
            admin, source="Other", description="Grant", amount=Decimal("50")
        )
        resp = client.patch(f"/api/incomes/{income.id}", json={"source": "Sale"}, headers=admin_headers)
        assert resp.status_code == 400


class TestEditIncome:

    def test_update(self, client, db_session, admin, manager_headers, location_1):
        income = ledger_service.record_income(
            admin, source="Service", description="Consulting", amount=Decimal("10.00"),
            location_id=location_1.id,
        )

        resp = client.patch(
            f"/api/incomes/{income.id}",
            json={"amount": "20.00", "source": "Investment"},
            headers=manager_headers,
        )

        assert resp.status_code == 200, resp.json
        assert resp.json["amount_cents"] == 2000
        assert resp.json["source"] == "Investment"
        assert resp.json["updated_at"] is not None

        entry = db_session.query(ActivityEvent).filter_by(action="income_updated").one()
        assert entry.changes["before"] == {"amount_cents": 1000, "source": "Service"}
        assert entry.changes["after"] == {"amount_cents": 2000, "source": "Investment"}

    def test_cannot_move_to_foreign_location(self, client, db_session, admin, manager_headers, location_1, location_2):
        income = ledger_service.record_income(
            admin, source="Other", description="Rebate", amount=Decimal("3"), location_id=location_1.id,
        )
        resp = client.patch(
            f"/api/incomes/{income.id}", json={"location_id": location_2.id}, headers=manager_headers
        )
        assert resp.status_code == 403

    @pytest.mark.parametrize("body", [{}, {"related_sale_id": 1}, {"amount": "0"}, {"description": ""}])
    def test_invalid_patch(self, client, db_session, admin, admin_headers, body):
        income = ledger_service.record_income(admin, source="Other", description="Misc", amount=Decimal("3"))
        resp = client.patch(f"/api/incomes/{income.id}", json=body, headers=admin_headers)
        assert resp.status_code == 400

    def test_delete(self, client, db_session, admin, admin_headers):
        income = ledger_service.record_income(admin, source="Other", description="Misc", amount=Decimal("3"))

        resp = client.delete(f"/api/incomes/{income.id}", headers=admin_headers)

        assert resp.status_code == 200
        assert resp.json["deleted"] is True
        assert client.get(f"/api/incomes/{income.id}", headers=admin_headers).status_code == 404

    def test_missing(self, client, db_session, admin_headers):
        assert client.patch("/api/incomes/999", json={"notes": "x"}, headers=admin_headers).status_code == 404
        assert client.delete("/api/incomes/999", headers=admin_headers).status_code == 404


class TestIncomeReads:

    def test_visibility(self, client, db_session, admin, manager, manager_headers, location_1, location_2, sale_income):
        foreign = ledger_service.record_income(
            admin, source="Service", description="Foreign", amount=Decimal("5"), location_id=location_2.id,
        )
        unlocated = ledger_service.record_income(
            admin, source="Investment", description="Head office", amount=Decimal("7"),
        )

        resp = client.get("/api/incomes", headers=manager_headers)

        assert resp.status_code == 200
        assert {i["id"] for i in resp.json["items"]} == {sale_income.id, unlocated.id}
        assert client.get(f"/api/incomes/{foreign.id}", headers=manager_headers).status_code == 403
        assert client.get(f"/api/incomes?location_id={location_2.id}", headers=manager_headers).status_code == 403
        with pytest.raises(Forbidden):
            ledger_service.get_income(foreign.id, manager)

    def test_filters(self, client, db_session, admin, admin_headers, sale_income):
        ledger_service.record_income(admin, source="Service", description="Job", amount=Decimal("5"))

        resp = client.get("/api/incomes?source=Sale", headers=admin_headers)
        assert [i["id"] for i in resp.json["items"]] == [sale_income.id]

        assert client.get("/api/incomes?source=Gift", headers=admin_headers).status_code == 400


class TestExpenses:

    def test_record(self, client, db_session, manager_headers, location_1):
        resp = client.post(
            "/api/expenses",
            json=expense_body(
                payment_method="Bank Transfer",
                supplier={"name": "Landlord Ltd", "contact": "555-0100"},
                receipt_url="https://files.example/receipt.pdf",
                location_id=location_1.id,
            ),
            headers=manager_headers,
        )

        assert resp.status_code == 201, resp.json
        assert resp.json["amount_cents"] == 120000
        assert resp.json["supplier"] == {"name": "Landlord Ltd", "contact": "555-0100"}
        assert resp.json["payment_method"] == "Bank Transfer"
        assert db_session.query(ActivityEvent).filter_by(action="expense_recorded").count() == 1

    @pytest.mark.parametrize("overrides", [
        {"category": "Snacks"},
        {"category": None},
        {"payment_method": "Barter"},
        {"amount": "0"},
        {"description": "  "},
        {"supplier": "Landlord"},
    ])
    def test_invalid_payloads(self, client, db_session, admin_headers, overrides):
        resp = client.post("/api/expenses", json=expense_body(**overrides), headers=admin_headers)
        assert resp.status_code == 400
        assert db_session.query(Expense).count() == 0

    def test_update_and_delete(self, client, db_session, admin, admin_headers):
        expense = ledger_service.record_expense(
            admin, category="Utilities", description="Power", amount=Decimal("80.00"),
        )

        resp = client.patch(
            f"/api/expenses/{expense.id}",
            json={"amount": "85.25", "supplier": {"name": "Grid Co"}},
            headers=admin_headers,
        )
        assert resp.status_code == 200, resp.json
        assert resp.json["amount_cents"] == 8525
        assert resp.json["supplier"]["name"] == "Grid Co"

        resp = client.delete(f"/api/expenses/{expense.id}", headers=admin_headers)
        assert resp.status_code == 200
        assert db_session.query(Expense).count() == 0

    def test_visibility_and_filters(self, client, db_session, admin, manager_headers, location_1, location_2):
        own = ledger_service.record_expense(
            admin, category="Supplies", description="Bags", amount=Decimal("12"), location_id=location_1.id,
        )
        foreign = ledger_service.record_expense(
            admin, category="Supplies", description="Tape", amount=Decimal("4"), location_id=location_2.id,
        )
        ledger_service.record_expense(admin, category="Software", description="Licence", amount=Decimal("30"))

        resp = client.get("/api/expenses?category=Supplies", headers=manager_headers)

        assert resp.status_code == 200
        assert [e["id"] for e in resp.json["items"]] == [own.id]
        assert client.get(f"/api/expenses/{foreign.id}", headers=manager_headers).status_code == 403
        assert client.get("/api/expenses", headers=manager_headers).json["total"] == 2

    def test_staff_cannot_view(self, client, db_session, staff_headers):
        assert client.get("/api/expenses", headers=staff_headers).status_code == 403

    def test_manager_cannot_delete_foreign_expense(self, db_session, admin, manager, location_2):
        expense = ledger_service.record_expense(
            admin, category="Rent", description="Store 2 rent", amount=Decimal("900"), location_id=location_2.id,
        )
        with pytest.raises(Forbidden):
            ledger_service.delete_expense(expense.id, manager)
        assert db_session.query(Expense).count() == 1
