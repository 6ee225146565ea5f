import uuid
from decimal import Decimal

from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine

from app.core.database import get_async_session
from app import main as main_module
from app.main import app

API = "/api/v1"


def income_body(amount="1000", **fields):
    body = {"description": "Salary", "amount": amount, "category_id": None}
    body.update(fields)
    return body


def expense_body(amount="40", transaction_type="Needs", **fields):
    body = {
        "description": "Groceries",
        "amount": amount,
        "category_id": None,
        "transaction_type": transaction_type,
        "recipient": {"name": "Grocer", "kind": "merchant"},
    }
    body.update(fields)
    return body


async def create_income(client, amount="1000"):
    response = await client.post(f"{API}/transactions/income", json=income_body(amount))
    assert response.status_code == 201, response.text
    return response.json()


class TestTransactionRoutes:
    async def test_create_income(self, client):
        data = await create_income(client, "999")

        assert data["income"]["transaction_type"] == "Income"
        assert data["income"]["recipient"]["name"] == "Salary"
        amounts = [Decimal(d["amount"]) for d in data["distributions"]]
        assert amounts == [Decimal("499.50"), Decimal("299.70"), Decimal("199.80")]
        assert all(d["is_distribution"] and not d["is_editable"] for d in data["distributions"])
        assert all(d["source"] == "Distribution" for d in data["distributions"])
        assert all(d["recipient"]["name"] == "Income Distribution" for d in data["distributions"])
        assert len({d["category_id"] for d in data["distributions"]} | {data["income"]["category_id"]}) == 4

    async def test_create_income_bad_amount(self, client):
        response = await client.post(f"{API}/transactions/income", json=income_body("-5"))
        assert response.status_code == 422
        body = response.json()
        assert body["error"] == "ValidationError"
        assert body["field"] == "amount"

    async def test_category_id_key_required(self, client):
        body = income_body()
        del body["category_id"]
        response = await client.post(f"{API}/transactions/income", json=body)
        assert response.status_code == 422

    async def test_create_expense(self, client):
        response = await client.post(f"{API}/transactions/expense", json=expense_body())
        assert response.status_code == 201
        data = response.json()
        assert data["is_distribution"] is False
        assert data["parent_transaction_id"] is None
        assert data["recipient"]["name"] == "Grocer"

    async def test_create_expense_without_recipient(self, client):
        response = await client.post(f"{API}/transactions/expense", json=expense_body(recipient=None))
        assert response.status_code == 422
        assert response.json()["field"] == "recipient.name"

    async def test_edit_derived_forbidden(self, client):
        data = await create_income(client)
        derived_id = data["distributions"][0]["id"]

        response = await client.patch(f"{API}/transactions/{derived_id}", json={"notes": "mine"})
        assert response.status_code == 403
        assert response.json()["error"] == "NotEditableError"

    async def test_edit_derived_forbidden_with_identity_fields(self, client):
        data = await create_income(client)
        derived_id = data["distributions"][1]["id"]

        response = await client.patch(f"{API}/transactions/{derived_id}", json={"is_editable": True})
        assert response.status_code == 403
        assert response.json()["error"] == "NotEditableError"

    async def test_edit_derived_forbidden_with_bad_amount(self, client):
        data = await create_income(client)
        derived_id = data["distributions"][0]["id"]

        response = await client.patch(f"{API}/transactions/{derived_id}", json={"amount": "1.005"})
        assert response.status_code == 403
        assert response.json()["error"] == "NotEditableError"

        response = await client.get(f"{API}/transactions/{derived_id}")
        assert Decimal(response.json()["amount"]) == Decimal("500")

    async def test_edit_income_with_bad_amount(self, client):
        data = await create_income(client)

        response = await client.patch(f"{API}/transactions/{data['income']['id']}", json={"amount": "1.005"})
        assert response.status_code == 422
        assert response.json()["detail"][0]["loc"] == ["body", "amount"]

    async def test_edit_unknown_transaction(self, client):
        response = await client.patch(f"{API}/transactions/{uuid.uuid4()}", json={"is_editable": True})
        assert response.status_code == 404

    async def test_delete_derived_forbidden(self, client):
        data = await create_income(client)
        derived_id = data["distributions"][2]["id"]

        response = await client.delete(f"{API}/transactions/{derived_id}")
        assert response.status_code == 403
        assert response.json()["error"] == "NotDeletableError"

    async def test_edit_income_returns_group(self, client):
        data = await create_income(client, "1000")
        income_id = data["income"]["id"]

        response = await client.patch(f"{API}/transactions/{income_id}", json={"amount": "2000"})
        assert response.status_code == 200
        updated = response.json()
        assert Decimal(updated["income"]["amount"]) == Decimal("2000")
        assert [Decimal(d["amount"]) for d in updated["distributions"]] == [
            Decimal("1000"), Decimal("600"), Decimal("400"),
        ]
        assert [d["id"] for d in updated["distributions"]] == [d["id"] for d in data["distributions"]]

    async def test_edit_standalone_returns_transaction(self, client):
        created = (await client.post(f"{API}/transactions/expense", json=expense_body())).json()

        response = await client.patch(f"{API}/transactions/{created['id']}", json={"tag": "weekly"})
        assert response.status_code == 200
        assert response.json()["tag"] == "weekly"

    async def test_patch_rejects_identity_fields(self, client):
        data = await create_income(client)
        response = await client.patch(
            f"{API}/transactions/{data['income']['id']}", json={"is_editable": False}
        )
        assert response.status_code == 422

    async def test_delete_income_cascades(self, client):
        data = await create_income(client)
        income_id = data["income"]["id"]

        response = await client.delete(f"{API}/transactions/{income_id}")
        assert response.status_code == 204

        for tx_id in [income_id] + [d["id"] for d in data["distributions"]]:
            response = await client.get(f"{API}/transactions/{tx_id}")
            assert response.status_code == 404

    async def test_get_distribution(self, client):
        data = await create_income(client)
        response = await client.get(f"{API}/transactions/{data['income']['id']}/distribution")
        assert response.status_code == 200
        assert len(response.json()["distributions"]) == 3

    async def test_unknown_transaction(self, client):
        response = await client.get(f"{API}/transactions/{uuid.uuid4()}")
        assert response.status_code == 404
        assert response.json()["error"] == "NotFoundError"

    async def test_list_and_filter(self, client):
        await create_income(client)
        await client.post(f"{API}/transactions/expense", json=expense_body(transaction_type="Wants"))

        response = await client.get(f"{API}/transactions")
        assert response.status_code == 200
        assert len(response.json()) == 5

        response = await client.get(
            f"{API}/transactions", params={"include_distributions": "false", "transaction_type": "Wants"}
        )
        assert [t["description"] for t in response.json()] == ["Groceries"]

    async def test_recipient_suggestions(self, client):
        await client.post(f"{API}/transactions/expense", json=expense_body())
        await client.post(f"{API}/transactions/expense", json=expense_body())

        response = await client.get(f"{API}/transactions/recipients")
        assert response.status_code == 200
        assert response.json()[0] == {"name": "Grocer", "kind": "merchant", "details": "", "frequency": 2}

    async def test_recipient_suggestions_skip_allocations(self, client):
        await create_income(client)
        await client.post(f"{API}/transactions/expense", json=expense_body())

        response = await client.get(f"{API}/transactions/recipients")
        names = {r["name"]: r["frequency"] for r in response.json()}
        assert names == {"Salary": 1, "Grocer": 1}


class TestBudgetPreferences:
    async def test_read_defaults(self, client):
        response = await client.get(f"{API}/users/me/budget-preferences")
        assert response.status_code == 200
        prefs = {k: Decimal(v) for k, v in response.json().items()}
        assert prefs == {"needs": Decimal("50"), "wants": Decimal("30"), "savings": Decimal("20")}

    async def test_update_applies_to_new_income(self, client):
        response = await client.put(
            f"{API}/users/me/budget-preferences", json={"needs": "60", "wants": "20", "savings": "20"}
        )
        assert response.status_code == 200

        data = await create_income(client, "100")
        assert [Decimal(d["amount"]) for d in data["distributions"]] == [
            Decimal("60"), Decimal("20"), Decimal("20"),
        ]

    async def test_update_must_sum_to_100(self, client):
        response = await client.put(
            f"{API}/users/me/budget-preferences", json={"needs": "50", "wants": "30", "savings": "10"}
        )
        assert response.status_code == 422
        assert response.json()["error"] == "AllocationConfigError"

        response = await client.get(f"{API}/users/me/budget-preferences")
        assert Decimal(response.json()["savings"]) == Decimal("20")


class TestProfile:
    async def test_read_profile(self, client):
        response = await client.get(f"{API}/users/me")
        assert response.status_code == 200
        assert response.json()["email"] == "asha@example.com"

    async def test_update_currency(self, client):
        response = await client.patch(f"{API}/users/me", json={"preferred_currency": "usd"})
        assert response.status_code == 200
        assert response.json()["preferred_currency"] == "USD"

        data = await create_income(client, "10")
        assert data["income"]["currency"] == "USD"


async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


async def test_health_reports_unreachable_store(client, monkeypatch):
    unreachable = create_async_engine("sqlite+aiosqlite:////nonexistent-dir/ledger.db")
    monkeypatch.setattr(main_module, "engine", unreachable)
    try:
        response = await client.get("/health")
    finally:
        await unreachable.dispose()
    assert response.status_code == 503
    assert response.json()["detail"].startswith("Service unhealthy")


class TestBearerAuth:
    async def test_token_resolves_user(self, session, owner_id, issue_token):
        async def override_session():
            yield session

        app.dependency_overrides[get_async_session] = override_session
        try:
            async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
                token = issue_token(owner_id)
                response = await ac.get(f"{API}/users/me", headers={"Authorization": f"Bearer {token}"})
                assert response.status_code == 200
                assert response.json()["id"] == str(owner_id)

                response = await ac.get(f"{API}/transactions")
                assert response.status_code == 401

                response = await ac.get(f"{API}/transactions", headers={"Authorization": "Bearer nonsense"})
                assert response.status_code == 401
        finally:
            app.dependency_overrides.clear()
