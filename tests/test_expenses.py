import pytest

from database import Expense

BUDGETS = "/api/budgets"


@pytest.fixture
def budget(client, user):
    response = client.post(BUDGETS, json={"name": "Groceries", "amount": 500}, headers=user["headers"])
    assert response.status_code == 201
    return response.json()


@pytest.fixture
def expense(client, user, budget):
    response = client.post(
        f"{BUDGETS}/{budget['id']}/expenses",
        json={"name": "Milk", "amount": 3.5},
        headers=user["headers"],
    )
    assert response.status_code == 201
    return response.json()


def _url(budget, expense_id=None):
    url = f"{BUDGETS}/{budget['id']}/expenses"
    return url if expense_id is None else f"{url}/{expense_id}"


class TestExpenseCrud:
    def test_create(self, expense, budget):
        assert expense["name"] == "Milk"
        assert expense["amount"] == 3.5
        assert expense["budget_id"] == budget["id"]

    def test_create_validation(self, client, user, budget):
        response = client.post(_url(budget), json={"name": "", "amount": 0}, headers=user["headers"])
        assert response.status_code == 400
        messages = {e["msg"] for e in response.json()["errors"]}
        assert messages == {
            "Name of expense is required",
            "Amount of expense must be greater than zero",
        }

    @pytest.mark.parametrize("amount", ["NaN", "Infinity"])
    def test_update_rejects_non_finite_amount(self, client, user, budget, expense, amount):
        response = client.put(
            _url(budget, expense["id"]),
            content=f'{{"name": "Milk", "amount": {amount}}}',
            headers={**user["headers"], "Content-Type": "application/json"},
        )
        assert response.status_code == 400
        assert response.json()["errors"][0]["msg"] == "Amount of expense must be greater than zero"

    def test_list(self, client, user, budget, expense):
        response = client.get(_url(budget), headers=user["headers"])
        assert response.status_code == 200
        assert [e["id"] for e in response.json()] == [expense["id"]]

    def test_get(self, client, user, budget, expense):
        response = client.get(_url(budget, expense["id"]), headers=user["headers"])
        assert response.status_code == 200
        assert response.json()["name"] == "Milk"

    def test_update(self, client, user, budget, expense):
        response = client.put(
            _url(budget, expense["id"]),
            json={"name": "Oat milk", "amount": 4},
            headers=user["headers"],
        )
        assert response.status_code == 200
        assert response.json()["name"] == "Oat milk"

    def test_delete(self, client, user, budget, expense, db_session):
        response = client.delete(_url(budget, expense["id"]), headers=user["headers"])
        assert response.status_code == 200
        assert response.json() == {"message": "Expense deleted successfully"}
        assert db_session.query(Expense).count() == 0


class TestExpenseAccess:
    def test_without_bearer(self, client, budget, expense):
        assert client.get(_url(budget, expense["id"])).status_code == 401

    def test_foreign_budget(self, client, other_user, budget, expense):
        response = client.get(_url(budget, expense["id"]), headers=other_user["headers"])
        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized access"}

    def test_foreign_budget_create(self, client, other_user, budget, db_session):
        response = client.post(
            _url(budget), json={"name": "Sneaky", "amount": 1}, headers=other_user["headers"]
        )
        assert response.status_code == 401
        assert db_session.query(Expense).count() == 0

    def test_foreign_budget_delete(self, client, other_user, budget, expense, db_session):
        response = client.delete(_url(budget, expense["id"]), headers=other_user["headers"])
        assert response.status_code == 401
        assert db_session.query(Expense).count() == 1

    @pytest.mark.parametrize("expense_id", ["abc", "0"])
    def test_invalid_expense_id(self, client, user, budget, expense_id):
        response = client.get(_url(budget, expense_id), headers=user["headers"])
        assert response.status_code == 400
        assert response.json()["errors"][0]["field"] == "expense_id"

    def test_missing_expense(self, client, user, budget):
        response = client.get(_url(budget, 999), headers=user["headers"])
        assert response.status_code == 404
        assert response.json() == {"error": "Expense not found with ID: 999"}

    def test_expense_from_another_budget(self, client, user, budget, expense):
        other = client.post(BUDGETS, json={"name": "Rent", "amount": 900}, headers=user["headers"]).json()
        response = client.get(_url(other, expense["id"]), headers=user["headers"])
        assert response.status_code == 404

    def test_foreign_expense_reached_through_own_budget(self, client, user, other_user, expense):
        own = client.post(BUDGETS, json={"name": "Mine", "amount": 10}, headers=other_user["headers"]).json()
        response = client.delete(_url(own, expense["id"]), headers=other_user["headers"])
        assert response.status_code == 404

    def test_foreign_budget_with_invalid_body(self, client, other_user, budget, expense):
        response = client.put(_url(budget, expense["id"]), json={}, headers=other_user["headers"])
        assert response.status_code == 401
