import re

import pytest

from conftest import auth, register


def first_category(client, headers, ctype="expense"):
    return client.get("/api/categories", params={"type": ctype}, headers=headers).json()[0]


@pytest.mark.parametrize("path,ctype", [("/api/expenses", "expense"), ("/api/income", "income")])
def test_create_returns_joined_row(client, user, headers, path, ctype):
    cat = first_category(client, headers, ctype)
    res = client.post(
        path,
        json={"amount": 42.50, "description": "Groceries", "category_id": cat["id"]},
        headers=headers,
    )
    assert res.status_code == 200
    body = res.json()
    assert body["amount"] == 42.5
    assert body["description"] == "Groceries"
    assert body["category_id"] == cat["id"]
    assert body["category_name"] == cat["name"]
    assert body["user_id"] == user["id"]
    assert re.fullmatch(r"\d{4}-\d\d-\d\dT\d\d:\d\d:\d\d\.\d{3}Z", body["date"])


@pytest.mark.parametrize("path,ctype", [("/api/expenses", "expense"), ("/api/income", "income")])
def test_list_newest_first(client, headers, path, ctype):
    cat = first_category(client, headers, ctype)
    for i in range(3):
        client.post(path, json={"amount": i + 1, "description": f"e{i}", "category_id": cat["id"]}, headers=headers)

    rows = client.get(path, headers=headers).json()
    assert [r["description"] for r in rows] == ["e2", "e1", "e0"]
    assert [r["date"] for r in rows] == sorted((r["date"] for r in rows), reverse=True)
    assert all(r["category_name"] for r in rows)


def test_entry_validation(client, headers):
    cat = first_category(client, headers)
    res = client.post("/api/expenses", json={"amount": 10, "category_id": cat["id"]}, headers=headers)
    assert res.status_code == 400
    assert "description" in res.json()["error"]

    res = client.post(
        "/api/income",
        json={"amount": "lots", "description": "x", "category_id": cat["id"]},
        headers=headers,
    )
    assert res.status_code == 400


def test_lists_are_scoped_to_user(client):
    a = register(client, "user-a@test.com", "pw1")
    b = register(client, "user-b@test.com", "pw2")
    cat = first_category(client, auth(a))
    client.post("/api/expenses", json={"amount": 5, "description": "a", "category_id": cat["id"]}, headers=auth(a))

    assert len(client.get("/api/expenses", headers=auth(a)).json()) == 1
    assert client.get("/api/expenses", headers=auth(b)).json() == []


def test_update_expense(client, headers):
    cats = client.get("/api/categories", headers=headers).json()
    created = client.post(
        "/api/expenses",
        json={"amount": 10, "description": "Bus", "category_id": cats[0]["id"]},
        headers=headers,
    ).json()

    res = client.put(
        f"/api/expenses/{created['id']}",
        json={"amount": 12.5, "description": "Taxi", "category_id": cats[1]["id"]},
        headers=headers,
    )
    assert res.status_code == 200
    body = res.json()
    assert body["id"] == created["id"]
    assert body["amount"] == 12.5
    assert body["description"] == "Taxi"
    assert body["category_name"] == cats[1]["name"]
    assert body["date"] == created["date"]


def test_update_foreign_expense_is_noop(client):
    a = register(client, "user-a@test.com", "pw1")
    b = register(client, "user-b@test.com", "pw2")
    cat_a = first_category(client, auth(a))
    cat_b = first_category(client, auth(b))
    created = client.post(
        "/api/expenses",
        json={"amount": 10, "description": "Mine", "category_id": cat_a["id"]},
        headers=auth(a),
    ).json()

    res = client.put(
        f"/api/expenses/{created['id']}",
        json={"amount": 999, "description": "Hacked", "category_id": cat_b["id"]},
        headers=auth(b),
    )
    assert res.status_code == 200
    assert res.json()["amount"] == 10
    assert res.json()["description"] == "Mine"

    rows = client.get("/api/expenses", headers=auth(a)).json()
    assert rows[0]["amount"] == 10
    assert rows[0]["description"] == "Mine"


def test_update_missing_expense_returns_null(client, headers):
    cat = first_category(client, headers)
    res = client.put(
        "/api/expenses/12345",
        json={"amount": 1, "description": "x", "category_id": cat["id"]},
        headers=headers,
    )
    assert res.status_code == 200
    assert res.json() is None


@pytest.mark.parametrize("path,ctype", [("/api/expenses", "expense"), ("/api/income", "income")])
def test_delete(client, headers, path, ctype):
    cat = first_category(client, headers, ctype)
    created = client.post(path, json={"amount": 1, "description": "x", "category_id": cat["id"]}, headers=headers).json()

    res = client.delete(f"{path}/{created['id']}", headers=headers)
    assert res.json() == {"success": True}
    assert client.get(path, headers=headers).json() == []

    # already gone
    res = client.delete(f"{path}/{created['id']}", headers=headers)
    assert res.status_code == 200
    assert res.json() == {"success": True}


@pytest.mark.parametrize("path,ctype", [("/api/expenses", "expense"), ("/api/income", "income")])
def test_delete_foreign_entry_is_noop(client, path, ctype):
    a = register(client, "user-a@test.com", "pw1")
    b = register(client, "user-b@test.com", "pw2")
    cat = first_category(client, auth(a), ctype)
    created = client.post(path, json={"amount": 1, "description": "x", "category_id": cat["id"]}, headers=auth(a)).json()

    res = client.delete(f"{path}/{created['id']}", headers=auth(b))
    assert res.status_code == 200
    assert res.json() == {"success": True}
    assert len(client.get(path, headers=auth(a)).json()) == 1
