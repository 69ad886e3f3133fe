import io

import openpyxl

from models import Expense


def post_entry(client, headers, path, ctype, amount, description="x"):
    cat = client.get("/api/categories", params={"type": ctype}, headers=headers).json()[0]
    return client.post(
        path,
        json={"amount": amount, "description": description, "category_id": cat["id"]},
        headers=headers,
    ).json()


def test_summary_empty(client, headers):
    res = client.get("/api/summary", headers=headers)
    assert res.status_code == 200
    assert res.json() == {
        "total_expenses": 0,
        "expense_count": 0,
        "average_expense": 0,
        "total_income": 0,
        "balance": 0,
    }


def test_summary(client, headers):
    post_entry(client, headers, "/api/expenses", "expense", 30)
    post_entry(client, headers, "/api/expenses", "expense", 12.5)
    post_entry(client, headers, "/api/income", "income", 1000)

    body = client.get("/api/summary", headers=headers).json()
    assert body["total_expenses"] == 42.5
    assert body["expense_count"] == 2
    assert body["average_expense"] == 21.25
    assert body["total_income"] == 1000
    assert body["balance"] == 957.5


def test_export_expenses(client, headers):
    post_entry(client, headers, "/api/expenses", "expense", 42.5, "Groceries")

    res = client.get("/api/expenses/export", headers=headers)
    assert res.status_code == 200
    assert "expenses.xlsx" in res.headers["content-disposition"]

    sheet = openpyxl.load_workbook(io.BytesIO(res.content)).active
    rows = list(sheet.iter_rows(values_only=True))
    assert rows[0] == ("ID", "Date", "Category", "Description", "Amount")
    assert rows[1][2:] == ("Comida", "Groceries", 42.5)


def test_export_filters_by_period(client, app, headers):
    created = post_entry(client, headers, "/api/expenses", "expense", 10, "Old")
    post_entry(client, headers, "/api/expenses", "expense", 20, "New")

    with app.state.SessionLocal() as db:
        db.query(Expense).filter(Expense.id == created["id"]).update({"date": "2020-03-15T10:00:00.000Z"})
        db.commit()

    res = client.get("/api/expenses/export", params={"year": 2020, "month": 3}, headers=headers)
    assert "expenses_2020_03.xlsx" in res.headers["content-disposition"]
    sheet = openpyxl.load_workbook(io.BytesIO(res.content)).active
    descriptions = [row[3] for row in sheet.iter_rows(min_row=2, values_only=True)]
    assert descriptions == ["Old"]

    res = client.get("/api/expenses/export", params={"year": 2020, "month": 4}, headers=headers)
    sheet = openpyxl.load_workbook(io.BytesIO(res.content)).active
    assert sheet.max_row == 1


def test_export_month_requires_year(client, headers):
    res = client.get("/api/expenses/export", params={"month": 3}, headers=headers)
    assert res.status_code == 400
    assert res.json() == {"error": "month requires year"}
