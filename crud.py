"""
Scoped queries shared by the API routes.

Every function takes the caller's user id and only touches rows owned by
that user, except where noted.
"""

import math
from typing import Any, Dict, List, Optional, Type, Union

from sqlalchemy import func
from sqlalchemy.dialects.mysql import insert as mysql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from models import Budget, Category, Expense, Income

Entry = Union[Income, Expense]


# ---------- Income / expenses ----------
def _entry_query(db: Session, model: Type[Entry]):
    return (
        db.query(model, Category.name.label("category_name"))
        .join(Category, model.category_id == Category.id)
    )


def _entry_row(row) -> Dict[str, Any]:
    entry, category_name = row
    return {
        "id": entry.id,
        "amount": float(entry.amount),
        "category_id": entry.category_id,
        "description": entry.description,
        "user_id": entry.user_id,
        "date": entry.date,
        "category_name": category_name,
    }


def list_entries(db: Session, model: Type[Entry], user_id: int) -> List[Dict[str, Any]]:
    rows = (
        _entry_query(db, model)
        .filter(model.user_id == user_id)
        .order_by(model.date.desc(), model.id.desc())
        .all()
    )
    return [_entry_row(r) for r in rows]


def get_entry(db: Session, model: Type[Entry], entry_id: int) -> Optional[Dict[str, Any]]:
    """Look up by id alone. Used to echo a row back after a write."""
    row = _entry_query(db, model).filter(model.id == entry_id).first()
    return _entry_row(row) if row else None


def create_entry(db: Session, model: Type[Entry], user_id: int, amount: float,
                 description: str, category_id: int) -> Optional[Dict[str, Any]]:
    entry = model(
        amount=amount,
        description=description,
        category_id=category_id,
        user_id=user_id,
    )
    db.add(entry)
    db.commit()
    db.refresh(entry)
    return get_entry(db, model, entry.id)


def update_expense(db: Session, user_id: int, expense_id: int, amount: float,
                   description: str, category_id: int) -> Optional[Dict[str, Any]]:
    """
    Update the expense if the caller owns it, then return the row as stored.

    A foreign id is left untouched and its current state is returned.
    """
    (
        db.query(Expense)
        .filter(Expense.id == expense_id, Expense.user_id == user_id)
        .update(
            {"amount": amount, "description": description, "category_id": category_id},
            synchronize_session=False,
        )
    )
    db.commit()
    return get_entry(db, Expense, expense_id)


def delete_entry(db: Session, model: Type[Entry], user_id: int, entry_id: int) -> int:
    deleted = (
        db.query(model)
        .filter(model.id == entry_id, model.user_id == user_id)
        .delete(synchronize_session=False)
    )
    db.commit()
    return deleted


def expenses_for_period(db: Session, user_id: int, year: Optional[int] = None,
                        month: Optional[int] = None) -> List[Dict[str, Any]]:
    query = _entry_query(db, Expense).filter(Expense.user_id == user_id)
    # dates are stored as YYYY-MM-DDTHH:MM:SS.fffZ
    if year is not None and month is not None:
        query = query.filter(Expense.date.like(f"{year:04d}-{month:02d}-%"))
    elif year is not None:
        query = query.filter(Expense.date.like(f"{year:04d}-%"))
    rows = query.order_by(Expense.date.desc(), Expense.id.desc()).all()
    return [_entry_row(r) for r in rows]


# ---------- Categories ----------
def list_categories(db: Session, user_id: int, ctype: str) -> List[Category]:
    return (
        db.query(Category)
        .filter(Category.user_id == user_id, Category.type == ctype)
        .order_by(Category.id)
        .all()
    )


def create_category(db: Session, user_id: int, name: str, ctype: str) -> Category:
    category = Category(name=name, type=ctype, user_id=user_id)
    db.add(category)
    db.commit()
    db.refresh(category)
    return category


# ---------- Budgets ----------
def _budget_row(row) -> Dict[str, Any]:
    budget, category_name = row
    return {
        "id": budget.id,
        "category_id": budget.category_id,
        "amount": float(budget.amount),
        "user_id": budget.user_id,
        "category_name": category_name,
    }


def _budget_query(db: Session, user_id: int):
    return (
        db.query(Budget, Category.name.label("category_name"))
        .join(Category, Budget.category_id == Category.id)
        .filter(Budget.user_id == user_id)
    )


def list_budgets(db: Session, user_id: int) -> List[Dict[str, Any]]:
    rows = _budget_query(db, user_id).order_by(Budget.id).all()
    return [_budget_row(r) for r in rows]


def upsert_budget(db: Session, user_id: int, category_id: int, amount: float) -> Optional[Dict[str, Any]]:
    """
    Insert the budget or overwrite the amount of the row holding `category_id`.

    The conflict key is `category_id` alone, so the existing row keeps its
    owner. The result is read back scoped to the caller and is None when
    that row belongs to someone else.
    """
    values = {"category_id": category_id, "amount": amount, "user_id": user_id}
    dialect = db.get_bind().dialect.name
    if dialect == "sqlite":
        stmt = sqlite_insert(Budget).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["category_id"],
            set_={"amount": stmt.excluded.amount},
        )
    elif dialect == "mysql":
        stmt = mysql_insert(Budget).values(**values)
        stmt = stmt.on_duplicate_key_update(amount=stmt.inserted.amount)
    else:
        raise RuntimeError(f"Budget upsert is not supported on {dialect}")

    db.execute(stmt)
    db.commit()

    row = _budget_query(db, user_id).filter(Budget.category_id == category_id).first()
    return _budget_row(row) if row else None


def budget_status(db: Session, user_id: int) -> List[Dict[str, Any]]:
    """Spending against each budget, with the overspend / near-limit flags."""
    spent_rows = (
        db.query(Expense.category_id, func.sum(Expense.amount))
        .filter(Expense.user_id == user_id)
        .group_by(Expense.category_id)
        .all()
    )
    spent_by_category = {cid: float(total or 0) for cid, total in spent_rows}

    result = []
    for budget in list_budgets(db, user_id):
        limit = budget["amount"]
        spent = spent_by_category.get(budget["category_id"], 0.0)

        if limit:
            ratio = spent / limit * 100
            # halves round up
            percent = math.floor(ratio + 0.5)
            capped = max(min(ratio, 100.0), 0.0)
        else:
            percent = None
            capped = 100.0 if spent > 0 else 0.0

        over_budget = spent > limit
        result.append({
            "id": budget["id"],
            "category_id": budget["category_id"],
            "category_name": budget["category_name"],
            "amount": limit,
            "spent": round(spent, 2),
            "percent": percent,
            "progress": round(capped, 1),
            "over_budget": over_budget,
            "near_limit": (not over_budget) and capped > 80,
        })
    return result


# ---------- Summary ----------
def summary(db: Session, user_id: int) -> Dict[str, Any]:
    total_expenses, expense_count = (
        db.query(func.coalesce(func.sum(Expense.amount), 0.0), func.count(Expense.id))
        .filter(Expense.user_id == user_id)
        .one()
    )
    total_income = (
        db.query(func.coalesce(func.sum(Income.amount), 0.0))
        .filter(Income.user_id == user_id)
        .scalar()
    )

    total_expenses = float(total_expenses)
    total_income = float(total_income)
    average = total_expenses / expense_count if expense_count else 0.0
    return {
        "total_expenses": round(total_expenses, 2),
        "expense_count": int(expense_count),
        "average_expense": round(average, 2),
        "total_income": round(total_income, 2),
        "balance": round(total_income - total_expenses, 2),
    }
