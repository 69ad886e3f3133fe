from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

CategoryType = Literal["expense", "income"]


# ---------- Requests ----------
class Credentials(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)


class LoginIn(BaseModel):
    # no format rules, a mismatch is just invalid credentials
    email: str
    password: str


class CategoryIn(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    type: CategoryType = "expense"


class EntryIn(BaseModel):
    amount: float
    description: str = Field(max_length=255)
    category_id: int


class BudgetIn(BaseModel):
    category_id: int
    amount: float


# ---------- Responses ----------
class AuthOut(BaseModel):
    id: int
    email: str
    token: str


class UserOut(BaseModel):
    id: int
    email: str

    model_config = ConfigDict(from_attributes=True)


class SuccessOut(BaseModel):
    success: bool = True


class CategoryOut(BaseModel):
    id: int
    name: str
    type: str
    user_id: int

    model_config = ConfigDict(from_attributes=True)


class EntryOut(BaseModel):
    """An income or expense row joined with its category name."""
    id: int
    amount: float
    description: str
    category_id: int
    user_id: int
    date: str
    category_name: str


class BudgetOut(BaseModel):
    id: int
    category_id: int
    amount: float
    user_id: int
    category_name: str


class BudgetStatusOut(BaseModel):
    id: int
    category_id: int
    category_name: str
    amount: float
    spent: float
    percent: Optional[int] = None
    progress: float
    over_budget: bool
    near_limit: bool


class SummaryOut(BaseModel):
    total_expenses: float
    expense_count: int
    average_expense: float
    total_income: float
    balance: float
