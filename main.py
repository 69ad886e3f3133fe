import io
import logging
from contextlib import asynccontextmanager
from typing import List, Optional

import openpyxl
from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

import crud
from config import Settings, configure_logging
from database import get_db, init_db, make_engine, make_session_factory
from models import Expense, Income, User
from schemas import (
    AuthOut,
    BudgetIn,
    BudgetOut,
    BudgetStatusOut,
    CategoryIn,
    CategoryOut,
    CategoryType,
    Credentials,
    LoginIn,
    EntryIn,
    EntryOut,
    SuccessOut,
    SummaryOut,
    UserOut,
)
from security import CredentialService, get_credentials, get_current_user_id, unauthorized
from seeding import ensure_default_categories

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


# ---------- Auth ----------
@router.post("/register", response_model=AuthOut)
def register(
    payload: Credentials,
    db: Session = Depends(get_db),
    credentials: CredentialService = Depends(get_credentials),
):
    existing = db.query(User).filter(User.email == payload.email).first()
    if existing:
        raise HTTPException(status_code=400, detail="Email already exists")

    user = User(email=payload.email, password=credentials.hash_password(payload.password))
    try:
        db.add(user)
        db.flush()
        ensure_default_categories(db, user.id)
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=400, detail="Email already exists")
    except Exception:
        db.rollback()
        raise

    logger.info("Registered user %s", user.id)
    return {"id": user.id, "email": user.email, "token": credentials.create_access_token(user.id)}


@router.post("/login", response_model=AuthOut)
def login(
    payload: LoginIn,
    db: Session = Depends(get_db),
    credentials: CredentialService = Depends(get_credentials),
):
    user = db.query(User).filter(User.email == payload.email).first()
    if (not user) or (not credentials.verify_password(payload.password, user.password)):
        logger.warning("Failed login for %s", payload.email)
        raise HTTPException(status_code=401, detail="Invalid credentials")

    # accounts created before default categories existed
    if ensure_default_categories(db, user.id):
        db.commit()

    return {"id": user.id, "email": user.email, "token": credentials.create_access_token(user.id)}


@router.post("/logout", response_model=SuccessOut)
def logout(user_id: int = Depends(get_current_user_id)):
    # tokens are stateless, the client just drops it
    return {"success": True}


@router.get("/me", response_model=UserOut)
def me(db: Session = Depends(get_db), user_id: int = Depends(get_current_user_id)):
    user = db.get(User, user_id)
    if not user:
        raise unauthorized()
    return user


# ---------- Categories ----------
@router.get("/categories", response_model=List[CategoryOut])
def list_categories(
    type: CategoryType = Query("expense"),
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    return crud.list_categories(db, user_id, type)


@router.post("/categories", response_model=CategoryOut)
def create_category(
    payload: CategoryIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    return crud.create_category(db, user_id, payload.name, payload.type)


# ---------- Income ----------
@router.get("/income", response_model=List[EntryOut])
def list_income(db: Session = Depends(get_db), user_id: int = Depends(get_current_user_id)):
    return crud.list_entries(db, Income, user_id)


@router.post("/income", response_model=Optional[EntryOut])
def add_income(payload: EntryIn, db: Session = Depends(get_db), user_id: int = Depends(get_current_user_id)):
    return crud.create_entry(db, Income, user_id, payload.amount, payload.description, payload.category_id)


@router.delete("/income/{income_id}", response_model=SuccessOut)
def delete_income(income_id: int, db: Session = Depends(get_db), user_id: int = Depends(get_current_user_id)):
    crud.delete_entry(db, Income, user_id, income_id)
    return {"success": True}


# ---------- Budgets ----------
@router.get("/budgets", response_model=List[BudgetOut])
def list_budgets(db: Session = Depends(get_db), user_id: int = Depends(get_current_user_id)):
    return crud.list_budgets(db, user_id)


@router.post("/budgets", response_model=Optional[BudgetOut])
def set_budget(payload: BudgetIn, db: Session = Depends(get_db), user_id: int = Depends(get_current_user_id)):
    return crud.upsert_budget(db, user_id, payload.category_id, payload.amount)


@router.get("/budgets/status", response_model=List[BudgetStatusOut])
def budgets_status(db: Session = Depends(get_db), user_id: int = Depends(get_current_user_id)):
    return crud.budget_status(db, user_id)


# ---------- Expenses ----------
@router.get("/expenses", response_model=List[EntryOut])
def list_expenses(db: Session = Depends(get_db), user_id: int = Depends(get_current_user_id)):
    return crud.list_entries(db, Expense, user_id)


@router.post("/expenses", response_model=Optional[EntryOut])
def add_expense(payload: EntryIn, db: Session = Depends(get_db), user_id: int = Depends(get_current_user_id)):
    return crud.create_entry(db, Expense, user_id, payload.amount, payload.description, payload.category_id)


@router.get("/expenses/export")
def export_expenses(
    year: Optional[int] = Query(None, ge=1970, le=9999),
    month: Optional[int] = Query(None, ge=1, le=12),
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    if month is not None and year is None:
        raise HTTPException(status_code=400, detail="month requires year")

    expenses = crud.expenses_for_period(db, user_id, year, month)

    workbook = openpyxl.Workbook()
    sheet = workbook.active
    sheet.title = "Expenses"

    sheet.append(["ID", "Date", "Category", "Description", "Amount"])
    for exp in expenses:
        sheet.append([
            exp["id"],
            exp["date"],
            exp["category_name"],
            exp["description"],
            exp["amount"],
        ])

    stream = io.BytesIO()
    workbook.save(stream)
    stream.seek(0)

    filename = "expenses"
    if year:
        filename += f"_{year}"
    if month:
        filename += f"_{month:02d}"

    return StreamingResponse(
        stream,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={
            "Content-Disposition": f"attachment; filename={filename}.xlsx"
        },
    )


@router.put("/expenses/{expense_id}", response_model=Optional[EntryOut])
def update_expense(
    expense_id: int,
    payload: EntryIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    return crud.update_expense(db, user_id, expense_id, payload.amount, payload.description, payload.category_id)


@router.delete("/expenses/{expense_id}", response_model=SuccessOut)
def delete_expense(expense_id: int, db: Session = Depends(get_db), user_id: int = Depends(get_current_user_id)):
    crud.delete_entry(db, Expense, user_id, expense_id)
    return {"success": True}


# ---------- Summary ----------
@router.get("/summary", response_model=SummaryOut)
def get_summary(db: Session = Depends(get_db), user_id: int = Depends(get_current_user_id)):
    return crud.summary(db, user_id)


# ---------- Errors ----------
async def http_error(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


async def validation_error(request: Request, exc: RequestValidationError):
    messages = []
    for err in exc.errors():
        field = ".".join(str(part) for part in err["loc"][1:])
        messages.append(f"{field}: {err['msg']}" if field else err["msg"])
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": "; ".join(messages)})


async def server_error(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Server error"})


# ---------- App ----------
def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the API around its own database engine and credential service.

    Run with: uvicorn main:create_app --factory
    """
    if settings is None:
        settings = Settings.from_env()
    configure_logging(settings)

    engine = make_engine(settings.database_url)
    init_db(engine)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        engine.dispose()

    app = FastAPI(title="Expense Tracker API", lifespan=lifespan)
    app.state.settings = settings
    app.state.engine = engine
    app.state.SessionLocal = make_session_factory(engine)
    app.state.credentials = CredentialService(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(StarletteHTTPException, http_error)
    app.add_exception_handler(RequestValidationError, validation_error)
    # handled inside the middleware stack so CORS headers are still applied
    app.add_exception_handler(SQLAlchemyError, server_error)
    app.add_exception_handler(Exception, server_error)

    app.include_router(router)
    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(create_app(), host="0.0.0.0", port=3000)
