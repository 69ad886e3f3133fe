import logging
from typing import Dict, List

from sqlalchemy.orm import Session

from models import Category, EXPENSE, INCOME

logger = logging.getLogger(__name__)

DEFAULT_CATEGORIES: Dict[str, List[str]] = {
    EXPENSE: ["Comida", "Transporte", "Vivienda", "Entretenimiento", "Salud", "Otros"],
    INCOME: ["Sueldo", "Venta", "Inversión", "Regalo", "Otros"],
}


def ensure_default_categories(db: Session, user_id: int) -> int:
    """
    Give the user the default categories of every type they have none of.

    Rows are added to the caller's transaction and flushed, not committed,
    so the caller decides when the whole batch becomes visible. Returns the
    number of categories added.
    """
    added = 0
    for ctype, names in DEFAULT_CATEGORIES.items():
        has_any = (
            db.query(Category.id)
            .filter(Category.user_id == user_id, Category.type == ctype)
            .first()
        )
        if has_any:
            continue
        db.add_all([Category(name=name, type=ctype, user_id=user_id) for name in names])
        added += len(names)

    if added:
        db.flush()
        logger.info("Seeded %d default categories for user %s", added, user_id)
    return added
