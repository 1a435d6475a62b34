# dependencies.py
"""
Ownership checks for budget and expense routes.

Resolution runs in a fixed order for every request: the bearer identity,
the shape of the path id, existence of the row, then ownership. Request
bodies are validated only after all of these pass, so a foreign budget
answers 401 even when the payload is also invalid.
"""
import logging
from typing import NamedTuple

from fastapi import Depends, HTTPException, Path
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from auth import get_current_user
from database import get_db, Budget, Expense
from schemas import CurrentUser

logger = logging.getLogger("budget-api.access")


class OwnedExpense(NamedTuple):
    budget: Budget
    expense: Expense


def get_budget(
    budget_id: int = Path(gt=0),
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Budget:
    try:
        budget = db.get(Budget, budget_id)
    except SQLAlchemyError:
        logger.exception("Storage failure while loading budget %s", budget_id)
        raise HTTPException(
            status_code=500,
            detail=f"An error occurred while retrieving the budget with ID: {budget_id}",
        )
    if budget is None:
        raise HTTPException(
            status_code=404, detail=f"Budget not found with ID: {budget_id}"
        )
    return budget


def get_owned_budget(
    budget: Budget = Depends(get_budget),
    current_user: CurrentUser = Depends(get_current_user),
) -> Budget:
    if budget.user_id != current_user.id:
        logger.warning(
            "User %s denied access to budget %s", current_user.id, budget.id
        )
        raise HTTPException(status_code=401, detail="Unauthorized access")
    return budget


def get_owned_expense(
    expense_id: int = Path(gt=0),
    budget: Budget = Depends(get_owned_budget),
    db: Session = Depends(get_db),
) -> OwnedExpense:
    try:
        expense = db.get(Expense, expense_id)
    except SQLAlchemyError:
        logger.exception("Storage failure while loading expense %s", expense_id)
        raise HTTPException(
            status_code=500,
            detail=f"An error occurred while retrieving the expense with ID: {expense_id}",
        )
    # An expense filed under another budget is treated as absent here
    if expense is None or expense.budget_id != budget.id:
        raise HTTPException(
            status_code=404, detail=f"Expense not found with ID: {expense_id}"
        )
    return OwnedExpense(budget=budget, expense=expense)
