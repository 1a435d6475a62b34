import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from auth import get_current_user
from database import get_db, Budget, Expense
from dependencies import get_owned_budget, get_owned_expense, OwnedExpense
from schemas import (
    BudgetDetail,
    BudgetIn,
    BudgetOut,
    CurrentUser,
    ExpenseIn,
    ExpenseOut,
    Message,
)

logger = logging.getLogger("budget-api.budgets")

router = APIRouter()


def _save(db: Session, detail: str):
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Storage failure: %s", detail)
        raise HTTPException(status_code=500, detail=detail)


# Budgets


@router.get("", response_model=list[BudgetOut])
def get_budgets(
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        budgets = (
            db.query(Budget)
            .filter(Budget.user_id == current_user.id)
            .order_by(Budget.created_at.desc(), Budget.id.desc())
            .all()
        )
    except SQLAlchemyError:
        logger.exception("Storage failure while listing budgets for user %s", current_user.id)
        raise HTTPException(status_code=500, detail="Budgets can't be retrieved")
    return budgets


@router.post("", response_model=BudgetOut, status_code=status.HTTP_201_CREATED)
def create_budget(
    budget: BudgetIn,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    db_budget = Budget(name=budget.name, amount=budget.amount, user_id=current_user.id)
    db.add(db_budget)
    _save(db, "Budget can't be created")
    db.refresh(db_budget)
    return db_budget


@router.get("/{budget_id}", response_model=BudgetDetail)
def get_budget_by_id(budget: Budget = Depends(get_owned_budget)):
    return budget


@router.put("/{budget_id}", response_model=BudgetOut)
def update_budget(
    body: BudgetIn,
    budget: Budget = Depends(get_owned_budget),
    db: Session = Depends(get_db),
):
    budget.name = body.name
    budget.amount = body.amount
    _save(db, "Budget can't be updated")
    db.refresh(budget)
    return budget


@router.delete("/{budget_id}", response_model=Message)
def delete_budget(
    budget: Budget = Depends(get_owned_budget),
    db: Session = Depends(get_db),
):
    db.delete(budget)
    _save(db, "Budget can't be deleted")
    return Message(message="Budget deleted successfully")


# Expenses


@router.get("/{budget_id}/expenses", response_model=list[ExpenseOut])
def get_expenses(budget: Budget = Depends(get_owned_budget)):
    return budget.expenses


@router.post(
    "/{budget_id}/expenses",
    response_model=ExpenseOut,
    status_code=status.HTTP_201_CREATED,
)
def create_expense(
    expense: ExpenseIn,
    budget: Budget = Depends(get_owned_budget),
    db: Session = Depends(get_db),
):
    db_expense = Expense(name=expense.name, amount=expense.amount, budget_id=budget.id)
    db.add(db_expense)
    _save(db, "Expense can't be created")
    db.refresh(db_expense)
    return db_expense


@router.get("/{budget_id}/expenses/{expense_id}", response_model=ExpenseOut)
def get_expense(owned: OwnedExpense = Depends(get_owned_expense)):
    return owned.expense


@router.put("/{budget_id}/expenses/{expense_id}", response_model=ExpenseOut)
def update_expense(
    body: ExpenseIn,
    owned: OwnedExpense = Depends(get_owned_expense),
    db: Session = Depends(get_db),
):
    expense = owned.expense
    expense.name = body.name
    expense.amount = body.amount
    _save(db, "Expense can't be updated")
    db.refresh(expense)
    return expense


@router.delete("/{budget_id}/expenses/{expense_id}", response_model=Message)
def delete_expense(
    owned: OwnedExpense = Depends(get_owned_expense),
    db: Session = Depends(get_db),
):
    db.delete(owned.expense)
    _save(db, "Expense can't be deleted")
    return Message(message="Expense deleted successfully")
