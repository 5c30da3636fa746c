"""Expense endpoints."""
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import http_error, resolve_window
from app.core.database import get_db, unit_of_work
from app.core.exceptions import BookingError
from app.models.expense import Expense, ExpenseCategory
from app.schemas.expense import (
    ExpenseCategoryCreate,
    ExpenseCategoryInDB,
    ExpenseCreate,
    ExpenseInDB,
    ExpenseUpdate,
)

router = APIRouter(prefix="/expenses", tags=["expenses"])


async def _get_expense_or_404(db: AsyncSession, expense_id: int) -> Expense:
    expense = await db.get(Expense, expense_id)
    if not expense:
        raise HTTPException(status_code=404, detail="Expense not found")
    return expense


async def _check_category(db: AsyncSession, category_id: Optional[int]) -> None:
    if category_id is not None and await db.get(ExpenseCategory, category_id) is None:
        raise HTTPException(status_code=422, detail=f"Expense category {category_id} does not exist")


@router.post("/categories", response_model=ExpenseCategoryInDB, status_code=201)
async def create_category(
    category: ExpenseCategoryCreate,
    db: AsyncSession = Depends(get_db),
):
    """Create an expense category."""
    result = await db.execute(
        select(ExpenseCategory).where(ExpenseCategory.name == category.name)
    )
    if result.scalar_one_or_none():
        raise HTTPException(
            status_code=409,
            detail=f"Expense category '{category.name}' already exists",
        )

    db_category = ExpenseCategory(**category.model_dump())
    try:
        async with unit_of_work(db, "Expense category create"):
            db.add(db_category)
    except BookingError as e:
        raise http_error(e)
    await db.refresh(db_category)
    return db_category


@router.get("/categories", response_model=List[ExpenseCategoryInDB])
async def list_categories(db: AsyncSession = Depends(get_db)):
    """List expense categories."""
    result = await db.execute(select(ExpenseCategory).order_by(ExpenseCategory.name))
    return result.scalars().all()


@router.post("", response_model=ExpenseInDB, status_code=201)
async def create_expense(
    expense: ExpenseCreate,
    db: AsyncSession = Depends(get_db),
):
    """
    Record an expense.

    Args:
        expense: Title, amount, date and optional category/notes
        db: Database session

    Returns:
        Created expense
    """
    await _check_category(db, expense.category_id)

    db_expense = Expense(**expense.model_dump())
    try:
        async with unit_of_work(db, "Expense create"):
            db.add(db_expense)
    except BookingError as e:
        raise http_error(e)
    await db.refresh(db_expense)
    return db_expense


@router.get("", response_model=List[ExpenseInDB])
async def list_expenses(
    from_date: date = Query(default=None, description="Start date (defaults to 7 days before to_date)"),
    to_date: date = Query(default=None, description="End date (defaults to today)"),
    category_id: Optional[int] = None,
    search: Optional[str] = Query(default=None, min_length=1, description="Match on title"),
    db: AsyncSession = Depends(get_db),
):
    """
    List expenses in a date window.

    Args:
        from_date: First day, inclusive
        to_date: Last day, inclusive
        category_id: Only this category
        search: Case-insensitive match on title
        db: Database session

    Returns:
        Expenses, newest first
    """
    window = resolve_window(from_date, to_date)
    query = select(Expense).where(
        Expense.date >= window.from_date, Expense.date <= window.to_date
    )
    if category_id is not None:
        query = query.where(Expense.category_id == category_id)
    if search:
        query = query.where(Expense.title.ilike(f"%{search}%"))
    result = await db.execute(query.order_by(Expense.date.desc(), Expense.id.desc()))
    return result.scalars().all()


@router.get("/{expense_id}", response_model=ExpenseInDB)
async def get_expense(
    expense_id: int,
    db: AsyncSession = Depends(get_db),
):
    """Get a specific expense by ID."""
    return await _get_expense_or_404(db, expense_id)


@router.patch("/{expense_id}", response_model=ExpenseInDB)
async def update_expense(
    expense_id: int,
    expense_update: ExpenseUpdate,
    db: AsyncSession = Depends(get_db),
):
    """Update an expense."""
    expense = await _get_expense_or_404(db, expense_id)

    update_data = expense_update.model_dump(exclude_unset=True)
    if "category_id" in update_data:
        await _check_category(db, update_data["category_id"])
    for field in ("title", "amount", "date"):
        if field in update_data and update_data[field] is None:
            raise HTTPException(status_code=422, detail=f"{field} cannot be cleared")

    try:
        async with unit_of_work(db, f"Expense {expense_id} update"):
            for field, value in update_data.items():
                setattr(expense, field, value)
    except BookingError as e:
        raise http_error(e)
    await db.refresh(expense)
    return expense


@router.delete("/{expense_id}", status_code=204)
async def delete_expense(
    expense_id: int,
    db: AsyncSession = Depends(get_db),
):
    """Delete an expense."""
    expense = await _get_expense_or_404(db, expense_id)
    try:
        async with unit_of_work(db, f"Expense {expense_id} delete"):
            await db.delete(expense)
    except BookingError as e:
        raise http_error(e)
