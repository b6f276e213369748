from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.constants import TransactionStatus
from app.core.dependencies import require_customer, require_employee
from app.database import get_db
from app.models.transaction import Transaction
from app.schemas.transaction import (
    EmployeeTransactionListResponse,
    SubmitToSwiftRequest,
    SubmitToSwiftResponse,
    TransactionCreate,
    TransactionListResponse,
    TransactionResponse,
    TransactionVerify,
    VerifyResponse,
)
from app.services.sessions import Identity
from app.services.workflow import TransactionWorkflow

router = APIRouter(prefix="/transactions")


@router.post("", response_model=TransactionResponse, status_code=status.HTTP_201_CREATED)
async def create_transaction(
    transaction_data: TransactionCreate,
    customer: Identity = Depends(require_customer),
    db: AsyncSession = Depends(get_db),
):
    """
    Submit an international payment for the signed-in customer.

    - **amount**: positive, at most 2 decimal places
    - **currency**: one of the supported 3-letter codes
    - **provider**: SWIFT
    - **payeeName**, **payeeAccountNumber**, **swiftCode**: beneficiary details
    """
    return await TransactionWorkflow(db).submit(customer, transaction_data)


@router.get("/my", response_model=TransactionListResponse)
async def list_my_transactions(
    page: int = Query(1, ge=1, description="Page number (starts at 1)"),
    per_page: int = Query(10, ge=1, le=50, description="Items per page (max 50)"),
    customer: Identity = Depends(require_customer),
    db: AsyncSession = Depends(get_db),
):
    """
    List the customer's own transactions, newest first.

    - **page**: Page number (starts at 1)
    - **per_page**: Items per page (default 10, max 50)
    """
    offset = (page - 1) * per_page

    count_query = select(func.count()).select_from(Transaction).where(
        Transaction.customer_id == customer.id
    )
    total = (await db.execute(count_query)).scalar()

    query = (
        select(Transaction)
        .where(Transaction.customer_id == customer.id)
        .order_by(Transaction.created_at.desc(), Transaction.id.desc())
        .limit(per_page)
        .offset(offset)
    )
    transactions = (await db.execute(query)).scalars().all()

    total_pages = (total + per_page - 1) // per_page if total > 0 else 0

    return TransactionListResponse(
        items=transactions,
        total=total,
        page=page,
        per_page=per_page,
        total_pages=total_pages,
    )


@router.get("/pending", response_model=EmployeeTransactionListResponse)
async def list_pending_transactions(
    page: int = Query(1, ge=1, description="Page number (starts at 1)"),
    per_page: int = Query(10, ge=1, le=50, description="Items per page (max 50)"),
    status_filter: list[TransactionStatus] | None = Query(
        None, alias="status", description="Restrict to these statuses (repeatable)"
    ),
    employee: Identity = Depends(require_employee),
    db: AsyncSession = Depends(get_db),
):
    """
    List transactions across all customers for the employee portal.

    Every status is included unless ``status`` is given. Each item embeds
    the owning customer's summary.
    """
    offset = (page - 1) * per_page

    filters = []
    if status_filter:
        filters.append(Transaction.status.in_([s.value for s in status_filter]))

    count_query = select(func.count()).select_from(Transaction).where(*filters)
    total = (await db.execute(count_query)).scalar()

    query = (
        select(Transaction)
        .where(*filters)
        .options(selectinload(Transaction.customer))
        .order_by(Transaction.created_at.desc(), Transaction.id.desc())
        .limit(per_page)
        .offset(offset)
    )
    transactions = (await db.execute(query)).scalars().all()

    total_pages = (total + per_page - 1) // per_page if total > 0 else 0

    return EmployeeTransactionListResponse(
        items=transactions,
        total=total,
        page=page,
        per_page=per_page,
        total_pages=total_pages,
    )


@router.post("/verify", response_model=VerifyResponse)
async def verify_transaction(
    data: TransactionVerify,
    employee: Identity = Depends(require_employee),
    db: AsyncSession = Depends(get_db),
):
    """Mark a pending transaction as verified."""
    transaction = await TransactionWorkflow(db).verify(employee, data.transaction_id)
    return VerifyResponse(message="Transaction verified", transaction=transaction)


@router.post("/submit-to-swift", response_model=SubmitToSwiftResponse)
async def submit_to_swift(
    data: SubmitToSwiftRequest,
    employee: Identity = Depends(require_employee),
    db: AsyncSession = Depends(get_db),
):
    """
    Forward verified transactions to SWIFT.

    Ids that are unknown or not verified are skipped; ``submittedCount``
    reports how many actually moved.
    """
    submitted = await TransactionWorkflow(db).submit_to_swift(
        employee, data.transaction_ids
    )
    return SubmitToSwiftResponse(
        message="Transactions submitted to SWIFT",
        requested_count=len(data.transaction_ids),
        submitted_count=submitted,
    )
