"""
Payment workflow: pending -> verified -> submitted -> completed, with failed
reachable from any non-terminal state.

Every transition is one conditional UPDATE guarded on the expected current
status, so concurrent callers cannot apply the same transition twice.
"""
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.constants import TERMINAL_STATUSES, Role, TransactionStatus
from app.core.exceptions import Forbidden, InvalidState, NotFound
from app.core.logging import app_logger
from app.database import utcnow
from app.models.transaction import Transaction
from app.schemas.transaction import TransactionCreate
from app.services.sessions import Identity

NON_TERMINAL_STATUSES = [s.value for s in TransactionStatus if s not in TERMINAL_STATUSES]


class TransactionWorkflow:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def submit(self, customer: Identity, data: TransactionCreate) -> Transaction:
        """Create a payment owned by ``customer`` in the pending state."""
        self._require_role(customer, Role.CUSTOMER)

        transaction = Transaction(
            customer_id=customer.id,
            amount=int(data.amount * 100),  # Stored as cents
            currency=data.currency,
            provider=data.provider,
            payee_name=data.payee_name,
            payee_account_number=data.payee_account_number,
            swift_code=data.swift_code,
            status=TransactionStatus.PENDING.value,
        )
        self.db.add(transaction)
        await self.db.commit()
        await self.db.refresh(transaction)

        app_logger.info(f"Transaction {transaction.id} submitted by {customer.label}")
        return transaction

    async def verify(self, employee: Identity, transaction_id: int) -> Transaction:
        """Move a pending transaction to verified."""
        self._require_role(employee, Role.EMPLOYEE)
        now = utcnow()
        updated = await self._transition(
            [transaction_id],
            from_statuses=[TransactionStatus.PENDING.value],
            to_status=TransactionStatus.VERIFIED,
            verified_by=employee.id,
            verified_at=now,
        )
        if updated == 0:
            await self._raise_for_missed_transition(transaction_id)

        app_logger.info(f"Transaction {transaction_id} verified by {employee.label}")
        return await self._get(transaction_id)

    async def submit_to_swift(self, employee: Identity, transaction_ids: list[int]) -> int:
        """
        Forward verified transactions to SWIFT.

        Ids that are unknown or not verified are skipped. Returns how many
        transactions actually moved to submitted.
        """
        self._require_role(employee, Role.EMPLOYEE)
        unique_ids = list(dict.fromkeys(transaction_ids))
        if not unique_ids:
            return 0

        submitted = await self._transition(
            unique_ids,
            from_statuses=[TransactionStatus.VERIFIED.value],
            to_status=TransactionStatus.SUBMITTED,
            submitted_by=employee.id,
            submitted_at=utcnow(),
        )
        app_logger.info(
            f"{submitted} of {len(unique_ids)} transactions submitted to SWIFT by {employee.label}"
        )
        return submitted

    async def complete(self, transaction_id: int) -> Transaction:
        """Record SWIFT settlement of a submitted transaction."""
        updated = await self._transition(
            [transaction_id],
            from_statuses=[TransactionStatus.SUBMITTED.value],
            to_status=TransactionStatus.COMPLETED,
            completed_at=utcnow(),
        )
        if updated == 0:
            await self._raise_for_missed_transition(transaction_id)
        app_logger.info(f"Transaction {transaction_id} completed")
        return await self._get(transaction_id)

    async def fail(self, transaction_id: int) -> Transaction:
        """Mark a transaction that has not reached a terminal state as failed."""
        updated = await self._transition(
            [transaction_id],
            from_statuses=NON_TERMINAL_STATUSES,
            to_status=TransactionStatus.FAILED,
        )
        if updated == 0:
            await self._raise_for_missed_transition(transaction_id)
        app_logger.warning(f"Transaction {transaction_id} marked failed")
        return await self._get(transaction_id)

    async def _transition(
        self,
        transaction_ids: list[int],
        from_statuses: list[str],
        to_status: TransactionStatus,
        **values,
    ) -> int:
        stmt = (
            update(Transaction)
            .where(
                Transaction.id.in_(transaction_ids),
                Transaction.status.in_(from_statuses),
            )
            .values(status=to_status.value, updated_at=utcnow(), **values)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        await self.db.commit()
        return result.rowcount

    async def _raise_for_missed_transition(self, transaction_id: int) -> None:
        current = await self.db.execute(
            select(Transaction.status).where(Transaction.id == transaction_id)
        )
        status = current.scalar_one_or_none()
        if status is None:
            raise NotFound("Transaction not found")
        raise InvalidState(f"Transaction is {status}")

    async def _get(self, transaction_id: int) -> Transaction:
        result = await self.db.execute(
            select(Transaction)
            .where(Transaction.id == transaction_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()

    @staticmethod
    def _require_role(identity: Identity, role: Role) -> None:
        if identity.role != role:
            raise Forbidden()
