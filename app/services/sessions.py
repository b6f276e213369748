"""Server-side session lifecycle: open (with regeneration), load, destroy."""
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.constants import Role
from app.core.security import generate_session_token, session_token_digest
from app.database import utcnow
from app.models.customer import Customer
from app.models.employee import Employee
from app.models.session import UserSession


@dataclass(frozen=True)
class Identity:
    """The authenticated principal behind a session."""

    id: int
    role: Role
    full_name: str
    username: str | None = None
    account_number: str | None = None
    employee_number: str | None = None

    @classmethod
    def from_customer(cls, customer: Customer) -> "Identity":
        return cls(
            id=customer.id,
            role=Role.CUSTOMER,
            full_name=customer.full_name,
            username=customer.username,
            account_number=customer.account_number,
        )

    @classmethod
    def from_employee(cls, employee: Employee) -> "Identity":
        return cls(
            id=employee.id,
            role=Role.EMPLOYEE,
            full_name=employee.full_name,
            employee_number=employee.employee_number,
        )

    @property
    def label(self) -> str:
        return f"{self.role.value}:{self.id}"


class SessionStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def open(
        self,
        identity: Identity,
        previous_token: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> str:
        """
        Open a session for ``identity`` and return the new cookie token.

        Any session the client presented is destroyed first so an identifier
        fixed before authentication never becomes authenticated.
        """
        now = utcnow()
        if previous_token:
            await self.db.execute(
                delete(UserSession).where(
                    UserSession.id == session_token_digest(previous_token)
                )
            )
        await self.db.execute(delete(UserSession).where(UserSession.expires_at <= now))

        token = generate_session_token()
        self.db.add(
            UserSession(
                id=session_token_digest(token),
                role=identity.role.value,
                customer_id=identity.id if identity.role == Role.CUSTOMER else None,
                employee_id=identity.id if identity.role == Role.EMPLOYEE else None,
                created_at=now,
                expires_at=now + timedelta(minutes=settings.SESSION_TTL_MINUTES),
                ip_address=ip_address,
                user_agent=user_agent[:256] if user_agent else None,
            )
        )
        await self.db.commit()
        return token

    async def load(self, token: str) -> Identity | None:
        """Resolve a cookie token to its identity; expired sessions are absent."""
        result = await self.db.execute(
            select(UserSession).where(
                UserSession.id == session_token_digest(token),
                UserSession.expires_at > utcnow(),
            )
        )
        session = result.scalar_one_or_none()
        if session is None:
            return None

        if session.role == Role.CUSTOMER.value and session.customer_id is not None:
            customer = await self.db.get(Customer, session.customer_id)
            return Identity.from_customer(customer) if customer else None
        if session.role == Role.EMPLOYEE.value and session.employee_id is not None:
            employee = await self.db.get(Employee, session.employee_id)
            return Identity.from_employee(employee) if employee else None
        return None

    async def destroy(self, token: str) -> None:
        await self.db.execute(
            delete(UserSession).where(UserSession.id == session_token_digest(token))
        )
        await self.db.commit()
