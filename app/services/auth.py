"""Customer and employee authentication."""
from dataclasses import dataclass

from fastapi.concurrency import run_in_threadpool
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.constants import CUSTOMER_EMAIL_DOMAIN, Role
from app.core.exceptions import Conflict, Unauthorized
from app.core.logging import app_logger, log_security_event
from app.core.security import DUMMY_PASSWORD_HASH, get_password_hash, verify_password
from app.models.customer import Customer
from app.models.employee import Employee
from app.schemas.auth import CustomerLogin, CustomerRegister, EmployeeCreate, EmployeeLogin
from app.services.sessions import Identity, SessionStore
from app.services.throttle import LoginLockout

INVALID_CREDENTIALS = "Invalid credentials"


@dataclass(frozen=True)
class AuthResult:
    identity: Identity
    session_token: str


@dataclass(frozen=True)
class ClientInfo:
    """What the client presented alongside the credentials."""

    session_token: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None


def customer_email(username: str) -> str:
    return f"{username.lower()}@{CUSTOMER_EMAIL_DOMAIN}"


class AuthService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.sessions = SessionStore(db)
        self.lockout = LoginLockout(db)

    async def register(
        self, data: CustomerRegister, client: ClientInfo = ClientInfo()
    ) -> AuthResult:
        """Create a customer and open a session bound to it."""
        email = customer_email(data.username)

        result = await self.db.execute(
            select(Customer.id).where(
                or_(
                    Customer.username == data.username,
                    Customer.email == email,
                    Customer.account_number == data.account_number,
                )
            )
        )
        if result.first() is not None:
            raise Conflict("User already exists")

        password_hash = await run_in_threadpool(get_password_hash, data.password)
        customer = Customer(
            username=data.username,
            full_name=data.full_name,
            id_number=data.id_number,
            account_number=data.account_number,
            email=email,
            password_hash=password_hash,
        )
        self.db.add(customer)
        try:
            await self.db.commit()
        except IntegrityError:
            # Lost a race against a concurrent registration
            await self.db.rollback()
            raise Conflict("User already exists")
        await self.db.refresh(customer)

        app_logger.info(f"Registered customer {customer.id}")
        identity = Identity.from_customer(customer)
        return AuthResult(identity, await self._open_session(identity, client))

    async def login(
        self, data: CustomerLogin, client: ClientInfo = ClientInfo()
    ) -> AuthResult:
        """Authenticate a customer by username, account number and password."""
        lockout_key = LoginLockout.key_for(Role.CUSTOMER.value, data.username)
        await self.lockout.ensure_not_locked(lockout_key)

        result = await self.db.execute(
            select(Customer).where(
                Customer.username == data.username,
                Customer.account_number == data.account_number,
            )
        )
        customer = result.scalar_one_or_none()

        if not await self._check_password(
            data.password, customer.password_hash if customer else None
        ):
            await self.lockout.record_failure(lockout_key)
            log_security_event("login_failed", key=lockout_key, ip=client.ip_address)
            raise Unauthorized(INVALID_CREDENTIALS)

        await self.lockout.reset(lockout_key)
        identity = Identity.from_customer(customer)
        return AuthResult(identity, await self._open_session(identity, client))

    async def employee_login(
        self, data: EmployeeLogin, client: ClientInfo = ClientInfo()
    ) -> AuthResult:
        """Authenticate an employee by employee number and password."""
        lockout_key = LoginLockout.key_for(Role.EMPLOYEE.value, data.employee_number)
        await self.lockout.ensure_not_locked(lockout_key)

        result = await self.db.execute(
            select(Employee).where(Employee.employee_number == data.employee_number)
        )
        employee = result.scalar_one_or_none()

        if not await self._check_password(
            data.password, employee.password_hash if employee else None
        ):
            await self.lockout.record_failure(lockout_key)
            log_security_event("login_failed", key=lockout_key, ip=client.ip_address)
            raise Unauthorized(INVALID_CREDENTIALS)

        await self.lockout.reset(lockout_key)
        identity = Identity.from_employee(employee)
        return AuthResult(identity, await self._open_session(identity, client))

    async def logout(self, session_token: str | None) -> None:
        if session_token:
            await self.sessions.destroy(session_token)

    async def create_employee(self, data: EmployeeCreate) -> Employee:
        """Provision an employee account."""
        result = await self.db.execute(
            select(Employee.id).where(Employee.employee_number == data.employee_number)
        )
        if result.first() is not None:
            raise Conflict("Employee already exists")

        employee = Employee(
            employee_number=data.employee_number,
            full_name=data.full_name,
            password_hash=await run_in_threadpool(get_password_hash, data.password),
        )
        self.db.add(employee)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise Conflict("Employee already exists")
        await self.db.refresh(employee)
        app_logger.info(f"Provisioned employee {employee.id}")
        return employee

    async def _check_password(self, password: str, password_hash: str | None) -> bool:
        # Unknown identities still pay for one verification
        ok = await run_in_threadpool(
            verify_password, password, password_hash or DUMMY_PASSWORD_HASH
        )
        return ok and password_hash is not None

    async def _open_session(self, identity: Identity, client: ClientInfo) -> str:
        return await self.sessions.open(
            identity,
            previous_token=client.session_token,
            ip_address=client.ip_address,
            user_agent=client.user_agent,
        )
