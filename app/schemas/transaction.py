import re
from datetime import datetime
from decimal import Decimal

from pydantic import Field, field_serializer, field_validator

from app.core.constants import (
    MAX_TRANSACTION_AMOUNT,
    PATTERNS,
    SUPPORTED_CURRENCIES,
    SUPPORTED_PROVIDERS,
    TransactionStatus,
)
from app.schemas.common import CamelModel


class TransactionCreate(CamelModel):
    """Schema for submitting an international payment."""

    amount: Decimal
    currency: str
    provider: str = "SWIFT"
    payee_name: str
    payee_account_number: str
    swift_code: str

    @field_validator("amount")
    def validate_amount(cls, v):
        """Validate amount is positive with max 2 decimal places."""
        if not v.is_finite():
            raise ValueError("Amount must be a number")
        if v <= 0:
            raise ValueError("Amount must be positive")
        if v > MAX_TRANSACTION_AMOUNT:
            raise ValueError("Amount exceeds the maximum allowed")
        if v.as_tuple().exponent < -2:
            raise ValueError("Amount cannot have more than 2 decimal places")
        return v

    @field_validator("currency")
    def validate_currency(cls, v):
        """Validate currency is supported 3-letter code."""
        v = v.strip().upper()  # Enforce uppercase

        if not re.match(r"^[A-Z]{3}$", v):
            raise ValueError("Currency must be a 3-letter code")

        if v not in SUPPORTED_CURRENCIES:
            raise ValueError("Currency code not supported")

        return v

    @field_validator("provider")
    def validate_provider(cls, v):
        v = v.strip().upper()
        if v not in SUPPORTED_PROVIDERS:
            raise ValueError("Provider not supported")
        return v

    @field_validator("payee_name")
    def validate_payee_name(cls, v):
        v = v.strip()
        if not re.match(PATTERNS["full_name"], v):
            raise ValueError("Payee name may only contain letters, spaces, ' and - (2-100)")
        return v

    @field_validator("payee_account_number")
    def validate_payee_account_number(cls, v):
        v = v.strip().upper()
        if not re.match(PATTERNS["payee_account_number"], v):
            raise ValueError("Payee account number must be 6-34 letters or digits")
        return v

    @field_validator("swift_code")
    def validate_swift_code(cls, v):
        v = v.strip().upper()
        if not re.match(PATTERNS["swift_code"], v):
            raise ValueError("SWIFT code must be 8 or 11 characters (e.g. DEUTDEFF or DEUTDEFF500)")
        return v


class TransactionVerify(CamelModel):
    transaction_id: int = Field(gt=0)


class SubmitToSwiftRequest(CamelModel):
    transaction_ids: list[int] = Field(min_length=1, max_length=100)

    @field_validator("transaction_ids")
    def deduplicate_ids(cls, v):
        if any(transaction_id <= 0 for transaction_id in v):
            raise ValueError("Transaction ids must be positive")
        return list(dict.fromkeys(v))


class TransactionResponse(CamelModel):
    """Schema for transaction response."""

    id: int
    amount: float  # Return as float (converted from cents)
    currency: str
    provider: str
    payee_name: str
    payee_account_number: str
    swift_code: str
    status: TransactionStatus
    verified_by: int | None = None
    verified_at: datetime | None = None
    submitted_by: int | None = None
    submitted_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime

    @field_serializer("amount")
    def serialize_amount(self, amount: float) -> float:
        """Convert amount from cents (integer) to float."""
        return amount / 100.0


class CustomerSummary(CamelModel):
    username: str
    full_name: str
    account_number: str


class EmployeeTransactionResponse(TransactionResponse):
    """Transaction as shown in the employee portal, with its owner."""

    customer: CustomerSummary


class TransactionListResponse(CamelModel):
    """Paginated list of a customer's transactions."""

    items: list[TransactionResponse]
    total: int
    page: int
    per_page: int
    total_pages: int


class EmployeeTransactionListResponse(CamelModel):
    """Paginated list of transactions for the employee portal."""

    items: list[EmployeeTransactionResponse]
    total: int
    page: int
    per_page: int
    total_pages: int


class VerifyResponse(CamelModel):
    message: str
    transaction: TransactionResponse


class SubmitToSwiftResponse(CamelModel):
    message: str
    requested_count: int
    submitted_count: int
