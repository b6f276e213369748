import enum
from decimal import Decimal

# Currencies customers may send payments in
SUPPORTED_CURRENCIES = {"USD", "EUR", "GBP", "ZAR", "JPY", "CNY", "AUD"}

SUPPORTED_PROVIDERS = {"SWIFT"}

MAX_TRANSACTION_AMOUNT = Decimal("1000000000.00")

# Whitelist patterns for identity and payment fields
PATTERNS = {
    "full_name": r"^[a-zA-Z\s'-]{2,100}$",
    "id_number": r"^[A-Z0-9]{6,20}$",
    "account_number": r"^\d{8,20}$",
    "username": r"^[a-zA-Z0-9_-]{3,30}$",
    "employee_number": r"^[A-Z0-9]{4,20}$",
    "swift_code": r"^[A-Z]{6}[A-Z0-9]{2}([A-Z0-9]{3})?$",
    "payee_account_number": r"^[A-Z0-9]{6,34}$",
}

PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_LENGTH = 128

CUSTOMER_EMAIL_DOMAIN = "securbank.internal"


class Role(str, enum.Enum):
    CUSTOMER = "customer"
    EMPLOYEE = "employee"


class TransactionStatus(str, enum.Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    SUBMITTED = "submitted"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES = {TransactionStatus.COMPLETED, TransactionStatus.FAILED}
