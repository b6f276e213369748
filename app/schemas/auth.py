import re

from pydantic import field_validator

from app.core.constants import (
    PASSWORD_MAX_LENGTH,
    PASSWORD_MIN_LENGTH,
    PATTERNS,
    Role,
)
from app.schemas.common import CamelModel


def validate_password_strength(v: str) -> str:
    """Apply the password policy shared by customers and employees."""
    if len(v) < PASSWORD_MIN_LENGTH:
        raise ValueError(f"Password must be at least {PASSWORD_MIN_LENGTH} characters")
    if len(v) > PASSWORD_MAX_LENGTH:
        raise ValueError(f"Password must be at most {PASSWORD_MAX_LENGTH} characters")
    if not re.search(r"[A-Z]", v):
        raise ValueError("Password must contain uppercase letter")
    if not re.search(r"[a-z]", v):
        raise ValueError("Password must contain lowercase letter")
    if not re.search(r"\d", v):
        raise ValueError("Password must contain digit")
    if not re.search(r"[^A-Za-z0-9]", v):
        raise ValueError("Password must contain special character")
    return v


def _match(pattern_name: str, value: str, message: str) -> str:
    if not re.match(PATTERNS[pattern_name], value):
        raise ValueError(message)
    return value


class CustomerRegister(CamelModel):
    username: str
    full_name: str
    id_number: str
    account_number: str
    password: str

    @field_validator("username")
    def validate_username(cls, v):
        return _match("username", v.strip(), "Username may only contain letters, digits, _ and - (3-30)")

    @field_validator("full_name")
    def validate_full_name(cls, v):
        return _match("full_name", v.strip(), "Full name may only contain letters, spaces, ' and - (2-100)")

    @field_validator("id_number")
    def validate_id_number(cls, v):
        return _match("id_number", v.strip().upper(), "ID number must be 6-20 letters or digits")

    @field_validator("account_number")
    def validate_account_number(cls, v):
        return _match("account_number", v.strip(), "Account number must be 8-20 digits")

    @field_validator("password")
    def validate_password(cls, v):
        return validate_password_strength(v)


class CustomerLogin(CamelModel):
    username: str
    account_number: str
    password: str

    @field_validator("username")
    def validate_username(cls, v):
        return _match("username", v.strip(), "Invalid username format")

    @field_validator("account_number")
    def validate_account_number(cls, v):
        return _match("account_number", v.strip(), "Invalid account number format")

    @field_validator("password")
    def validate_password(cls, v):
        if not v:
            raise ValueError("Password is required")
        return v


class EmployeeLogin(CamelModel):
    employee_number: str
    password: str

    @field_validator("employee_number")
    def validate_employee_number(cls, v):
        return _match("employee_number", v.strip().upper(), "Invalid employee number format")

    @field_validator("password")
    def validate_password(cls, v):
        if not v:
            raise ValueError("Password is required")
        return v


class EmployeeCreate(CamelModel):
    employee_number: str
    full_name: str
    password: str

    @field_validator("employee_number")
    def validate_employee_number(cls, v):
        return _match("employee_number", v.strip().upper(), "Employee number must be 4-20 letters or digits")

    @field_validator("full_name")
    def validate_full_name(cls, v):
        return _match("full_name", v.strip(), "Full name may only contain letters, spaces, ' and - (2-100)")

    @field_validator("password")
    def validate_password(cls, v):
        return validate_password_strength(v)


class IdentityResponse(CamelModel):
    id: int
    role: Role
    full_name: str
    username: str | None = None
    account_number: str | None = None
    employee_number: str | None = None


class AuthResponse(CamelModel):
    message: str
    user: IdentityResponse


class MeResponse(CamelModel):
    user: IdentityResponse
