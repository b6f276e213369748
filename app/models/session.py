from sqlalchemy import Column, DateTime, ForeignKey, Integer, String

from app.database import Base, utcnow


class UserSession(Base):
    """Server-side session, looked up by the digest of the cookie token."""

    __tablename__ = "sessions"

    id = Column(String(64), primary_key=True)  # sha256 hex of the cookie token
    role = Column(String(16), nullable=False)  # customer | employee
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=True, index=True)
    employee_id = Column(Integer, ForeignKey("employees.id"), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(String(256), nullable=True)
