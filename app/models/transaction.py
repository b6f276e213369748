from sqlalchemy import BigInteger, CheckConstraint, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from app.core.constants import TransactionStatus
from app.database import Base, utcnow


class Transaction(Base):
    __tablename__ = "transactions"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_transactions_positive_amount"),
    )

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False, index=True)
    amount = Column(BigInteger, nullable=False)  # Stored as cents
    currency = Column(String(3), nullable=False)  # 3-letter uppercase code
    provider = Column(String(16), nullable=False, default="SWIFT")
    payee_name = Column(String(100), nullable=False)
    payee_account_number = Column(String(34), nullable=False)
    swift_code = Column(String(11), nullable=False)
    # pending -> verified -> submitted -> completed, failed from any non-terminal state
    status = Column(
        String(16), nullable=False, default=TransactionStatus.PENDING.value, index=True
    )
    verified_by = Column(Integer, ForeignKey("employees.id"), nullable=True)
    verified_at = Column(DateTime(timezone=True), nullable=True)
    submitted_by = Column(Integer, ForeignKey("employees.id"), nullable=True)
    submitted_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    updated_at = Column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    # Relationship to Customer
    customer = relationship("Customer", back_populates="transactions")
