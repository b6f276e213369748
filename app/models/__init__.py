from app.database import Base

# Import all models here so metadata.create_all sees them
from app.models.customer import Customer
from app.models.employee import Employee
from app.models.session import UserSession
from app.models.throttle import ThrottleEvent
from app.models.transaction import Transaction

__all__ = ["Base", "Customer", "Employee", "UserSession", "ThrottleEvent", "Transaction"]
