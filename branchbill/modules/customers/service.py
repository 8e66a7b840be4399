from sqlalchemy.orm import Session
from uuid import UUID

from branchbill.common.exceptions import ValidationError
from branchbill.modules.customers.models import Customer


class CustomerService:
    def __init__(self, db: Session):
        self.db = db

    def customer_exists(self, customer_id: UUID) -> bool:
        return self.db.query(Customer.id).filter(
            Customer.id == customer_id,
            Customer.is_active == True
        ).first() is not None

    def require_customer(self, customer_id: UUID) -> None:
        if not self.customer_exists(customer_id):
            raise ValidationError("Customer not found", {"customer_id": str(customer_id)})
