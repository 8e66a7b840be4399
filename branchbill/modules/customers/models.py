from branchbill.database.database import Base
from sqlalchemy import Column, String, Uuid
from branchbill.common.mixins import BaseMixin


class Customer(Base, BaseMixin):
    __tablename__ = "customers"

    name = Column(String(200), nullable=False)
    email = Column(String(100), nullable=True, index=True)
    phone = Column(String(50), nullable=True)
    company = Column(String(200), nullable=True)
    # Branch the customer is usually served from, if any
    branch_id = Column(Uuid, nullable=True)
