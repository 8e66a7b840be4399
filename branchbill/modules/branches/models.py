from branchbill.database.database import Base
from sqlalchemy import Column, String, Numeric, UniqueConstraint
from branchbill.common.mixins import BaseMixin


class Branch(Base, BaseMixin):
    """Business unit issuing documents in its own currency and tax rate"""
    __tablename__ = "branches"

    name = Column(String(100), nullable=False)
    code = Column(String(10), nullable=False)  # e.g. "DXB", "BOM"
    address = Column(String(255), nullable=True)
    phone_number = Column(String(20), nullable=True)
    email = Column(String(100), nullable=True)
    time_zone = Column(String(50), nullable=False, default="UTC")

    # Default billing settings, copied into each new document
    currency_code = Column(String(3), nullable=False)
    currency_symbol = Column(String(10), nullable=False)
    currency_name = Column(String(50), nullable=False)
    tax_rate = Column(Numeric(7, 3), nullable=False, default=0)  # Percentage, e.g. 5 for 5%

    __table_args__ = (
        UniqueConstraint("code", name="uq_branch_code"),
    )
