from branchbill.database.database import Base
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Numeric, Enum, Date, Text, Uuid, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from datetime import date
from uuid import uuid4
from branchbill.common.mixins import TimestampMixin
from branchbill.modules.documents.enums import DocumentEvent, DocumentType, InvoiceStatus, QuotationStatus
from branchbill.modules.documents.lifecycle import get_lifecycle


class Document(Base, TimestampMixin):
    """Invoice or quotation issued by a branch to a customer"""
    __tablename__ = "documents"

    id = Column(Uuid, primary_key=True, default=uuid4)
    document_type = Column(Enum(DocumentType), nullable=False, index=True)
    number = Column(String(30), nullable=False)

    # References, immutable after creation
    customer_id = Column(Uuid, ForeignKey("customers.id"), nullable=False, index=True)
    branch_id = Column(Uuid, ForeignKey("branches.id"), nullable=False, index=True)
    created_by = Column(Uuid, nullable=True)

    # Status value of InvoiceStatus or QuotationStatus depending on document_type
    status = Column(String(20), nullable=False, index=True)

    # Dates
    issue_date = Column(Date, nullable=False, default=date.today)
    due_date = Column(Date, nullable=True)      # invoices
    valid_until = Column(Date, nullable=True)   # quotations

    # Currency snapshot taken from the branch at creation
    currency_code = Column(String(3), nullable=False)
    currency_symbol = Column(String(10), nullable=False)
    currency_name = Column(String(50), nullable=False)
    tax_rate = Column(Numeric(7, 3), nullable=False, default=0)

    # Totals (calculated)
    subtotal = Column(Numeric(18, 3), nullable=False, default=0)
    tax = Column(Numeric(18, 3), nullable=False, default=0)
    total = Column(Numeric(18, 3), nullable=False, default=0)

    # Content
    notes = Column(Text, nullable=True)
    terms = Column(Text, nullable=True)

    # Conversion links
    converted_to_document_id = Column(Uuid, ForeignKey("documents.id"), nullable=True)
    converted_from_document_id = Column(Uuid, ForeignKey("documents.id"), nullable=True)

    # Payment details recorded with record-payment
    payment_method = Column(String(50), nullable=True)
    payment_transaction_id = Column(String(100), nullable=True)
    payment_date = Column(Date, nullable=True)
    payment_amount = Column(Numeric(18, 3), nullable=True)

    items = relationship(
        "DocumentItem",
        back_populates="document",
        cascade="all, delete-orphan",
        order_by="DocumentItem.position",
        passive_deletes=True
    )

    __table_args__ = (
        UniqueConstraint("document_type", "number", name="uq_document_type_number"),
    )

    @property
    def currency(self) -> dict:
        return {"code": self.currency_code, "symbol": self.currency_symbol, "name": self.currency_name}

    @property
    def status_enum(self):
        return get_lifecycle(self.document_type).parse_status(self.status)

    @property
    def allowed_events(self) -> list:
        return [event.value for event in get_lifecycle(self.document_type).allowed_events(self.status_enum)]

    @property
    def payment(self):
        if self.payment_date is None and self.payment_method is None:
            return None
        return {
            "method": self.payment_method,
            "transaction_id": self.payment_transaction_id,
            "date_paid": self.payment_date,
            "amount": self.payment_amount,
        }


class DocumentItem(Base):
    __tablename__ = "document_items"

    id = Column(Uuid, primary_key=True, default=uuid4)
    document_id = Column(Uuid, ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False)

    description = Column(String(500), nullable=False)
    quantity = Column(Numeric(12, 3), nullable=False)
    unit_price = Column(Numeric(18, 3), nullable=False)
    line_total = Column(Numeric(24, 6), nullable=False)  # quantity * unit_price, unrounded

    document = relationship("Document", back_populates="items")


class DocumentSequence(Base):
    """Counter row per document type, incremented atomically on allocation"""
    __tablename__ = "document_sequences"

    id = Column(Uuid, primary_key=True, default=uuid4)
    document_type = Column(Enum(DocumentType), nullable=False)
    current_number = Column(Integer, nullable=False, default=0)
    prefix = Column(String(10), nullable=False)

    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("document_type", name="uq_sequence_document_type"),
    )
