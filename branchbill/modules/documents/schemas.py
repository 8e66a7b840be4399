from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from decimal import Decimal
from typing import Optional, List, Dict
from uuid import UUID
from datetime import date, datetime
from enum import Enum

from branchbill.modules.currencies.calculator import round_amount
from branchbill.modules.currencies.formats import get_decimal_places


class DocumentTypeSchema(str, Enum):
    INVOICE = "invoice"
    QUOTATION = "quotation"


# Line item schemas
class DocumentItemCreate(BaseModel):
    description: str = Field(..., min_length=1, max_length=500)
    quantity: Decimal = Field(..., ge=1, decimal_places=3, description="Quantity, at least 1")
    unit_price: Decimal = Field(..., ge=0, decimal_places=3, description="Unit price before tax")

    @field_validator('description')
    @classmethod
    def validate_description(cls, v):
        if not v.strip():
            raise ValueError('Description cannot be blank')
        return v.strip()


class DocumentItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    position: int
    description: str
    quantity: Decimal
    unit_price: Decimal
    line_total: Decimal


class DocumentItemsReplace(BaseModel):
    items: List[DocumentItemCreate] = Field(..., min_length=1)


# Creation schemas
class DocumentCreateBase(BaseModel):
    customer_id: UUID
    branch_id: UUID
    issue_date: date = Field(default_factory=date.today)
    notes: Optional[str] = None
    items: List[DocumentItemCreate] = Field(..., min_length=1, description="At least one line item")


class InvoiceCreate(DocumentCreateBase):
    due_date: Optional[date] = None

    @model_validator(mode='after')
    def validate_due_date(self):
        if self.due_date and self.issue_date and self.due_date < self.issue_date:
            raise ValueError('Due date cannot be before the issue date')
        return self


class QuotationCreate(DocumentCreateBase):
    valid_until: Optional[date] = None
    terms: Optional[str] = None

    @model_validator(mode='after')
    def validate_valid_until(self):
        if self.valid_until and self.issue_date and self.valid_until < self.issue_date:
            raise ValueError('Valid-until date cannot be before the issue date')
        return self


class DocumentUpdate(BaseModel):
    """Header fields editable while the document is draft"""
    issue_date: Optional[date] = None
    due_date: Optional[date] = None
    valid_until: Optional[date] = None
    notes: Optional[str] = None
    terms: Optional[str] = None


# Events
class PaymentDetailsIn(BaseModel):
    method: Optional[str] = Field(None, max_length=50)
    transaction_id: Optional[str] = Field(None, max_length=100)
    date_paid: Optional[date] = None
    amount: Optional[Decimal] = Field(None, gt=0)


class PaymentDetailsOut(BaseModel):
    method: Optional[str] = None
    transaction_id: Optional[str] = None
    date_paid: Optional[date] = None
    amount: Optional[Decimal] = None


class DocumentEventRequest(BaseModel):
    payment: Optional[PaymentDetailsIn] = None
    as_of: Optional[date] = Field(None, description="Evaluation date for elapsed-date events, defaults to today")


class ConvertQuotationRequest(BaseModel):
    issue_date: Optional[date] = None
    due_date: Optional[date] = None
    notes: Optional[str] = None

    @model_validator(mode='after')
    def validate_due_date(self):
        if self.due_date and self.issue_date and self.due_date < self.issue_date:
            raise ValueError('Due date cannot be before the issue date')
        return self


# Output schemas
class DocumentCurrency(BaseModel):
    code: str
    symbol: str
    name: str


class DocumentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    document_type: DocumentTypeSchema
    number: str
    customer_id: UUID
    branch_id: UUID
    status: str
    issue_date: date
    due_date: Optional[date] = None
    valid_until: Optional[date] = None
    currency: DocumentCurrency
    tax_rate: Decimal
    subtotal: Decimal
    tax: Decimal
    total: Decimal
    notes: Optional[str] = None
    terms: Optional[str] = None
    converted_to_document_id: Optional[UUID] = None
    converted_from_document_id: Optional[UUID] = None
    payment: Optional[PaymentDetailsOut] = None
    items: List[DocumentItemOut] = []
    allowed_events: List[str] = []
    created_at: datetime
    updated_at: datetime

    @field_validator('document_type', mode='before')
    @classmethod
    def unwrap_document_type(cls, v):
        return getattr(v, 'value', v)

    @model_validator(mode='after')
    def round_money(self):
        places = get_decimal_places(self.currency.code)
        self.subtotal = round_amount(self.subtotal, places)
        self.tax = round_amount(self.tax, places)
        self.total = round_amount(self.total, places)
        return self


class DocumentList(BaseModel):
    documents: List[DocumentOut]
    total: int
    limit: int
    offset: int
    counts_by_status: Dict[str, int] = Field(default_factory=dict)


class DocumentFilters(BaseModel):
    status: Optional[str] = None
    customer_id: Optional[UUID] = None
    branch_id: Optional[UUID] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    search: Optional[str] = Field(None, description="Search in number or notes")


class ConversionResult(BaseModel):
    quotation: DocumentOut
    invoice: DocumentOut


class NextDocumentNumber(BaseModel):
    next_number: str
    prefix: str
    current_sequence: int


class ExpireElapsedResult(BaseModel):
    as_of: date
    overdue_invoices: List[str]
    expired_quotations: List[str]
