from pydantic import BaseModel, Field, field_validator
from decimal import Decimal
from typing import List, Optional
from uuid import UUID
from datetime import date


class RequestedItem(BaseModel):
    description: str = Field(..., min_length=1, max_length=500)
    quantity: Decimal = Field(Decimal("1"), ge=1, decimal_places=3)

    @field_validator('description')
    @classmethod
    def validate_description(cls, v):
        if not v.strip():
            raise ValueError('Description cannot be blank')
        return v.strip()


class QuotationRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1)
    additional_notes: Optional[str] = None
    preferred_due_date: Optional[date] = None
    items: List[RequestedItem] = Field(..., min_length=1)


class QuotationRequestResult(BaseModel):
    success: bool = True
    message: str
    quotation_id: UUID
    number: str
