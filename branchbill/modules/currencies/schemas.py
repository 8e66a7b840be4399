from pydantic import BaseModel, ConfigDict, Field
from decimal import Decimal
from typing import List


class CurrencyOut(BaseModel):
    code: str
    symbol: str
    name: str
    decimal_places: int


class CurrencyList(BaseModel):
    currencies: List[CurrencyOut]


class CurrencySnapshot(BaseModel):
    """Currency and tax rate copied from a branch into a new document"""
    model_config = ConfigDict(frozen=True)

    code: str = Field(..., min_length=3, max_length=3)
    symbol: str
    name: str
    tax_rate: Decimal = Field(..., ge=0)


class CalculatedItem(BaseModel):
    """Line item with its computed total"""
    description: str
    quantity: Decimal
    unit_price: Decimal
    line_total: Decimal


class DocumentTotals(BaseModel):
    """Result of a money calculation over a list of line items"""
    items: List[CalculatedItem]
    subtotal: Decimal
    tax_rate: Decimal
    tax: Decimal
    total: Decimal
    currency_code: str
    decimal_places: int
