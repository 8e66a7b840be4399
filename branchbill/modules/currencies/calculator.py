"""
Money calculator for invoices and quotations.

Pure functions over Decimal: no database access, no I/O. Amounts are
rounded with ROUND_HALF_UP to the precision of the document currency, once
for the subtotal and once for the tax; the total is the exact sum of those
two rounded amounts.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable, Mapping, Union

from branchbill.common.exceptions import ValidationError
from branchbill.modules.currencies.formats import get_currency_format, get_decimal_places
from branchbill.modules.currencies.schemas import CalculatedItem, DocumentTotals

Number = Union[Decimal, int, float, str]

HUNDRED = Decimal("100")


def to_decimal(value: Number, field: str) -> Decimal:
    """Convert user input to Decimal going through str so floats keep their printed value"""
    if value is None:
        raise ValidationError(f"{field} is required")
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number")
    if not result.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    return result


def round_amount(amount: Decimal, decimal_places: int) -> Decimal:
    """Round to the given number of decimals using commercial rounding"""
    return amount.quantize(Decimal(1).scaleb(-decimal_places), rounding=ROUND_HALF_UP)


def _item_value(item: Any, key: str) -> Any:
    if isinstance(item, Mapping):
        return item.get(key)
    return getattr(item, key, None)


def calculate_line_item(item: Any, position: int) -> CalculatedItem:
    """
    Validate one line item and compute its line total.

    Args:
        item: mapping or object exposing description, quantity and unit_price
        position: 1-based position, used in error messages

    Returns:
        CalculatedItem with the unrounded line_total (quantity * unit_price)
    """
    description = _item_value(item, "description")
    if description is None or not str(description).strip():
        raise ValidationError(f"Item {position}: description is required")

    quantity = to_decimal(_item_value(item, "quantity"), f"Item {position} quantity")
    unit_price = to_decimal(_item_value(item, "unit_price"), f"Item {position} unit price")

    if quantity < 1:
        raise ValidationError(f"Item {position}: quantity must be at least 1")
    if unit_price < 0:
        raise ValidationError(f"Item {position}: unit price cannot be negative")

    return CalculatedItem(
        description=str(description).strip(),
        quantity=quantity,
        unit_price=unit_price,
        line_total=quantity * unit_price,
    )


def calculate_tax(subtotal: Decimal, tax_rate: Decimal, decimal_places: int) -> Decimal:
    """Tax derived from the rate percentage, e.g. tax_rate=5 for 5%"""
    return round_amount(subtotal * tax_rate / HUNDRED, decimal_places)


def compute_totals(items: Iterable[Any], tax_rate: Number, currency_code: str) -> DocumentTotals:
    """
    Compute line totals, subtotal, tax and total for a document.

    Raises:
        ValidationError: no items, an invalid item, or a negative tax rate
    """
    items = list(items or [])
    if not items:
        raise ValidationError("At least one line item is required")

    rate = to_decimal(tax_rate, "Tax rate")
    if rate < 0:
        raise ValidationError("Tax rate cannot be negative")

    decimal_places = get_decimal_places(currency_code)
    calculated = [calculate_line_item(item, index) for index, item in enumerate(items, start=1)]

    subtotal = round_amount(sum((c.line_total for c in calculated), Decimal("0")), decimal_places)
    tax = calculate_tax(subtotal, rate, decimal_places)

    return DocumentTotals(
        items=calculated,
        subtotal=subtotal,
        tax_rate=rate,
        tax=tax,
        total=subtotal + tax,
        currency_code=(currency_code or "").upper(),
        decimal_places=decimal_places,
    )


def format_amount(
    amount: Number,
    currency_code: str = "USD",
    show_symbol: bool = True,
    show_code: bool = False,
) -> str:
    """
    Format an amount for display, e.g. ``$1,234.50`` or ``€1.234,50 EUR``.

    The amount is rounded to the currency precision and grouped with the
    currency's thousands separator.
    """
    fmt = get_currency_format(currency_code)
    value = round_amount(to_decimal(amount, "Amount"), fmt["decimal_places"])

    integer_part, _, decimal_part = f"{abs(value):f}".partition(".")
    grouped = f"{int(integer_part):,}".replace(",", fmt["thousands_separator"])
    body = f"{grouped}{fmt['decimal_separator']}{decimal_part}" if decimal_part else grouped

    parts = ["-" if value < 0 else ""]
    if show_symbol:
        parts.append(fmt["symbol"])
    parts.append(body)
    if show_code:
        parts.append(f" {fmt['code']}")
    return "".join(parts)
