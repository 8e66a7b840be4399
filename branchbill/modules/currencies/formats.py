"""
Known currency formats: symbol, name, decimal precision and separators.

Codes that are not listed here fall back to two decimals and the US Dollar
separators when formatting.
"""
from typing import Dict, List


CURRENCY_FORMATS: Dict[str, Dict] = {
    "AED": {"code": "AED", "symbol": "د.إ", "name": "UAE Dirham", "decimal_places": 2, "decimal_separator": ".", "thousands_separator": ","},
    "INR": {"code": "INR", "symbol": "₹", "name": "Indian Rupee", "decimal_places": 2, "decimal_separator": ".", "thousands_separator": ","},
    "USD": {"code": "USD", "symbol": "$", "name": "US Dollar", "decimal_places": 2, "decimal_separator": ".", "thousands_separator": ","},
    "EUR": {"code": "EUR", "symbol": "€", "name": "Euro", "decimal_places": 2, "decimal_separator": ",", "thousands_separator": "."},
    "GBP": {"code": "GBP", "symbol": "£", "name": "British Pound", "decimal_places": 2, "decimal_separator": ".", "thousands_separator": ","},
    "SGD": {"code": "SGD", "symbol": "S$", "name": "Singapore Dollar", "decimal_places": 2, "decimal_separator": ".", "thousands_separator": ","},
    "AUD": {"code": "AUD", "symbol": "A$", "name": "Australian Dollar", "decimal_places": 2, "decimal_separator": ".", "thousands_separator": ","},
    "CAD": {"code": "CAD", "symbol": "C$", "name": "Canadian Dollar", "decimal_places": 2, "decimal_separator": ".", "thousands_separator": ","},
    "JPY": {"code": "JPY", "symbol": "¥", "name": "Japanese Yen", "decimal_places": 0, "decimal_separator": ".", "thousands_separator": ","},
    "CNY": {"code": "CNY", "symbol": "¥", "name": "Chinese Yuan", "decimal_places": 2, "decimal_separator": ".", "thousands_separator": ","},
    "SAR": {"code": "SAR", "symbol": "﷼", "name": "Saudi Riyal", "decimal_places": 2, "decimal_separator": ".", "thousands_separator": ","},
    "QAR": {"code": "QAR", "symbol": "ر.ق", "name": "Qatari Riyal", "decimal_places": 2, "decimal_separator": ".", "thousands_separator": ","},
    "KWD": {"code": "KWD", "symbol": "د.ك", "name": "Kuwaiti Dinar", "decimal_places": 3, "decimal_separator": ".", "thousands_separator": ","},
}

DEFAULT_DECIMAL_PLACES = 2


def get_currency_format(currency_code: str) -> Dict:
    """Format for a currency code, USD separators with the code kept for unknown currencies"""
    code = (currency_code or "").upper()
    if code in CURRENCY_FORMATS:
        return CURRENCY_FORMATS[code]
    return {**CURRENCY_FORMATS["USD"], "code": code, "symbol": code, "name": code}


def get_decimal_places(currency_code: str) -> int:
    fmt = CURRENCY_FORMATS.get((currency_code or "").upper())
    return fmt["decimal_places"] if fmt else DEFAULT_DECIMAL_PLACES


def get_available_currencies() -> List[Dict]:
    return [
        {
            "code": fmt["code"],
            "symbol": fmt["symbol"],
            "name": fmt["name"],
            "decimal_places": fmt["decimal_places"],
        }
        for fmt in CURRENCY_FORMATS.values()
    ]
