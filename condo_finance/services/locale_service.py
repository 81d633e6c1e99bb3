"""Centralized locale service for currency, dates, and number formatting.

Single source of truth for all locale-related presentation.
Uses babel library; the locale comes from settings (LOCALE env var, default pt_BR).

Example:
    >>> from condo_finance.services.locale_service import format_amount
    >>> format_amount(Decimal("1234.56"))
    'R$\xa01.234,56'
"""

import logging
from datetime import date
from decimal import Decimal

from babel import Locale, UnknownLocaleError
from babel.dates import format_date as babel_format_date
from babel.numbers import (
    format_currency as babel_format_currency,
)
from babel.numbers import (
    format_decimal as babel_format_decimal,
)
from babel.numbers import (
    get_territory_currencies,
)
from babel.numbers import (
    parse_decimal as babel_parse_decimal,
)

from condo_finance.config import get_settings

logger = logging.getLogger(__name__)

# Default locale if configured LOCALE is invalid
DEFAULT_LOCALE = "pt_BR"
DEFAULT_CURRENCY = "BRL"


def _get_locale() -> str:
    """Get configured locale with validation and fallback."""
    locale_str = get_settings().locale
    try:
        Locale.parse(locale_str)
        return locale_str
    except (UnknownLocaleError, ValueError) as e:
        logger.warning(f"Invalid LOCALE '{locale_str}': {e}. Falling back to '{DEFAULT_LOCALE}'")
        return DEFAULT_LOCALE


def _get_currency_from_locale(locale_str: str) -> str:
    """Derive currency code from locale territory (pt_BR -> BRL)."""
    try:
        locale = Locale.parse(locale_str)
        territory = locale.territory
        if territory:
            currencies = get_territory_currencies(territory)
            if currencies:
                return currencies[0]
    except (UnknownLocaleError, ValueError) as e:
        logger.warning(f"Could not derive currency from locale '{locale_str}': {e}")

    return DEFAULT_CURRENCY


# Module-level constants (computed once at import)
LOCALE = _get_locale()
CURRENCY = _get_currency_from_locale(LOCALE)


def get_currency_code() -> str:
    """ISO 4217 currency code derived from locale (e.g. 'BRL')."""
    return CURRENCY


def format_amount(amount: float | Decimal, include_symbol: bool = True) -> str:
    """Format monetary amount according to locale.

    Args:
        amount: Numeric amount to format
        include_symbol: Whether to include currency symbol (default True)

    Returns:
        Formatted currency string (e.g. 'R$ 1.234,56'), or '' for None
    """
    if amount is None:
        return ""
    if include_symbol:
        return babel_format_currency(amount, CURRENCY, locale=LOCALE)
    return babel_format_decimal(amount, format="#,##0.00", locale=LOCALE)


def format_day(value: date | None) -> str:
    """Format a calendar date in the locale's short style (e.g. '20/01/2024')."""
    if value is None:
        return ""
    return babel_format_date(value, format="short", locale=LOCALE)


def parse_decimal(value: str) -> Decimal:
    """Parse locale-formatted decimal string to Decimal.

    Example:
        >>> parse_decimal('1.234,56')
        Decimal('1234.56')
    """
    return babel_parse_decimal(value.strip(), locale=LOCALE)


__all__ = [
    "LOCALE",
    "CURRENCY",
    "get_currency_code",
    "format_amount",
    "format_day",
    "parse_decimal",
]
