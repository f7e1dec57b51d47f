"""
Money and currency utilities using py-moneyed and Babel.

Provides currency metadata (minor-unit exponents), banker's rounding to the
currency precision, lossless conversion to integer minor units, and
locale-aware formatting.
"""

from collections.abc import Mapping
from decimal import ROUND_HALF_EVEN, Decimal, InvalidOperation
from typing import Any, Protocol

from babel import Locale
from babel.core import UnknownLocaleError
from babel.numbers import format_currency, get_currency_precision
from moneyed import Currency, Money, get_currency
from moneyed.classes import CurrencyDoesNotExist

# Default locale for formatting
DEFAULT_LOCALE = "en_US"


class CurrencyMetadata(Protocol):
    """Minor-unit metadata for a currency."""

    def exponent(self, currency_code: str) -> int: ...  # pragma: no cover - protocol

    def minor_unit_multiplier(self, currency_code: str) -> int: ...  # pragma: no cover


class MoneyHandler:
    """Central handler for money operations with proper error handling."""

    def __init__(
        self,
        default_currency: str = "USD",
        default_locale: str = DEFAULT_LOCALE,
        exponent_overrides: Mapping[str, int] | None = None,
    ) -> None:
        self.default_currency = self._validate_currency(default_currency)
        self.default_locale = self._validate_locale(default_locale)
        self.exponent_overrides = {
            code.upper(): exponent for code, exponent in (exponent_overrides or {}).items()
        }

    def _validate_currency(self, currency_code: str) -> Currency:
        """Validate and return Currency object."""
        try:
            return get_currency(currency_code.upper())
        except CurrencyDoesNotExist:
            raise ValueError(f"Invalid currency code: {currency_code}")

    def _validate_locale(self, locale_code: str) -> str:
        """Validate locale code."""
        try:
            Locale.parse(locale_code)
            return locale_code
        except (UnknownLocaleError, ValueError):
            return DEFAULT_LOCALE

    # ------------------------------------------------------------------
    # Currency metadata
    # ------------------------------------------------------------------

    def exponent(self, currency_code: str) -> int:
        """Number of minor-unit decimal places for a currency (2 for USD, 0 for JPY)."""
        code = self._validate_currency(currency_code).code
        if code in self.exponent_overrides:
            return self.exponent_overrides[code]
        return get_currency_precision(code)

    def minor_unit_multiplier(self, currency_code: str) -> int:
        """Minor units per major unit (100 for USD, 1 for JPY, 1000 for KWD)."""
        return 10 ** self.exponent(currency_code)

    # ------------------------------------------------------------------
    # Rounding and minor units
    # ------------------------------------------------------------------

    def round_amount(self, amount: Decimal, currency_code: str) -> Decimal:
        """Round a decimal amount to the currency precision with banker's rounding."""
        quantum = Decimal(1).scaleb(-self.exponent(currency_code))
        try:
            return amount.quantize(quantum, rounding=ROUND_HALF_EVEN)
        except InvalidOperation as exc:
            raise ValueError(f"Amount {amount} exceeds {currency_code} precision") from exc

    def amount_to_minor_units(self, amount: Decimal, currency_code: str) -> int:
        """
        Convert a major-unit amount to an exact integer of minor units.

        The amount is rounded to the currency exponent first, so the scaled
        value is always integral.
        """
        rounded = self.round_amount(amount, currency_code)
        minor = rounded * self.minor_unit_multiplier(currency_code)
        if minor != minor.to_integral_value():
            raise ValueError(f"Lossy minor unit conversion for {amount} {currency_code}")
        return int(minor)

    def money_from_minor_units(self, minor_units: int, currency: str) -> Money:
        """Create Money from minor units (e.g., cents)."""
        validated_currency = self._validate_currency(currency)
        amount = Decimal(minor_units).scaleb(-self.exponent(currency))
        return Money(amount=amount, currency=validated_currency)

    def format_money(self, money: Money, locale: str | None = None, **kwargs: Any) -> str:
        """Format Money object with locale-aware formatting."""
        locale = locale or self.default_locale
        validated_locale = self._validate_locale(locale)

        try:
            return format_currency(
                number=money.amount, currency=money.currency.code, locale=validated_locale, **kwargs
            )
        except (TypeError, ValueError):
            # Fallback to simple formatting if locale issues
            return f"{money.currency.code} {money.amount}"

    def format_minor_units(self, minor_units: int, currency: str, locale: str | None = None) -> str:
        """Format an integer minor-unit amount for display."""
        return self.format_money(self.money_from_minor_units(minor_units, currency), locale)


def get_money_handler() -> MoneyHandler:
    """Money handler configured from the billing configuration."""
    from usagebill.billing.config import get_billing_config

    currency_config = get_billing_config().currency
    return MoneyHandler(
        default_currency=currency_config.default_currency,
        exponent_overrides=currency_config.exponent_overrides,
    )


__all__ = [
    "CurrencyMetadata",
    "MoneyHandler",
    "get_money_handler",
]
