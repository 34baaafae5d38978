"""
Currency display helpers.
"""
from typing import Optional, Union

from babel.numbers import format_currency as babel_format_currency

CURRENCY_LOCALES = {
    "USD": "en_US",
    "EUR": "en_IE",
    "GBP": "en_GB",
    "INR": "en_IN",
    "JPY": "ja_JP",
    "CNY": "zh_CN",
    "CAD": "en_CA",
    "AUD": "en_AU",
    "NZD": "en_NZ",
    "SGD": "en_SG",
    "HKD": "en_HK",
    "CHF": "de_CH",
    "SEK": "sv_SE",
    "NOK": "nb_NO",
    "DKK": "da_DK",
    "PLN": "pl_PL",
    "MXN": "es_MX",
    "BRL": "pt_BR",
    "ZAR": "en_ZA",
}


def locale_for_currency(currency: str) -> str:
    return CURRENCY_LOCALES.get(currency.upper(), "en_US")


def format_currency(
    amount: Union[int, float, str],
    currency: str = "USD",
    locale: Optional[str] = None,
) -> str:
    """Format an amount with two decimals in the currency's home locale."""
    value = float(amount)
    return babel_format_currency(
        value,
        currency.upper(),
        locale=locale or locale_for_currency(currency),
        currency_digits=False,
    )


def plain_number(value: Union[int, float]) -> str:
    """Render 12.0 as "12" and 12.5 as "12.5"."""
    return str(int(value)) if float(value).is_integer() else str(value)
