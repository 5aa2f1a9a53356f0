# src/services/currency.py
"""
Currency switcher: geo/locale detection, daily cached exchange rates,
conversion and per-currency price formatting. Prices are authored in USD.
"""

from __future__ import annotations

import json
import time
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, MutableMapping, Optional

import requests

from services.log import get_logger

logger = get_logger(__name__)

RATES_URL = "https://api.exchangerate-api.com/v4/latest/USD"
GEO_URL = "https://ipapi.co/json/"

RATES_KEY = "currencyRates"
RATES_TIME_KEY = "currencyRatesTime"
PREFERENCE_KEY = "preferredCurrency"
CACHE_EXPIRY_MS = 24 * 60 * 60 * 1000

CURRENCIES = {
    "USD": {"symbol": "$", "name": "US Dollar", "flag": "🇺🇸", "countries": ["US"]},
    "EUR": {
        "symbol": "€",
        "name": "Euro",
        "flag": "🇪🇺",
        "countries": ["DE", "FR", "IT", "ES", "NL", "AT", "BE", "FI", "IE", "PT",
                      "GR", "LU", "MT", "CY", "EE", "LV", "LT", "SI", "SK"],
    },
    "CZK": {"symbol": "Kč", "name": "Czech Koruna", "flag": "🇨🇿", "countries": ["CZ"]},
    "GBP": {"symbol": "£", "name": "British Pound", "flag": "🇬🇧", "countries": ["GB"]},
}

FALLBACK_RATES = {"USD": 1, "EUR": 0.85, "CZK": 23.5, "GBP": 0.75}


def currency_for_country(country_code: Optional[str]) -> Optional[str]:
    for code, info in CURRENCIES.items():
        if country_code in info["countries"]:
            return code
    return None


def currency_for_locale(locale: Optional[str]) -> Optional[str]:
    locale = locale or ""
    if "cs" in locale or "CZ" in locale:
        return "CZK"
    if any(lang in locale for lang in ("de", "fr", "it", "es")):
        return "EUR"
    return None


def detect_currency(session: Optional[requests.Session] = None, locale: Optional[str] = None,
                    timeout: float = 5) -> str:
    """Country from ipapi.co, then the browser locale, then USD."""
    http = session or requests
    try:
        resp = http.get(GEO_URL, timeout=timeout)
        if resp.ok:
            found = currency_for_country(resp.json().get("country_code"))
            if found:
                logger.info("Auto-detected currency: %s", found)
                return found
    except (requests.RequestException, ValueError) as e:
        logger.info("Location-based currency detection failed: %s", e)

    return currency_for_locale(locale) or "USD"


def _localized(value: float, max_decimals: int, thousands: str, decimal: str) -> str:
    quantum = Decimal(1).scaleb(-max_decimals)
    rounded = Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP)
    text = f"{rounded:,.{max_decimals}f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text.replace(",", "\0").replace(".", decimal).replace("\0", thousands)


def format_price(price: float, currency: str) -> str:
    symbol = CURRENCIES[currency]["symbol"]
    if currency == "CZK":
        return f"{_localized(price, 0, ',', '.')} {symbol}"
    max_decimals = 0 if price >= 1000 else 2
    if currency == "EUR":
        return f"{_localized(price, max_decimals, '.', ',')} {symbol}"
    return f"{symbol}{_localized(price, max_decimals, ',', '.')}"


class CurrencySwitcher:
    def __init__(self, store: MutableMapping[str, str], session: Optional[requests.Session] = None):
        self.store = store
        self.session = session or requests.Session()
        self.current = store.get(PREFERENCE_KEY) or "USD"
        self.rates: Dict[str, float] = {}

    def init(self, locale: Optional[str] = None) -> str:
        """Saved preference, else detected currency. Loads rates."""
        try:
            saved = self.store.get(PREFERENCE_KEY)
            self.current = saved if saved in CURRENCIES else detect_currency(self.session, locale)
            self.load_rates()
        except Exception as e:
            logger.error("Currency switcher initialization failed: %s", e)
            self.use_fallback_rates()
            self.current = "USD"
        return self.current

    def cached_rates(self, now_ms: Optional[int] = None) -> Optional[Dict[str, float]]:
        raw = self.store.get(RATES_KEY)
        stamp = self.store.get(RATES_TIME_KEY)
        if not raw or not stamp:
            return None
        now_ms = int(time.time() * 1000) if now_ms is None else now_ms
        try:
            if now_ms - int(stamp) < CACHE_EXPIRY_MS:
                return json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.error("Cache read error: %s", e)
        return None

    def cache_rates(self, rates: Dict[str, float], now_ms: Optional[int] = None) -> None:
        now_ms = int(time.time() * 1000) if now_ms is None else now_ms
        self.store[RATES_KEY] = json.dumps(rates)
        self.store[RATES_TIME_KEY] = str(now_ms)

    def use_fallback_rates(self) -> None:
        logger.warning("Using fallback exchange rates")
        self.rates = dict(FALLBACK_RATES)

    def load_rates(self, now_ms: Optional[int] = None, timeout: float = 10) -> Dict[str, float]:
        cached = self.cached_rates(now_ms)
        if cached:
            self.rates = cached
            return self.rates
        try:
            resp = self.session.get(RATES_URL, timeout=timeout)
            if not resp.ok:
                raise requests.HTTPError(f"API responded with status: {resp.status_code}")
            rates = dict(resp.json()["rates"])
            rates["USD"] = 1
            self.rates = rates
            self.cache_rates(rates, now_ms)
            logger.info("Exchange rates loaded and cached")
        except (requests.RequestException, ValueError, KeyError, TypeError) as e:
            logger.error("Failed to load exchange rates: %s", e)
            self.use_fallback_rates()
        return self.rates

    def rate(self, currency: Optional[str] = None) -> float:
        currency = currency or self.current
        return self.rates.get(currency) or FALLBACK_RATES.get(currency) or 1

    def convert(self, usd_price: float, currency: Optional[str] = None) -> float:
        return usd_price * self.rate(currency)

    def display(self, usd_price: float) -> str:
        return format_price(self.convert(usd_price), self.current)

    def switch(self, currency: str) -> None:
        if currency == "AUTO":
            currency = detect_currency(self.session)
        if currency not in CURRENCIES:
            raise ValueError(f"Unsupported currency: {currency}")
        if currency == self.current:
            return
        logger.info("Switching currency from %s to %s", self.current, currency)
        self.current = currency
        self.store[PREFERENCE_KEY] = currency
