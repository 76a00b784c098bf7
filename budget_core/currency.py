"""Display-currency conversion and formatting.

Amounts are stored in the base currency (USD).  Rates are expressed as
"units of currency per 1 USD", the shape returned by exchangerate-api.com.
"""

import json
import logging
import time
import urllib.request
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Callable, Dict, Mapping, Optional

from budget_core.errors import InvalidCurrency

logger = logging.getLogger(__name__)

BASE_CURRENCY = "USD"
FALLBACK_RATES: Dict[str, float] = {"USD": 1.0, "EUR": 0.85, "RON": 4.5}


@dataclass(frozen=True)
class CurrencyFormat:
    code: str
    locale: str
    symbol: str
    symbol_first: bool
    group_sep: str
    decimal_sep: str


_FORMATS = {
    "USD": CurrencyFormat("USD", "en-US", "$", True, ",", "."),
    "EUR": CurrencyFormat("EUR", "de-DE", "€", False, ".", ","),
    "RON": CurrencyFormat("RON", "ro-RO", "RON", False, ".", ","),
}

SUPPORTED_CURRENCIES = tuple(_FORMATS)


@lru_cache(maxsize=None)
def get_currency(code: str) -> CurrencyFormat:
    try:
        return _FORMATS[code.upper()]
    except (KeyError, AttributeError):
        raise InvalidCurrency(code) from None


def _rate(code: str, rates: Mapping[str, float]) -> float:
    code = get_currency(code).code
    if code == BASE_CURRENCY:
        return 1.0
    rate = rates.get(code)
    if not rate:
        raise InvalidCurrency(code)
    return rate


def convert(amount: float, from_currency: str, to_currency: str, rates: Mapping[str, float]) -> float:
    if get_currency(from_currency) == get_currency(to_currency):
        return amount
    # always via the base currency
    base_amount = amount / _rate(from_currency, rates)
    return base_amount * _rate(to_currency, rates)


def to_display(amount: float, currency: str, rates: Mapping[str, float]) -> float:
    return convert(amount, BASE_CURRENCY, currency, rates)


def format_amount(amount: float, currency: str, rates: Optional[Mapping[str, float]] = None) -> str:
    """Format a base-currency amount in ``currency``.

    With ``rates`` the amount is converted first; without them it is assumed
    to already be in ``currency``.

    >>> format_amount(1234.5, "USD")
    '$1,234.50'
    >>> format_amount(1234.5, "EUR")
    '1.234,50 €'
    """
    fmt = get_currency(currency)
    value = to_display(amount, fmt.code, rates) if rates is not None else amount

    digits = f"{abs(value):,.2f}"
    digits = digits.replace(",", "\0").replace(".", fmt.decimal_sep).replace("\0", fmt.group_sep)
    sign = "-" if round(value, 2) < 0 else ""
    if fmt.symbol_first:
        return f"{sign}{fmt.symbol}{digits}"
    return f"{sign}{digits} {fmt.symbol}"


def _http_fetch(url: str, timeout: float = 10.0) -> dict:
    with urllib.request.urlopen(url, timeout=timeout) as response:
        return json.load(response)


class RateProvider:
    """Exchange rates refreshed at most once per ``ttl`` seconds.

    The last good snapshot is written to ``cache_path`` and read back on
    start-up.  A failed fetch leaves the current snapshot in place, so
    conversion keeps working offline.
    """

    def __init__(
        self,
        url: str,
        ttl: int = 3600,
        cache_path: Optional[Path] = None,
        fetch: Callable[[str], dict] = _http_fetch,
        clock: Callable[[], float] = time.time,
    ):
        self.url = url
        self.ttl = ttl
        self.cache_path = cache_path
        self._fetch = fetch
        self._clock = clock
        self._rates: Dict[str, float] = dict(FALLBACK_RATES)
        self.updated_at: Optional[float] = None
        self._last_attempt: Optional[float] = None
        self._load_cache()

    def _load_cache(self) -> None:
        if self.cache_path is None or not self.cache_path.exists():
            return
        try:
            with self.cache_path.open("r", encoding="utf-8") as handle:
                data = json.load(handle)
            rates = {k: float(v) for k, v in data["rates"].items() if k in _FORMATS}
            updated_at = float(data["updated_at"])
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning("Ignoring unreadable rate cache %s: %s", self.cache_path, e)
            return
        self._rates.update(rates)
        self.updated_at = updated_at

    def _save_cache(self) -> None:
        if self.cache_path is None:
            return
        self.cache_path.parent.mkdir(parents=True, exist_ok=True)
        with self.cache_path.open("w", encoding="utf-8") as handle:
            json.dump({"rates": self._rates, "updated_at": self.updated_at}, handle, indent=2, sort_keys=True)

    def is_stale(self) -> bool:
        seen = [t for t in (self.updated_at, self._last_attempt) if t is not None]
        return not seen or self._clock() - max(seen) > self.ttl

    def refresh(self, force: bool = False) -> bool:
        """Fetch new rates if stale (or forced). Returns True on success."""
        if not force and not self.is_stale():
            return False
        self._last_attempt = self._clock()
        try:
            payload = self._fetch(self.url)
            fetched = payload["rates"]
            new_rates = {BASE_CURRENCY: 1.0}
            for code in SUPPORTED_CURRENCIES:
                if code != BASE_CURRENCY:
                    new_rates[code] = float(fetched.get(code) or self._rates[code])
        except Exception as e:  # network, HTTP and payload errors all keep the last snapshot
            logger.warning("Exchange rate refresh failed, keeping last known rates: %s", e)
            return False

        self._rates = new_rates
        self.updated_at = self._last_attempt
        logger.info("Exchange rates updated: %s", new_rates)
        try:
            self._save_cache()
        except OSError as e:
            logger.warning("Could not write rate cache %s: %s", self.cache_path, e)
        return True

    def rates(self) -> Dict[str, float]:
        self.refresh()
        return dict(self._rates)
