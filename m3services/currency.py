"""Currency codes, exchange rates, historic rates and conversions."""

from __future__ import annotations

import logging
import re
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

import requests

from .errors import bad_request, internal_server_error

log = logging.getLogger(__name__)

DEFAULT_TTL = 5 * 60.0
CODES_TTL = 60 * 60.0
HISTORY_TTL = 24 * 60 * 60.0

_DATE_RE = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}")


class ExpiringCache:
    """A thread-safe in-memory cache whose entries expire after a time to live."""

    def __init__(
        self,
        default_ttl: float = DEFAULT_TTL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.default_ttl = default_ttl
        self._clock = clock
        self._items: dict[str, tuple[Any, float | None]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Any:
        """Return the cached value, or None when it is missing or expired."""
        with self._lock:
            item = self._items.get(key)
            if item is None:
                return None
            value, expires = item
            if expires is not None and self._clock() > expires:
                del self._items[key]
                return None
            return value

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        """Store a value; ``None`` uses the default ttl, a ttl <= 0 never expires."""
        ttl = self.default_ttl if ttl is None else ttl
        expires = None if ttl <= 0 else self._clock() + ttl
        with self._lock:
            self._items[key] = (value, expires)


@dataclass
class Code:
    name: str = ""
    currency: str = ""


@dataclass
class Conversion:
    from_code: str = ""
    to_code: str = ""
    rate: float = 0.0
    amount: float = 0.0


def _as_float(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    return float(value)


def _format_amount(amount: float) -> str:
    """Format a float in its shortest form, switching to an exponent for very large or small values."""
    number = Decimal(repr(float(amount))).normalize()
    exponent = number.adjusted()
    if -4 <= exponent < 21:
        return format(number, "f")
    _, digits, _ = number.as_tuple()
    mantissa = str(digits[0])
    if len(digits) > 1:
        mantissa += "." + "".join(str(d) for d in digits[1:])
    if number < 0:
        mantissa = "-" + mantissa
    sign = "-" if exponent < 0 else "+"
    return f"{mantissa}e{sign}{abs(exponent):02d}"


def _byte_len(text: str) -> int:
    return len(text.encode("utf-8"))


class Currency:
    """Exchange rate lookups backed by an exchange-rate HTTP API."""

    def __init__(
        self,
        api: str,
        cache: ExpiringCache | None = None,
        session: requests.Session | None = None,
        timeout: float = 30.0,
    ) -> None:
        self.api = api
        self.cache = cache if cache is not None else ExpiringCache()
        self.session = session or requests.Session()
        self.timeout = timeout

    def _fetch(self, url: str, noun: str, ident: str, detail: str, decode_ident: str = "") -> dict:
        try:
            resp = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as exc:
            log.error("Failed to get %s: %s", noun, exc)
            raise internal_server_error(ident, detail) from exc
        if resp.status_code != 200:
            log.error("Failed to get %s (non 200): %d %s", noun, resp.status_code, resp.text)
            raise internal_server_error(ident, detail)
        try:
            body = resp.json()
        except ValueError as exc:
            log.error("Failed to unmarshal %s: %s", noun, exc)
            raise internal_server_error(decode_ident or ident, detail) from exc
        if body is None:
            return {}
        if not isinstance(body, dict):
            log.error("Failed to unmarshal %s: not a JSON object", noun)
            raise internal_server_error(decode_ident or ident, detail)
        return body

    @staticmethod
    def _rates_from(body: dict, ident: str, detail: str) -> dict[str, float]:
        rates = body.get("conversion_rates")
        if not isinstance(rates, dict):
            log.error("Failed to convert rates to a mapping")
            raise internal_server_error(ident, detail)
        return {code: _as_float(rate) for code, rate in rates.items()}

    @staticmethod
    def _check_code(code: str) -> None:
        if not code:
            raise bad_request("currency.rates", "missing code")
        if _byte_len(code) != 3:
            raise bad_request("currency.rates", "code is invalid")

    def codes(self) -> list[Code]:
        """Return the supported currency codes."""
        cached = self.cache.get("codes")
        if cached is not None:
            return list(cached)

        body = self._fetch(self.api + "/codes", "codes", "currency.codes", "failed to get codes")
        supported = body.get("supported_codes")
        if not isinstance(supported, list):
            log.error("Failed to convert supported codes to a list")
            raise internal_server_error("currency.rates", "failed to get rates")

        codes = []
        for entry in supported:
            if (
                not isinstance(entry, list)
                or len(entry) < 2
                or not isinstance(entry[0], str)
                or not isinstance(entry[1], str)
            ):
                raise internal_server_error("currency.codes", "failed to get codes")
            codes.append(Code(name=entry[0], currency=entry[1]))

        self.cache.set("codes", codes, CODES_TTL)
        return list(codes)

    def rates(self, code: str) -> dict[str, float]:
        """Return the latest rates for a base currency code."""
        self._check_code(code)

        cached = self.cache.get("rates:" + code)
        if cached is not None:
            return dict(cached)

        body = self._fetch(
            self.api + "/latest/" + code, "rates", "currency.rates", "failed to get rates"
        )
        rates = self._rates_from(body, "currency.rates", "failed to get rates")
        self.cache.set("rates:" + code, rates)
        return dict(rates)

    def history(self, code: str, date: str) -> dict[str, float]:
        """Return the rates for a base currency on a YYYY-MM-DD date."""
        self._check_code(code)
        if not date:
            raise bad_request("currency.history", "missing date")
        if not _DATE_RE.search(date):
            raise bad_request("currency.history", "invalid date")

        key = "history:" + code + date
        cached = self.cache.get(key)
        if cached is not None:
            return dict(cached)

        year, month, day = date.split("-")[:3]
        body = self._fetch(
            f"{self.api}/history/{code}/{year}/{month}/{day}",
            "historic rates",
            "currency.history",
            "failed to get history",
        )
        rates = self._rates_from(body, "currency.history", "failed to get history")
        self.cache.set(key, rates, HISTORY_TTL)
        return dict(rates)

    def convert(self, from_code: str, to_code: str, amount: float = 0.0) -> Conversion:
        """Return the rate between two currencies and, given an amount, the converted amount."""
        if _byte_len(from_code) != 3:
            raise bad_request("currency.convert", "invalid from code")
        if _byte_len(to_code) != 3:
            raise bad_request("currency.convert", "invalid to code")

        key = "pair:" + from_code + to_code
        url = f"{self.api}/pair/{from_code}/{to_code}"

        if amount == 0:
            rate = self.cache.get(key)
            if rate is not None:
                return Conversion(from_code=from_code, to_code=to_code, rate=rate)

        if amount > 0:
            url = f"{url}/{_format_amount(amount)}"

        body = self._fetch(
            url, "conversion", "currency.convert", "failed to convert", decode_ident="currency.convet"
        )
        result = Conversion(
            from_code=from_code,
            to_code=to_code,
            rate=_as_float(body.get("conversion_rate")),
            amount=_as_float(body.get("conversion_result")),
        )
        self.cache.set(key, result.rate)
        return result