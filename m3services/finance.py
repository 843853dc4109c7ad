"""Crypto and forex market data backed by a Finage-style HTTP API."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, TypeVar

import requests

from .errors import bad_request, internal_server_error

log = logging.getLogger(__name__)

T = TypeVar("T")

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass
class Article:
    title: str = ""
    description: str = ""
    url: str = ""
    source: str = ""
    date: str = ""


@dataclass
class QuoteResult:
    symbol: str = ""
    ask_price: float = 0.0
    bid_price: float = 0.0
    ask_size: float = 0.0
    bid_size: float = 0.0
    timestamp: str = ""


@dataclass
class HistoryResult:
    symbol: str = ""
    open: float = 0.0
    close: float = 0.0
    high: float = 0.0
    low: float = 0.0
    date: str = ""
    volume: float = 0.0


@dataclass
class PriceResult:
    symbol: str = ""
    price: float = 0.0


def _split_millis(ms: float) -> tuple[datetime, int]:
    seconds, millis = divmod(int(ms), 1000)
    return _EPOCH + timedelta(seconds=seconds), millis


def _format_date(ms: float) -> str:
    moment, _ = _split_millis(ms)
    return f"{moment.year:04d}-{moment.month:02d}-{moment.day:02d}"


def _format_timestamp(ms: float) -> str:
    """Format milliseconds since the epoch as RFC 3339 with trimmed fractions."""
    moment, millis = _split_millis(ms)
    fraction = f"{millis:03d}".rstrip("0")
    base = (
        f"{moment.year:04d}-{moment.month:02d}-{moment.day:02d}"
        f"T{moment.hour:02d}:{moment.minute:02d}:{moment.second:02d}"
    )
    return base + (f".{fraction}" if fraction else "") + "Z"


def _lookup(obj: dict, name: str) -> Any:
    if name in obj:
        return obj[name]
    lowered = name.lower()
    for key, value in obj.items():
        if key.lower() == lowered:
            return value
    return None


def _object(value: Any) -> dict:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError("expected a JSON object")
    return value


def _array(value: Any) -> list:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError("expected a JSON array")
    return value


def _number(obj: dict, name: str) -> float:
    value = _lookup(obj, name)
    if value is None:
        return 0.0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"field {name!r} is not a number")
    return float(value)


def _text(obj: dict, name: str) -> str:
    value = _lookup(obj, name)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"field {name!r} is not a string")
    return value


class _MarketData:
    """Shared request handling for the market data services."""

    service = ""
    _history_path = ""
    _quote_path = ""
    _price_path = ""
    _quote_sizes = False

    def __init__(
        self,
        api: str,
        key: str,
        session: requests.Session | None = None,
        timeout: float = 30.0,
    ) -> None:
        self.api = api
        self.key = key
        self.session = session or requests.Session()
        self.timeout = timeout

    def _require_symbol(self, symbol: str, endpoint: str) -> None:
        if not symbol:
            raise bad_request(f"{self.service}.{endpoint}", "invalid symbol")

    def _fetch(
        self,
        path: str,
        symbol: str,
        noun: str,
        convert: Callable[[Any], T],
        *,
        fetch_id: str,
        status_id: str,
        decode_id: str,
    ) -> T:
        url = f"{self.api}{path}/{symbol}?apikey={self.key}"
        detail = f"failed to get {noun}"
        try:
            resp = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as exc:
            log.error("Failed to get %s: %s", noun, exc)
            raise internal_server_error(fetch_id, detail) from exc
        if resp.status_code != 200:
            log.error("Failed to get %s (non 200): %d %s", noun, resp.status_code, resp.text)
            raise internal_server_error(status_id, detail)
        try:
            return convert(resp.json())
        except (ValueError, TypeError, KeyError) as exc:
            log.error("Failed to unmarshal %s: %s", noun, exc)
            raise internal_server_error(decode_id, detail) from exc

    def _history(self, symbol: str) -> HistoryResult:
        self._require_symbol(symbol, "history")
        ident = f"{self.service}.history"

        def convert(body: Any) -> HistoryResult:
            results = [_object(item) for item in _array(_lookup(_object(body), "Results"))]
            if len(results) != 1:
                return HistoryResult()
            res = results[0]
            return HistoryResult(
                symbol=symbol,
                open=_number(res, "o"),
                close=_number(res, "c"),
                high=_number(res, "h"),
                low=_number(res, "l"),
                date=_format_date(_number(res, "t")),
                volume=_number(res, "v"),
            )

        return self._fetch(
            self._history_path, symbol, "history", convert,
            fetch_id=ident, status_id=ident, decode_id=ident,
        )

    def _quote(self, symbol: str) -> QuoteResult:
        self._require_symbol(symbol, "quote")
        ident = f"{self.service}.quote"

        def convert(body: Any) -> QuoteResult:
            data = _object(body)
            result = QuoteResult(
                symbol=_text(data, "Symbol"),
                ask_price=_number(data, "Ask"),
                bid_price=_number(data, "Bid"),
                timestamp=_format_timestamp(_number(data, "Timestamp")),
            )
            asize = _number(data, "Asize")
            bsize = _number(data, "Bsize")
            if self._quote_sizes:
                result.ask_size = asize
                result.bid_size = bsize
            return result

        return self._fetch(
            self._quote_path, symbol, "quote", convert,
            fetch_id=ident, status_id=ident, decode_id=ident,
        )

    def _price(self, symbol: str) -> PriceResult:
        self._require_symbol(symbol, "price")

        def convert(body: Any) -> PriceResult:
            price = _object(body).get("price")
            if isinstance(price, bool) or not isinstance(price, (int, float)):
                raise ValueError("price is missing or not a number")
            return PriceResult(symbol=symbol, price=float(price))

        return self._fetch(
            self._price_path, symbol, "price", convert,
            fetch_id=f"{self.service}.trade",
            status_id=f"{self.service}.quote",
            decode_id=f"{self.service}.price",
        )


class Crypto(_MarketData):
    """Cryptocurrency news, quotes, prices and previous-close history."""

    service = "crypto"
    _history_path = "agg/crypto/prev-close"
    _quote_path = "last/quote/crypto"
    _price_path = "last/crypto"
    _quote_sizes = True

    def news(self, symbol: str) -> list[Article]:
        """Return recent news articles about a cryptocurrency."""
        self._require_symbol(symbol, "news")
        ident = "crypto.news"

        def convert(body: Any) -> list[Article]:
            articles = []
            for item in _array(_lookup(_object(body), "News")):
                data = _object(item)
                articles.append(
                    Article(
                        title=_text(data, "Title"),
                        description=_text(data, "Description"),
                        url=_text(data, "Url"),
                        source=_text(data, "Source"),
                        date=_text(data, "Date"),
                    )
                )
            return articles

        return self._fetch(
            "news/cryptocurrency", symbol, "news", convert,
            fetch_id=ident, status_id=ident, decode_id=ident,
        )

    def history(self, symbol: str) -> HistoryResult:
        """Return the previous day's open, high, low, close and volume."""
        return self._history(symbol)

    def quote(self, symbol: str) -> QuoteResult:
        """Return the latest bid and ask."""
        return self._quote(symbol)

    def price(self, symbol: str) -> PriceResult:
        """Return the latest price."""
        return self._price(symbol)


class Forex(_MarketData):
    """Foreign exchange quotes, prices and previous-close history."""

    service = "forex"
    _history_path = "agg/forex/prev-close"
    _quote_path = "last/forex"
    _price_path = "last/trade/forex"
    _quote_sizes = False

    def history(self, symbol: str) -> HistoryResult:
        """Return the previous day's open, high, low, close and volume."""
        return self._history(symbol)

    def quote(self, symbol: str) -> QuoteResult:
        """Return the latest bid and ask."""
        return self._quote(symbol)

    def price(self, symbol: str) -> PriceResult:
        """Return the latest traded price."""
        return self._price(symbol)