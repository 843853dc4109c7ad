import pytest
import requests
import responses

from m3services.errors import ServiceError
from m3services.finance import Article, Crypto, Forex, HistoryResult

API = "https://finance.example.com/"
KEY = "placeholder"


def url(path):
    return f"{API}{path}?apikey={KEY}"


@pytest.fixture
def mocked():
    with responses.RequestsMock(assert_all_requests_are_fired=False) as rsps:
        yield rsps


@pytest.fixture
def crypto():
    return Crypto(API, KEY)


@pytest.fixture
def forex():
    return Forex(API, KEY)


def test_news_returns_articles(mocked, crypto):
    mocked.add(
        responses.GET,
        url("news/cryptocurrency/BTC"),
        json={
            "symbol": "BTC",
            "news": [
                {"title": "Up", "description": "It rose", "url": "https://news.example.com/1",
                 "source": "Wire", "date": "2021-06-01"},
                {"Title": "Down"},
            ],
        },
    )
    articles = crypto.news("BTC")
    assert articles == [
        Article("Up", "It rose", "https://news.example.com/1", "Wire", "2021-06-01"),
        Article(title="Down"),
    ]


def test_news_requires_symbol(crypto):
    with pytest.raises(ServiceError) as exc:
        crypto.news("")
    assert exc.value.id == "crypto.news"
    assert exc.value.code == 400
    assert exc.value.detail == "invalid symbol"


def test_news_non_200_is_internal_error(mocked, crypto):
    mocked.add(responses.GET, url("news/cryptocurrency/BTC"), status=503, body="down")
    with pytest.raises(ServiceError) as exc:
        crypto.news("BTC")
    assert exc.value.code == 500
    assert exc.value.detail == "failed to get news"


def test_news_bad_json_is_internal_error(mocked, crypto):
    mocked.add(responses.GET, url("news/cryptocurrency/BTC"), body="not json")
    with pytest.raises(ServiceError) as exc:
        crypto.news("BTC")
    assert exc.value.id == "crypto.news"
    assert exc.value.code == 500


def test_crypto_history_single_result(mocked, crypto):
    mocked.add(
        responses.GET,
        url("agg/crypto/prev-close/BTCUSD"),
        json={"symbol": "BTCUSD", "totalResults": 1,
              "results": [{"o": 10.5, "h": 12.25, "l": 9.75, "c": 11.0, "v": 300, "t": 0}]},
    )
    result = crypto.history("BTCUSD")
    assert result == HistoryResult(
        symbol="BTCUSD", open=10.5, close=11.0, high=12.25, low=9.75,
        date="1970-01-01", volume=300.0,
    )


def test_history_with_several_results_is_empty(mocked, crypto):
    mocked.add(
        responses.GET,
        url("agg/crypto/prev-close/BTCUSD"),
        json={"results": [{"o": 1}, {"o": 2}]},
    )
    assert crypto.history("BTCUSD") == HistoryResult()


def test_crypto_quote_includes_sizes(mocked, crypto):
    mocked.add(
        responses.GET,
        url("last/quote/crypto/BTCUSD"),
        json={"symbol": "BTCUSD", "ask": 101.5, "bid": 100.5,
              "asize": 3, "bsize": 4, "timestamp": 1500},
    )
    quote = crypto.quote("BTCUSD")
    assert quote.symbol == "BTCUSD"
    assert quote.ask_price == 101.5
    assert quote.bid_price == 100.5
    assert quote.ask_size == 3
    assert quote.bid_size == 4
    assert quote.timestamp == "1970-01-01T00:00:01.5Z"


def test_forex_quote_omits_sizes(mocked, forex):
    mocked.add(
        responses.GET,
        url("last/forex/GBPUSD"),
        json={"Symbol": "GBPUSD", "Ask": 1.25, "Bid": 1.5, "Asize": 7, "Bsize": 8, "Timestamp": 0},
    )
    quote = forex.quote("GBPUSD")
    assert quote.symbol == "GBPUSD"
    assert quote.ask_price == 1.25
    assert quote.bid_price == 1.5
    assert not quote.ask_size and not quote.bid_size
    assert quote.timestamp == "1970-01-01T00:00:00Z"


def test_quote_rejects_wrong_types(mocked, forex):
    mocked.add(responses.GET, url("last/forex/GBPUSD"), json={"ask": "high"})
    with pytest.raises(ServiceError) as exc:
        forex.quote("GBPUSD")
    assert exc.value.id == "forex.quote"
    assert exc.value.detail == "failed to get quote"


def test_crypto_price(mocked, crypto):
    mocked.add(responses.GET, url("last/crypto/BTCUSD"), json={"symbol": "X", "price": 42.5})
    result = crypto.price("BTCUSD")
    assert result.symbol == "BTCUSD"
    assert result.price == 42.5


def test_forex_price_uses_trade_path(mocked, forex):
    mocked.add(responses.GET, url("last/trade/forex/GBPUSD"), json={"price": 2})
    result = forex.price("GBPUSD")
    assert result.price == 2.0
    assert "/last/trade/forex/GBPUSD" in mocked.calls[0].request.url


def test_price_missing_value(mocked, crypto):
    mocked.add(responses.GET, url("last/crypto/BTCUSD"), json={"symbol": "BTCUSD"})
    with pytest.raises(ServiceError) as exc:
        crypto.price("BTCUSD")
    assert exc.value.id == "crypto.price"
    assert exc.value.detail == "failed to get price"


def test_price_connection_error(mocked, crypto):
    mocked.add(responses.GET, url("last/crypto/BTCUSD"), body=requests.ConnectionError("down"))
    with pytest.raises(ServiceError) as exc:
        crypto.price("BTCUSD")
    assert exc.value.id == "crypto.trade"
    assert exc.value.code == 500


def test_price_non_200(mocked, forex):
    mocked.add(responses.GET, url("last/trade/forex/GBPUSD"), status=500, body="{}")
    with pytest.raises(ServiceError) as exc:
        forex.price("GBPUSD")
    assert exc.value.id == "forex.quote"


def test_forex_history_path(mocked, forex):
    mocked.add(
        responses.GET,
        url("agg/forex/prev-close/GBPUSD"),
        json={"results": [{"o": 1.5, "c": 1.75, "t": 0}]},
    )
    result = forex.history("GBPUSD")
    assert result.symbol == "GBPUSD"
    assert result.open == 1.5
    assert result.close == 1.75


def test_forex_history_requires_symbol(forex):
    with pytest.raises(ServiceError) as exc:
        forex.history("")
    assert exc.value.id == "forex.history"
    assert exc.value.code == 400
    assert exc.value.detail == "invalid symbol"


def test_forex_quote_requires_symbol(forex):
    with pytest.raises(ServiceError) as exc:
        forex.quote("")
    assert exc.value.id == "forex.quote"
    assert exc.value.code == 400
    assert exc.value.detail == "invalid symbol"


def test_forex_price_requires_symbol(forex):
    with pytest.raises(ServiceError) as exc:
        forex.price("")
    assert exc.value.id == "forex.price"
    assert exc.value.code == 400
    assert exc.value.detail == "invalid symbol"