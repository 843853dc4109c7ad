import pytest
import responses

from m3services.currency import Code, Conversion, Currency, ExpiringCache
from m3services.errors import ServiceError

API = "https://rates.example.com/v6/key"


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_cache_entry_expires_after_ttl():
    clock = FakeClock()
    cache = ExpiringCache(default_ttl=10, clock=clock)
    cache.set("a", 1)
    cache.set("b", 2, ttl=100)
    cache.set("c", 3, ttl=0)
    assert cache.get("a") == 1
    clock.now = 11
    assert cache.get("a") is None
    assert cache.get("b") == 2
    clock.now = 1_000_000
    assert cache.get("b") is None
    assert cache.get("c") == 3


def test_cache_missing_key():
    assert ExpiringCache().get("nothing") is None


def test_codes_parsed_and_cached():
    cur = Currency(API)
    with responses.RequestsMock() as rsps:
        rsps.add(
            responses.GET,
            API + "/codes",
            json={"supported_codes": [["USD", "United States Dollar"], ["GBP", "Pound Sterling"]]},
        )
        first = cur.codes()
        second = cur.codes()
        assert len(rsps.calls) == 1
    assert first == [Code("USD", "United States Dollar"), Code("GBP", "Pound Sterling")]
    assert second == first


def test_codes_bad_shape():
    cur = Currency(API)
    with responses.RequestsMock() as rsps:
        rsps.add(responses.GET, API + "/codes", json={"other": 1})
        with pytest.raises(ServiceError) as info:
            cur.codes()
    assert info.value.id == "currency.rates"
    assert info.value.code == 500
    assert info.value.detail == "failed to get rates"


@pytest.mark.parametrize(
    "code,detail",
    [("", "missing code"), ("US", "code is invalid"), ("USDX", "code is invalid")],
)
def test_rates_validation(code, detail):
    with pytest.raises(ServiceError) as info:
        Currency(API).rates(code)
    assert info.value.code == 400
    assert info.value.detail == detail


def test_rates_fetched_and_cached():
    cur = Currency(API)
    with responses.RequestsMock() as rsps:
        rsps.add(
            responses.GET,
            API + "/latest/USD",
            json={"conversion_rates": {"USD": 1, "GBP": 0.72, "BAD": "x"}},
        )
        rates = cur.rates("USD")
        again = cur.rates("USD")
        assert len(rsps.calls) == 1
    assert rates == {"USD": 1.0, "GBP": 0.72, "BAD": 0.0}
    assert again == rates


def test_rates_non_200():
    cur = Currency(API)
    with responses.RequestsMock() as rsps:
        rsps.add(responses.GET, API + "/latest/USD", status=500, body="boom")
        with pytest.raises(ServiceError) as info:
            cur.rates("USD")
    assert info.value.id == "currency.rates"
    assert info.value.detail == "failed to get rates"


@pytest.mark.parametrize(
    "date,detail", [("", "missing date"), ("yesterday", "invalid date")]
)
def test_history_validation(date, detail):
    with pytest.raises(ServiceError) as info:
        Currency(API).history("USD", date)
    assert info.value.id == "currency.history"
    assert info.value.detail == detail


def test_history_uses_date_parts_and_caches():
    cur = Currency(API)
    with responses.RequestsMock() as rsps:
        rsps.add(
            responses.GET,
            API + "/history/USD/2021/05/01",
            json={"conversion_rates": {"EUR": 0.83}},
        )
        first = cur.history("USD", "2021-05-01")
        second = cur.history("USD", "2021-05-01")
        assert len(rsps.calls) == 1
    assert first == {"EUR": 0.83}
    assert second == first


def test_history_missing_rates():
    cur = Currency(API)
    with responses.RequestsMock() as rsps:
        rsps.add(responses.GET, API + "/history/USD/2021/05/01", json={})
        with pytest.raises(ServiceError) as info:
            cur.history("USD", "2021-05-01")
    assert info.value.detail == "failed to get history"


@pytest.mark.parametrize(
    "from_code,to_code,detail",
    [("US", "GBP", "invalid from code"), ("USD", "", "invalid to code")],
)
def test_convert_validation(from_code, to_code, detail):
    with pytest.raises(ServiceError) as info:
        Currency(API).convert(from_code, to_code)
    assert info.value.id == "currency.convert"
    assert info.value.detail == detail


def test_convert_with_amount_then_cached_rate():
    cur = Currency(API)
    with responses.RequestsMock() as rsps:
        rsps.add(
            responses.GET,
            API + "/pair/USD/GBP/10",
            json={"conversion_rate": 0.7, "conversion_result": 7.0},
        )
        result = cur.convert("USD", "GBP", 10)
        cached = cur.convert("USD", "GBP")
        assert len(rsps.calls) == 1
    assert result == Conversion("USD", "GBP", 0.7, 7.0)
    assert cached == Conversion("USD", "GBP", 0.7, 0.0)


def test_convert_fractional_amount_in_url():
    cur = Currency(API)
    with responses.RequestsMock() as rsps:
        rsps.add(
            responses.GET,
            API + "/pair/USD/EUR/0.5",
            json={"conversion_rate": 0.8, "conversion_result": 0.4},
        )
        result = cur.convert("USD", "EUR", 0.5)
    assert result.amount == 0.4
    assert result.rate == 0.8


def test_convert_decode_error_id():
    cur = Currency(API)
    with responses.RequestsMock() as rsps:
        rsps.add(responses.GET, API + "/pair/USD/GBP", body="not json")
        with pytest.raises(ServiceError) as info:
            cur.convert("USD", "GBP")
    assert info.value.id == "currency.convet"
    assert info.value.detail == "failed to convert"