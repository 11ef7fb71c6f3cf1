"""
Tests for the PropertyData integration

Verifies:
- Payload parsing with fallback field names
- Invalid records rejected and logged, not fatal
- Client request shape, credit counting and error mapping
- 24h cache: hits cost no credits, failures are not cached
"""

import logging

import pytest
import requests
from datetime import date
from pathlib import Path
import sys

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from core import MarketValueSource, SubjectProperty, ValuationEngine
from core.sources import ComparableFetch, DataSourceError, RentalFetch
from core.models import RentalDataSource, RentalEstimate
from core.comp_engine import ComparableSale
from propertydata import (
    CachingPropertyDataClient,
    InMemoryComparablesStore,
    PropertyDataClient,
    PropertyDataError,
    PropertyDataParser,
    extract_postcode,
    map_property_type,
)
from propertydata.client import USER_AGENT


# =============================================================================
# Fakes
# =============================================================================

class FakeResponse:
    def __init__(self, payload=None, status_code=200, invalid_json=False):
        self.payload = payload
        self.status_code = status_code
        self.invalid_json = invalid_json

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Server Error")

    def json(self):
        if self.invalid_json:
            raise ValueError("Expecting value")
        return self.payload


class FakeSession:
    """Stands in for requests.Session, returning queued responses."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.headers = {}
        self.requests = []
        self.closed = False

    def get(self, url, params=None, timeout=None):
        self.requests.append({"url": url, "params": params, "timeout": timeout})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def close(self):
        self.closed = True


class CountingProvider:
    """Counts lookups made through the cache."""

    def __init__(self, fail_first=False):
        self.comparable_calls = 0
        self.rent_calls = 0
        self.fail_first = fail_first

    def fetch_comparable_sales(self, postcode, bedrooms=None, radius_miles=3, max_results=50):
        self.comparable_calls += 1
        if self.fail_first and self.comparable_calls == 1:
            raise PropertyDataError("temporary outage")
        return ComparableFetch(
            comparables=[ComparableSale("1 Cache Lane", 200000, date(2024, 3, 1))],
            credits_used=1,
        )

    def fetch_rental_estimate(self, postcode, bedrooms=None, property_type=None):
        self.rent_calls += 1
        return RentalFetch(estimate=RentalEstimate.from_weekly(250), credits_used=1)


SOLD_PRICES_PAYLOAD = {
    "status": "success",
    "data": {
        "points_analysed": 4,
        "raw_data": [
            {
                "date": "2024-03-15",
                "address": "1 Holloway Road, London N7 8TY",
                "price": 250000,
                "bedrooms": 3,
                "type": "terraced_house",
                "distance": "0.23",
            },
            {
                "sale_date": "15/02/2024",
                "street_address": "2 Seven Sisters Road",
                "postcode": "N7 9AA",
                "sale_price": "£240,000",
                "beds": "2",
                "property_type": "Flat",
                "distance_miles": 1.1,
                "sqf": 650,
            },
            {
                "date": "2024-01-10",
                "address": "3 Far Away Close",
                "price": 300000,
                "distance": 4.2,
            },
            {"address": "4 Broken Street", "price": 0, "date": "2024-01-01"},
        ],
    },
}

RENTS_PAYLOAD = {
    "status": "success",
    "data": {"long_let": {"average": 300, "70pc_range": [250, 350]}},
}


# =============================================================================
# Parser
# =============================================================================

class TestSoldPricesParser:
    """Heterogeneous sold-price records become ComparableSale."""

    def test_primary_field_names(self):
        comps = PropertyDataParser.parse_sold_prices(SOLD_PRICES_PAYLOAD)
        first = comps[0]

        assert first.sale_price == 250000
        assert first.sale_date == date(2024, 3, 15)
        assert first.postcode == "N7 8TY"
        assert first.bedrooms == 3
        assert first.property_type == "terraced house"
        assert first.distance_miles == pytest.approx(0.23)

    def test_fallback_field_names(self):
        second = PropertyDataParser.parse_sold_prices(SOLD_PRICES_PAYLOAD)[1]

        assert second.address == "2 Seven Sisters Road"
        assert second.sale_price == 240000
        assert second.sale_date == date(2024, 2, 15)
        assert second.postcode == "N7 9AA"
        assert second.bedrooms == 2
        assert second.property_type == "Flat"
        assert second.square_feet == 650

    def test_invalid_records_rejected_and_logged(self, caplog):
        with caplog.at_level(logging.WARNING):
            comps = PropertyDataParser.parse_sold_prices(SOLD_PRICES_PAYLOAD)

        assert len(comps) == 3
        assert "4 Broken Street" in caplog.text

    @pytest.mark.parametrize("record", [
        {"price": 100000},
        {"date": "2024-01-01"},
        {"price": "not a number", "date": "2024-01-01"},
        {"price": 100000, "date": "yesterday"},
        {"price": 100000, "date": "2024-01-01", "distance": -1},
    ])
    def test_bad_record_raises(self, record):
        with pytest.raises(ValueError):
            PropertyDataParser.parse_comparable(record)

    def test_non_dict_record_skipped(self):
        assert PropertyDataParser.parse_sold_prices({"data": ["junk", None]}) == []

    def test_payload_without_data(self):
        assert PropertyDataParser.parse_sold_prices({"status": "success"}) == []

    @pytest.mark.parametrize("record", [
        {"address": "5 Odd Row", "price": "nan", "date": "2024-01-01"},
        {"address": "5 Odd Row", "price": "inf", "date": "2024-01-01"},
        {"address": "5 Odd Row", "price": float("nan"), "date": "2024-01-01"},
        {"address": "5 Odd Row", "price": 100000, "date": "2024-01-01", "distance": "nan"},
        {"address": "5 Odd Row", "price": True, "date": "2024-01-01"},
    ])
    def test_non_finite_numbers_rejected(self, record, caplog):
        payload = {"data": [record, {"address": "6 Fine Row", "price": 150000, "date": "2024-01-01"}]}

        with caplog.at_level(logging.WARNING):
            comps = PropertyDataParser.parse_sold_prices(payload)

        assert [c.address for c in comps] == ["6 Fine Row"]
        assert "5 Odd Row" in caplog.text


class TestRentsParser:
    """Long-let weekly averages become monthly estimates."""

    def test_range_from_payload(self):
        estimate = PropertyDataParser.parse_rents(RENTS_PAYLOAD)

        assert estimate.weekly_rent == 300
        assert estimate.monthly_rent == 1300
        assert estimate.confidence_range == (1083, 1517)
        assert estimate.source == RentalDataSource.PROPERTYDATA_API

    def test_default_range(self):
        payload = {"status": "success", "data": {"long_let": {"average": 300}}}
        assert PropertyDataParser.parse_rents(payload).confidence_range == (1170, 1430)

    def test_missing_long_let(self):
        assert PropertyDataParser.parse_rents({"status": "success", "data": {}}) is None

    @pytest.mark.parametrize("long_let", [
        {"average": "n/a"},
        {"average": "nan"},
        ["300"],
    ])
    def test_malformed_long_let_raises(self, long_let):
        with pytest.raises(ValueError):
            PropertyDataParser.parse_rents({"status": "success", "data": {"long_let": long_let}})

    @pytest.mark.parametrize("weekly_range", [
        [None, 350],
        ["low", "high"],
        [350, 250],
        [250],
    ])
    def test_malformed_range_uses_default(self, weekly_range):
        payload = {"data": {"long_let": {"average": 300, "70pc_range": weekly_range}}}

        estimate = PropertyDataParser.parse_rents(payload)

        assert estimate.monthly_rent == 1300
        assert estimate.confidence_range == (1170, 1430)


class TestHelpers:
    """Property type mapping and postcode extraction."""

    @pytest.mark.parametrize("raw,expected", [
        ("Semi-Detached House", "semi"),
        ("Detached", "detached"),
        ("End of terrace", "terraced"),
        ("Terraced house", "terraced"),
        ("Apartment", "flat"),
        ("purpose built flat", "flat"),
        ("Bungalow", None),
        (None, None),
        ("", None),
    ])
    def test_map_property_type(self, raw, expected):
        assert map_property_type(raw) == expected

    @pytest.mark.parametrize("address,expected", [
        ("10 Downing Street, London SW1A 2AA", "SW1A 2AA"),
        ("Flat 3, 12 Holloway Road, n78ty", "N7 8TY"),
        ("1 Piccadilly, Manchester M1 1AE", "M1 1AE"),
        ("No postcode here", None),
        ("", None),
    ])
    def test_extract_postcode(self, address, expected):
        assert extract_postcode(address) == expected


# =============================================================================
# Client
# =============================================================================

class TestPropertyDataClient:
    """HTTP behaviour against a fake session."""

    def test_sold_prices_request(self):
        session = FakeSession(FakeResponse(SOLD_PRICES_PAYLOAD))
        client = PropertyDataClient(
            api_key="secret", base_url="https://api.example.test/", timeout=12, session=session,
        )

        fetch = client.fetch_comparable_sales("N7 8TY", bedrooms=3, radius_miles=3, max_results=50)

        request = session.requests[0]
        assert request["url"] == "https://api.example.test/sold-prices"
        assert request["params"] == {"key": "secret", "postcode": "N7 8TY", "points": 50, "bedrooms": 3}
        assert request["timeout"] == 12
        assert session.headers["User-Agent"] == USER_AGENT
        assert [c.address for c in fetch.comparables] == [
            "1 Holloway Road, London N7 8TY", "2 Seven Sisters Road",
        ]
        assert fetch.credits_used == 1

    def test_rents_request(self):
        session = FakeSession(FakeResponse(RENTS_PAYLOAD))
        client = PropertyDataClient(api_key="secret", session=session)

        fetch = client.fetch_rental_estimate("N7 8TY", bedrooms=2, property_type="flat")

        params = session.requests[0]["params"]
        assert params["bedrooms"] == 2
        assert params["type"] == "flat"
        assert fetch.estimate.monthly_rent == 1300
        assert fetch.credits_used == 1

    def test_no_rent_data_costs_nothing(self):
        session = FakeSession(FakeResponse({"status": "success", "data": {}}))
        fetch = PropertyDataClient(api_key="secret", session=session).fetch_rental_estimate("N7 8TY")

        assert fetch.estimate is None
        assert fetch.credits_used == 0

    def test_malformed_rents_payload_raises(self):
        session = FakeSession(FakeResponse({"status": "success", "data": {"long_let": ["300"]}}))
        client = PropertyDataClient(api_key="secret", session=session)

        with pytest.raises(PropertyDataError, match="Malformed rents payload"):
            client.fetch_rental_estimate("N7 8TY")

    def test_http_error_raises(self):
        session = FakeSession(FakeResponse(status_code=500))
        client = PropertyDataClient(api_key="secret", session=session)

        with pytest.raises(PropertyDataError):
            client.fetch_comparable_sales("N7 8TY")

    def test_network_error_raises(self):
        session = FakeSession(requests.ConnectionError("connection refused"))
        client = PropertyDataClient(api_key="secret", session=session)

        with pytest.raises(DataSourceError):
            client.fetch_rental_estimate("N7 8TY")

    def test_error_payload_raises(self):
        session = FakeSession(FakeResponse({"status": "error", "message": "Invalid postcode"}))
        client = PropertyDataClient(api_key="secret", session=session)

        with pytest.raises(PropertyDataError, match="Invalid postcode"):
            client.fetch_comparable_sales("XX1")

    def test_invalid_json_raises(self):
        session = FakeSession(FakeResponse(invalid_json=True))
        client = PropertyDataClient(api_key="secret", session=session)

        with pytest.raises(PropertyDataError):
            client.fetch_comparable_sales("N7 8TY")

    def test_missing_key_makes_no_request(self):
        session = FakeSession()
        client = PropertyDataClient(api_key="", session=session)

        with pytest.raises(PropertyDataError):
            client.fetch_comparable_sales("N7 8TY")
        assert session.requests == []

    def test_context_manager_closes_session(self):
        session = FakeSession()
        with PropertyDataClient(api_key="secret", session=session):
            pass
        assert session.closed


# =============================================================================
# Cache
# =============================================================================

class TestCachingClient:
    """Results are reused for the TTL at zero credit cost."""

    @pytest.fixture
    def clock(self):
        now = [1_000_000.0]

        def _clock():
            return now[0]
        _clock.now = now
        return _clock

    def test_hit_costs_no_credits(self, clock):
        provider = CountingProvider()
        cache = CachingPropertyDataClient(provider, clock=clock)

        first = cache.fetch_comparable_sales("N7 8TY", 3)
        second = cache.fetch_comparable_sales("n7 8ty", 3)

        assert provider.comparable_calls == 1
        assert first.credits_used == 1
        assert second.credits_used == 0
        assert second.comparables == first.comparables

    def test_expires_after_ttl(self, clock):
        provider = CountingProvider()
        cache = CachingPropertyDataClient(provider, ttl_hours=24, clock=clock)

        cache.fetch_comparable_sales("N7 8TY", 3)
        clock.now[0] += 24 * 3600
        fetch = cache.fetch_comparable_sales("N7 8TY", 3)

        assert provider.comparable_calls == 2
        assert fetch.credits_used == 1

    def test_filters_are_part_of_key(self, clock):
        provider = CountingProvider()
        cache = CachingPropertyDataClient(provider, clock=clock)

        cache.fetch_comparable_sales("N7 8TY", 3)
        cache.fetch_comparable_sales("N7 8TY", 2)

        assert provider.comparable_calls == 2

    def test_failures_not_cached(self, clock):
        provider = CountingProvider(fail_first=True)
        cache = CachingPropertyDataClient(provider, clock=clock)

        with pytest.raises(PropertyDataError):
            cache.fetch_comparable_sales("N7 8TY")
        fetch = cache.fetch_comparable_sales("N7 8TY")

        assert provider.comparable_calls == 2
        assert fetch.credits_used == 1

    def test_rents_cached(self, clock):
        provider = CountingProvider()
        cache = CachingPropertyDataClient(provider, clock=clock)

        cache.fetch_rental_estimate("N7 8TY", 2, "Flat")
        hit = cache.fetch_rental_estimate("N78TY", 2, "flat")

        assert provider.rent_calls == 1
        assert hit.credits_used == 0
        assert hit.estimate.monthly_rent == 1083

    def test_expired_entries_evicted_on_write(self, clock):
        provider = CountingProvider()
        cache = CachingPropertyDataClient(provider, ttl_hours=1, clock=clock)

        cache.fetch_comparable_sales("N7 8TY", 3)
        cache.fetch_comparable_sales("N7 8TY", 2)
        cache.fetch_rental_estimate("N7 8TY")
        assert len(cache) == 3

        clock.now[0] += 3600
        cache.fetch_comparable_sales("E1 6AN", 3)
        assert len(cache) == 2

        cache.fetch_rental_estimate("E1 6AN")
        assert len(cache) == 2

    def test_fresh_entries_survive_eviction(self, clock):
        provider = CountingProvider()
        cache = CachingPropertyDataClient(provider, ttl_hours=1, clock=clock)

        cache.fetch_comparable_sales("N7 8TY", 3)
        clock.now[0] += 1800
        cache.fetch_comparable_sales("E1 6AN", 3)
        cache.fetch_comparable_sales("N7 8TY", 3)

        assert len(cache) == 2
        assert provider.comparable_calls == 2

    def test_clear(self, clock):
        provider = CountingProvider()
        cache = CachingPropertyDataClient(provider, clock=clock)

        cache.fetch_rental_estimate("N7 8TY")
        cache.clear()
        cache.fetch_rental_estimate("N7 8TY")

        assert provider.rent_calls == 2


class TestComparablesStore:
    """Comparables saved per subject."""

    def test_save_and_load(self):
        store = InMemoryComparablesStore()
        comp = ComparableSale("1 Stored Street", 180000, date(2024, 2, 1))
        store.save_comparables("lead-1", [comp])

        assert store.load_cached_comparables("lead-1") == [comp]
        assert store.load_cached_comparables("lead-2") == []

    def test_fetched_at_tracks_save_time(self):
        now = [500.0]
        store = InMemoryComparablesStore(clock=lambda: now[0])
        comp = ComparableSale("1 Stored Street", 180000, date(2024, 2, 1))

        assert store.fetched_at("lead-1") is None
        store.save_comparables("lead-1", [comp])
        now[0] = 900.0
        store.save_comparables("lead-2", [comp])

        assert store.fetched_at("lead-1") == 500.0
        assert store.fetched_at("lead-2") == 900.0
        store.clear()
        assert store.fetched_at("lead-1") is None


# =============================================================================
# Malformed Payloads Through the Engine
# =============================================================================

class TestMalformedPayloadsDegrade:
    """Bad PropertyData payloads fall back instead of aborting a valuation."""

    @pytest.mark.parametrize("long_let", [
        {"average": "n/a"},
        {"average": "inf"},
        ["300"],
    ])
    def test_malformed_rents_fall_back_to_none(self, long_let, caplog):
        session = FakeSession(FakeResponse({"status": "success", "data": {"long_let": long_let}}))
        engine = ValuationEngine(rental_provider=PropertyDataClient(api_key="secret", session=session))

        with caplog.at_level(logging.WARNING):
            result = engine.calculate(SubjectProperty(asking_price=100000, postcode="N7 8TY"))

        assert result.rental_data_source == RentalDataSource.NONE
        assert result.credits_used == 0
        assert "rental estimate lookup for N7 8TY failed" in caplog.text

    def test_malformed_rent_range_keeps_rent(self):
        payload = {"status": "success", "data": {"long_let": {"average": 300, "70pc_range": [None, 350]}}}
        session = FakeSession(FakeResponse(payload))
        engine = ValuationEngine(rental_provider=PropertyDataClient(api_key="secret", session=session))

        result = engine.calculate(SubjectProperty(asking_price=100000, postcode="N7 8TY"))

        assert result.rental_data_source == RentalDataSource.PROPERTYDATA_API
        assert result.monthly_rent == 1300
        assert result.rent_confidence_range == (1170, 1430)

    def test_non_finite_sale_prices_skipped(self):
        today = date.today().isoformat()
        payload = {"status": "success", "data": [
            {"address": "1 Nan Street", "price": "nan", "date": today, "distance": 0.1},
            {"address": "2 Inf Street", "price": "inf", "date": today, "distance": 0.2},
            {"address": "3 Real Street", "price": 150000, "date": today, "distance": 0.3},
        ]}
        session = FakeSession(FakeResponse(payload))
        engine = ValuationEngine(comparables_provider=PropertyDataClient(api_key="secret", session=session))

        result = engine.calculate(SubjectProperty(asking_price=100000, postcode="N7 8TY"))

        assert result.market_value_source == MarketValueSource.COMPARABLE_SALES
        assert result.market_value == 150000
        assert [c.address for c in result.comparables] == ["3 Real Street"]
