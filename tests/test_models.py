from __future__ import annotations

from datetime import datetime

import pytest

from ridehail.domain.models import (
    DriverPaymentsQuery,
    EstimateRequest,
    PlaceName,
    RideRequest,
    UpfrontFare,
    parse_place_name,
)
from ridehail.errors import InvalidRequestError


def test_parse_place_name():
    assert parse_place_name(None) is None
    assert parse_place_name("  ") is None
    assert parse_place_name("home") is PlaceName.HOME
    with pytest.raises(InvalidRequestError) as excinfo:
        parse_place_name("office")
    assert excinfo.value.details == {"field": "place"}


def test_estimate_query_uses_place_ids():
    query = EstimateRequest(start_place="home", end_place="work", product_id="p-1").to_query()

    assert query["start_place_id"] == "home"
    assert query["end_place_id"] == "work"
    assert query["product_id"] == "p-1"
    assert "seat_count" not in query


def test_ride_request_json_drops_empty_fields():
    body = RideRequest(fare_id="f-1", start_latitude=1.5, start_place="work").to_json()

    assert body == {"fare_id": "f-1", "start_place_id": "work", "start_latitude": 1.5}


def test_driver_payments_query_treats_naive_dates_as_utc():
    query = DriverPaymentsQuery(start_date=datetime(1970, 1, 2)).to_query()

    assert query == {"from_time": 86400}


def test_upfront_fare_blank_detection():
    assert UpfrontFare.from_dict({}).is_blank()
    fare = UpfrontFare.from_dict(
        {"fare": {"fare_id": "f"}, "estimate": {"surge_confirmation_id": "s-1", "surge_confirmation_href": "https://x"}}
    )
    assert not fare.is_blank()
    assert fare.surge_confirmation_id == "s-1"
