"""Shared fixtures.

- The FastAPI app runs in-process through TestClient; its ``get_db``
  dependency is overridden with a mongomock database per test.
- ``ParkingApiClient`` talks to that app through the same TestClient, so the
  lifecycle engine exercises the real ``/bookSpot`` endpoint.
"""
from datetime import datetime
from typing import Any, Dict, Iterator

import mongomock
import pytest
from fastapi.testclient import TestClient

from availability import AvailabilityCache
from client import ParkingApiClient
from database import get_db
from lifecycle import BookingLifecycle
from main import app
from repository import BookingRepository
from schemas import CarPark

# 10:30 local time; every "Today" booking in the tests is judged against it.
NOW = datetime(2025, 3, 14, 10, 30)


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def mongo_db() -> Iterator[Any]:
    client = mongomock.MongoClient()
    yield client["carpark_test"]
    client.close()


@pytest.fixture
def api_client(mongo_db: Any) -> Iterator[TestClient]:
    app.dependency_overrides[get_db] = lambda: mongo_db
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def parking_api(api_client: TestClient) -> ParkingApiClient:
    return ParkingApiClient(http=api_client)


@pytest.fixture
def booking_repo(mongo_db: Any) -> BookingRepository:
    return BookingRepository(mongo_db)


@pytest.fixture
def cache_store() -> Dict[str, str]:
    return {}


@pytest.fixture
def lifecycle(parking_api: ParkingApiClient, booking_repo: BookingRepository, cache_store: Dict[str, str]) -> BookingLifecycle:
    return BookingLifecycle(parking_api, booking_repo, AvailabilityCache(cache_store), clock=lambda: NOW)


@pytest.fixture
def acb() -> CarPark:
    return CarPark(
        car_park_no="ACB",
        address="BLK 270/271 ALBERT CENTRE BASEMENT CAR PARK",
        car_park_type="BASEMENT CAR PARK",
        latitude=1.3010632720874935,
        longitude=103.85411804993093,
    )


@pytest.fixture
def insert_booking(mongo_db: Any):
    """Write a booking document directly and return its id."""

    def _insert(**fields: Any) -> str:
        doc = {
            "carParkNo": "ACB",
            "address": "BLK 270/271 ALBERT CENTRE BASEMENT CAR PARK",
            "date": "Today",
            "hoursFrom": "10",
            "hoursTo": "11",
            "userEmail": "u@x.com",
        }
        doc.update(fields)
        # status=None means "leave the field out"
        if doc.get("status") is None:
            doc.pop("status", None)
        return str(mongo_db["bookings"].insert_one(doc).inserted_id)

    return _insert
