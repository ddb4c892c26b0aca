"""Live car park availability.

Lot counts come from the public carpark-availability feed. The booking flow
only ever works on a local snapshot: a successful booking decrements the
snapshot and remembers the new count in a small per-car-park cache. Nothing
here writes availability back to the document store, and cancellation never
restores a count.
"""
import logging
from typing import Any, Dict, MutableMapping, Optional

import httpx
from pydantic import ValidationError as SchemaError

import config
from errors import RemoteOperationError
from schemas import AvailabilitySnapshot, CarParkInfo

logger = logging.getLogger(__name__)

# Used when the feed is unreachable or does not list the car park.
FALLBACK_INFO = CarParkInfo(total_lots="30", lots_available="15", lot_type="C")


def fetch_carpark_availability(client: Optional[httpx.Client] = None) -> Dict[str, Any]:
    """GET the availability feed and return its JSON body."""
    try:
        if client is not None:
            response = client.get(config.AVAILABILITY_URL)
        else:
            with httpx.Client(timeout=config.HTTP_TIMEOUT_SECONDS) as http:
                response = http.get(config.AVAILABILITY_URL)
        response.raise_for_status()
        return response.json()
    except (httpx.HTTPError, ValueError) as e:
        logger.error("Car park availability fetch failed: %s", e)
        raise RemoteOperationError("Failed to fetch car park availability") from e


def find_snapshot(feed: Dict[str, Any], car_park_no: str) -> AvailabilitySnapshot:
    items = feed.get("items") or []
    carpark_data = items[0].get("carpark_data", []) if items else []
    for record in carpark_data:
        if record.get("carpark_number") == car_park_no:
            try:
                return AvailabilitySnapshot.model_validate(record)
            except SchemaError as e:
                logger.warning("Unreadable availability record for %s: %s", car_park_no, e.errors()[0]["msg"])
                return fallback_snapshot(car_park_no)
    logger.info("Car park not found in availability feed: %s", car_park_no)
    return fallback_snapshot(car_park_no)


def fallback_snapshot(car_park_no: Optional[str] = None) -> AvailabilitySnapshot:
    return AvailabilitySnapshot(carpark_number=car_park_no, carpark_info=[FALLBACK_INFO.model_copy()])


def load_snapshot(car_park_no: str, client: Optional[httpx.Client] = None) -> AvailabilitySnapshot:
    try:
        feed = fetch_carpark_availability(client)
    except RemoteOperationError:
        return fallback_snapshot(car_park_no)
    return find_snapshot(feed, car_park_no)


def decrement_available(snapshot: AvailabilitySnapshot) -> AvailabilitySnapshot:
    """Return a copy with one lot fewer available, never below zero."""
    if not snapshot.carpark_info:
        return snapshot.model_copy(deep=True)
    first = snapshot.carpark_info[0]
    available = max(int(first.lots_available) - 1, 0)
    info = [first.model_copy(update={"lots_available": str(available)})]
    info.extend(i.model_copy() for i in snapshot.carpark_info[1:])
    return snapshot.model_copy(update={"carpark_info": info})


class AvailabilityCache:
    """Last known available-lot count per car park.

    Entries live under ``availability_<carParkNo>`` in any string mapping,
    so a plain dict or a persistent key-value store can back it.
    """

    def __init__(self, store: Optional[MutableMapping[str, str]] = None) -> None:
        self._store = store if store is not None else {}

    @staticmethod
    def key(car_park_no: str) -> str:
        return f"availability_{car_park_no}"

    def get(self, car_park_no: str) -> Optional[int]:
        raw = self._store.get(self.key(car_park_no))
        return int(raw) if raw is not None else None

    def set(self, car_park_no: str, available: int) -> None:
        self._store[self.key(car_park_no)] = str(available)

    def remember(self, snapshot: AvailabilitySnapshot, car_park_no: Optional[str] = None) -> None:
        car_park_no = car_park_no or snapshot.carpark_number
        if car_park_no and snapshot.lots_available is not None:
            self.set(car_park_no, snapshot.lots_available)
