import logging
from typing import Any, Dict, Iterable, List, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import ValidationError as SchemaError
from pymongo.database import Database

from database import now_utc
from schemas import Booking, BookingStatus

logger = logging.getLogger(__name__)


def _oid(value: Optional[str]) -> Optional[ObjectId]:
    # ObjectId(None) would mint a fresh id
    if not value:
        return None
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None


def _status_guard(allowed_from: Optional[Iterable[BookingStatus]]) -> Dict[str, Any]:
    """Filter matching bookings whose status is one of ``allowed_from``.

    ``$nin`` over the excluded statuses also matches documents without a
    status field, which read as ongoing.
    """
    if allowed_from is None:
        return {}
    allowed = set(allowed_from)
    excluded = [s.value for s in BookingStatus if s not in allowed]
    if not excluded:
        return {}
    return {"status": {"$nin": excluded}}


class BookingRepository:
    def __init__(self, db: Database) -> None:
        self._col = db["bookings"]

    def create(self, booking: Booking) -> str:
        doc = booking.to_document()
        doc.setdefault("bookedAt", now_utc())
        res = self._col.insert_one(doc)
        return str(res.inserted_id)

    def get(self, booking_id: str) -> Optional[Booking]:
        oid = _oid(booking_id)
        if oid is None:
            return None
        doc = self._col.find_one({"_id": oid})
        return Booking.from_document(doc) if doc else None

    def list_by_user(self, user_email: str) -> List[Booking]:
        """Bookings of one user; documents that do not read as a booking are skipped."""
        bookings = []
        for doc in self._col.find({"userEmail": user_email}):
            try:
                bookings.append(Booking.from_document(doc))
            except SchemaError as e:
                logger.warning("Skipping unreadable booking %s: %s", doc.get("_id"), e.errors()[0]["msg"])
        return bookings

    def update_status(
        self,
        booking_id: str,
        status: BookingStatus,
        allowed_from: Optional[Iterable[BookingStatus]] = None,
    ) -> bool:
        """Merge ``{status}`` into one booking; False when nothing matched."""
        oid = _oid(booking_id)
        if oid is None:
            return False
        res = self._col.update_one(
            {"_id": oid, **_status_guard(allowed_from)},
            {"$set": {"status": status.value}},
        )
        return res.matched_count == 1

    def delete(self, booking_id: str, allowed_from: Optional[Iterable[BookingStatus]] = None) -> bool:
        oid = _oid(booking_id)
        if oid is None:
            return False
        res = self._col.delete_one({"_id": oid, **_status_guard(allowed_from)})
        return res.deleted_count == 1


class UserRepository:
    """Profile documents keyed by email address."""

    def __init__(self, db: Database) -> None:
        self._col = db["users"]

    def get(self, email: str) -> Optional[Dict[str, Any]]:
        if not email:
            return None
        return self._col.find_one({"_id": email})

    def merge(self, email: str, fields: Dict[str, Any]) -> None:
        now = now_utc()
        self._col.update_one(
            {"_id": email},
            {"$set": {**fields, "email": email, "updatedAt": now}, "$setOnInsert": {"createdAt": now}},
            upsert=True,
        )
