"""Booking lifecycle: reserve, check in, cancel, change timing, auto-expire.

Status machine::

    ongoing --check_in (day + window gated)--> completed
    ongoing --cancel / expire_stale----------> cancelled
    ongoing --change_timing------------------> (deleted)

``completed`` and ``cancelled`` are terminal. Re-applying the state a booking
already holds (a second check-in, a second cancel) rewrites it harmlessly.

Creation goes through the backend's ``/bookSpot`` endpoint; reads, status
updates and deletes go straight to the document store. None of these calls
check who owns the booking, and the availability decrement is local to the
caller's snapshot, not a transaction with the booking write.
"""
import logging
from datetime import datetime
from typing import Any, Callable, Iterable, List, Optional, Sequence, Tuple, Type, Union

from pymongo.errors import PyMongoError

from availability import AvailabilityCache, decrement_available
from errors import (
    AppError,
    BookingFailedError,
    CancelFailedError,
    ChangeTimingFailedError,
    CheckInFailedError,
    CheckInNotAllowedError,
    RemoteOperationError,
    TransitionNotAllowedError,
    ValidationError,
)
from repository import BookingRepository
from schemas import AvailabilitySnapshot, Booking, BookingDate, BookingReceipt, BookingStatus, CarPark

logger = logging.getLogger(__name__)

CHECK_IN_FROM = (BookingStatus.ONGOING, BookingStatus.COMPLETED)
CANCEL_FROM = (BookingStatus.ONGOING, BookingStatus.CANCELLED)
CHANGE_TIMING_FROM = (BookingStatus.ONGOING,)

Hour = Union[str, int]


def parse_hour(value: Hour) -> int:
    try:
        hour = int(str(value).strip())
    except (TypeError, ValueError):
        raise ValidationError("Invalid booking window")
    if not 0 <= hour <= 23:
        raise ValidationError("Invalid booking window")
    return hour


def validate_booking_request(
    date: Union[str, BookingDate],
    hours_from: Optional[Hour],
    hours_to: Optional[Hour],
    user_email: Optional[str],
) -> Tuple[int, int]:
    """Check a reservation request; return ``(start_hour, end_hour)``."""
    if not user_email:
        raise ValidationError("User email not available")
    if hours_from is None or hours_from == "" or hours_to is None or hours_to == "":
        raise ValidationError("Please select both start and end times.")
    if _date_value(date) not in (BookingDate.TODAY.value, BookingDate.TOMORROW.value):
        raise ValidationError("Invalid booking date")
    start, end = parse_hour(hours_from), parse_hour(hours_to)
    if start >= end:
        raise ValidationError("Invalid booking window")
    return start, end


def _date_value(date: Union[str, BookingDate]) -> str:
    return date.value if isinstance(date, BookingDate) else date


def filter_bookings(
    bookings: Iterable[Booking],
    status: Union[str, BookingStatus] = BookingStatus.ONGOING,
    query: str = "",
) -> List[Booking]:
    """Bookings in one status tab, optionally narrowed by an address search."""
    status = BookingStatus(status)
    needle = query.strip().lower()
    return [
        b for b in bookings
        if b.status is status and (not needle or needle in b.address.lower())
    ]


class BookingLifecycle:
    def __init__(
        self,
        api: Any,
        bookings: BookingRepository,
        availability_cache: Optional[AvailabilityCache] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.api = api
        self.bookings = bookings
        self.availability_cache = availability_cache
        self.clock = clock

    # -------------------------------
    # Create / read
    # -------------------------------

    def create_booking(
        self,
        car_park: CarPark,
        date: Union[str, BookingDate],
        hours_from: Hour,
        hours_to: Hour,
        user_email: str,
        availability: Optional[AvailabilitySnapshot] = None,
    ) -> BookingReceipt:
        validate_booking_request(date, hours_from, hours_to, user_email)
        date = _date_value(date)

        try:
            data = self.api.book_spot(
                car_park.car_park_no, date, str(hours_from), str(hours_to), user_email, car_park.address
            )
        except RemoteOperationError as e:
            logger.error("Booking error for %s: %s", car_park.car_park_no, e.message)
            raise BookingFailedError(e.message) from e

        updated = None
        if availability is not None and availability.carpark_info:
            try:
                updated = decrement_available(availability)
            except ValueError as e:
                # the booking is already stored; only the local count is lost
                logger.warning("Availability for %s not updated: %s", car_park.car_park_no, e)
            else:
                if self.availability_cache is not None:
                    self.availability_cache.remember(updated, car_park.car_park_no)

        booking_id = data.get("bookingId") if isinstance(data, dict) else None
        logger.info("Booked %s for %s (%s-%s) as %s", car_park.car_park_no, date, hours_from, hours_to, booking_id)
        return BookingReceipt(booking_id=booking_id, address=car_park.address, date=date, availability=updated)

    def list_bookings(self, user_email: Optional[str]) -> List[Booking]:
        if not user_email:
            logger.info("No user email found")
            return []
        try:
            return self.bookings.list_by_user(user_email)
        except PyMongoError as e:
            logger.error("Error fetching bookings: %s", e)
            raise RemoteOperationError(str(e)) from e

    # -------------------------------
    # Status transitions
    # -------------------------------

    def check_in(
        self,
        booking: Booking,
        now_hour: Optional[int] = None,
        is_booking_date: Optional[bool] = None,
    ) -> Booking:
        if is_booking_date is None:
            is_booking_date = booking.is_today
        if now_hour is None:
            now_hour = self.clock().hour

        if booking.status is BookingStatus.CANCELLED:
            raise CheckInNotAllowedError("booking cancelled")
        if not is_booking_date:
            raise CheckInNotAllowedError(
                "day mismatch", {"reason": "You can only check in on the day of your booking."}
            )
        try:
            start, end = booking.start_hour, booking.end_hour
        except ValueError:
            start = end = -1
        if now_hour < start or now_hour >= end:
            raise CheckInNotAllowedError(
                "outside window", {"reason": "You can only check in during your booking time."}
            )

        try:
            matched = self.bookings.update_status(booking.id, BookingStatus.COMPLETED, allowed_from=CHECK_IN_FROM)
        except PyMongoError as e:
            logger.error("Check-In error: %s", e)
            raise CheckInFailedError(details={"reason": str(e)}) from e
        if not matched:
            self._explain_miss(booking.id, CheckInFailedError, CheckInNotAllowedError("booking cancelled"))
        return booking.model_copy(update={"status": BookingStatus.COMPLETED})

    def cancel(self, booking_id: str) -> None:
        try:
            matched = self.bookings.update_status(booking_id, BookingStatus.CANCELLED, allowed_from=CANCEL_FROM)
        except PyMongoError as e:
            logger.error("Cancel error: %s", e)
            raise CancelFailedError(details={"reason": str(e)}) from e
        if not matched:
            self._explain_miss(booking_id, CancelFailedError)

    def change_timing(self, booking_id: str) -> None:
        """Remove an ongoing booking so the caller can book a new window."""
        try:
            deleted = self.bookings.delete(booking_id, allowed_from=CHANGE_TIMING_FROM)
        except PyMongoError as e:
            logger.error("ChangeTiming error: %s", e)
            raise ChangeTimingFailedError(details={"reason": str(e)}) from e
        if not deleted:
            self._explain_miss(booking_id, ChangeTimingFailedError)

    def _explain_miss(
        self,
        booking_id: Optional[str],
        failure: Type[RemoteOperationError],
        refusal: Optional[AppError] = None,
    ) -> None:
        """Raise the right error after a guarded write matched nothing."""
        try:
            current = self.bookings.get(booking_id) if booking_id else None
        except PyMongoError as e:
            raise failure(details={"reason": str(e)}) from e
        if current is None:
            raise failure(details={"reason": "Booking not found", "booking_id": booking_id})
        raise refusal or TransitionNotAllowedError(
            f"Booking is already {current.status.value}", {"booking_id": booking_id}
        )

    # -------------------------------
    # Auto-expiry
    # -------------------------------

    @staticmethod
    def is_expired(booking: Booking, current_hour: int) -> bool:
        if booking.status is not BookingStatus.ONGOING or not booking.is_today:
            return False
        try:
            return booking.end_hour <= current_hour
        except ValueError:
            return False

    def expire_stale(self, bookings: Sequence[Booking], now: Optional[datetime] = None) -> List[str]:
        """Cancel every ongoing booking for today whose window has closed.

        Works only on the bookings handed in. A failure on one booking is
        logged and the sweep moves on to the next.
        """
        now = now or self.clock()
        expired = []
        for booking in list(bookings):
            if not booking.id or not self.is_expired(booking, now.hour):
                continue
            try:
                self.cancel(booking.id)
            except AppError as e:
                logger.error("Failed to auto-cancel booking %s: %s", booking.id, e.message)
                continue
            expired.append(booking.id)
        if expired:
            logger.info("Auto-cancelled %s expired bookings", len(expired))
        return expired
