"""Per-user session state for the booking client.

A ``UserSession`` is the explicit replacement for a process-wide user and
vehicle context: it is populated by ``login``, cleared by ``logout`` and
owns the working set of bookings the auto-expiry sweep operates on.
"""
import asyncio
import logging
from typing import List, Optional

import httpx

import config
from availability import load_snapshot
from client import ParkingApiClient
from errors import ValidationError
from lifecycle import BookingLifecycle, filter_bookings
from schemas import AvailabilitySnapshot, Booking, BookingReceipt, BookingStatus, CarPark, User
from sweeper import ExpirySweeper

logger = logging.getLogger(__name__)


class UserSession:
    def __init__(
        self,
        api: ParkingApiClient,
        lifecycle: BookingLifecycle,
        sweep_interval: float = config.SWEEP_INTERVAL_SECONDS,
        feed: Optional[httpx.Client] = None,
    ) -> None:
        self.api = api
        self.lifecycle = lifecycle
        self.sweep_interval = sweep_interval
        # live availability is only looked up when a feed client is given
        self.feed = feed
        self.profile: Optional[User] = None
        self.bookings: List[Booking] = []
        self._sweeper: Optional[ExpirySweeper] = None

    @property
    def user_email(self) -> str:
        return self.profile.email if self.profile else ""

    @property
    def logged_in(self) -> bool:
        return self.profile is not None

    # -------------------------------
    # Lifecycle of the session itself
    # -------------------------------

    def login(self, email: str, password: str) -> User:
        data = self.api.login(email, password)
        self.profile = User.model_validate(data)
        logger.info("Logged in as %s", self.profile.email)
        return self.profile

    async def logout(self) -> None:
        await self.stop_auto_expiry()
        self.profile = None
        self.bookings = []

    def update_vehicle(self, country: str, vehicle_no: str, iu_no: str) -> User:
        if self.profile is None:
            raise ValidationError("User email not available")
        self.api.update_vehicle(self.profile.email, country, vehicle_no, iu_no)
        self.profile = self.profile.model_copy(
            update={"country": country, "vehicle_no": vehicle_no, "iu_no": iu_no}
        )
        return self.profile

    # -------------------------------
    # Bookings working set
    # -------------------------------

    def refresh_bookings(self) -> List[Booking]:
        self.bookings = self.lifecycle.list_bookings(self.user_email)
        return self.bookings

    def bookings_in(self, status: BookingStatus, query: str = "") -> List[Booking]:
        return filter_bookings(self.bookings, status, query)

    def book(
        self,
        car_park: CarPark,
        date: str,
        hours_from: str,
        hours_to: str,
        availability: Optional[AvailabilitySnapshot] = None,
    ) -> BookingReceipt:
        if availability is None and self.feed is not None:
            availability = load_snapshot(car_park.car_park_no, self.feed)
        return self.lifecycle.create_booking(
            car_park, date, hours_from, hours_to, self.user_email, availability
        )

    def cached_availability(self, car_park_no: str) -> Optional[int]:
        cache = self.lifecycle.availability_cache
        return cache.get(car_park_no) if cache is not None else None

    def check_in(self, booking: Booking) -> Booking:
        updated = self.lifecycle.check_in(booking)
        self._set_status(booking.id, BookingStatus.COMPLETED)
        return updated

    def cancel(self, booking_id: str) -> None:
        self.lifecycle.cancel(booking_id)
        self._set_status(booking_id, BookingStatus.CANCELLED)

    def change_timing(self, booking_id: str) -> None:
        self.lifecycle.change_timing(booking_id)
        self.bookings = [b for b in self.bookings if b.id != booking_id]

    def _set_status(self, booking_id: Optional[str], status: BookingStatus) -> None:
        self.bookings = [
            b.model_copy(update={"status": status}) if b.id == booking_id else b
            for b in self.bookings
        ]

    def _apply_expired(self, booking_ids: List[str]) -> None:
        for booking_id in booking_ids:
            self._set_status(booking_id, BookingStatus.CANCELLED)

    # -------------------------------
    # Auto-expiry
    # -------------------------------

    def start_auto_expiry(self) -> Optional[asyncio.Task]:
        if not config.ENABLE_AUTO_EXPIRY:
            logger.info("Auto-expiry disabled; bookings stay ongoing until cancelled")
            return None
        if self._sweeper is None:
            self._sweeper = ExpirySweeper(
                self.lifecycle,
                lambda: self.bookings,
                interval=self.sweep_interval,
                on_expired=self._apply_expired,
            )
        return self._sweeper.start()

    async def stop_auto_expiry(self) -> None:
        if self._sweeper is not None:
            await self._sweeper.stop()
            self._sweeper = None
