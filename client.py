"""Thin synchronous wrapper around the booking backend's HTTP surface.

Every call posts JSON and expects JSON back. A non-2xx answer raises
``ApiError`` carrying the backend's ``error`` text; transport failures raise
``ApiError`` with the transport message. Input checks that the backend would
reject anyway are done up front where the mobile client did them.
"""
import logging
from typing import Any, Dict, List, Optional

import httpx

import config
from errors import ApiError, ValidationError

logger = logging.getLogger(__name__)


class ParkingApiClient:
    def __init__(self, base_url: str = config.API_URL, http: Optional[httpx.Client] = None) -> None:
        self._owns_http = http is None
        self._http = http or httpx.Client(
            base_url=base_url.rstrip("/"),
            timeout=config.HTTP_TIMEOUT_SECONDS,
            headers={"Content-Type": "application/json"},
        )

    def close(self) -> None:
        if self._owns_http:
            self._http.close()

    def __enter__(self) -> "ParkingApiClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _request(self, method: str, path: str, default_error: str, **kwargs: Any) -> Any:
        logger.debug("Sending request to: %s", path)
        try:
            response = self._http.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.error("%s %s failed: %s", method, path, e)
            raise ApiError(str(e) or default_error) from e

        try:
            data = response.json()
        except ValueError:
            data = {}

        if not response.is_success:
            message = data.get("error") if isinstance(data, dict) else None
            logger.error("%s %s returned %s: %s", method, path, response.status_code, message)
            raise ApiError(message or default_error, status_code=response.status_code)
        return data

    # -------------------------------
    # Accounts
    # -------------------------------

    def register(self, email: str, password: str, full_name: str = "", phone_number: str = "") -> Dict[str, Any]:
        return self._request(
            "POST",
            "/register",
            "Registration failed",
            json={"email": email, "password": password, "fullName": full_name, "phoneNumber": phone_number},
        )

    def login(self, email: str, password: str) -> Dict[str, Any]:
        return self._request("POST", "/login", "Login failed", json={"email": email, "password": password})

    def reset_password(
        self,
        email: str,
        new_password: Optional[str] = None,
        current_password: Optional[str] = None,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"email": email, "newPassword": new_password}
        if current_password is not None:
            payload["currentPassword"] = current_password
        return self._request("POST", "/resetPassword", "Password reset failed", json=payload)

    def update_profile(self, email: str, **fields: Any) -> Dict[str, Any]:
        if not email:
            raise ValidationError("Email is required to update user data")
        return self._request(
            "POST", "/updateProfile", "Failed to update profile", json={"email": email, **fields}
        )

    # -------------------------------
    # Vehicle
    # -------------------------------

    def update_vehicle(self, email: str, country: str, vehicle_no: str, iu_no: str) -> Dict[str, Any]:
        if not email:
            raise ValidationError("Email is required")
        if not vehicle_no:
            raise ValidationError("Vehicle number is required")
        return self._request(
            "POST",
            "/updateVehicle",
            "Failed to update vehicle details",
            json={
                "email": email,
                "country": country,
                "vehicleNo": vehicle_no,
                "iuNo": iu_no,
                "alreadyRegistered": True,
            },
        )

    def get_vehicle(self, email: str) -> Dict[str, Any]:
        if not email:
            raise ValidationError("Email is required")
        return self._request("GET", "/getVehicle", "Failed to fetch vehicle details", params={"email": email})

    # -------------------------------
    # Bookings
    # -------------------------------

    def book_spot(
        self,
        car_park_no: str,
        date: str,
        hours_from: str,
        hours_to: str,
        user_email: str,
        address: str,
    ) -> Dict[str, Any]:
        return self._request(
            "POST",
            "/bookSpot",
            "Failed to book spot",
            json={
                "carParkNo": car_park_no,
                "date": date,
                "hoursFrom": hours_from,
                "hoursTo": hours_to,
                "userEmail": user_email,
                "address": address,
            },
        )

    def list_bookings(self, user_email: str) -> List[Dict[str, Any]]:
        return self._request("GET", "/bookings", "Failed to fetch bookings", params={"userEmail": user_email})

    def nearby_carparks(self, lat: float, lng: float, radius_km: Optional[float] = None) -> List[Dict[str, Any]]:
        params: Dict[str, Any] = {"lat": lat, "lng": lng}
        if radius_km is not None:
            params["radius_km"] = radius_km
        return self._request("GET", "/carparks/nearby", "Failed to fetch car parks", params=params)
