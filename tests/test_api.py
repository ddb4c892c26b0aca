import smtplib

import pytest

import main


def register(api_client, email="u@x.com", password="secret1", **extra):
    body = {"email": email, "password": password, "fullName": "Una User", "phoneNumber": "91234567"}
    body.update(extra)
    return api_client.post("/register", json=body)


# -------------------------------
# /register and /login
# -------------------------------

def test_register_then_login_returns_profile(api_client):
    res = register(api_client)
    assert res.status_code == 201
    assert res.json() == {"message": "User/Vehicle details updated"}

    res = api_client.post("/login", json={"email": "u@x.com", "password": "secret1"})

    assert res.status_code == 200
    profile = res.json()
    assert profile["email"] == "u@x.com"
    assert profile["fullName"] == "Una User"
    assert "passwordHash" not in profile


def test_profile_document_never_holds_the_password(api_client, mongo_db):
    register(api_client)

    user = mongo_db["users"].find_one({"_id": "u@x.com"})

    assert "secret1" not in str(user)
    assert mongo_db["credentials"].find_one({"_id": "u@x.com"})["passwordHash"] != "secret1"


def test_register_twice_is_rejected(api_client):
    register(api_client)

    res = register(api_client)

    assert res.status_code == 400
    assert res.json()["error"] == "Email already registered"


def test_register_short_password_is_rejected(api_client):
    res = register(api_client, password="123")

    assert res.status_code == 400
    assert "at least 6 characters" in res.json()["error"]


def test_register_already_registered_merges_without_credentials(api_client, mongo_db):
    res = register(api_client, password=None, alreadyRegistered=True, vehicleNo="SGX1234A")

    assert res.status_code == 201
    assert mongo_db["users"].find_one({"_id": "u@x.com"})["vehicleNo"] == "SGX1234A"
    assert mongo_db["credentials"].count_documents({}) == 0


def test_login_with_wrong_password(api_client):
    register(api_client)

    res = api_client.post("/login", json={"email": "u@x.com", "password": "wrong-one"})

    assert res.status_code == 400
    assert "error" in res.json()


def test_login_without_profile_document(api_client, mongo_db):
    register(api_client)
    mongo_db["users"].delete_one({"_id": "u@x.com"})

    res = api_client.post("/login", json={"email": "u@x.com", "password": "secret1"})

    assert res.status_code == 404


# -------------------------------
# Vehicle and profile
# -------------------------------

def test_update_and_get_vehicle(api_client):
    register(api_client)

    res = api_client.post(
        "/updateVehicle",
        json={"email": "u@x.com", "country": "SG", "vehicleNo": "SGX1234A", "iuNo": "1122334455", "alreadyRegistered": True},
    )
    assert res.status_code == 200

    res = api_client.get("/getVehicle", params={"email": "u@x.com"})
    assert res.json() == {"email": "u@x.com", "country": "SG", "vehicleNo": "SGX1234A", "iuNo": "1122334455"}


def test_update_vehicle_requires_email(api_client):
    res = api_client.post("/updateVehicle", json={"vehicleNo": "SGX1234A"})

    assert res.status_code == 400
    assert res.json()["error"] == "Email is required to update vehicle info."


def test_get_vehicle_of_unknown_user(api_client):
    assert api_client.get("/getVehicle", params={"email": "nobody@x.com"}).status_code == 404
    assert api_client.get("/getVehicle").status_code == 400


def test_update_profile_merges_given_fields(api_client, mongo_db):
    register(api_client)

    res = api_client.post("/updateProfile", json={"email": "u@x.com", "avatarIndex": 3})

    assert res.status_code == 200
    user = mongo_db["users"].find_one({"_id": "u@x.com"})
    assert user["avatarIndex"] == 3
    assert user["fullName"] == "Una User"


# -------------------------------
# /resetPassword
# -------------------------------

def test_reset_password_sends_email_and_flags_user(api_client, mongo_db):
    register(api_client)

    res = api_client.post("/resetPassword", json={"email": "u@x.com"})

    assert res.status_code == 200
    assert res.json()["success"] is True
    assert mongo_db["users"].find_one({"_id": "u@x.com"})["mustChangePassword"] is True


def test_reset_password_unknown_user(api_client):
    res = api_client.post("/resetPassword", json={"email": "nobody@x.com"})

    assert res.status_code == 404
    assert res.json() == {"error": "User not found", "success": False}


def test_reset_password_requires_email(api_client):
    res = api_client.post("/resetPassword", json={})

    assert res.status_code == 400
    assert res.json()["success"] is False


def test_reset_password_mail_failure(api_client, monkeypatch):
    register(api_client)

    def boom(email):
        raise smtplib.SMTPException("relay down")

    monkeypatch.setattr(main, "send_password_reset_email", boom)
    res = api_client.post("/resetPassword", json={"email": "u@x.com"})

    assert res.status_code == 500
    assert res.json() == {"error": "Failed to send password reset email", "success": False}


def test_new_password_needs_current_password(api_client):
    register(api_client)

    res = api_client.post("/resetPassword", json={"email": "u@x.com", "newPassword": "another1"})

    assert res.status_code == 400
    assert res.json()["success"] is False


def test_new_password_replaces_old_one(api_client):
    register(api_client)

    res = api_client.post(
        "/resetPassword", json={"email": "u@x.com", "newPassword": "another1", "currentPassword": "secret1"}
    )

    assert res.status_code == 200
    assert res.json()["message"] == "Password updated successfully."
    assert api_client.post("/login", json={"email": "u@x.com", "password": "secret1"}).status_code == 400
    assert api_client.post("/login", json={"email": "u@x.com", "password": "another1"}).status_code == 200


# -------------------------------
# /bookSpot and /bookings
# -------------------------------

BOOKING = {
    "carParkNo": "ACB",
    "date": "Today",
    "hoursFrom": "10",
    "hoursTo": "11",
    "userEmail": "u@x.com",
    "address": "BLK 270/271 ALBERT CENTRE BASEMENT CAR PARK",
}


def test_book_spot_stores_booking(api_client, mongo_db):
    res = api_client.post("/bookSpot", json=BOOKING)

    assert res.status_code == 200
    body = res.json()
    assert body["message"] == "Booking stored successfully"
    stored = mongo_db["bookings"].find_one()
    assert str(stored["_id"]) == body["bookingId"]
    assert {k: stored[k] for k in BOOKING} == BOOKING
    assert stored["status"] == "ongoing"


@pytest.mark.parametrize("missing", ["carParkNo", "userEmail"])
def test_book_spot_requires_car_park_and_email(api_client, mongo_db, missing):
    body = {k: v for k, v in BOOKING.items() if k != missing}

    res = api_client.post("/bookSpot", json=body)

    assert res.status_code == 400
    assert res.json()["error"] == "carParkNo and userEmail are required"
    assert mongo_db["bookings"].count_documents({}) == 0


def test_book_spot_rejects_zero_duration(api_client, mongo_db):
    res = api_client.post("/bookSpot", json={**BOOKING, "hoursTo": "10"})

    assert res.status_code == 400
    assert res.json()["error"] == "Invalid booking window"
    assert mongo_db["bookings"].count_documents({}) == 0


def test_book_spot_defaults_date_to_today(api_client, mongo_db):
    body = {k: v for k, v in BOOKING.items() if k != "date"}

    api_client.post("/bookSpot", json=body)

    assert mongo_db["bookings"].find_one()["date"] == "Today"


def test_list_bookings_endpoint(api_client):
    api_client.post("/bookSpot", json=BOOKING)
    api_client.post("/bookSpot", json={**BOOKING, "userEmail": "other@x.com"})

    rows = api_client.get("/bookings", params={"userEmail": "u@x.com"}).json()

    assert len(rows) == 1
    assert rows[0]["carParkNo"] == "ACB"
    assert rows[0]["status"] == "ongoing"
    assert rows[0]["id"]
    assert api_client.get("/bookings").json() == []


def test_list_bookings_skips_unreadable_documents(api_client, mongo_db):
    api_client.post("/bookSpot", json=BOOKING)
    mongo_db["bookings"].insert_one({**BOOKING, "status": "expired"})

    res = api_client.get("/bookings", params={"userEmail": "u@x.com"})

    assert res.status_code == 200
    assert [r["status"] for r in res.json()] == ["ongoing"]


# -------------------------------
# Car parks and health
# -------------------------------

def test_nearby_carparks_sorted_by_distance(api_client, mongo_db):
    mongo_db["carparks"].insert_many(
        [
            {"car_park_no": "FAR", "address": "Far away", "latitude": 1.45, "longitude": 103.80},
            {"car_park_no": "ACB", "address": "Albert Centre", "latitude": 1.3011, "longitude": 103.8541},
            {"car_park_no": "BBB", "address": "Bugis", "latitude": 1.3000, "longitude": 103.8560},
        ]
    )

    rows = api_client.get("/carparks/nearby", params={"lat": 1.3010, "lng": 103.8541, "radius_km": 5}).json()

    assert [r["car_park_no"] for r in rows] == ["ACB", "BBB"]
    assert rows[0]["distance"] <= rows[1]["distance"]


def test_database_status(api_client):
    res = api_client.get("/test")

    assert res.status_code == 200
    assert res.json()["database_name"] == "carpark_test"
