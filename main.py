import logging
import smtplib
from email.mime.text import MIMEText
from typing import Any, Dict, List, Optional, Union

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from pymongo.database import Database
from pymongo.errors import PyMongoError
from starlette.exceptions import HTTPException as StarletteHTTPException

import config
import database
from auth import CredentialStore
from database import get_db, get_documents, now_utc, serialize_doc
from errors import AppError, ValidationError
from geo import nearby_carparks
from lifecycle import validate_booking_request
from repository import BookingRepository, UserRepository
from schemas import Booking, BookingDate, CarPark

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("carpark-api")

app = FastAPI(title=config.APP_NAME, version=config.APP_VERSION)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# -------------------------------
# Error responses: every failure answers {"error": message}
# -------------------------------

@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    message = exc.detail if isinstance(exc.detail, str) else "HTTP error"
    return JSONResponse(status_code=exc.status_code, content={"error": message})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request body", "details": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(PyMongoError)
async def database_error_handler(request: Request, exc: PyMongoError) -> JSONResponse:
    logger.error("Database error on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=500, content={"error": str(exc)})


@app.on_event("shutdown")
def _shutdown() -> None:
    database.close()


# -------------------------------
# Utilities
# -------------------------------

def send_email(to_email: str, subject: str, body: str):
    if not config.SMTP_HOST or not config.SMTP_PORT:
        logger.info("[EMAIL LOG] To: %s | Subject: %s", to_email, subject)
        logger.debug(body)
        return

    msg = MIMEText(body, "html")
    msg["Subject"] = subject
    msg["From"] = config.FROM_EMAIL
    msg["To"] = to_email

    with smtplib.SMTP(config.SMTP_HOST, config.SMTP_PORT) as server:
        server.starttls()
        if config.SMTP_USER and config.SMTP_PASS:
            server.login(config.SMTP_USER, config.SMTP_PASS)
        server.sendmail(config.FROM_EMAIL, [to_email], msg.as_string())


def send_password_reset_email(email: str):
    subject = "Reset your car park account password"
    body = f"""
    <p>A password reset was requested for <b>{email}</b>.</p>
    <p>Sign in to the app and choose a new password. If you did not ask for this, you can ignore this email.</p>
    """
    send_email(email, subject, body)


def profile_response(doc: Dict[str, Any]) -> Dict[str, Any]:
    out = serialize_doc(doc)
    out.pop("id", None)
    return out


# -------------------------------
# Accounts
# -------------------------------

class RegisterRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: Optional[str] = None
    password: Optional[str] = None
    full_name: Optional[str] = Field(None, alias="fullName")
    phone_number: Optional[str] = Field(None, alias="phoneNumber")
    country: Optional[str] = None
    vehicle_no: Optional[str] = Field(None, alias="vehicleNo")
    iu_no: Optional[str] = Field(None, alias="iuNo")
    already_registered: Optional[bool] = Field(None, alias="alreadyRegistered")


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class UpdateVehicleRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: Optional[str] = None
    country: Optional[str] = None
    vehicle_no: Optional[str] = Field(None, alias="vehicleNo")
    iu_no: Optional[str] = Field(None, alias="iuNo")
    already_registered: Optional[bool] = Field(None, alias="alreadyRegistered")


class UpdateProfileRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: Optional[str] = None
    full_name: Optional[str] = Field(None, alias="fullName")
    phone_number: Optional[str] = Field(None, alias="phoneNumber")
    avatar_index: Optional[int] = Field(None, alias="avatarIndex")


class ResetPasswordRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: Optional[str] = None
    new_password: Optional[str] = Field(None, alias="newPassword")
    current_password: Optional[str] = Field(None, alias="currentPassword")


@app.get("/")
def root():
    return {"message": "Car Park Booking API"}


@app.post("/register", status_code=201)
def register(payload: RegisterRequest, db: Database = Depends(get_db)):
    if not payload.email:
        raise HTTPException(status_code=400, detail="Email is required")

    if payload.already_registered is not True:
        CredentialStore(db).create(payload.email, payload.password or "")
        logger.info("User registered successfully: %s", payload.email)
    else:
        logger.info("User is already registered; merging additional details")

    UserRepository(db).merge(
        payload.email,
        {
            "fullName": payload.full_name or "",
            "phoneNumber": payload.phone_number or "",
            "country": payload.country or "",
            "vehicleNo": payload.vehicle_no or "",
            "iuNo": payload.iu_no or "",
        },
    )
    return {"message": "User/Vehicle details updated"}


@app.post("/login")
def login(payload: LoginRequest, db: Database = Depends(get_db)):
    if not CredentialStore(db).authenticate(payload.email or "", payload.password):
        raise HTTPException(status_code=400, detail="Invalid email or password")
    user = UserRepository(db).get(payload.email)
    if not user:
        raise HTTPException(status_code=404, detail="User data not found")
    return profile_response(user)


@app.post("/updateProfile")
def update_profile(payload: UpdateProfileRequest, db: Database = Depends(get_db)):
    if not payload.email:
        raise HTTPException(status_code=400, detail="Email is required to update user data")
    fields = payload.model_dump(by_alias=True, exclude_none=True, exclude={"email"})
    UserRepository(db).merge(payload.email, fields)
    return {"success": True}


@app.post("/resetPassword")
def reset_password(payload: ResetPasswordRequest, db: Database = Depends(get_db)):
    def failure(status_code: int, message: str, **extra: Any) -> JSONResponse:
        return JSONResponse(status_code=status_code, content={"error": message, "success": False, **extra})

    if not payload.email:
        return failure(400, "Email is required")

    try:
        users = UserRepository(db)
        if not users.get(payload.email):
            return failure(404, "User not found")

        if payload.new_password:
            credentials = CredentialStore(db)
            if not credentials.authenticate(payload.email, payload.current_password):
                return failure(400, "Unable to update password. Please log in and try again.")
            try:
                credentials.set_password(payload.email, payload.new_password)
            except ValidationError as e:
                return failure(400, e.message)
            logger.info("Password updated for: %s", payload.email)
        else:
            try:
                send_password_reset_email(payload.email)
            except (smtplib.SMTPException, OSError) as e:
                logger.warning("Could not send password reset email: %s", e)
                return failure(500, "Failed to send password reset email")
            logger.info("Password reset email sent to: %s", payload.email)

        users.merge(
            payload.email,
            {"passwordResetAt": now_utc(), "mustChangePassword": not payload.new_password},
        )
    except PyMongoError as e:
        logger.error("Password Reset Error: %s", e)
        return failure(500, "An unexpected error occurred during password reset", details=str(e))

    return {
        "message": "Password updated successfully."
        if payload.new_password
        else "Password reset email sent. Check your inbox.",
        "success": True,
    }


# -------------------------------
# Vehicle
# -------------------------------

@app.post("/updateVehicle")
def update_vehicle(payload: UpdateVehicleRequest, db: Database = Depends(get_db)):
    if not payload.email:
        raise HTTPException(status_code=400, detail="Email is required to update vehicle info.")
    UserRepository(db).merge(
        payload.email,
        {
            "country": payload.country or "",
            "vehicleNo": payload.vehicle_no or "",
            "iuNo": payload.iu_no or "",
        },
    )
    return {"message": "Vehicle updated"}


@app.get("/getVehicle")
def get_vehicle(email: Optional[str] = Query(None), db: Database = Depends(get_db)):
    if not email:
        raise HTTPException(status_code=400, detail="Email is required")
    user = UserRepository(db).get(email)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return {
        "email": email,
        "country": user.get("country", ""),
        "vehicleNo": user.get("vehicleNo", ""),
        "iuNo": user.get("iuNo", ""),
    }


# -------------------------------
# Booking
# -------------------------------

class BookSpotRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    car_park_no: Optional[str] = Field(None, alias="carParkNo")
    date: Optional[str] = None  # "Today" | "Tomorrow"
    hours_from: Optional[Union[str, int]] = Field(None, alias="hoursFrom")
    hours_to: Optional[Union[str, int]] = Field(None, alias="hoursTo")
    user_email: Optional[str] = Field(None, alias="userEmail")
    address: Optional[str] = None


@app.post("/bookSpot")
def book_spot(payload: BookSpotRequest, db: Database = Depends(get_db)):
    if not payload.car_park_no or not payload.user_email:
        raise HTTPException(status_code=400, detail="carParkNo and userEmail are required")

    date = payload.date or BookingDate.TODAY.value
    validate_booking_request(date, payload.hours_from, payload.hours_to, payload.user_email)

    booking = Booking(
        car_park_no=payload.car_park_no,
        address=payload.address or "",
        date=date,
        hours_from=payload.hours_from,
        hours_to=payload.hours_to,
        user_email=payload.user_email,
        booked_at=now_utc(),
    )
    booking_id = BookingRepository(db).create(booking)
    logger.info("Booking created with ID: %s", booking_id)

    return {"message": "Booking stored successfully", "bookingId": booking_id}


@app.get("/bookings")
def my_bookings(user_email: Optional[str] = Query(None, alias="userEmail"), db: Database = Depends(get_db)):
    if not user_email:
        return []
    rows = BookingRepository(db).list_by_user(user_email)
    return [b.model_dump(mode="json", by_alias=True) for b in rows]


# -------------------------------
# Car parks
# -------------------------------

@app.get("/carparks/nearby")
def carparks_nearby(
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
    radius_km: float = Query(config.DEFAULT_RADIUS_KM, gt=0),
    db: Database = Depends(get_db),
) -> List[Dict[str, Any]]:
    carparks = [CarPark.model_validate(doc) for doc in get_documents(db, "carparks")]
    return [
        {**park.model_dump(), "distance": round(dist, 3)}
        for park, dist in nearby_carparks(carparks, lat, lng, radius_km)
    ]


@app.get("/test")
def test_database(db: Database = Depends(get_db)):
    response = {
        "backend": "Running",
        "database": "Connected",
        "database_name": db.name,
        "collections": [],
    }
    try:
        response["collections"] = db.list_collection_names()
    except PyMongoError as e:
        response["database"] = f"Error: {str(e)[:80]}"
    return response


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
