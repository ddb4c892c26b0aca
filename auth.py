"""Password credentials, kept apart from the ``users`` profile documents.

The ``credentials`` collection plays the part of the identity provider: it
only ever holds an email and a password hash.
"""
from typing import Optional

from passlib.context import CryptContext
from pymongo.database import Database

import config
from database import now_utc
from errors import ValidationError

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


class CredentialStore:
    def __init__(self, db: Database) -> None:
        self._col = db["credentials"]

    def exists(self, email: str) -> bool:
        return self._col.find_one({"_id": email}) is not None

    def create(self, email: str, password: str) -> None:
        if not email:
            raise ValidationError("Email is required")
        if not password or len(password) < config.MIN_PASSWORD_LENGTH:
            raise ValidationError(
                f"Password should be at least {config.MIN_PASSWORD_LENGTH} characters"
            )
        if self.exists(email):
            raise ValidationError("Email already registered")
        now = now_utc()
        self._col.insert_one(
            {"_id": email, "passwordHash": hash_password(password), "createdAt": now, "updatedAt": now}
        )

    def authenticate(self, email: str, password: Optional[str]) -> bool:
        if not email or not password:
            return False
        doc = self._col.find_one({"_id": email})
        if not doc:
            return False
        return verify_password(password, doc["passwordHash"])

    def set_password(self, email: str, new_password: str) -> None:
        if not new_password or len(new_password) < config.MIN_PASSWORD_LENGTH:
            raise ValidationError(
                f"Password should be at least {config.MIN_PASSWORD_LENGTH} characters"
            )
        self._col.update_one(
            {"_id": email},
            {"$set": {"passwordHash": hash_password(new_password), "updatedAt": now_utc()}},
        )
