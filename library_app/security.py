"""Parola özetleme (bcrypt) ve erişim belirteçleri (PyJWT)."""

from datetime import datetime, timedelta, timezone

import bcrypt
import jwt

from library_app.config import settings
from library_app.exceptions import AuthenticationError
from library_app.models import User


def hash_password(password: str) -> str:
    # Tur sayısı çağrı anında okunur; testler daha düşük bir değer ayarlar
    salt = bcrypt.gensalt(rounds=settings.bcrypt_rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Bozuk özet
        return False


def create_access_token(user: User, expires_minutes: int | None = None) -> str:
    now = datetime.now(timezone.utc)
    minutes = expires_minutes if expires_minutes is not None else settings.jwt_expiration_minutes
    payload = {
        "sub": str(user.id),
        "email": user.email,
        "role": user.role.value,
        "iat": now,
        "exp": now + timedelta(minutes=minutes),
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict:
    try:
        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except jwt.InvalidTokenError as e:
        raise AuthenticationError("Invalid or expired token") from e
    if not str(payload.get("sub", "")).isdigit():
        raise AuthenticationError("Invalid or expired token")
    return payload
