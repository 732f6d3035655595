"""
Security utilities for authentication and voter verification.
"""
from datetime import timedelta
from typing import Optional, Dict, Any
import base64
import hashlib
import secrets

from jose import jwt, JWTError
from passlib.context import CryptContext

from evote.core.config import settings
from evote.core.timeutils import utcnow


# Hashing context for the admin password and stored OTPs
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def create_access_token(
    data: Dict[str, Any],
    expires_delta: Optional[timedelta] = None
) -> str:
    """Create a JWT access token."""
    to_encode = data.copy()

    if expires_delta:
        expire = utcnow() + expires_delta
    else:
        expire = utcnow() + timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode.update({
        "exp": expire,
        "iat": utcnow(),
        "type": "access"
    })

    encoded_jwt = jwt.encode(
        to_encode,
        settings.JWT_SECRET_KEY,
        algorithm=settings.JWT_ALGORITHM
    )
    return encoded_jwt


def decode_token(token: str) -> Optional[Dict[str, Any]]:
    """Decode and verify a JWT token."""
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM]
        )
        return payload
    except JWTError:
        return None


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash."""
    return pwd_context.verify(plain_password, hashed_password)


def hash_password(password: str) -> str:
    """Hash a password."""
    return pwd_context.hash(password)


def verify_admin_credentials(username: str, password: str) -> bool:
    """Check the configured admin console credentials."""
    if not secrets.compare_digest(username, settings.ADMIN_USERNAME):
        return False
    if settings.ADMIN_PASSWORD_HASH:
        return verify_password(password, settings.ADMIN_PASSWORD_HASH)
    return secrets.compare_digest(password, settings.ADMIN_PASSWORD)


def hash_aadhaar(aadhaar_id: str) -> str:
    """Salted SHA-256 of an Aadhaar ID."""
    data = f"{aadhaar_id}{settings.AADHAAR_HASH_SECRET}"
    return hashlib.sha256(data.encode()).hexdigest()


def hash_voter_reference(voter_id: str) -> str:
    """Pseudonymous voter reference used on the blockchain mirror."""
    return "0x" + hashlib.sha256(str(voter_id).encode()).hexdigest()


def generate_otp(length: Optional[int] = None) -> str:
    """Generate a numeric one-time password."""
    length = length or settings.OTP_LENGTH
    return "".join(str(secrets.randbelow(10)) for _ in range(length))


def generate_challenge() -> str:
    """Generate a WebAuthn challenge."""
    return base64.urlsafe_b64encode(secrets.token_bytes(32)).decode().rstrip("=")
