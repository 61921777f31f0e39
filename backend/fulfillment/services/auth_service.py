# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication Service

Every action must be attributable. Uses bcrypt for password hashing and
pyotp for time-based second factors.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor BCRYPT_ROUNDS, default 12)
- Minimum 8 characters, upper, lower, digit and special char
- Session tokens managed separately (see session_service.py)
- Second factor: TOTP (+/- TOTP_VALID_WINDOW steps) or a single-use
  backup code. A consumed backup code is removed and committed at once.
"""

from __future__ import annotations

import enum
import re
import secrets
from dataclasses import dataclass

import bcrypt
import pyotp
from flask import current_app

from ..extensions import db
from ..models import User, Merchant
from ..roles import MERCHANT_ROLES, is_valid_role
from ..errors import ValidationError, InvalidCredentialsError, NotFoundError
from fulfillment.time_utils import utcnow


BACKUP_CODE_COUNT = 10


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Raises ValidationError if requirements not met.
    """
    if not password or len(password) < 8:
        raise ValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise ValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise ValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise ValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise ValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """Hash password using bcrypt. Password is validated for strength before hashing."""
    validate_password_strength(password)
    rounds = current_app.config.get("BCRYPT_ROUNDS", 12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt(rounds=rounds))
    return hashed.decode('utf-8')


def verify_password(password: str | None, password_hash: str | None) -> bool:
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        # Malformed stored hash
        return False


def create_user(
    *,
    email: str,
    password: str,
    role: str,
    merchant_id: int | None = None,
    first_name: str | None = None,
    last_name: str | None = None,
) -> User:
    """
    Create new user with bcrypt password hashing.

    Merchant roles require merchant_id; platform roles must not carry one.
    """
    email = (email or "").strip().lower()
    if not email:
        raise ValidationError("email is required")
    if not is_valid_role(role):
        raise ValidationError(f"Invalid role: {role}")

    if role in MERCHANT_ROLES:
        if merchant_id is None:
            raise ValidationError(f"{role} requires merchant_id")
        if not db.session.get(Merchant, merchant_id):
            raise NotFoundError("Merchant not found")
    elif merchant_id is not None:
        raise ValidationError(f"{role} cannot belong to a merchant")

    if db.session.query(User).filter_by(email=email).first():
        raise ValidationError(f"Email {email} already exists")

    user = User(
        email=email,
        password_hash=hash_password(password),
        role=role,
        merchant_id=merchant_id,
        first_name=first_name,
        last_name=last_name,
        is_active=True,
    )
    db.session.add(user)
    db.session.commit()
    return user


def authenticate(email: str, password: str) -> User:
    """
    Resolve and verify a user by email/password.

    Raises InvalidCredentialsError on unknown email, wrong password or a
    deactivated account. The message is the same in every case.
    """
    user = db.session.query(User).filter_by(email=(email or "").strip().lower()).first()
    if not user or not user.is_active or not verify_password(password, user.password_hash):
        raise InvalidCredentialsError("Invalid email or password")

    user.last_login_at = utcnow()
    db.session.commit()
    return user


# =============================================================================
# SECOND FACTOR
# =============================================================================

class SecondFactorState(enum.Enum):
    UNVERIFIED = "UNVERIFIED"
    TOTP_VALID = "TOTP_VALID"
    BACKUP_CODE_VALID = "BACKUP_CODE_VALID"
    VERIFIED = "VERIFIED"


@dataclass
class SecondFactorResult:
    state: SecondFactorState
    method: str | None = None  # "totp" | "backup_code"
    backup_codes_remaining: int | None = None

    @property
    def verified(self) -> bool:
        return self.state is SecondFactorState.VERIFIED


def generate_totp_secret() -> str:
    return pyotp.random_base32()


def generate_backup_codes(count: int = BACKUP_CODE_COUNT) -> list[str]:
    return [secrets.token_hex(4).upper() for _ in range(count)]


def enable_two_factor(user: User) -> tuple[str, list[str]]:
    """Turn on 2FA for a user. Returns (base32 secret, backup codes)."""
    secret = generate_totp_secret()
    codes = generate_backup_codes()
    user.two_factor_secret = secret
    user.backup_codes = codes
    user.two_factor_enabled = True
    db.session.commit()
    return secret, codes


def verify_second_factor(user: User, token: str | None) -> SecondFactorResult:
    """
    UNVERIFIED -> TOTP_VALID | BACKUP_CODE_VALID -> VERIFIED

    A matching backup code is removed from the user's list and the removal is
    committed before returning, so the code cannot be replayed even if the
    guarded operation later fails.
    """
    token = (token or "").strip()
    if not token:
        return SecondFactorResult(state=SecondFactorState.UNVERIFIED)

    state = SecondFactorState.UNVERIFIED
    method = None

    if user.two_factor_secret:
        window = current_app.config.get("TOTP_VALID_WINDOW", 2)
        if pyotp.TOTP(user.two_factor_secret).verify(token, valid_window=window):
            state = SecondFactorState.TOTP_VALID
            method = "totp"

    if state is SecondFactorState.UNVERIFIED:
        codes = list(user.backup_codes or [])
        if token in codes:
            codes.remove(token)
            # Reassign so the JSON column is flagged dirty
            user.backup_codes = codes
            db.session.commit()
            state = SecondFactorState.BACKUP_CODE_VALID
            method = "backup_code"

    if state is SecondFactorState.UNVERIFIED:
        return SecondFactorResult(state=state)

    return SecondFactorResult(
        state=SecondFactorState.VERIFIED,
        method=method,
        backup_codes_remaining=len(user.backup_codes or []),
    )
