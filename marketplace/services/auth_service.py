from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from datetime import timedelta
from typing import Optional, Tuple
import logging
import uuid

import bcrypt
import jwt

from marketplace.config import get_settings
from marketplace.models.refresh_token import RefreshToken
from marketplace.models.user import User
from marketplace.schemas.auth import RegisterRequest
from marketplace.services.exceptions import AuthenticationError, ConflictError
from marketplace.utils.dates import utcnow

logger = logging.getLogger(__name__)

settings = get_settings()

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"

INVALID_CREDENTIALS = "Invalid credentials."


def hash_password(password: str) -> str:
    """Hash password using bcrypt"""
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Verify password using bcrypt"""
    return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))


def create_access_token(user: User) -> str:
    now = utcnow()
    payload = {
        "sub": str(user.id),
        "role": user.role.value,
        "type": ACCESS_TOKEN_TYPE,
        "iat": now,
        "exp": now + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str, expected_type: str) -> dict:
    """
    Decode and verify a token issued by this service.

    Raises:
        AuthenticationError: If the token is invalid, expired or of another type
    """
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError as e:
        raise AuthenticationError("Token expired.") from e
    except jwt.PyJWTError as e:
        raise AuthenticationError("Invalid token.") from e

    if payload.get("type") != expected_type or not payload.get("sub"):
        raise AuthenticationError("Invalid token.")
    return payload


class AuthService:
    """Accounts and the tokens issued for them."""

    def __init__(self, db: Session):
        self.db = db

    def register(self, data: RegisterRequest) -> User:
        """
        Create an account.

        Raises:
            ConflictError: If the email is already registered
        """
        user = User(
            email=data.email,
            password_hash=hash_password(data.password),
            role=data.role,
            farm_name=data.farm_name,
            address=data.address,
            contact_info=data.contact_info,
        )
        self.db.add(user)
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise ConflictError("Email might already be in use.") from e

        self.db.refresh(user)
        logger.info(f"Registered {user.role.value} account #{user.id}")
        return user

    def authenticate(self, email: str, password: str) -> User:
        """
        Check a login.

        Raises:
            AuthenticationError: If the email is unknown or the password is wrong,
                with the same message either way
        """
        user =self.db.query(User).filter(User.email == email).first()
        if not user:
            logger.info("Failed login for unknown email")
            raise AuthenticationError(INVALID_CREDENTIALS)
        if not verify_password(password, user.password_hash):
            logger.warning(f"Failed login for account #{user.id}")
            raise AuthenticationError(INVALID_CREDENTIALS)
        return user

    def get_user(self, user_id: int) -> Optional[User]:
        return self.db.query(User).filter(User.id == user_id).first()

    def user_from_access_token(self, token: str) -> User:
        """
        Resolve the account an access token was issued for.

        Raises:
            AuthenticationError: If the token is invalid or the account is gone
        """
        payload = decode_token(token, ACCESS_TOKEN_TYPE)
        user = self.get_user(int(payload["sub"]))
        if not user:
            raise AuthenticationError("Account no longer exists.")
        return user

    def issue_tokens(self, user: User) -> Tuple[str, str]:
        """Create an access token and a stored refresh token for ``user``."""
        now = utcnow()
        expires_at = now + timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)
        jti = uuid.uuid4().hex

        refresh_token = jwt.encode(
            {
                "sub": str(user.id),
                "jti": jti,
                "type": REFRESH_TOKEN_TYPE,
                "iat": now,
                "exp": expires_at,
            },
            settings.JWT_SECRET,
            algorithm=settings.JWT_ALGORITHM,
        )

        self.db.add(RefreshToken(jti=jti, user_id=user.id, expires_at=expires_at))
        self.db.commit()

        return create_access_token(user), refresh_token

    def rotate(self, refresh_token: str) -> Tuple[User, str, str]:
        """
        Exchange a refresh token for a new token pair. The old one is revoked.

        Raises:
            AuthenticationError: If the token is invalid, revoked or unknown
        """
        payload = decode_token(refresh_token, REFRESH_TOKEN_TYPE)
        jti = payload.get("jti")

        # Conditional UPDATE: of two concurrent refreshes only one matches the live row
        claimed = (
            self.db.query(RefreshToken)
            .filter(RefreshToken.jti == jti, RefreshToken.revoked.is_(False))
            .update({RefreshToken.revoked: True}, synchronize_session=False)
        )
        if claimed != 1:
            self.db.rollback()
            logger.warning(f"Rejected refresh with revoked or unknown token {jti}")
            raise AuthenticationError("Refresh token revoked.")

        user_id = (
            self.db.query(RefreshToken.user_id).filter(RefreshToken.jti == jti).scalar()
        )
        user = self.get_user(user_id)
        if not user:
            self.db.rollback()
            raise AuthenticationError("Account no longer exists.")

        self.db.commit()

        access_token, new_refresh_token = self.issue_tokens(user)
        return user, access_token, new_refresh_token

    def revoke(self, refresh_token: str) -> bool:
        """Revoke a refresh token. Returns False if it was not a known token."""
        try:
            payload = decode_token(refresh_token, REFRESH_TOKEN_TYPE)
        except AuthenticationError:
            return False

        stored = self.db.query(RefreshToken).filter(RefreshToken.jti == payload.get("jti")).first()
        if not stored:
            return False

        stored.revoked = True
        self.db.commit()
        return True
