from typing import Optional
import logging

from fastapi import Depends, HTTPException, Security, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from marketplace.database import get_db
from marketplace.models.user import User
from marketplace.services.auth_service import AuthService
from marketplace.services.exceptions import AuthenticationError
from marketplace.services.image_storage import ImageStorage, LocalImageStorage
from marketplace.services.notifier import LowStockNotifier, get_notifier

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    """Dependency resolving the bearer access token to its account."""
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header missing",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        return AuthService(db).user_from_access_token(credentials.credentials)
    except AuthenticationError as e:
        logger.warning(f"Rejected access token: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )


def get_image_storage() -> ImageStorage:
    return LocalImageStorage()


def get_low_stock_notifier() -> LowStockNotifier:
    return get_notifier()
