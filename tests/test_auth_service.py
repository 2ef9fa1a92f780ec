"""Tests for AuthService token rotation."""
import pytest
from sqlalchemy.orm import sessionmaker

from marketplace.models.refresh_token import RefreshToken
from marketplace.services.auth_service import (
    REFRESH_TOKEN_TYPE,
    AuthService,
    decode_token,
)
from marketplace.services.exceptions import AuthenticationError


@pytest.fixture
def racing_sessions(db_session):
    """Two extra sessions on the test database, as two concurrent requests would have."""
    Session = sessionmaker(autocommit=False, autoflush=False, bind=db_session.get_bind())
    first, second = Session(), Session()
    yield first, second
    first.close()
    second.close()


def test_rotate_revokes_old_token(db_session, shopper):
    service = AuthService(db_session)
    _, refresh_token = service.issue_tokens(shopper)

    user, access_token, new_refresh_token = service.rotate(refresh_token)

    assert user.id == shopper.id
    assert access_token
    assert new_refresh_token != refresh_token
    with pytest.raises(AuthenticationError, match="Refresh token revoked."):
        service.rotate(refresh_token)


def test_concurrent_rotations_only_one_wins(db_session, shopper, racing_sessions):
    _, refresh_token = AuthService(db_session).issue_tokens(shopper)
    jti = decode_token(refresh_token, REFRESH_TOKEN_TYPE)["jti"]
    first, second = racing_sessions

    # Both requests have already seen the token as live
    for session in racing_sessions:
        assert session.get(RefreshToken, jti).revoked is False

    AuthService(first).rotate(refresh_token)
    with pytest.raises(AuthenticationError, match="Refresh token revoked."):
        AuthService(second).rotate(refresh_token)

    db_session.expire_all()
    live = (
        db_session.query(RefreshToken)
        .filter(RefreshToken.user_id == shopper.id, RefreshToken.revoked.is_(False))
        .count()
    )
    assert live == 1


def test_rotate_unknown_token(db_session, shopper):
    service = AuthService(db_session)
    _, refresh_token = service.issue_tokens(shopper)
    db_session.query(RefreshToken).delete()
    db_session.commit()

    with pytest.raises(AuthenticationError, match="Refresh token revoked."):
        service.rotate(refresh_token)
