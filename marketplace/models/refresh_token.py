from sqlalchemy import Column, Integer, String, DateTime, Boolean, ForeignKey

from marketplace.database import Base


class RefreshToken(Base):
    """
    Issued refresh token, keyed by its JWT ID.

    A token is rotated (revoked and replaced) every time it is used and
    revoked on logout.
    """
    __tablename__ = "refresh_tokens"

    jti = Column(String(64), primary_key=True)
    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    expires_at = Column(DateTime(timezone=True), nullable=False)
    revoked = Column(Boolean, nullable=False, default=False)

    def __repr__(self):
        return f"<RefreshToken(jti='{self.jti}', user_id={self.user_id}, revoked={self.revoked})>"
