from sqlalchemy import Column, Integer, String, DateTime, Enum
from sqlalchemy.sql import func
import enum

from marketplace.database import Base


class UserRole(str, enum.Enum):
    """Enum for account roles."""
    VILLAGER = "VILLAGER"
    USER = "USER"


class User(Base):
    """
    Marketplace account.

    Villagers sell produce and own products; users buy them.

    Attributes:
        id: Unique identifier for the account
        email: Login email, also the address low-stock alerts are sent to
        password_hash: bcrypt hash of the password
        role: VILLAGER (seller) or USER (buyer)
        farm_name: Display name of a villager's farm
        address: Optional postal address
        contact_info: Optional free-form contact details
        created_at: Timestamp when the account was registered
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(Enum(UserRole), nullable=False, default=UserRole.USER)
    farm_name = Column(String(255), nullable=True)
    address = Column(String(500), nullable=True)
    contact_info = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    @property
    def display_name(self) -> str:
        return self.farm_name or self.email

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}', role='{self.role}')>"
