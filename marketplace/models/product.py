from sqlalchemy import Column, Integer, String, Float, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from marketplace.database import Base


class Product(Base):
    """
    Produce listed for sale by a villager.

    Attributes:
        id: Unique identifier for the product
        owner_id: Villager who listed the product
        name: Product name
        category: Free-form category (e.g. "Sweet")
        price: Unit price (must be non-negative)
        stock: Available quantity in kg (must be non-negative)
        low_stock_threshold: Stock at or below this value counts as low stock
        low_stock_since_date: Start of the current low-stock episode, None when not low
        version: Row version, checked on every UPDATE
        created_at: Timestamp when product was created
        updated_at: Timestamp when product was last updated
    """
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = Column(String(255), nullable=False, index=True)
    category = Column(String(100), nullable=True, index=True)
    price = Column(Float, nullable=False)
    stock = Column(Float, nullable=False, default=0)
    low_stock_threshold = Column(Float, nullable=False, default=7)
    low_stock_since_date = Column(DateTime(timezone=True), nullable=True)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    owner = relationship("User")
    images = relationship(
        "ProductImage",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="ProductImage.id",
    )
    transactions = relationship(
        "Transaction",
        back_populates="product",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    # Database-level constraints to ensure data integrity
    __table_args__ = (
        CheckConstraint('price >= 0', name='check_price_non_negative'),
        CheckConstraint('stock >= 0', name='check_stock_non_negative'),
        CheckConstraint('low_stock_threshold >= 0', name='check_threshold_non_negative'),
    )

    # UPDATE ... WHERE id = :id AND version = :version
    __mapper_args__ = {"version_id_col": version}

    @property
    def image_paths(self) -> list[str]:
        return [image.image_path for image in self.images]

    @property
    def is_low_stock(self) -> bool:
        return self.stock <= self.low_stock_threshold

    def __repr__(self):
        return f"<Product(id={self.id}, name='{self.name}', stock={self.stock})>"
