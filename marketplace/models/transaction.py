from sqlalchemy import Column, Integer, Float, DateTime, ForeignKey, Index, CheckConstraint
from sqlalchemy.orm import relationship

from marketplace.database import Base


class Transaction(Base):
    """
    Sale of a product to a buyer. Rows are append-only.

    Attributes:
        id: Unique identifier for the sale
        product_id: Reference to the purchased product
        buyer_id: Reference to the buying user
        quantity_sold: Quantity bought in kg
        date_of_sale: Timestamp of the purchase
    """
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(
        Integer,
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
    )
    buyer_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    quantity_sold = Column(Float, nullable=False)
    date_of_sale = Column(DateTime(timezone=True), nullable=False)

    product = relationship("Product", back_populates="transactions")
    buyer = relationship("User")

    __table_args__ = (
        CheckConstraint('quantity_sold > 0', name='check_quantity_sold_positive'),
        Index("ix_transactions_product_id_date_of_sale", "product_id", "date_of_sale"),
    )

    @property
    def buyer_email(self):
        return self.buyer.email if self.buyer else None

    def __repr__(self):
        return f"<Transaction(id={self.id}, product_id={self.product_id}, quantity_sold={self.quantity_sold})>"
