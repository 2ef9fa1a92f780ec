from sqlalchemy import Column, Integer, String, ForeignKey

from marketplace.database import Base


class ProductImage(Base):
    """Uploaded image belonging to a product, stored as a path under the upload directory."""
    __tablename__ = "product_images"

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(
        Integer,
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    image_path = Column(String(500), nullable=False)

    def __repr__(self):
        return f"<ProductImage(id={self.id}, product_id={self.product_id}, path='{self.image_path}')>"
