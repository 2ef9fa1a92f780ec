from sqlalchemy.orm import Session, selectinload
from sqlalchemy.exc import SQLAlchemyError
from typing import Optional, List, Tuple
import math
import logging

from marketplace.config import get_settings
from marketplace.models.product import Product
from marketplace.models.product_image import ProductImage
from marketplace.models.user import User, UserRole
from marketplace.schemas.product import ProductCreate, ProductResponse
from marketplace.services.exceptions import ForbiddenError, NotFoundError, StorageError, ValidationError
from marketplace.services.image_storage import ImageStorage
from marketplace.services.inventory_service import apply_low_stock_transition, round_stock
from marketplace.utils.cache import product_cache
from marketplace.utils.dates import utcnow

logger = logging.getLogger(__name__)

settings = get_settings()


class ProductService:
    """
    Service class for the product catalogue.

    This service handles:
    - Creating products with their images
    - Reading products (with caching)
    - Deleting products together with their images and sales
    - Cache invalidation

    Stock changes after creation go through InventoryService.
    """

    def __init__(self, db: Session, image_storage: Optional[ImageStorage] = None):
        self.db = db
        self.image_storage = image_storage

    def create(
        self,
        owner: User,
        product_data: ProductCreate,
        images: Optional[List[Tuple[str, bytes]]] = None,
    ) -> Product:
        """
        Create a new product owned by a villager.

        A product created at or below its threshold starts its low-stock
        episode immediately; no alert is sent for it.

        Args:
            owner: Villager listing the product
            product_data: Product creation data
            images: (filename, bytes) pairs to store

        Returns:
            Created product instance

        Raises:
            ForbiddenError: If owner is not a villager
            ValidationError: If too many images are supplied
            StorageError: If an image or the product row cannot be stored
        """
        if owner.role != UserRole.VILLAGER:
            raise ForbiddenError("Forbidden: Only villagers can add products.")

        images = images or []
        if len(images) > settings.MAX_IMAGES_PER_PRODUCT:
            raise ValidationError(
                f"At most {settings.MAX_IMAGES_PER_PRODUCT} images are allowed per product."
            )

        threshold = product_data.low_stock_threshold
        if threshold is None:
            threshold = settings.DEFAULT_LOW_STOCK_THRESHOLD

        product = Product(
            owner_id=owner.id,
            name=product_data.name,
            category=product_data.category,
            price=product_data.price,
            stock=round_stock(product_data.stock),
            low_stock_threshold=round_stock(threshold),
        )
        apply_low_stock_transition(product, utcnow())

        stored_paths = []
        try:
            for filename, data in images:
                path = self._require_storage().save(filename, data)
                stored_paths.append(path)
                product.images.append(ProductImage(image_path=path))

            self.db.add(product)
            self.db.commit()
        except (SQLAlchemyError, OSError) as e:
            # Nothing is kept from a failed create, including images already written
            self.db.rollback()
            self._delete_files(stored_paths)
            logger.error(f"Error creating product: {e}")
            raise StorageError("Could not create product") from e

        self.db.refresh(product)
        logger.info(f"Product #{product.id} '{product.name}' created by villager #{owner.id}")
        return product

    def get_by_id(self, product_id: int) -> Optional[Product]:
        """Get a product by ID from the database."""
        return (
            self.db.query(Product)
            .options(selectinload(Product.images))
            .filter(Product.id == product_id)
            .first()
        )

    def get_by_id_cached(self, product_id: int) -> Optional[dict]:
        """
        Get product details from cache or database.
        Returns a dictionary (suitable for API response).

        Args:
            product_id: Product ID to look up

        Returns:
            Product data as dictionary or None
        """
        # Try cache first
        cached = product_cache.get(product_id)
        if cached:
            return cached

        # Get from database
        product = self.get_by_id(product_id)

        if product:
            product_dict = ProductResponse.model_validate(product).model_dump(mode="json")
            product_cache.set(product_id, product_dict)
            return product_dict

        return None

    def get_all(
        self,
        page: int = 1,
        page_size: int = 10,
        search: str = None,
        category: str = None,
        owner_id: int = None,
    ) -> tuple[List[Product], int, int]:
        """
        Get paginated list of products, newest first.

        Args:
            page: Page number (1-indexed)
            page_size: Number of items per page
            search: Optional search term for product name
            category: Optional exact category filter
            owner_id: Optional filter on the owning villager

        Returns:
            Tuple of (products list, total count, total pages)
        """
        query = self.db.query(Product)

        # Apply filters if provided
        if search:
            query = query.filter(Product.name.ilike(f"%{search}%"))
        if category:
            query = query.filter(Product.category == category)
        if owner_id is not None:
            query = query.filter(Product.owner_id == owner_id)

        # Get total count
        total = query.count()
        total_pages = math.ceil(total / page_size) if total > 0 else 1

        # Apply pagination
        offset = (page - 1) * page_size
        products = (
            query.options(selectinload(Product.images))
            .order_by(Product.id.desc())
            .offset(offset)
            .limit(page_size)
            .all()
        )

        return products, total, total_pages

    def delete(self, product_id: int, caller_id: int) -> List[str]:
        """
        Delete a product with its images and sales history.

        Image files are removed after the rows are gone; a file that cannot
        be removed is logged and left behind.

        Args:
            product_id: ID of product to delete
            caller_id: Caller; must own the product

        Returns:
            Paths of the images that belonged to the product

        Raises:
            NotFoundError: If product doesn't exist
            ForbiddenError: If caller doesn't own the product
        """
        product = self.get_by_id(product_id)

        if not product:
            raise NotFoundError(f"Product with ID {product_id} not found")
        if product.owner_id != caller_id:
            raise ForbiddenError("Forbidden: You do not own this product.")

        image_paths = product.image_paths

        try:
            self.db.delete(product)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error deleting product #{product_id}: {e}")
            raise StorageError(f"Could not delete product {product_id}") from e

        # Invalidate cache
        self._invalidate_cache(product_id)
        self._delete_files(image_paths)

        logger.info(f"Product #{product_id} deleted by villager #{caller_id}")
        return image_paths

    def _require_storage(self) -> ImageStorage:
        if self.image_storage is None:
            raise ValidationError("Image uploads are not configured.")
        return self.image_storage

    def _delete_files(self, image_paths: List[str]) -> None:
        if not self.image_storage:
            return
        for path in image_paths:
            self.image_storage.delete(path)

    def _invalidate_cache(self, product_id: int) -> None:
        """Invalidate cache for a product."""
        product_cache.invalidate(product_id)
