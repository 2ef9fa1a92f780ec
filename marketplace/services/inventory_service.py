from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy import text
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from datetime import datetime
from typing import Any, Callable, List, NamedTuple, Optional
import math
import logging

from marketplace.config import get_settings
from marketplace.models.product import Product
from marketplace.models.transaction import Transaction
from marketplace.models.user import UserRole
from marketplace.services.exceptions import (
    ForbiddenError,
    InsufficientStockError,
    MarketplaceError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from marketplace.services.notifier import LowStockNotice, LowStockNotifier, get_notifier
from marketplace.services.transaction_log import TransactionLog
from marketplace.utils.cache import product_cache
from marketplace.utils.dates import utcnow

logger = logging.getLogger(__name__)

settings = get_settings()

# Stock is tracked to the gram
STOCK_DECIMALS = 3


def round_stock(value: float) -> float:
    """Round a kg amount to stock precision so repeated subtraction cannot drift."""
    return round(float(value), STOCK_DECIMALS)


def apply_low_stock_transition(product: Product, now: datetime) -> bool:
    """
    Re-derive ``low_stock_since_date`` from the product's current stock.

    - At or below threshold and not yet marked: start the episode at ``now``.
    - Above threshold: end the episode, whatever the previous value.
    - At or below threshold and already marked: keep the original date.

    Returns:
        True only when this call started a new low-stock episode
    """
    if product.stock > product.low_stock_threshold:
        product.low_stock_since_date = None
        return False

    if product.low_stock_since_date is None:
        product.low_stock_since_date = now
        return True

    return False


def validate_quantity(value: Any) -> float:
    """Coerce a purchase quantity to a finite positive float at stock precision."""
    if value is None or isinstance(value, bool):
        raise ValidationError("Valid positive quantity is required.")
    try:
        quantity = float(value)
    except (TypeError, ValueError):
        raise ValidationError("Valid positive quantity is required.")
    if not math.isfinite(quantity):
        raise ValidationError("Valid positive quantity is required.")
    quantity = round_stock(quantity)
    if quantity <= 0:
        raise ValidationError("Valid positive quantity is required.")
    return quantity


class PurchaseResult(NamedTuple):
    product: Product
    transaction: Transaction
    low_stock_alert: bool
    threshold_crossed: bool


class InventoryService:
    """
    Stock and low-stock state of products.

    CONCURRENCY STRATEGY:
    =====================
    Every stock mutation runs read-validate-write inside one database
    transaction:

    1. SELECT the product FOR UPDATE (row lock where the backend has one)
    2. Validate against the stock that was just read
    3. UPDATE through the ORM; ``Product.version`` is the version_id_col, so
       the UPDATE only matches if nobody else wrote the row since step 1
    4. Append the sale and commit both writes together

    On PostgreSQL the row lock serialises buyers of the same product; on
    file-backed SQLite the engine's BEGIN IMMEDIATE does the same for the
    whole database. If a concurrent writer still gets in between (a backend
    without either), the versioned UPDATE matches zero rows
    (StaleDataError); the unit is rolled back and re-run against the
    committed stock, up to PURCHASE_MAX_RETRIES times.
    """

    RESTOCK_FIELDS = ("name", "category", "price", "stock", "low_stock_threshold")
    NON_NEGATIVE_FIELDS = ("price", "stock", "low_stock_threshold")
    STOCK_FIELDS = ("stock", "low_stock_threshold")
    NULLABLE_FIELDS = ("category",)

    def __init__(
        self,
        db: Session,
        notifier: Optional[LowStockNotifier] = None,
        max_retries: Optional[int] = None,
        lock_timeout: Optional[int] = None,
    ):
        self.db = db
        self.notifier = notifier or get_notifier()
        self.max_retries = max_retries or settings.PURCHASE_MAX_RETRIES
        self.lock_timeout = lock_timeout or settings.DB_LOCK_TIMEOUT_SECONDS
        self.transaction_log = TransactionLog(db)

    def purchase(
        self,
        product_id: int,
        buyer_id: int,
        quantity: Any,
        buyer_role: Optional[UserRole] = None,
    ) -> PurchaseResult:
        """
        Buy ``quantity`` of a product.

        Args:
            product_id: Product to buy
            buyer_id: Buying user
            quantity: Amount in kg; must be a finite number > 0
            buyer_role: Role of the caller, checked when given

        Returns:
            PurchaseResult with the updated product and the recorded sale

        Raises:
            ValidationError: If quantity is missing, non-numeric or <= 0
            ForbiddenError: If the caller is not a buyer
            NotFoundError: If product doesn't exist
            InsufficientStockError: If quantity exceeds available stock
            StorageError: If the unit of work cannot be committed
        """
        if buyer_role is not None and buyer_role != UserRole.USER:
            raise ForbiddenError("Forbidden: Only users can purchase products.")

        quantity = validate_quantity(quantity)

        def operation() -> PurchaseResult:
            self._apply_lock_timeout()
            product = self._lock_product(product_id)

            # Check stock availability (inside the lock)
            available = round_stock(product.stock)
            if quantity > available:
                raise InsufficientStockError(available=available, requested=quantity)

            now = utcnow()
            product.stock = round_stock(available - quantity)
            crossed = apply_low_stock_transition(product, now)

            # Versioned UPDATE first so a lost race aborts before the sale row
            self.db.flush()
            sale = self.transaction_log.record_sale(product.id, buyer_id, quantity, now)

            self.db.commit()
            self.db.refresh(product)

            return PurchaseResult(
                product=product,
                transaction=sale,
                low_stock_alert=product.is_low_stock,
                threshold_crossed=crossed,
            )

        try:
            result = self._run_atomic(operation, product_id)
        except InsufficientStockError as e:
            logger.info(
                f"Purchase of {quantity:g}kg of product #{product_id} rejected: "
                f"only {e.available:g}kg available"
            )
            raise

        self._invalidate_cache(product_id)
        logger.info(
            f"Sale #{result.transaction.id}: {quantity:g}kg of product #{product_id} "
            f"to user #{buyer_id}, {result.product.stock:g}kg left"
        )

        if result.threshold_crossed:
            self._notify_low_stock(result.product)

        return result

    def restock(self, product_id: int, caller_id: int, field_updates: dict) -> Product:
        """
        Apply an owner's changes to a product.

        The low-stock state is re-derived whenever stock or threshold
        changes, with the same rule purchases use.

        Args:
            product_id: Product to change
            caller_id: Caller; must own the product
            field_updates: Subset of name, category, price, stock,
                low_stock_threshold. An explicit None clears a nullable
                field (category) and is rejected for the others

        Returns:
            Updated product

        Raises:
            ValidationError: If a field is unknown or out of range
            NotFoundError: If product doesn't exist
            ForbiddenError: If caller doesn't own the product
            StorageError: If the update cannot be committed
        """
        updates = self._validate_updates(field_updates)

        def operation():
            self._apply_lock_timeout()
            product = self._lock_product(product_id)

            if product.owner_id != caller_id:
                raise ForbiddenError("Forbidden: You do not own this product.")

            for field, value in updates.items():
                setattr(product, field, value)

            crossed = False
            if "stock" in updates or "low_stock_threshold" in updates:
                crossed = apply_low_stock_transition(product, utcnow())

            self.db.commit()
            self.db.refresh(product)
            return product, crossed

        product, crossed = self._run_atomic(operation, product_id)

        self._invalidate_cache(product_id)
        logger.info(f"Product #{product_id} updated by owner #{caller_id}: {sorted(updates)}")

        if crossed:
            self._notify_low_stock(product)

        return product

    def list_low_stock(self, owner_id: int, caller_role: Optional[UserRole] = None) -> List[Product]:
        """
        Products of an owner at or below their threshold.

        Ordered by low_stock_since_date ascending (oldest episode first),
        products without a date last, then by id.

        Raises:
            ForbiddenError: If caller_role is given and is not VILLAGER
        """
        if caller_role is not None and caller_role != UserRole.VILLAGER:
            raise ForbiddenError("Forbidden: Only villagers can view low stock products.")

        return (
            self.db.query(Product)
            .filter(
                Product.owner_id == owner_id,
                Product.stock <= Product.low_stock_threshold,
            )
            .order_by(
                Product.low_stock_since_date.is_(None),
                Product.low_stock_since_date.asc(),
                Product.id.asc(),
            )
            .all()
        )

    def _run_atomic(self, operation: Callable[[], Any], product_id: int) -> Any:
        """Run ``operation`` as one unit of work, re-running it after a lost version check."""
        for attempt in range(1, self.max_retries + 1):
            try:
                return operation()
            except StaleDataError:
                self.db.rollback()
                logger.warning(
                    f"Product #{product_id} changed concurrently, "
                    f"retrying ({attempt}/{self.max_retries})"
                )
            except MarketplaceError:
                self.db.rollback()
                raise
            except OperationalError as e:
                # Lock wait timeout or busy database
                self.db.rollback()
                logger.error(f"Timed out updating product #{product_id}: {e}")
                raise StorageError(f"Product {product_id} is busy, please retry", retryable=True) from e
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(f"Error updating product #{product_id}: {e}")
                raise StorageError(f"Could not update product {product_id}") from e

        raise StorageError(
            f"Product {product_id} was modified concurrently, please retry",
            retryable=True,
        )

    def _lock_product(self, product_id: int) -> Product:
        product = (
            self.db.query(Product)
            .filter(Product.id == product_id)
            .with_for_update()
            .populate_existing()
            .first()
        )
        if not product:
            raise NotFoundError(f"Product with ID {product_id} not found")
        return product

    def _apply_lock_timeout(self) -> None:
        # SQLite waits via the connection busy timeout instead
        if self.db.get_bind().dialect.name == "postgresql":
            self.db.execute(text(f"SET LOCAL lock_timeout = '{int(self.lock_timeout * 1000)}ms'"))

    def _validate_updates(self, field_updates: dict) -> dict:
        updates = dict(field_updates)

        unknown = set(updates) - set(self.RESTOCK_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown product fields: {', '.join(sorted(unknown))}")
        if not updates:
            raise ValidationError("No fields to update.")

        for field, value in updates.items():
            if value is None and field not in self.NULLABLE_FIELDS:
                raise ValidationError(f"{field} must not be null")

        for field in self.NON_NEGATIVE_FIELDS:
            if field not in updates:
                continue
            value = updates[field]
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValidationError(f"{field} must be a number")
            if not math.isfinite(value) or value < 0:
                raise ValidationError(f"{field} must be a non-negative number")
            updates[field] = round_stock(value) if field in self.STOCK_FIELDS else float(value)

        if "name" in updates and not str(updates["name"]).strip():
            raise ValidationError("name must not be empty")

        return updates

    def _notify_low_stock(self, product: Product) -> None:
        """Tell the owner their product entered low stock. Never raises."""
        try:
            owner = product.owner
            notice = LowStockNotice(
                owner_contact=owner.email,
                owner_display_name=owner.display_name,
                product_name=product.name,
                current_stock=product.stock,
                threshold=product.low_stock_threshold,
            )
            logger.info(
                f"Product #{product.id} entered low stock "
                f"({product.stock:g}kg <= {product.low_stock_threshold:g}kg)"
            )
            self.notifier.notify(notice)
        except Exception as e:
            logger.error(f"Failed to send low-stock notification for product #{product.id}: {e}")

    def _invalidate_cache(self, product_id: int) -> None:
        product_cache.invalidate(product_id)
