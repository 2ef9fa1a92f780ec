from sqlalchemy.orm import Session, joinedload
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from datetime import datetime, timedelta
from typing import Optional, List
import math
import logging

from marketplace.models.product import Product
from marketplace.models.transaction import Transaction
from marketplace.services.exceptions import (
    ForbiddenError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from marketplace.utils.dates import utcnow

logger = logging.getLogger(__name__)


class TransactionLog:
    """
    Append-only log of sales.

    Rows are only ever inserted by ``record_sale``; they disappear only when
    their product is deleted (database cascade).
    """

    def __init__(self, db: Session):
        self.db = db

    def record_sale(
        self,
        product_id: int,
        buyer_id: int,
        quantity: float,
        timestamp: Optional[datetime] = None,
    ) -> Transaction:
        """
        Append a sale to the current unit of work.

        The row is flushed but not committed; the caller owns the
        transaction boundary so the sale commits together with the
        stock change that caused it.

        Raises:
            StorageError: If the insert fails; retryable when the database
                was busy or locked
        """
        sale = Transaction(
            product_id=product_id,
            buyer_id=buyer_id,
            quantity_sold=quantity,
            date_of_sale=timestamp or utcnow(),
        )
        try:
            self.db.add(sale)
            self.db.flush()
        except OperationalError as e:
            # Lock wait timeout or busy database
            logger.error(f"Timed out recording sale for product #{product_id}: {e}")
            raise StorageError(
                f"Could not record sale for product {product_id}, please retry",
                retryable=True,
            ) from e
        except SQLAlchemyError as e:
            logger.error(f"Error recording sale for product #{product_id}: {e}")
            raise StorageError(f"Could not record sale for product {product_id}") from e
        return sale

    def history(
        self,
        product_id: int,
        requester_id: int,
        since_days: Optional[float] = None,
    ) -> List[Transaction]:
        """
        Sales of a product, most recent first.

        Args:
            product_id: Product whose sales to list
            requester_id: Caller; must own the product
            since_days: Only include sales from the last N days

        Returns:
            Transactions ordered by date_of_sale desc, then id desc

        Raises:
            NotFoundError: If product doesn't exist
            ForbiddenError: If requester doesn't own the product
            ValidationError: If since_days is negative or not finite
        """
        product = self.db.query(Product).filter(Product.id == product_id).first()
        if not product:
            raise NotFoundError(f"Product with ID {product_id} not found")

        if product.owner_id != requester_id:
            raise ForbiddenError("Forbidden: You do not own this product.")

        query = (
            self.db.query(Transaction)
            .options(joinedload(Transaction.buyer))
            .filter(Transaction.product_id == product_id)
        )

        if since_days is not None:
            if isinstance(since_days, bool) or not math.isfinite(since_days) or since_days < 0:
                raise ValidationError("days must be a non-negative number")
            cutoff = utcnow() - timedelta(days=since_days)
            query = query.filter(Transaction.date_of_sale >= cutoff)

        return query.order_by(
            Transaction.date_of_sale.desc(),
            Transaction.id.desc(),
        ).all()
