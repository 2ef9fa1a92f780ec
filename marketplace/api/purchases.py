from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session
from typing import Optional

from marketplace.database import get_db
from marketplace.api.dependencies import get_current_user, get_low_stock_notifier
from marketplace.models.user import User
from marketplace.services.exceptions import (
    ForbiddenError,
    InsufficientStockError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from marketplace.services.inventory_service import InventoryService
from marketplace.services.notifier import LowStockNotifier
from marketplace.services.transaction_log import TransactionLog
from marketplace.schemas.transaction import (
    PurchaseRequest,
    PurchaseResponse,
    PurchasedProduct,
    TransactionHistoryResponse,
    TransactionResponse,
)

router = APIRouter(prefix="/products", tags=["Purchases"])


@router.post(
    "/{product_id}/purchase",
    response_model=PurchaseResponse,
    summary="Purchase a product",
    description="""
    Buy a quantity of a product. Users (buyers) only.

    **Race Condition Handling:**
    The product row is locked and version-checked while stock is validated
    and decremented, and the sale is recorded in the same database
    transaction. When several buyers race for the last kilograms:
    - Only the purchases that fit the remaining stock succeed
    - Others receive a 400 error with an 'Insufficient stock' message

    When a purchase brings the product to its low-stock threshold, the
    owner is emailed in the background.
    """
)
def purchase_product(
    product_id: int,
    purchase: PurchaseRequest,
    current_user: User = Depends(get_current_user),
    notifier: LowStockNotifier = Depends(get_low_stock_notifier),
    db: Session = Depends(get_db)
):
    """
    Purchase a product.

    - **quantity**: Kilograms to buy, must be positive (required)

    The response carries the product's new stock and `low_stock_alert`,
    true when the product is now at or below its threshold.
    """
    service = InventoryService(db, notifier)

    try:
        result = service.purchase(
            product_id,
            current_user.id,
            purchase.quantity,
            buyer_role=current_user.role,
        )
    except ForbiddenError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except (ValidationError, InsufficientStockError) as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except StorageError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE if e.retryable
            else status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e)
        )

    return PurchaseResponse(
        message="Product purchased successfully.",
        product=PurchasedProduct.model_validate(result.product),
        low_stock_alert=result.low_stock_alert,
    )


@router.get(
    "/{product_id}/transactions",
    response_model=TransactionHistoryResponse,
    summary="Sales history of a product",
    description="Sales of a product, most recent first. Owner only."
)
def list_transactions(
    product_id: int,
    days: Optional[float] = Query(None, ge=0, description="Only include sales from the last N days"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Get the sales history of a product owned by the caller."""
    log = TransactionLog(db)

    try:
        transactions = log.history(product_id, current_user.id, since_days=days)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ForbiddenError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return TransactionHistoryResponse(
        transactions=[TransactionResponse.model_validate(t) for t in transactions]
    )
