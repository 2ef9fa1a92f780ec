from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from marketplace.database import get_db
from marketplace.api.dependencies import get_current_user, get_low_stock_notifier
from marketplace.models.user import User
from marketplace.services.exceptions import ForbiddenError
from marketplace.services.inventory_service import InventoryService
from marketplace.services.notifier import LowStockNotifier
from marketplace.schemas.product import LowStockProductsResponse, ProductResponse

router = APIRouter(prefix="/villager", tags=["Villager"])


@router.get(
    "/low-stock-products",
    response_model=LowStockProductsResponse,
    summary="Low-stock products",
    description="The caller's products at or below their threshold, longest-low first. Villagers only."
)
def low_stock_products(
    current_user: User = Depends(get_current_user),
    notifier: LowStockNotifier = Depends(get_low_stock_notifier),
    db: Session = Depends(get_db)
):
    """List the caller's low-stock products."""
    service = InventoryService(db, notifier)

    try:
        products = service.list_low_stock(current_user.id, caller_role=current_user.role)
    except ForbiddenError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))

    return LowStockProductsResponse(
        products=[ProductResponse.model_validate(p) for p in products]
    )
