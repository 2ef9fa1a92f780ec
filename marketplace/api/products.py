from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from sqlalchemy.orm import Session
from typing import List, Optional

from marketplace.database import get_db
from marketplace.api.dependencies import get_current_user, get_image_storage, get_low_stock_notifier
from marketplace.models.user import User
from marketplace.services.exceptions import ForbiddenError, NotFoundError, StorageError, ValidationError
from marketplace.services.image_storage import ImageStorage
from marketplace.services.inventory_service import InventoryService
from marketplace.services.notifier import LowStockNotifier
from marketplace.services.product_service import ProductService
from marketplace.schemas.product import (
    ProductCreate,
    ProductUpdate,
    ProductResponse,
    ProductListResponse
)

router = APIRouter(prefix="/products", tags=["Products"])


@router.post(
    "/",
    response_model=ProductResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a new product",
    description="Create a product with name, price, initial stock, category, threshold and images (multipart form)."
)
def create_product(
    name: str = Form(..., min_length=1, max_length=255),
    price: float = Form(..., ge=0),
    stock: float = Form(..., ge=0),
    category: Optional[str] = Form(None, max_length=100),
    low_stock_threshold: Optional[float] = Form(None, ge=0),
    images: Optional[List[UploadFile]] = File(None),
    current_user: User = Depends(get_current_user),
    image_storage: ImageStorage = Depends(get_image_storage),
    db: Session = Depends(get_db)
):
    """
    Create a new product. Villagers only.

    - **name**: Product name (required)
    - **price**: Unit price, must be non-negative (required)
    - **stock**: Initial stock in kg, must be non-negative (required)
    - **category**: Product category (optional)
    - **low_stock_threshold**: Low-stock threshold in kg (optional)
    - **images**: Product images (optional)
    """
    product_data = ProductCreate(
        name=name,
        price=price,
        stock=stock,
        category=category,
        low_stock_threshold=low_stock_threshold,
    )
    uploads = [(image.filename, image.file.read()) for image in images or []]

    service = ProductService(db, image_storage)

    try:
        return service.create(current_user, product_data, uploads)
    except ForbiddenError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except StorageError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))


@router.get(
    "/",
    response_model=ProductListResponse,
    summary="List all products",
    description="Get a paginated list of all products with optional search and filters."
)
def list_products(
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(10, ge=1, le=100, description="Items per page"),
    search: Optional[str] = Query(None, description="Search by product name"),
    category: Optional[str] = Query(None, description="Filter by category"),
    owner_id: Optional[int] = Query(None, description="Filter by owning villager"),
    db: Session = Depends(get_db)
):
    """Get paginated list of products."""
    service = ProductService(db)
    products, total, total_pages = service.get_all(page, page_size, search, category, owner_id)

    return ProductListResponse(
        items=[ProductResponse.model_validate(p) for p in products],
        total=total,
        page=page,
        page_size=page_size,
        total_pages=total_pages
    )


@router.get(
    "/{product_id}",
    response_model=ProductResponse,
    summary="Get product by ID",
    description="Get detailed information about a specific product. Results are cached in Redis."
)
def get_product(
    product_id: int,
    db: Session = Depends(get_db)
):
    """
    Get a product by ID.

    This endpoint uses Redis caching; the entry is dropped whenever the
    product's stock or details change.
    """
    service = ProductService(db)
    product_data = service.get_by_id_cached(product_id)

    if not product_data:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Product with ID {product_id} not found"
        )

    return product_data


@router.put(
    "/{product_id}",
    response_model=ProductResponse,
    summary="Update or restock a product",
    description="Update product details. Only provided fields will be updated. Owner only."
)
def update_product(
    product_id: int,
    product_data: ProductUpdate,
    current_user: User = Depends(get_current_user),
    notifier: LowStockNotifier = Depends(get_low_stock_notifier),
    db: Session = Depends(get_db)
):
    """
    Update a product.

    Partial updates are supported - only include fields you want to change.
    Changing stock or the threshold re-evaluates the low-stock state.
    """
    service = InventoryService(db, notifier)

    try:
        return service.restock(
            product_id,
            current_user.id,
            product_data.model_dump(exclude_unset=True),
        )
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ForbiddenError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except StorageError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE if e.retryable
            else status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e)
        )


@router.delete(
    "/{product_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a product",
    description="Delete a product with its images and sales history. Owner only."
)
def delete_product(
    product_id: int,
    current_user: User = Depends(get_current_user),
    image_storage: ImageStorage = Depends(get_image_storage),
    db: Session = Depends(get_db)
):
    """Delete a product."""
    service = ProductService(db, image_storage)

    try:
        service.delete(product_id, current_user.id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ForbiddenError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    except StorageError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))

    return None
