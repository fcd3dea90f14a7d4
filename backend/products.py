"""
Point-of-sale inventory: categories, products and stock movements.
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, or_
from sqlalchemy.orm import selectinload
from typing import List, Optional
import logging

from database import get_db
from models import (
    Product, ProductCategory, InventoryMovement, StockMovementType, User, alive
)
from schemas import (
    ProductCreate, ProductUpdate, ProductResponse, CategoryCreate, CategoryResponse,
    StockMovementCreate, StockMovementResponse
)
from auth import get_current_active_user
from subscription_middleware import require_active_subscription, get_scoped_or_404
from access_gate import TenantContext
from room_locks import record_lock
from errors import BadRequest, NotFound, InsufficientStock

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/products", tags=["products"])


def product_to_response(product: Product) -> ProductResponse:
    response = ProductResponse.model_validate(product)
    response.is_low_stock = product.stock_on_hand <= product.minimum_stock
    if product.category is not None:
        response.category_name = product.category.name
    return response


async def _load_product(db: AsyncSession, product_id: int, property_id: int) -> Product:
    result = await db.execute(
        select(Product)
        .options(selectinload(Product.category))
        .where(Product.id == product_id, Product.property_id == property_id, alive(Product))
        .execution_options(populate_existing=True)
    )
    product = result.scalar_one_or_none()
    if product is None:
        raise NotFound("Product not found")
    return product


async def _ensure_code_free(db: AsyncSession, property_id: int, code: str, exclude_id: Optional[int] = None):
    query = select(Product.id).where(Product.property_id == property_id, Product.code == code)
    if exclude_id is not None:
        query = query.where(Product.id != exclude_id)
    if (await db.execute(query)).first():
        raise BadRequest(f"Product code '{code}' already exists")


def apply_movement(current_stock: int, movement_type: StockMovementType, quantity: int) -> int:
    """
    New stock level after a movement.

    In adds, Out and Sale subtract (never below zero), Adjustment sets the
    level to `quantity`.
    """
    if movement_type == StockMovementType.IN:
        return current_stock + quantity
    if movement_type in (StockMovementType.OUT, StockMovementType.SALE):
        if quantity > current_stock:
            raise InsufficientStock(available=current_stock, requested=quantity)
        return current_stock - quantity
    return quantity


# =============================================================================
# CATEGORIES
# =============================================================================

@router.get("/categories", response_model=List[CategoryResponse])
async def list_categories(
    tenant: TenantContext = Depends(require_active_subscription),
    db: AsyncSession = Depends(get_db)
):
    result = await db.execute(
        select(ProductCategory)
        .where(ProductCategory.property_id == tenant.property_id, alive(ProductCategory))
        .order_by(ProductCategory.name)
    )
    return result.scalars().all()


@router.post("/categories", response_model=CategoryResponse, status_code=status.HTTP_201_CREATED)
async def create_category(
    data: CategoryCreate,
    tenant: TenantContext = Depends(require_active_subscription),
    db: AsyncSession = Depends(get_db)
):
    existing = await db.execute(
        select(ProductCategory.id).where(
            ProductCategory.property_id == tenant.property_id, ProductCategory.name == data.name
        )
    )
    if existing.first():
        raise BadRequest(f"Category '{data.name}' already exists")

    category = ProductCategory(property_id=tenant.property_id, **data.model_dump())
    db.add(category)
    await db.commit()
    await db.refresh(category)
    return category


# =============================================================================
# PRODUCTS
# =============================================================================

@router.get("", response_model=List[ProductResponse])
async def list_products(
    search: Optional[str] = None,
    category_id: Optional[int] = None,
    low_stock: bool = False,
    tenant: TenantContext = Depends(require_active_subscription),
    db: AsyncSession = Depends(get_db)
):
    query = (
        select(Product)
        .options(selectinload(Product.category))
        .where(Product.property_id == tenant.property_id, alive(Product))
    )
    if search:
        term = f"%{search}%"
        query = query.where(or_(Product.name.ilike(term), Product.code.ilike(term)))
    if category_id:
        query = query.where(Product.category_id == category_id)
    if low_stock:
        query = query.where(Product.stock_on_hand <= Product.minimum_stock)

    result = await db.execute(query.order_by(Product.name))
    return [product_to_response(p) for p in result.scalars().all()]


@router.get("/{product_id}", response_model=ProductResponse)
async def get_product(
    product_id: int,
    tenant: TenantContext = Depends(require_active_subscription),
    db: AsyncSession = Depends(get_db)
):
    return product_to_response(await _load_product(db, product_id, tenant.property_id))


@router.post("", response_model=ProductResponse, status_code=status.HTTP_201_CREATED)
async def create_product(
    data: ProductCreate,
    tenant: TenantContext = Depends(require_active_subscription),
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db)
):
    await _ensure_code_free(db, tenant.property_id, data.code)
    if data.category_id:
        await get_scoped_or_404(db, ProductCategory, data.category_id, tenant.property_id, "Category")

    product = Product(property_id=tenant.property_id, **data.model_dump())
    db.add(product)
    await db.flush()

    if product.stock_on_hand > 0:
        db.add(InventoryMovement(
            product_id=product.id,
            user_id=current_user.id,
            movement_type=StockMovementType.IN.value,
            quantity=product.stock_on_hand,
            previous_stock=0,
            new_stock=product.stock_on_hand,
            reference="Initial stock",
        ))

    await db.commit()
    return product_to_response(await _load_product(db, product.id, tenant.property_id))


@router.put("/{product_id}", response_model=ProductResponse)
async def update_product(
    product_id: int,
    data: ProductUpdate,
    tenant: TenantContext = Depends(require_active_subscription),
    db: AsyncSession = Depends(get_db)
):
    """Update product details. Stock only changes through movements."""
    product = await _load_product(db, product_id, tenant.property_id)
    updates = data.model_dump(exclude_unset=True)

    if updates.get("code") and updates["code"] != product.code:
        await _ensure_code_free(db, tenant.property_id, updates["code"], exclude_id=product.id)
    if updates.get("category_id"):
        await get_scoped_or_404(db, ProductCategory, updates["category_id"], tenant.property_id, "Category")

    for field, value in updates.items():
        setattr(product, field, value)

    await db.commit()
    return product_to_response(await _load_product(db, product.id, tenant.property_id))


@router.delete("/{product_id}")
async def delete_product(
    product_id: int,
    tenant: TenantContext = Depends(require_active_subscription),
    db: AsyncSession = Depends(get_db)
):
    product = await _load_product(db, product_id, tenant.property_id)
    product.retire()
    await db.commit()
    return {"message": "Product deleted"}


# =============================================================================
# STOCK MOVEMENTS
# =============================================================================

@router.post("/{product_id}/movements", response_model=StockMovementResponse, status_code=status.HTTP_201_CREATED)
async def record_movement(
    product_id: int,
    data: StockMovementCreate,
    tenant: TenantContext = Depends(require_active_subscription),
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db)
):
    """Record a stock movement and update the on-hand level"""
    if data.movement_type != StockMovementType.ADJUSTMENT and data.quantity < 1:
        raise BadRequest("Quantity must be at least 1")

    async with record_lock(db, Product, product_id):
        product = await get_scoped_or_404(db, Product, product_id, tenant.property_id, "Product", for_update=True)

        previous = product.stock_on_hand
        product.stock_on_hand = apply_movement(previous, data.movement_type, data.quantity)

        movement = InventoryMovement(
            product_id=product.id,
            user_id=current_user.id,
            movement_type=data.movement_type.value,
            quantity=data.quantity,
            previous_stock=previous,
            new_stock=product.stock_on_hand,
            reference=data.reference,
            notes=data.notes,
        )
        db.add(movement)
        await db.commit()

    await db.refresh(movement)

    logger.info(f"Stock {data.movement_type.value} for product {product.code}: {previous} -> {product.stock_on_hand}")
    return movement


@router.get("/{product_id}/movements", response_model=List[StockMovementResponse])
async def list_movements(
    product_id: int,
    tenant: TenantContext = Depends(require_active_subscription),
    db: AsyncSession = Depends(get_db)
):
    product = await get_scoped_or_404(db, Product, product_id, tenant.property_id, "Product", include_deleted=True)
    result = await db.execute(
        select(InventoryMovement)
        .where(InventoryMovement.product_id == product.id)
        .order_by(InventoryMovement.created_at.desc(), InventoryMovement.id.desc())
    )
    return result.scalars().all()
