from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from typing import List, Optional

from database import get_db
from models import ChargeConcept, UserRole
from schemas import ChargeConceptCreate, ChargeConceptUpdate, ChargeConceptResponse
from auth import require_roles
from subscription_middleware import require_active_subscription, get_scoped_or_404
from access_gate import TenantContext
from errors import BadRequest

router = APIRouter(prefix="/api/charge-concepts", tags=["charge-concepts"])


@router.get("", response_model=List[ChargeConceptResponse])
async def list_charge_concepts(
    category: Optional[str] = None,
    active: Optional[bool] = None,
    tenant: TenantContext = Depends(require_active_subscription),
    db: AsyncSession = Depends(get_db)
):
    query = select(ChargeConcept).where(ChargeConcept.property_id == tenant.property_id)
    if category:
        query = query.where(ChargeConcept.category == category)
    if active is not None:
        query = query.where(ChargeConcept.is_active == active)

    result = await db.execute(query.order_by(ChargeConcept.category, ChargeConcept.name))
    return result.scalars().all()


@router.post("", response_model=ChargeConceptResponse, status_code=status.HTTP_201_CREATED,
             dependencies=[Depends(require_roles(UserRole.ADMIN))])
async def create_charge_concept(
    data: ChargeConceptCreate,
    tenant: TenantContext = Depends(require_active_subscription),
    db: AsyncSession = Depends(get_db)
):
    existing = await db.execute(
        select(ChargeConcept.id).where(
            ChargeConcept.property_id == tenant.property_id, ChargeConcept.code == data.code
        )
    )
    if existing.first():
        raise BadRequest(f"Charge concept code '{data.code}' already exists")

    concept = ChargeConcept(property_id=tenant.property_id, **data.model_dump())
    db.add(concept)
    await db.commit()
    await db.refresh(concept)
    return concept


@router.put("/{concept_id}", response_model=ChargeConceptResponse,
            dependencies=[Depends(require_roles(UserRole.ADMIN))])
async def update_charge_concept(
    concept_id: int,
    data: ChargeConceptUpdate,
    tenant: TenantContext = Depends(require_active_subscription),
    db: AsyncSession = Depends(get_db)
):
    concept = await get_scoped_or_404(db, ChargeConcept, concept_id, tenant.property_id, "Charge concept")

    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(concept, field, value)

    await db.commit()
    await db.refresh(concept)
    return concept
