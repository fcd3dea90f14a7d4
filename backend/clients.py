from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, or_
from typing import List, Optional

from database import get_db
from models import Client, Reservation, alive
from schemas import ClientCreate, ClientUpdate, ClientResponse, ReservationResponse
from subscription_middleware import require_active_subscription, get_scoped_or_404
from access_gate import TenantContext

router = APIRouter(prefix="/api/clients", tags=["clients"])


@router.get("", response_model=List[ClientResponse])
async def list_clients(
    search: Optional[str] = None,
    client_type: Optional[str] = None,
    vip: Optional[bool] = None,
    loyalty_level: Optional[str] = None,
    tenant: TenantContext = Depends(require_active_subscription),
    db: AsyncSession = Depends(get_db)
):
    query = select(Client).where(Client.property_id == tenant.property_id, alive(Client))

    if search:
        term = f"%{search}%"
        query = query.where(or_(
            Client.first_name.ilike(term),
            Client.last_name.ilike(term),
            Client.company_name.ilike(term),
            Client.email.ilike(term),
            Client.phone.ilike(term),
            Client.document_number.ilike(term),
        ))
    if client_type:
        query = query.where(Client.client_type == client_type)
    if vip is not None:
        query = query.where(Client.is_vip == vip)
    if loyalty_level:
        query = query.where(Client.loyalty_level == loyalty_level)

    result = await db.execute(query.order_by(Client.first_name, Client.last_name))
    return result.scalars().all()


@router.get("/{client_id}", response_model=ClientResponse)
async def get_client(
    client_id: int,
    tenant: TenantContext = Depends(require_active_subscription),
    db: AsyncSession = Depends(get_db)
):
    return await get_scoped_or_404(db, Client, client_id, tenant.property_id, "Client")


@router.get("/{client_id}/reservations", response_model=List[ReservationResponse])
async def client_reservation_history(
    client_id: int,
    tenant: TenantContext = Depends(require_active_subscription),
    db: AsyncSession = Depends(get_db)
):
    """Stay history of a client, newest first"""
    client = await get_scoped_or_404(db, Client, client_id, tenant.property_id, "Client", include_deleted=True)
    result = await db.execute(
        select(Reservation)
        .where(Reservation.client_id == client.id, Reservation.property_id == tenant.property_id)
        .order_by(Reservation.checkin_date.desc())
    )
    return result.scalars().all()


@router.post("", response_model=ClientResponse, status_code=status.HTTP_201_CREATED)
async def create_client(
    data: ClientCreate,
    tenant: TenantContext = Depends(require_active_subscription),
    db: AsyncSession = Depends(get_db)
):
    client = Client(property_id=tenant.property_id, **data.model_dump())
    db.add(client)
    await db.commit()
    await db.refresh(client)
    return client


@router.put("/{client_id}", response_model=ClientResponse)
async def update_client(
    client_id: int,
    data: ClientUpdate,
    tenant: TenantContext = Depends(require_active_subscription),
    db: AsyncSession = Depends(get_db)
):
    client = await get_scoped_or_404(db, Client, client_id, tenant.property_id, "Client")

    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(client, field, value)

    await db.commit()
    await db.refresh(client)
    return client


@router.delete("/{client_id}")
async def delete_client(
    client_id: int,
    tenant: TenantContext = Depends(require_active_subscription),
    db: AsyncSession = Depends(get_db)
):
    client = await get_scoped_or_404(db, Client, client_id, tenant.property_id, "Client")
    client.retire()
    await db.commit()
    return {"message": "Client deleted"}
