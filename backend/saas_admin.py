"""
SaaS Administration API Router

Plans, tenant accounts, their hotels and the subscriptions that grant them
access. Every mutation is written to the admin activity log.

Access is restricted to super admin users only.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from sqlalchemy.orm import selectinload
from datetime import datetime, timedelta
from typing import List, Optional
import logging

from config import settings
from database import get_db
from models import (
    User, Plan, Account, Property, Subscription, SubscriptionStatus, AdminActivityLog, alive
)
from schemas import (
    PlanCreate, PlanUpdate, PlanResponse, AccountCreate, AccountUpdate, AccountResponse,
    PropertyCreate, PropertyResponse, SubscriptionCreate, SubscriptionExtend, SubscriptionResponse,
    AssignedPropertyResponse, ActivityLogResponse
)
from auth import get_current_super_admin
from subscription_middleware import get_clock
from errors import BadRequest, NotFound

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/saas", tags=["SaaS Admin"])


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

async def log_admin_activity(
    db: AsyncSession,
    admin_user_id: int,
    action: str,
    target_type: Optional[str] = None,
    target_id: Optional[int] = None,
    details: Optional[dict] = None,
):
    """Log admin activity for audit purposes. Committed with the caller's transaction."""
    db.add(AdminActivityLog(
        admin_user_id=admin_user_id,
        action=action,
        target_type=target_type,
        target_id=target_id,
        details=details,
    ))
    logger.info(f"Admin {admin_user_id}: {action} {target_type} {target_id} {details or ''}")


def days_remaining(expires_at: datetime, now: datetime) -> int:
    return max(0, (expires_at.date() - now.date()).days)


def subscription_to_response(sub: Subscription, now: datetime) -> SubscriptionResponse:
    response = SubscriptionResponse.model_validate(sub)
    response.days_remaining = days_remaining(sub.expires_at, now)
    response.account_name = sub.account.business_name if sub.account else None
    response.property_name = sub.property.name if sub.property else None
    response.plan_name = sub.plan.name if sub.plan else None
    return response


async def _get_or_404(db: AsyncSession, model, object_id: int, label: str):
    obj = await db.get(model, object_id)
    if obj is None:
        raise NotFound(f"{label} not found")
    return obj


async def _load_subscription(db: AsyncSession, subscription_id: int) -> Subscription:
    result = await db.execute(
        select(Subscription)
        .options(
            selectinload(Subscription.account),
            selectinload(Subscription.property),
            selectinload(Subscription.plan),
        )
        .where(Subscription.id == subscription_id)
        .execution_options(populate_existing=True)
    )
    sub = result.scalar_one_or_none()
    if sub is None:
        raise NotFound("Subscription not found")
    return sub


# =============================================================================
# PLANS
# =============================================================================

@router.get("/plans", response_model=List[PlanResponse])
async def list_plans(
    db: AsyncSession = Depends(get_db),
    current_admin: User = Depends(get_current_super_admin)
):
    result = await db.execute(select(Plan).order_by(Plan.monthly_cost, Plan.id))
    return result.scalars().all()


@router.post("/plans", response_model=PlanResponse, status_code=status.HTTP_201_CREATED)
async def create_plan(
    data: PlanCreate,
    db: AsyncSession = Depends(get_db),
    current_admin: User = Depends(get_current_super_admin)
):
    existing = await db.execute(select(Plan.id).where(Plan.name == data.name))
    if existing.first():
        raise BadRequest(f"Plan '{data.name}' already exists")

    plan = Plan(**data.model_dump())
    db.add(plan)
    await db.flush()
    await log_admin_activity(db, current_admin.id, "create_plan", "plan", plan.id, {"name": plan.name})
    await db.commit()
    await db.refresh(plan)
    return plan


@router.put("/plans/{plan_id}", response_model=PlanResponse)
async def update_plan(
    plan_id: int,
    data: PlanUpdate,
    db: AsyncSession = Depends(get_db),
    current_admin: User = Depends(get_current_super_admin)
):
    plan = await _get_or_404(db, Plan, plan_id, "Plan")
    updates = data.model_dump(exclude_unset=True)

    for field, value in updates.items():
        setattr(plan, field, value)

    await log_admin_activity(
        db, current_admin.id, "update_plan", "plan", plan.id, {k: str(v) for k, v in updates.items()}
    )
    await db.commit()
    await db.refresh(plan)
    return plan


# =============================================================================
# ACCOUNTS
# =============================================================================

@router.get("/accounts", response_model=List[AccountResponse])
async def list_accounts(
    db: AsyncSession = Depends(get_db),
    current_admin: User = Depends(get_current_super_admin)
):
    """All tenant accounts with the number of live hotels each owns"""
    property_counts = (
        select(Property.account_id, func.count(Property.id).label("property_count"))
        .where(alive(Property))
        .group_by(Property.account_id)
        .subquery()
    )
    result = await db.execute(
        select(Account, func.coalesce(property_counts.c.property_count, 0))
        .outerjoin(property_counts, property_counts.c.account_id == Account.id)
        .order_by(Account.business_name)
    )

    accounts = []
    for account, count in result.all():
        response = AccountResponse.model_validate(account)
        response.property_count = count
        accounts.append(response)
    return accounts


@router.post("/accounts", response_model=AccountResponse, status_code=status.HTTP_201_CREATED)
async def create_account(
    data: AccountCreate,
    db: AsyncSession = Depends(get_db),
    current_admin: User = Depends(get_current_super_admin)
):
    existing = await db.execute(select(Account.id).where(Account.email == data.email))
    if existing.first():
        raise BadRequest("An account with this email already exists")

    account = Account(**data.model_dump())
    db.add(account)
    await db.flush()
    await log_admin_activity(
        db, current_admin.id, "create_account", "account", account.id, {"business_name": account.business_name}
    )
    await db.commit()
    await db.refresh(account)
    return AccountResponse.model_validate(account)


@router.put("/accounts/{account_id}", response_model=AccountResponse)
async def update_account(
    account_id: int,
    data: AccountUpdate,
    db: AsyncSession = Depends(get_db),
    current_admin: User = Depends(get_current_super_admin)
):
    """Rename or (de)activate an account. A disabled account blocks all its hotels."""
    account = await _get_or_404(db, Account, account_id, "Account")
    updates = data.model_dump(exclude_unset=True)

    for field, value in updates.items():
        setattr(account, field, value)

    await log_admin_activity(db, current_admin.id, "update_account", "account", account.id, updates)
    await db.commit()
    await db.refresh(account)
    return AccountResponse.model_validate(account)


@router.delete("/accounts/{account_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_account(
    account_id: int,
    db: AsyncSession = Depends(get_db),
    current_admin: User = Depends(get_current_super_admin)
):
    """Delete an account that owns no hotels, together with its subscriptions"""
    account = await _get_or_404(db, Account, account_id, "Account")

    hotels = await db.scalar(select(func.count(Property.id)).where(Property.account_id == account.id))
    if hotels:
        raise BadRequest("Account still owns hotels", properties=hotels)

    subscriptions = (await db.execute(
        select(Subscription).where(Subscription.account_id == account.id)
    )).scalars().all()
    for sub in subscriptions:
        await db.delete(sub)

    await log_admin_activity(
        db, current_admin.id, "delete_account", "account", account.id, {"business_name": account.business_name}
    )
    await db.delete(account)
    await db.commit()


# =============================================================================
# PROPERTIES
# =============================================================================

@router.get("/properties", response_model=List[PropertyResponse])
async def list_properties(
    account_id: Optional[int] = None,
    db: AsyncSession = Depends(get_db),
    current_admin: User = Depends(get_current_super_admin)
):
    query = select(Property).where(alive(Property))
    if account_id:
        query = query.where(Property.account_id == account_id)
    result = await db.execute(query.order_by(Property.name))
    return result.scalars().all()


@router.post("/properties", response_model=PropertyResponse, status_code=status.HTTP_201_CREATED)
async def create_property(
    data: PropertyCreate,
    db: AsyncSession = Depends(get_db),
    current_admin: User = Depends(get_current_super_admin)
):
    """Onboard a hotel under an account; unset settings take the platform defaults"""
    await _get_or_404(db, Account, data.account_id, "Account")

    prop = Property(
        account_id=data.account_id,
        name=data.name,
        city=data.city,
        country=data.country,
        timezone=data.timezone or settings.DEFAULT_TIMEZONE,
        currency=data.currency or settings.DEFAULT_CURRENCY,
        tax_rate=data.tax_rate if data.tax_rate is not None else settings.DEFAULT_TAX_RATE,
    )
    db.add(prop)
    await db.flush()
    await log_admin_activity(db, current_admin.id, "create_property", "property", prop.id, {"name": prop.name})
    await db.commit()
    await db.refresh(prop)
    return prop


# =============================================================================
# SUBSCRIPTIONS
# =============================================================================

@router.get("/subscriptions", response_model=List[SubscriptionResponse])
async def list_subscriptions(
    account_id: Optional[int] = None,
    subscription_status: Optional[SubscriptionStatus] = None,
    db: AsyncSession = Depends(get_db),
    current_admin: User = Depends(get_current_super_admin),
    now: datetime = Depends(get_clock)
):
    query = select(Subscription).options(
        selectinload(Subscription.account),
        selectinload(Subscription.property),
        selectinload(Subscription.plan),
    )
    if account_id:
        query = query.where(Subscription.account_id == account_id)
    if subscription_status:
        query = query.where(Subscription.status == subscription_status.value)

    result = await db.execute(query.order_by(Subscription.expires_at.desc()))
    return [subscription_to_response(s, now) for s in result.scalars().all()]


@router.post("/subscriptions", response_model=SubscriptionResponse, status_code=status.HTTP_201_CREATED)
async def create_subscription(
    data: SubscriptionCreate,
    db: AsyncSession = Depends(get_db),
    current_admin: User = Depends(get_current_super_admin),
    now: datetime = Depends(get_clock)
):
    """
    Grant access for `days` days (DEFAULT_SUBSCRIPTION_DAYS when omitted).

    Without property_id the subscription covers every hotel of the account.
    """
    await _get_or_404(db, Account, data.account_id, "Account")
    if data.property_id is not None:
        prop = await _get_or_404(db, Property, data.property_id, "Hotel")
        if prop.account_id != data.account_id:
            raise BadRequest("Hotel does not belong to this account")
    if data.plan_id is not None:
        await _get_or_404(db, Plan, data.plan_id, "Plan")

    days = data.days or settings.DEFAULT_SUBSCRIPTION_DAYS
    sub = Subscription(
        account_id=data.account_id,
        property_id=data.property_id,
        plan_id=data.plan_id,
        status=SubscriptionStatus.ACTIVE.value,
        starts_at=now,
        expires_at=now + timedelta(days=days),
    )
    db.add(sub)
    await db.flush()
    await log_admin_activity(
        db, current_admin.id, "create_subscription", "subscription", sub.id,
        {"days": days, "expires_at": sub.expires_at.isoformat()}
    )
    await db.commit()
    return subscription_to_response(await _load_subscription(db, sub.id), now)


@router.patch("/subscriptions/{subscription_id}/extend", response_model=SubscriptionResponse)
async def extend_subscription(
    subscription_id: int,
    data: SubscriptionExtend,
    db: AsyncSession = Depends(get_db),
    current_admin: User = Depends(get_current_super_admin),
    now: datetime = Depends(get_clock)
):
    """
    Extend by `days` counted from the later of the current expiration and now,
    and reactivate the subscription.
    """
    sub = await _load_subscription(db, subscription_id)

    sub.expires_at = max(sub.expires_at, now) + timedelta(days=data.days)
    sub.status = SubscriptionStatus.ACTIVE.value

    await log_admin_activity(
        db, current_admin.id, "extend_subscription", "subscription", sub.id,
        {"days_extended": data.days, "new_end_date": sub.expires_at.isoformat()}
    )
    await db.commit()
    return subscription_to_response(await _load_subscription(db, sub.id), now)


@router.patch("/subscriptions/{subscription_id}/revoke", response_model=SubscriptionResponse)
async def revoke_subscription(
    subscription_id: int,
    db: AsyncSession = Depends(get_db),
    current_admin: User = Depends(get_current_super_admin),
    now: datetime = Depends(get_clock)
):
    """Cancel a subscription; the hotels it covered lose access on their next request"""
    sub = await _load_subscription(db, subscription_id)
    sub.status = SubscriptionStatus.CANCELLED.value

    await log_admin_activity(
        db, current_admin.id, "revoke_subscription", "subscription", sub.id,
        {"revoked_at": now.isoformat()}
    )
    await db.commit()
    return subscription_to_response(await _load_subscription(db, sub.id), now)


@router.delete("/subscriptions/{subscription_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_subscription(
    subscription_id: int,
    db: AsyncSession = Depends(get_db),
    current_admin: User = Depends(get_current_super_admin)
):
    sub = await _get_or_404(db, Subscription, subscription_id, "Subscription")
    await log_admin_activity(db, current_admin.id, "delete_subscription", "subscription", sub.id)
    await db.delete(sub)
    await db.commit()


@router.get("/assigned-properties", response_model=List[AssignedPropertyResponse])
async def list_assigned_properties(
    db: AsyncSession = Depends(get_db),
    current_admin: User = Depends(get_current_super_admin),
    now: datetime = Depends(get_clock)
):
    """
    Every live hotel with the subscription that currently governs it: the
    active one with the latest expiration, else the latest of any state.
    """
    props = (await db.execute(
        select(Property).options(selectinload(Property.account)).where(alive(Property)).order_by(Property.name)
    )).scalars().all()
    subs = (await db.execute(select(Subscription))).scalars().all()

    overview = []
    for prop in props:
        covering = [
            s for s in subs
            if s.property_id == prop.id or (s.property_id is None and s.account_id == prop.account_id)
        ]
        active = [s for s in covering if s.status == SubscriptionStatus.ACTIVE.value]
        pool = active or covering
        current = max(pool, key=lambda s: s.expires_at) if pool else None

        overview.append(AssignedPropertyResponse(
            property_id=prop.id,
            property_name=prop.name,
            account_id=prop.account_id,
            account_name=prop.account.business_name,
            subscription_id=current.id if current else None,
            subscription_status=current.status if current else None,
            expires_at=current.expires_at if current else None,
            days_remaining=days_remaining(current.expires_at, now) if current else None,
        ))
    return overview


@router.get("/activity-logs", response_model=List[ActivityLogResponse])
async def list_activity_logs(
    limit: int = 100,
    db: AsyncSession = Depends(get_db),
    current_admin: User = Depends(get_current_super_admin)
):
    result = await db.execute(
        select(AdminActivityLog).order_by(AdminActivityLog.created_at.desc(), AdminActivityLog.id.desc()).limit(limit)
    )
    return result.scalars().all()
