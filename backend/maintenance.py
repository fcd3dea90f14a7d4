from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from sqlalchemy.orm import selectinload
from datetime import datetime
from typing import List, Optional
import logging

from database import get_db
from models import (
    MaintenanceTask, Room, MaintenanceTaskStatus, MaintenanceTaskType, MaintenanceStatus, TaskPriority
)
from schemas import (
    MaintenanceTaskCreate, MaintenanceTaskUpdate, MaintenanceStatusUpdate, MaintenanceTaskResponse
)
from subscription_middleware import require_active_subscription, get_scoped_or_404, get_clock
from access_gate import TenantContext
from housekeeping import priority_rank
from errors import NotFound

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/maintenance", tags=["maintenance"])

OPEN_STATUSES = (MaintenanceTaskStatus.PENDING.value, MaintenanceTaskStatus.IN_PROGRESS.value)
FLAGGING_PRIORITIES = (TaskPriority.URGENT.value, TaskPriority.HIGH.value)


def task_to_response(task: MaintenanceTask) -> MaintenanceTaskResponse:
    response = MaintenanceTaskResponse.model_validate(task)
    if task.room is not None:
        response.room_number = task.room.number
    return response


async def _load_task(db: AsyncSession, task_id: int, property_id: int) -> MaintenanceTask:
    result = await db.execute(
        select(MaintenanceTask)
        .options(selectinload(MaintenanceTask.room))
        .where(MaintenanceTask.id == task_id, MaintenanceTask.property_id == property_id)
    )
    task = result.scalar_one_or_none()
    if task is None:
        raise NotFound("Maintenance task not found")
    return task


async def _settle_room(db: AsyncSession, task: MaintenanceTask):
    """Return the room to OK once no other open task remains on it."""
    if task.room is None:
        return
    others = await db.scalar(
        select(func.count(MaintenanceTask.id)).where(
            MaintenanceTask.room_id == task.room_id,
            MaintenanceTask.id != task.id,
            MaintenanceTask.status.in_(OPEN_STATUSES),
        )
    )
    if not others:
        task.room.maintenance_status = MaintenanceStatus.OK.value


@router.get("", response_model=List[MaintenanceTaskResponse])
async def list_tasks(
    task_status: Optional[MaintenanceTaskStatus] = Query(None, alias="status"),
    priority: Optional[TaskPriority] = None,
    task_type: Optional[MaintenanceTaskType] = None,
    room_id: Optional[int] = None,
    tenant: TenantContext = Depends(require_active_subscription),
    db: AsyncSession = Depends(get_db)
):
    query = (
        select(MaintenanceTask)
        .options(selectinload(MaintenanceTask.room))
        .where(MaintenanceTask.property_id == tenant.property_id)
    )
    if task_status:
        query = query.where(MaintenanceTask.status == task_status.value)
    if priority:
        query = query.where(MaintenanceTask.priority == priority.value)
    if task_type:
        query = query.where(MaintenanceTask.task_type == task_type.value)
    if room_id:
        query = query.where(MaintenanceTask.room_id == room_id)

    result = await db.execute(
        query.order_by(priority_rank(MaintenanceTask.priority), MaintenanceTask.reported_on, MaintenanceTask.id)
    )
    return [task_to_response(t) for t in result.scalars().all()]


@router.get("/pending", response_model=List[MaintenanceTaskResponse])
async def list_open_tasks(
    tenant: TenantContext = Depends(require_active_subscription),
    db: AsyncSession = Depends(get_db)
):
    """Pending and in-progress tasks, most urgent first"""
    result = await db.execute(
        select(MaintenanceTask)
        .options(selectinload(MaintenanceTask.room))
        .where(
            MaintenanceTask.property_id == tenant.property_id,
            MaintenanceTask.status.in_(OPEN_STATUSES),
        )
        .order_by(priority_rank(MaintenanceTask.priority), MaintenanceTask.reported_on, MaintenanceTask.id)
    )
    return [task_to_response(t) for t in result.scalars().all()]


@router.post("", response_model=MaintenanceTaskResponse, status_code=status.HTTP_201_CREATED)
async def create_task(
    data: MaintenanceTaskCreate,
    tenant: TenantContext = Depends(require_active_subscription),
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_clock)
):
    """Report a task; Urgent or High priority flags the room as pending maintenance."""
    room = None
    if data.room_id:
        room = await get_scoped_or_404(db, Room, data.room_id, tenant.property_id, "Room")

    task = MaintenanceTask(
        property_id=tenant.property_id,
        room=room,
        title=data.title,
        description=data.description,
        task_type=data.task_type.value,
        priority=data.priority.value,
        status=MaintenanceTaskStatus.PENDING.value,
        assigned_to=data.assigned_to,
        assigned_name=data.assigned_name,
        reported_on=tenant.today(now),
        scheduled_for=data.scheduled_for,
        estimated_cost=data.estimated_cost,
        notes=data.notes,
    )
    db.add(task)

    if room is not None and data.priority.value in FLAGGING_PRIORITIES:
        room.maintenance_status = MaintenanceStatus.PENDING.value

    await db.commit()
    return task_to_response(task)


@router.patch("/{task_id}/status", response_model=MaintenanceTaskResponse)
async def update_task_status(
    task_id: int,
    data: MaintenanceStatusUpdate,
    tenant: TenantContext = Depends(require_active_subscription),
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_clock)
):
    task = await _load_task(db, task_id, tenant.property_id)
    new_status = data.status.value
    task.status = new_status
    if data.notes:
        task.notes = data.notes

    if new_status == MaintenanceTaskStatus.IN_PROGRESS.value:
        if task.room is not None:
            task.room.maintenance_status = MaintenanceStatus.IN_PROGRESS.value
    elif new_status == MaintenanceTaskStatus.COMPLETED.value:
        task.completed_on = tenant.today(now)
        if data.actual_cost is not None:
            task.actual_cost = data.actual_cost
        await _settle_room(db, task)
    elif new_status == MaintenanceTaskStatus.CANCELLED.value:
        await _settle_room(db, task)

    await db.commit()
    logger.info(f"Maintenance task {task.id} -> {new_status}")
    return task_to_response(task)


@router.put("/{task_id}", response_model=MaintenanceTaskResponse)
async def update_task(
    task_id: int,
    data: MaintenanceTaskUpdate,
    tenant: TenantContext = Depends(require_active_subscription),
    db: AsyncSession = Depends(get_db)
):
    task = await _load_task(db, task_id, tenant.property_id)

    for field, value in data.model_dump(exclude_unset=True).items():
        if hasattr(value, "value"):
            value = value.value
        setattr(task, field, value)

    await db.commit()
    return task_to_response(task)


@router.delete("/{task_id}")
async def delete_task(
    task_id: int,
    tenant: TenantContext = Depends(require_active_subscription),
    db: AsyncSession = Depends(get_db)
):
    task = await _load_task(db, task_id, tenant.property_id)
    if task.status in OPEN_STATUSES:
        await _settle_room(db, task)
    await db.delete(task)
    await db.commit()
    return {"message": "Maintenance task deleted"}
