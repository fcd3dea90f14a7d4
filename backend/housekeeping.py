"""
Housekeeping task board.

Task status drives the room's housekeeping sub-status:
InProgress -> InProgress, Completed -> Inspection, Verified -> Clean.
"""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, case
from sqlalchemy.orm import selectinload
from datetime import datetime, date
from typing import List, Optional
import logging

from database import get_db
from models import (
    HousekeepingTask, Room, HousekeepingTaskStatus, HousekeepingStatus, TaskPriority
)
from schemas import (
    HousekeepingTaskCreate, HousekeepingTaskResponse, HousekeepingStatusUpdate, TaskAssignment
)
from subscription_middleware import require_active_subscription, get_scoped_or_404, get_clock
from access_gate import TenantContext
from errors import NotFound

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/housekeeping", tags=["housekeeping"])

PRIORITY_ORDER = {
    TaskPriority.URGENT.value: 1,
    TaskPriority.HIGH.value: 2,
    TaskPriority.NORMAL.value: 3,
    TaskPriority.LOW.value: 4,
}

# task status -> room housekeeping status
ROOM_STATUS_FOR_TASK = {
    HousekeepingTaskStatus.IN_PROGRESS.value: HousekeepingStatus.IN_PROGRESS.value,
    HousekeepingTaskStatus.COMPLETED.value: HousekeepingStatus.INSPECTION.value,
    HousekeepingTaskStatus.VERIFIED.value: HousekeepingStatus.CLEAN.value,
}

OPEN_STATUSES = (HousekeepingTaskStatus.PENDING.value, HousekeepingTaskStatus.IN_PROGRESS.value)


def priority_rank(column):
    return case(PRIORITY_ORDER, value=column, else_=len(PRIORITY_ORDER) + 1)


def task_to_response(task: HousekeepingTask) -> HousekeepingTaskResponse:
    response = HousekeepingTaskResponse.model_validate(task)
    if task.room is not None:
        response.room_number = task.room.number
        response.floor = task.room.floor
    return response


async def _load_task(db: AsyncSession, task_id: int, property_id: int) -> HousekeepingTask:
    result = await db.execute(
        select(HousekeepingTask)
        .options(selectinload(HousekeepingTask.room))
        .where(HousekeepingTask.id == task_id, HousekeepingTask.property_id == property_id)
    )
    task = result.scalar_one_or_none()
    if task is None:
        raise NotFound("Housekeeping task not found")
    return task


def _board_query(property_id: int):
    return (
        select(HousekeepingTask)
        .join(Room, HousekeepingTask.room_id == Room.id)
        .options(selectinload(HousekeepingTask.room))
        .where(HousekeepingTask.property_id == property_id)
        .order_by(priority_rank(HousekeepingTask.priority), Room.floor, Room.number)
    )


@router.get("", response_model=List[HousekeepingTaskResponse])
async def list_tasks(
    task_date: Optional[date] = Query(None, alias="date"),
    task_status: Optional[HousekeepingTaskStatus] = Query(None, alias="status"),
    priority: Optional[TaskPriority] = None,
    assigned_to: Optional[int] = None,
    tenant: TenantContext = Depends(require_active_subscription),
    db: AsyncSession = Depends(get_db)
):
    """Tasks ordered by priority (Urgent first), then floor"""
    query = _board_query(tenant.property_id)
    if task_date:
        query = query.where(HousekeepingTask.task_date == task_date)
    if task_status:
        query = query.where(HousekeepingTask.status == task_status.value)
    if priority:
        query = query.where(HousekeepingTask.priority == priority.value)
    if assigned_to:
        query = query.where(HousekeepingTask.assigned_to == assigned_to)

    result = await db.execute(query)
    return [task_to_response(t) for t in result.scalars().all()]


@router.get("/today", response_model=List[HousekeepingTaskResponse])
async def todays_open_tasks(
    tenant: TenantContext = Depends(require_active_subscription),
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_clock)
):
    result = await db.execute(
        _board_query(tenant.property_id).where(
            HousekeepingTask.task_date == tenant.today(now),
            HousekeepingTask.status.in_(OPEN_STATUSES),
        )
    )
    return [task_to_response(t) for t in result.scalars().all()]


@router.post("", response_model=HousekeepingTaskResponse, status_code=status.HTTP_201_CREATED)
async def create_task(
    data: HousekeepingTaskCreate,
    tenant: TenantContext = Depends(require_active_subscription),
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_clock)
):
    room = await get_scoped_or_404(db, Room, data.room_id, tenant.property_id, "Room")

    task = HousekeepingTask(
        property_id=tenant.property_id,
        room=room,
        task_date=data.task_date or tenant.today(now),
        task_type=data.task_type.value,
        priority=data.priority.value,
        status=HousekeepingTaskStatus.PENDING.value,
        assigned_to=data.assigned_to,
        assigned_name=data.assigned_name,
        notes=data.notes,
    )
    db.add(task)
    await db.commit()
    return task_to_response(task)


@router.patch("/{task_id}/status", response_model=HousekeepingTaskResponse)
async def update_task_status(
    task_id: int,
    data: HousekeepingStatusUpdate,
    tenant: TenantContext = Depends(require_active_subscription),
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_clock)
):
    """Move a task along and mirror the result on the room"""
    task = await _load_task(db, task_id, tenant.property_id)
    new_status = data.status.value

    task.status = new_status
    if new_status == HousekeepingTaskStatus.IN_PROGRESS.value:
        task.started_at = now
    elif new_status == HousekeepingTaskStatus.COMPLETED.value:
        task.finished_at = now
    elif new_status == HousekeepingTaskStatus.VERIFIED.value and task.finished_at is None:
        task.finished_at = now
    if data.notes:
        task.notes = data.notes

    room_status = ROOM_STATUS_FOR_TASK.get(new_status)
    if room_status and task.room is not None:
        task.room.housekeeping_status = room_status

    await db.commit()
    logger.info(f"Housekeeping task {task.id} on room {task.room.number} -> {new_status}")
    return task_to_response(task)


@router.put("/{task_id}/assign", response_model=HousekeepingTaskResponse)
async def assign_task(
    task_id: int,
    data: TaskAssignment,
    tenant: TenantContext = Depends(require_active_subscription),
    db: AsyncSession = Depends(get_db)
):
    task = await _load_task(db, task_id, tenant.property_id)
    task.assigned_to = data.assigned_to
    task.assigned_name = data.assigned_name
    await db.commit()
    return task_to_response(task)


@router.delete("/{task_id}")
async def delete_task(
    task_id: int,
    tenant: TenantContext = Depends(require_active_subscription),
    db: AsyncSession = Depends(get_db)
):
    task = await _load_task(db, task_id, tenant.property_id)
    await db.delete(task)
    await db.commit()
    return {"message": "Housekeeping task deleted"}
