from pydantic import BaseModel, EmailStr, Field
from typing import Optional, List
from datetime import datetime, date
from decimal import Decimal
from models import (
    UserRole, RoomStatus, HousekeepingStatus, MaintenanceStatus, ReservationStatus,
    TaskPriority, HousekeepingTaskStatus, HousekeepingTaskType, MaintenanceTaskStatus,
    MaintenanceTaskType, StockMovementType, PaymentKind, SubscriptionStatus
)


# =============================================================================
# USERS
# =============================================================================

class UserResponse(BaseModel):
    id: int
    email: str
    full_name: str
    role: UserRole
    account_id: Optional[int] = None
    property_id: Optional[int] = None
    is_active: bool
    last_login_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# =============================================================================
# HOTEL SETTINGS
# =============================================================================

class PropertyUpdate(BaseModel):
    """Schema for updating hotel settings"""
    name: Optional[str] = None
    legal_name: Optional[str] = None
    tax_id: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[EmailStr] = None
    checkin_time: Optional[str] = Field(None, pattern=r"^\d{2}:\d{2}$")
    checkout_time: Optional[str] = Field(None, pattern=r"^\d{2}:\d{2}$")
    stars: Optional[int] = Field(None, ge=1, le=5)
    tax_rate: Optional[Decimal] = Field(None, ge=0, le=1)
    timezone: Optional[str] = None
    currency: Optional[str] = Field(None, min_length=3, max_length=3)


class PropertyResponse(BaseModel):
    id: int
    account_id: int
    name: str
    legal_name: Optional[str] = None
    tax_id: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    checkin_time: Optional[str] = None
    checkout_time: Optional[str] = None
    stars: Optional[int] = None
    tax_rate: float
    timezone: Optional[str] = None
    currency: Optional[str] = None
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


# =============================================================================
# ROOM TYPES & ROOMS
# =============================================================================

class RoomTypeBase(BaseModel):
    code: str = Field(..., min_length=1, max_length=20)
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    adult_capacity: int = Field(2, ge=1)
    child_capacity: int = Field(0, ge=0)
    max_capacity: int = Field(2, ge=1)
    base_price: Decimal = Field(..., ge=0)
    extra_person_price: Decimal = Field(Decimal("0.00"), ge=0)
    amenities: List[str] = []


class RoomTypeCreate(RoomTypeBase):
    pass


class RoomTypeUpdate(BaseModel):
    code: Optional[str] = Field(None, min_length=1, max_length=20)
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    adult_capacity: Optional[int] = Field(None, ge=1)
    child_capacity: Optional[int] = Field(None, ge=0)
    max_capacity: Optional[int] = Field(None, ge=1)
    base_price: Optional[Decimal] = Field(None, ge=0)
    extra_person_price: Optional[Decimal] = Field(None, ge=0)
    amenities: Optional[List[str]] = None


class RoomTypeResponse(BaseModel):
    id: int
    property_id: int
    code: str
    name: str
    description: Optional[str] = None
    adult_capacity: int
    child_capacity: int
    max_capacity: int
    base_price: float
    extra_person_price: float
    amenities: Optional[List[str]] = None
    is_active: bool

    class Config:
        from_attributes = True


class RoomCreate(BaseModel):
    room_type_id: int
    number: str = Field(..., min_length=1, max_length=10)
    floor: int = 1
    status: RoomStatus = RoomStatus.AVAILABLE
    notes: Optional[str] = None


class RoomUpdate(BaseModel):
    room_type_id: Optional[int] = None
    number: Optional[str] = Field(None, min_length=1, max_length=10)
    floor: Optional[int] = None
    notes: Optional[str] = None


class RoomStatusUpdate(BaseModel):
    """Any combination of the three independent statuses"""
    status: Optional[RoomStatus] = None
    housekeeping_status: Optional[HousekeepingStatus] = None
    maintenance_status: Optional[MaintenanceStatus] = None


class RoomResponse(BaseModel):
    id: int
    property_id: int
    room_type_id: int
    number: str
    floor: Optional[int] = None
    status: RoomStatus
    housekeeping_status: HousekeepingStatus
    maintenance_status: MaintenanceStatus
    notes: Optional[str] = None
    is_active: bool
    room_type_name: Optional[str] = None
    base_price: Optional[float] = None

    class Config:
        from_attributes = True


# =============================================================================
# CLIENTS
# =============================================================================

class ClientBase(BaseModel):
    client_type: str = Field("Person", pattern="^(Person|Company)$")
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: Optional[str] = None
    second_last_name: Optional[str] = None
    company_name: Optional[str] = None
    tax_id: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    document_type: Optional[str] = "ID"
    document_number: Optional[str] = None
    nationality: Optional[str] = None
    address: Optional[str] = None
    is_vip: bool = False
    loyalty_level: Optional[str] = "Standard"
    notes: Optional[str] = None


class ClientCreate(ClientBase):
    pass


class ClientUpdate(BaseModel):
    client_type: Optional[str] = Field(None, pattern="^(Person|Company)$")
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = None
    second_last_name: Optional[str] = None
    company_name: Optional[str] = None
    tax_id: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    document_type: Optional[str] = None
    document_number: Optional[str] = None
    nationality: Optional[str] = None
    address: Optional[str] = None
    is_vip: Optional[bool] = None
    loyalty_level: Optional[str] = None
    notes: Optional[str] = None


class ClientResponse(ClientBase):
    id: int
    property_id: int
    email: Optional[str] = None
    total_stays: int
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


# =============================================================================
# RESERVATIONS
# =============================================================================

class ReservationCreate(BaseModel):
    client_id: int
    room_id: Optional[int] = None
    room_type_id: Optional[int] = None
    checkin_date: date
    checkout_date: date
    arrival_time: Optional[str] = None
    adults: int = Field(1, ge=1)
    children: int = Field(0, ge=0)
    nightly_rate: Optional[Decimal] = Field(None, ge=0)  # defaults to the room type base price
    discount_amount: Optional[Decimal] = Field(None, ge=0)
    discount_percent: Optional[Decimal] = Field(None, ge=0, le=100)
    special_requests: Optional[str] = None
    internal_notes: Optional[str] = None


class ReservationUpdate(BaseModel):
    room_id: Optional[int] = None
    room_type_id: Optional[int] = None
    checkin_date: Optional[date] = None
    checkout_date: Optional[date] = None
    arrival_time: Optional[str] = None
    adults: Optional[int] = Field(None, ge=1)
    children: Optional[int] = Field(None, ge=0)
    nightly_rate: Optional[Decimal] = Field(None, ge=0)
    discount_amount: Optional[Decimal] = Field(None, ge=0)
    discount_percent: Optional[Decimal] = Field(None, ge=0, le=100)
    special_requests: Optional[str] = None
    internal_notes: Optional[str] = None


class CheckInRequest(BaseModel):
    room_id: Optional[int] = None


class CancelRequest(BaseModel):
    reason: Optional[str] = None


class ReservationResponse(BaseModel):
    id: int
    property_id: int
    number: str
    client_id: int
    room_id: Optional[int] = None
    room_type_id: Optional[int] = None
    checkin_date: date
    checkout_date: date
    arrival_time: Optional[str] = None
    adults: int
    children: int
    nights: int
    nightly_rate: float
    extra_guest_amount: float
    lodging_subtotal: float
    discount_amount: float
    discount_percent: Optional[float] = None
    lodging_tax: float
    charges_total: float
    total: float
    total_paid: float
    balance_due: float
    status: ReservationStatus
    actual_checkin_at: Optional[datetime] = None
    actual_checkout_at: Optional[datetime] = None
    special_requests: Optional[str] = None
    internal_notes: Optional[str] = None
    created_at: datetime
    client_name: Optional[str] = None
    room_number: Optional[str] = None

    class Config:
        from_attributes = True


# =============================================================================
# CHARGES
# =============================================================================

class ChargeConceptCreate(BaseModel):
    code: str = Field(..., min_length=1, max_length=20)
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    default_price: Decimal = Field(Decimal("0.00"), ge=0)
    taxable: bool = True
    category: Optional[str] = "Service"


class ChargeConceptUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    default_price: Optional[Decimal] = Field(None, ge=0)
    taxable: Optional[bool] = None
    category: Optional[str] = None
    is_active: Optional[bool] = None


class ChargeConceptResponse(BaseModel):
    id: int
    property_id: int
    code: str
    name: str
    description: Optional[str] = None
    default_price: float
    taxable: bool
    category: Optional[str] = None
    is_active: bool

    class Config:
        from_attributes = True


class ChargeCreate(BaseModel):
    reservation_id: int
    product_id: Optional[int] = None
    concept_id: Optional[int] = None
    description: Optional[str] = None  # defaults to the product/concept name
    quantity: int = Field(1, ge=1)
    unit_price: Optional[Decimal] = Field(None, ge=0)  # defaults to the product/concept price
    notes: Optional[str] = None


class ChargeResponse(BaseModel):
    id: int
    reservation_id: int
    product_id: Optional[int] = None
    concept_id: Optional[int] = None
    description: str
    quantity: int
    unit_price: float
    subtotal: float
    tax: float
    total: float
    stock_applied: bool
    notes: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


# =============================================================================
# PAYMENTS
# =============================================================================

class PaymentCreate(BaseModel):
    reservation_id: int
    amount: Decimal = Field(..., gt=0)
    payment_method: str = Field(..., min_length=1, max_length=30)
    reference: Optional[str] = None
    kind: PaymentKind = PaymentKind.INSTALLMENT
    notes: Optional[str] = None


class PaymentResponse(BaseModel):
    id: int
    reservation_id: int
    number: str
    amount: float
    payment_method: str
    reference: Optional[str] = None
    kind: Optional[str] = None
    notes: Optional[str] = None
    paid_at: datetime
    reservation_number: Optional[str] = None

    class Config:
        from_attributes = True


class LedgerResponse(BaseModel):
    """Reservation figures after a charge or payment mutation"""
    reservation_id: int
    total: float
    total_paid: float
    balance_due: float


# =============================================================================
# HOUSEKEEPING & MAINTENANCE
# =============================================================================

class HousekeepingTaskCreate(BaseModel):
    room_id: int
    task_date: Optional[date] = None  # defaults to the hotel's today
    task_type: HousekeepingTaskType = HousekeepingTaskType.STAYOVER
    priority: TaskPriority = TaskPriority.NORMAL
    assigned_to: Optional[int] = None
    assigned_name: Optional[str] = None
    notes: Optional[str] = None


class HousekeepingStatusUpdate(BaseModel):
    status: HousekeepingTaskStatus
    notes: Optional[str] = None


class TaskAssignment(BaseModel):
    assigned_to: Optional[int] = None
    assigned_name: Optional[str] = None


class HousekeepingTaskResponse(BaseModel):
    id: int
    room_id: int
    task_date: date
    task_type: HousekeepingTaskType
    priority: TaskPriority
    status: HousekeepingTaskStatus
    assigned_to: Optional[int] = None
    assigned_name: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    notes: Optional[str] = None
    room_number: Optional[str] = None
    floor: Optional[int] = None

    class Config:
        from_attributes = True


class MaintenanceTaskCreate(BaseModel):
    room_id: Optional[int] = None
    title: str = Field(..., min_length=1, max_length=150)
    description: Optional[str] = None
    task_type: MaintenanceTaskType = MaintenanceTaskType.CORRECTIVE
    priority: TaskPriority = TaskPriority.NORMAL
    assigned_to: Optional[int] = None
    assigned_name: Optional[str] = None
    scheduled_for: Optional[date] = None
    estimated_cost: Optional[Decimal] = Field(None, ge=0)
    notes: Optional[str] = None


class MaintenanceTaskUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=150)
    description: Optional[str] = None
    task_type: Optional[MaintenanceTaskType] = None
    priority: Optional[TaskPriority] = None
    assigned_to: Optional[int] = None
    assigned_name: Optional[str] = None
    scheduled_for: Optional[date] = None
    estimated_cost: Optional[Decimal] = Field(None, ge=0)
    notes: Optional[str] = None


class MaintenanceStatusUpdate(BaseModel):
    status: MaintenanceTaskStatus
    actual_cost: Optional[Decimal] = Field(None, ge=0)
    notes: Optional[str] = None


class MaintenanceTaskResponse(BaseModel):
    id: int
    room_id: Optional[int] = None
    title: str
    description: Optional[str] = None
    task_type: MaintenanceTaskType
    priority: TaskPriority
    status: MaintenanceTaskStatus
    assigned_to: Optional[int] = None
    assigned_name: Optional[str] = None
    reported_on: date
    scheduled_for: Optional[date] = None
    completed_on: Optional[date] = None
    estimated_cost: Optional[float] = None
    actual_cost: Optional[float] = None
    notes: Optional[str] = None
    room_number: Optional[str] = None

    class Config:
        from_attributes = True


# =============================================================================
# PRODUCTS & INVENTORY
# =============================================================================

class CategoryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)
    description: Optional[str] = None


class CategoryResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None

    class Config:
        from_attributes = True


class ProductCreate(BaseModel):
    code: str = Field(..., min_length=1, max_length=50)
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    category_id: Optional[int] = None
    cost_price: Decimal = Field(Decimal("0.00"), ge=0)
    selling_price: Decimal = Field(..., ge=0)
    stock_on_hand: int = Field(0, ge=0)
    minimum_stock: int = Field(5, ge=0)
    unit: Optional[str] = "pcs"
    image_url: Optional[str] = None


class ProductUpdate(BaseModel):
    code: Optional[str] = Field(None, min_length=1, max_length=50)
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    category_id: Optional[int] = None
    cost_price: Optional[Decimal] = Field(None, ge=0)
    selling_price: Optional[Decimal] = Field(None, ge=0)
    minimum_stock: Optional[int] = Field(None, ge=0)
    unit: Optional[str] = None
    image_url: Optional[str] = None


class ProductResponse(BaseModel):
    id: int
    code: str
    name: str
    description: Optional[str] = None
    category_id: Optional[int] = None
    category_name: Optional[str] = None
    cost_price: float
    selling_price: float
    stock_on_hand: int
    minimum_stock: int
    unit: Optional[str] = None
    image_url: Optional[str] = None
    is_low_stock: bool = False
    is_active: bool

    class Config:
        from_attributes = True


class StockMovementCreate(BaseModel):
    movement_type: StockMovementType
    quantity: int = Field(..., ge=0)  # for Adjustment: the new stock level
    reference: Optional[str] = None
    notes: Optional[str] = None


class StockMovementResponse(BaseModel):
    id: int
    product_id: int
    user_id: Optional[int] = None
    movement_type: StockMovementType
    quantity: int
    previous_stock: int
    new_stock: int
    reference: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


# =============================================================================
# SAAS ADMINISTRATION
# =============================================================================

class PlanCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    monthly_cost: Decimal = Field(Decimal("0.00"), ge=0)
    max_properties: int = Field(1, ge=1)
    max_rooms_per_property: int = Field(50, ge=1)


class PlanUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    monthly_cost: Optional[Decimal] = Field(None, ge=0)
    max_properties: Optional[int] = Field(None, ge=1)
    max_rooms_per_property: Optional[int] = Field(None, ge=1)


class PlanResponse(BaseModel):
    id: int
    name: str
    monthly_cost: float
    max_properties: int
    max_rooms_per_property: int

    class Config:
        from_attributes = True


class AccountCreate(BaseModel):
    business_name: str = Field(..., min_length=1, max_length=150)
    email: EmailStr
    is_active: bool = True


class AccountUpdate(BaseModel):
    business_name: Optional[str] = Field(None, min_length=1, max_length=150)
    is_active: Optional[bool] = None


class AccountResponse(BaseModel):
    id: int
    business_name: str
    email: str
    is_active: bool
    created_at: datetime
    property_count: int = 0

    class Config:
        from_attributes = True


class PropertyCreate(BaseModel):
    account_id: int
    name: str = Field(..., min_length=1, max_length=150)
    city: Optional[str] = None
    country: Optional[str] = None
    timezone: Optional[str] = None
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    tax_rate: Optional[Decimal] = Field(None, ge=0, le=1)


class SubscriptionCreate(BaseModel):
    account_id: int
    property_id: Optional[int] = None  # None covers every hotel of the account
    plan_id: Optional[int] = None
    days: Optional[int] = Field(None, ge=1)  # defaults to DEFAULT_SUBSCRIPTION_DAYS


class SubscriptionExtend(BaseModel):
    days: int = Field(..., ge=1)


class SubscriptionResponse(BaseModel):
    id: int
    account_id: int
    property_id: Optional[int] = None
    plan_id: Optional[int] = None
    status: SubscriptionStatus
    starts_at: datetime
    expires_at: datetime
    days_remaining: Optional[int] = None
    account_name: Optional[str] = None
    property_name: Optional[str] = None
    plan_name: Optional[str] = None

    class Config:
        from_attributes = True


class AssignedPropertyResponse(BaseModel):
    """Hotel with the subscription that currently covers it"""
    property_id: int
    property_name: str
    account_id: int
    account_name: str
    subscription_id: Optional[int] = None
    subscription_status: Optional[str] = None
    expires_at: Optional[datetime] = None
    days_remaining: Optional[int] = None


class ReservationDetailResponse(ReservationResponse):
    charges: List[ChargeResponse] = []
    payments: List[PaymentResponse] = []


class ActivityLogResponse(BaseModel):
    id: int
    admin_user_id: int
    action: str
    target_type: Optional[str] = None
    target_id: Optional[int] = None
    details: Optional[dict] = None
    created_at: datetime

    class Config:
        from_attributes = True
