from sqlalchemy import (
    Column, Integer, String, Numeric, DateTime, Date, ForeignKey, Boolean, Text, JSON,
    UniqueConstraint, Index
)
from sqlalchemy.orm import relationship, composite, declared_attr
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional
import enum
from database import Base


Money = Numeric(12, 2, asdecimal=True)


class UserRole(str, enum.Enum):
    SUPER_ADMIN = "superadmin"
    ADMIN = "admin"
    RECEPTION = "reception"
    HOUSEKEEPING = "housekeeping"
    MAINTENANCE = "maintenance"


class SubscriptionStatus(str, enum.Enum):
    ACTIVE = "active"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class RoomStatus(str, enum.Enum):
    AVAILABLE = "Available"
    RESERVED = "Reserved"
    OCCUPIED = "Occupied"
    CLEANING = "Cleaning"
    MAINTENANCE = "Maintenance"
    OUT_OF_SERVICE = "OutOfService"


class HousekeepingStatus(str, enum.Enum):
    CLEAN = "Clean"
    DIRTY = "Dirty"
    IN_PROGRESS = "InProgress"
    INSPECTION = "Inspection"


class MaintenanceStatus(str, enum.Enum):
    OK = "OK"
    PENDING = "Pending"
    IN_PROGRESS = "InProgress"
    OUT_OF_SERVICE = "OutOfService"


class ReservationStatus(str, enum.Enum):
    PENDING = "Pending"
    CONFIRMED = "Confirmed"
    CHECK_IN = "CheckIn"
    CHECK_OUT = "CheckOut"
    CANCELLED = "Cancelled"
    NO_SHOW = "NoShow"


class TaskPriority(str, enum.Enum):
    URGENT = "Urgent"
    HIGH = "High"
    NORMAL = "Normal"
    LOW = "Low"


class HousekeepingTaskStatus(str, enum.Enum):
    PENDING = "Pending"
    IN_PROGRESS = "InProgress"
    COMPLETED = "Completed"
    VERIFIED = "Verified"


class HousekeepingTaskType(str, enum.Enum):
    CHECKOUT = "Checkout"
    STAYOVER = "Stayover"
    DEEP = "Deep"


class MaintenanceTaskStatus(str, enum.Enum):
    PENDING = "Pending"
    IN_PROGRESS = "InProgress"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


class MaintenanceTaskType(str, enum.Enum):
    CORRECTIVE = "Corrective"
    PREVENTIVE = "Preventive"


class StockMovementType(str, enum.Enum):
    IN = "In"
    OUT = "Out"
    SALE = "Sale"
    ADJUSTMENT = "Adjustment"


class PaymentKind(str, enum.Enum):
    DEPOSIT = "Deposit"
    INSTALLMENT = "Installment"
    SETTLEMENT = "Settlement"


# =============================================================================
# LIFECYCLE (soft delete)
# =============================================================================

@dataclass
class Lifecycle:
    """When a row became active and, if retired, when it was soft-deleted."""
    active_at: Optional[datetime]
    deleted_at: Optional[datetime]

    @property
    def is_active(self) -> bool:
        return self.deleted_at is None


class LifecycleMixin:
    """Adds the active_at/deleted_at pair and the `lifecycle` composite."""

    active_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    deleted_at = Column(DateTime, nullable=True, index=True)

    @declared_attr
    def lifecycle(cls):
        return composite(Lifecycle, "active_at", "deleted_at")

    @property
    def is_active(self) -> bool:
        return self.deleted_at is None

    def retire(self, when: Optional[datetime] = None):
        self.lifecycle = Lifecycle(self.active_at or datetime.utcnow(), when or datetime.utcnow())


def alive(model):
    """Filter expression selecting rows that have not been soft-deleted."""
    return model.deleted_at.is_(None)


# =============================================================================
# SAAS LAYER
# =============================================================================

class Plan(Base):
    """Commercial plan a subscription is sold under"""
    __tablename__ = "plans"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False, unique=True)
    monthly_cost = Column(Money, nullable=False, default=Decimal("0.00"))
    max_properties = Column(Integer, default=1)
    max_rooms_per_property = Column(Integer, default=50)
    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<Plan {self.name}>"


class Account(Base):
    """Paying customer of the SaaS; owns one or more properties"""
    __tablename__ = "accounts"

    id = Column(Integer, primary_key=True, index=True)
    business_name = Column(String(150), nullable=False)
    email = Column(String(100), nullable=False, unique=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    properties = relationship("Property", back_populates="account", cascade="all, delete-orphan")
    subscriptions = relationship("Subscription", back_populates="account", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Account {self.business_name}>"


class Property(LifecycleMixin, Base):
    """A single hotel operated inside the SaaS"""
    __tablename__ = "properties"

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(Integer, ForeignKey("accounts.id", ondelete='CASCADE'), nullable=False, index=True)

    name = Column(String(150), nullable=False)
    legal_name = Column(String(150))
    tax_id = Column(String(20))
    address = Column(Text)
    city = Column(String(100))
    state = Column(String(100))
    country = Column(String(100))
    phone = Column(String(30))
    email = Column(String(100))
    checkin_time = Column(String(5), default="15:00")
    checkout_time = Column(String(5), default="12:00")
    stars = Column(Integer)

    # Business Settings
    currency = Column(String(3), default="MXN")
    tax_rate = Column(Numeric(5, 4), default=Decimal("0.16"), nullable=False)
    timezone = Column(String(50), default="America/Mexico_City")

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    account = relationship("Account", back_populates="properties")
    subscriptions = relationship("Subscription", back_populates="property")

    def __repr__(self):
        return f"<Property {self.name} (Account: {self.account_id})>"


class Subscription(Base):
    """
    Time-bounded grant of access.

    property_id set: covers that property only.
    property_id NULL: covers every property of the account.
    """
    __tablename__ = "subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(Integer, ForeignKey("accounts.id", ondelete='CASCADE'), nullable=False, index=True)
    property_id = Column(Integer, ForeignKey("properties.id", ondelete='CASCADE'), nullable=True, index=True)
    plan_id = Column(Integer, ForeignKey("plans.id", ondelete='SET NULL'), nullable=True)

    status = Column(String(20), default=SubscriptionStatus.ACTIVE.value, nullable=False)
    starts_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    account = relationship("Account", back_populates="subscriptions")
    property = relationship("Property", back_populates="subscriptions")
    plan = relationship("Plan")

    __table_args__ = (
        Index('idx_subscriptions_account_status', 'account_id', 'status'),
    )

    def __repr__(self):
        return f"<Subscription {self.id} {self.status} until {self.expires_at}>"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(100), unique=True, nullable=False)
    full_name = Column(String(100), nullable=False)
    role = Column(String(20), default=UserRole.RECEPTION.value, nullable=False)

    # Fixed affiliation: NULL account/property means no restriction at that level
    account_id = Column(Integer, ForeignKey("accounts.id", ondelete='CASCADE'), nullable=True, index=True)
    property_id = Column(Integer, ForeignKey("properties.id", ondelete='SET NULL'), nullable=True, index=True)

    is_active = Column(Boolean, default=True)
    last_login_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<User {self.email}>"


class AdminActivityLog(Base):
    """Audit trail of super admin actions on accounts, hotels and subscriptions"""
    __tablename__ = "admin_activity_logs"

    id = Column(Integer, primary_key=True, index=True)
    admin_user_id = Column(Integer, ForeignKey("users.id", ondelete='CASCADE'), nullable=False, index=True)
    action = Column(String(100), nullable=False, index=True)  # create_subscription, extend_subscription, ...
    target_type = Column(String(50))  # account, property, subscription, plan
    target_id = Column(Integer)
    details = Column(JSON)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    __table_args__ = (
        Index('idx_admin_logs_target', 'target_type', 'target_id'),
    )


# =============================================================================
# ROOM INVENTORY
# =============================================================================

class RoomType(LifecycleMixin, Base):
    __tablename__ = "room_types"

    id = Column(Integer, primary_key=True, index=True)
    property_id = Column(Integer, ForeignKey("properties.id", ondelete='CASCADE'), nullable=False, index=True)

    code = Column(String(20), nullable=False)
    name = Column(String(100), nullable=False)
    description = Column(Text)
    adult_capacity = Column(Integer, default=2, nullable=False)
    child_capacity = Column(Integer, default=0, nullable=False)
    max_capacity = Column(Integer, default=2, nullable=False)
    base_price = Column(Money, nullable=False)
    extra_person_price = Column(Money, nullable=False, default=Decimal("0.00"))
    amenities = Column(JSON, default=list)

    rooms = relationship("Room", back_populates="room_type")

    __table_args__ = (
        UniqueConstraint('property_id', 'code', name='uq_property_room_type_code'),
    )

    def __repr__(self):
        return f"<RoomType {self.code} (Property: {self.property_id})>"


class Room(LifecycleMixin, Base):
    __tablename__ = "rooms"

    id = Column(Integer, primary_key=True, index=True)
    property_id = Column(Integer, ForeignKey("properties.id", ondelete='CASCADE'), nullable=False, index=True)
    room_type_id = Column(Integer, ForeignKey("room_types.id", ondelete='RESTRICT'), nullable=False, index=True)

    number = Column(String(10), nullable=False)
    floor = Column(Integer, default=1)
    status = Column(String(20), default=RoomStatus.AVAILABLE.value, nullable=False)
    housekeeping_status = Column(String(20), default=HousekeepingStatus.CLEAN.value, nullable=False)
    maintenance_status = Column(String(20), default=MaintenanceStatus.OK.value, nullable=False)
    notes = Column(Text)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    room_type = relationship("RoomType", back_populates="rooms")

    __table_args__ = (
        UniqueConstraint('property_id', 'number', name='uq_property_room_number'),
        Index('idx_rooms_property_status', 'property_id', 'status'),
    )

    def __repr__(self):
        return f"<Room {self.number} (Property: {self.property_id})>"


# =============================================================================
# GUESTS & RESERVATIONS
# =============================================================================

class Client(LifecycleMixin, Base):
    __tablename__ = "clients"

    id = Column(Integer, primary_key=True, index=True)
    property_id = Column(Integer, ForeignKey("properties.id", ondelete='CASCADE'), nullable=False, index=True)

    client_type = Column(String(20), default="Person")  # Person, Company
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100))
    second_last_name = Column(String(100))
    company_name = Column(String(150))
    tax_id = Column(String(20))
    email = Column(String(100))
    phone = Column(String(30))
    document_type = Column(String(20), default="ID")
    document_number = Column(String(50))
    nationality = Column(String(50))
    address = Column(Text)
    is_vip = Column(Boolean, default=False, nullable=False)
    loyalty_level = Column(String(20), default="Standard")
    total_stays = Column(Integer, default=0, nullable=False)
    notes = Column(Text)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    reservations = relationship("Reservation", back_populates="client")

    def __repr__(self):
        return f"<Client {self.first_name} {self.last_name or ''}>"


class Reservation(Base):
    __tablename__ = "reservations"

    id = Column(Integer, primary_key=True, index=True)
    property_id = Column(Integer, ForeignKey("properties.id", ondelete='CASCADE'), nullable=False, index=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False, index=True)
    room_id = Column(Integer, ForeignKey("rooms.id"), nullable=True, index=True)
    room_type_id = Column(Integer, ForeignKey("room_types.id"), nullable=True)

    number = Column(String(20), unique=True)  # RES-{year}-{id}, set right after insert
    checkin_date = Column(Date, nullable=False)
    checkout_date = Column(Date, nullable=False)
    arrival_time = Column(String(5))
    adults = Column(Integer, default=1, nullable=False)
    children = Column(Integer, default=0, nullable=False)

    # Lodging quote
    nights = Column(Integer, nullable=False)
    nightly_rate = Column(Money, nullable=False)
    extra_guest_amount = Column(Money, nullable=False, default=Decimal("0.00"))
    lodging_subtotal = Column(Money, nullable=False)
    discount_amount = Column(Money, nullable=False, default=Decimal("0.00"))
    discount_percent = Column(Numeric(5, 2), nullable=True)
    lodging_tax = Column(Money, nullable=False)

    # Ledger: balance_due is always total - total_paid
    charges_total = Column(Money, nullable=False, default=Decimal("0.00"))
    total = Column(Money, nullable=False)
    total_paid = Column(Money, nullable=False, default=Decimal("0.00"))
    balance_due = Column(Money, nullable=False)

    status = Column(String(20), default=ReservationStatus.PENDING.value, nullable=False)
    actual_checkin_at = Column(DateTime, nullable=True)
    actual_checkout_at = Column(DateTime, nullable=True)
    special_requests = Column(Text)
    internal_notes = Column(Text)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    client = relationship("Client", back_populates="reservations")
    room = relationship("Room")
    room_type = relationship("RoomType")
    charges = relationship("RoomCharge", back_populates="reservation")
    payments = relationship("Payment", back_populates="reservation")

    __table_args__ = (
        Index('idx_reservations_property_status', 'property_id', 'status'),
        Index('idx_reservations_room_dates', 'room_id', 'checkin_date', 'checkout_date'),
    )

    def __repr__(self):
        return f"<Reservation {self.number} {self.status}>"


class ChargeConcept(Base):
    """Catalog entry for non-product charges (laundry, late checkout, ...)"""
    __tablename__ = "charge_concepts"

    id = Column(Integer, primary_key=True, index=True)
    property_id = Column(Integer, ForeignKey("properties.id", ondelete='CASCADE'), nullable=False, index=True)

    code = Column(String(20), nullable=False)
    name = Column(String(100), nullable=False)
    description = Column(Text)
    default_price = Column(Money, nullable=False, default=Decimal("0.00"))
    taxable = Column(Boolean, default=True, nullable=False)
    category = Column(String(50), default="Service")
    is_active = Column(Boolean, default=True, nullable=False)

    __table_args__ = (
        UniqueConstraint('property_id', 'code', name='uq_property_charge_concept_code'),
    )


class RoomCharge(Base):
    __tablename__ = "room_charges"

    id = Column(Integer, primary_key=True, index=True)
    property_id = Column(Integer, ForeignKey("properties.id", ondelete='CASCADE'), nullable=False, index=True)
    reservation_id = Column(Integer, ForeignKey("reservations.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=True)
    concept_id = Column(Integer, ForeignKey("charge_concepts.id"), nullable=True)

    description = Column(String(200), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    unit_price = Column(Money, nullable=False)
    subtotal = Column(Money, nullable=False)
    tax = Column(Money, nullable=False)
    total = Column(Money, nullable=False)
    stock_applied = Column(Boolean, default=False, nullable=False)
    notes = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)

    reservation = relationship("Reservation", back_populates="charges")
    product = relationship("Product")

    def __repr__(self):
        return f"<RoomCharge {self.id} (Reservation: {self.reservation_id})>"


class Payment(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    property_id = Column(Integer, ForeignKey("properties.id", ondelete='CASCADE'), nullable=False, index=True)
    reservation_id = Column(Integer, ForeignKey("reservations.id"), nullable=False, index=True)

    number = Column(String(20), unique=True)  # PAY-{year}-{id}, set right after insert
    amount = Column(Money, nullable=False)
    payment_method = Column(String(30), nullable=False)  # Cash, Card, Transfer
    reference = Column(String(100))
    kind = Column(String(20), default=PaymentKind.INSTALLMENT.value)
    notes = Column(Text)
    paid_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    reservation = relationship("Reservation", back_populates="payments")

    __table_args__ = (
        Index('idx_payments_property_paid', 'property_id', 'paid_at'),
    )

    def __repr__(self):
        return f"<Payment {self.number} {self.amount}>"


# =============================================================================
# OPERATIONS
# =============================================================================

class HousekeepingTask(Base):
    __tablename__ = "housekeeping_tasks"

    id = Column(Integer, primary_key=True, index=True)
    property_id = Column(Integer, ForeignKey("properties.id", ondelete='CASCADE'), nullable=False, index=True)
    room_id = Column(Integer, ForeignKey("rooms.id", ondelete='CASCADE'), nullable=False, index=True)

    task_date = Column(Date, nullable=False)
    task_type = Column(String(20), default=HousekeepingTaskType.CHECKOUT.value, nullable=False)
    priority = Column(String(10), default=TaskPriority.NORMAL.value, nullable=False)
    status = Column(String(20), default=HousekeepingTaskStatus.PENDING.value, nullable=False)
    assigned_to = Column(Integer, ForeignKey("users.id", ondelete='SET NULL'), nullable=True)
    assigned_name = Column(String(100))
    started_at = Column(DateTime, nullable=True)
    finished_at = Column(DateTime, nullable=True)
    notes = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)

    room = relationship("Room")

    __table_args__ = (
        Index('idx_housekeeping_property_date', 'property_id', 'task_date'),
    )


class MaintenanceTask(Base):
    __tablename__ = "maintenance_tasks"

    id = Column(Integer, primary_key=True, index=True)
    property_id = Column(Integer, ForeignKey("properties.id", ondelete='CASCADE'), nullable=False, index=True)
    room_id = Column(Integer, ForeignKey("rooms.id", ondelete='SET NULL'), nullable=True, index=True)

    title = Column(String(150), nullable=False)
    description = Column(Text)
    task_type = Column(String(20), default=MaintenanceTaskType.CORRECTIVE.value, nullable=False)
    priority = Column(String(10), default=TaskPriority.NORMAL.value, nullable=False)
    status = Column(String(20), default=MaintenanceTaskStatus.PENDING.value, nullable=False)
    assigned_to = Column(Integer, ForeignKey("users.id", ondelete='SET NULL'), nullable=True)
    assigned_name = Column(String(100))
    reported_on = Column(Date, nullable=False)
    scheduled_for = Column(Date, nullable=True)
    completed_on = Column(Date, nullable=True)
    estimated_cost = Column(Money, nullable=True)
    actual_cost = Column(Money, nullable=True)
    notes = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)

    room = relationship("Room")


# =============================================================================
# POINT OF SALE INVENTORY
# =============================================================================

class ProductCategory(LifecycleMixin, Base):
    __tablename__ = "product_categories"

    id = Column(Integer, primary_key=True, index=True)
    property_id = Column(Integer, ForeignKey("properties.id", ondelete='CASCADE'), nullable=False, index=True)
    name = Column(String(50), nullable=False)
    description = Column(Text)

    products = relationship("Product", back_populates="category")

    __table_args__ = (
        UniqueConstraint('property_id', 'name', name='uq_property_category_name'),
    )


class Product(LifecycleMixin, Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    property_id = Column(Integer, ForeignKey("properties.id", ondelete='CASCADE'), nullable=False, index=True)
    category_id = Column(Integer, ForeignKey("product_categories.id", ondelete='SET NULL'), nullable=True, index=True)

    code = Column(String(50), nullable=False)
    name = Column(String(100), nullable=False)
    description = Column(Text)
    cost_price = Column(Money, nullable=False, default=Decimal("0.00"))
    selling_price = Column(Money, nullable=False)
    stock_on_hand = Column(Integer, nullable=False, default=0)
    minimum_stock = Column(Integer, nullable=False, default=5)
    unit = Column(String(20), default="pcs")
    image_url = Column(String(255))

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    category = relationship("ProductCategory", back_populates="products")
    movements = relationship("InventoryMovement", back_populates="product")

    # Code must be unique within a property
    __table_args__ = (
        UniqueConstraint('property_id', 'code', name='uq_property_product_code'),
    )

    def __repr__(self):
        return f"<Product {self.name} (Property: {self.property_id})>"


class InventoryMovement(Base):
    __tablename__ = "inventory_movements"

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete='CASCADE'), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete='SET NULL'), nullable=True)

    movement_type = Column(String(20), nullable=False)
    quantity = Column(Integer, nullable=False)
    previous_stock = Column(Integer, nullable=False)
    new_stock = Column(Integer, nullable=False)
    reference = Column(String(200))
    notes = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)

    product = relationship("Product", back_populates="movements")

    def __repr__(self):
        return f"<InventoryMovement {self.movement_type} {self.quantity} (Product: {self.product_id})>"
