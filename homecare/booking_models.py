"""
SQLModel and Pydantic models for the booking system.
Tables cover the booking record, its audit trail, the provider wallet ledger,
the booking outbox and the provider directory snapshot consumed by matching.
"""
import uuid
from datetime import datetime
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, Field
from sqlalchemy import JSON, Column
from sqlmodel import SQLModel, Field as SQLField

from homecare.utils.timeutils import utcnow


# ============== ENUMS ==============

class BookingStatus(str, Enum):
    """Booking lifecycle states."""
    NEW = "NEW"
    CONFIRMED = "CONFIRMED"
    ASSIGNED = "ASSIGNED"
    ACCEPTED = "ACCEPTED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    REJECTED = "REJECTED"


class HistoryAction(str, Enum):
    """Actions recorded in the booking audit log."""
    CREATED = "CREATED"
    DEAL_CONFIRMED = "DEAL_CONFIRMED"
    PRICED = "PRICED"
    PROVIDER_SHARE_SET = "PROVIDER_SHARE_SET"
    ASSIGNED = "ASSIGNED"
    ACCEPTED = "ACCEPTED"
    PROVIDER_DECLINED = "PROVIDER_DECLINED"
    CHECKED_IN = "CHECKED_IN"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    REJECTED = "REJECTED"


class LedgerReason(str, Enum):
    """Why a wallet ledger entry was written."""
    PLATFORM_FEE = "platform_fee"
    SETTLEMENT = "settlement"
    ADJUSTMENT = "adjustment"


class OutboxStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


class ProviderStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    SUSPENDED = "suspended"


class RoleType(str, Enum):
    DOCTOR = "doctor"
    NURSE = "nurse"
    CAREGIVER = "caregiver"
    PHYSIOTHERAPIST = "physiotherapist"


class ActorRole(str, Enum):
    """Capabilities a caller may hold."""
    ADMIN = "admin"
    CS = "cs"
    PROVIDER = "provider"
    CUSTOMER = "customer"
    SYSTEM = "system"


class TimeSlot(str, Enum):
    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"


class PaymentMethod(str, Enum):
    CASH = "CASH"
    CARD = "CARD"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    REFUNDED = "refunded"


class Actor(BaseModel):
    """Caller identity attached to every mutation and history entry."""
    id: str
    role: ActorRole

    @property
    def is_staff(self) -> bool:
        return self.role in (ActorRole.ADMIN, ActorRole.CS)


# ============== DATABASE MODELS (SQLModel) ==============

class ServiceDB(SQLModel, table=True):
    """Bookable medical/nursing service."""
    __tablename__ = "services"

    id: uuid.UUID = SQLField(default_factory=uuid.uuid4, primary_key=True)
    name: str = SQLField(max_length=255)
    name_en: Optional[str] = None
    category: str = SQLField(default="medical", max_length=50)
    base_price: float = SQLField(default=0)
    active: bool = SQLField(default=True)
    created_at: datetime = SQLField(default_factory=utcnow)


class ProviderProfileDB(SQLModel, table=True):
    """Provider directory record. Read-only for the booking engine."""
    __tablename__ = "provider_profiles"

    id: uuid.UUID = SQLField(default_factory=uuid.uuid4, primary_key=True)
    user_id: str = SQLField(unique=True, index=True, max_length=64)
    full_name: Optional[str] = None
    phone: Optional[str] = None
    city: Optional[str] = None
    role_type: Optional[RoleType] = None
    provider_status: ProviderStatus = SQLField(default=ProviderStatus.PENDING)
    profile_completed: bool = SQLField(default=False)
    available_now: bool = SQLField(default=False)
    lat: Optional[float] = None
    lng: Optional[float] = None
    radius_km: Optional[float] = None
    experience_years: Optional[int] = None
    specialties: Optional[List[str]] = SQLField(default=None, sa_column=Column(JSON))
    created_at: datetime = SQLField(default_factory=utcnow)
    updated_at: datetime = SQLField(default_factory=utcnow)


class BookingDB(SQLModel, table=True):
    """Booking database model."""
    __tablename__ = "bookings"

    id: uuid.UUID = SQLField(default_factory=uuid.uuid4, primary_key=True)
    booking_number: str = SQLField(max_length=50, index=True)
    service_id: uuid.UUID = SQLField(foreign_key="services.id")
    city: str = SQLField(max_length=100)
    scheduled_at: datetime
    status: BookingStatus = SQLField(default=BookingStatus.NEW, index=True)
    payment_method: PaymentMethod = SQLField(default=PaymentMethod.CASH)
    payment_status: PaymentStatus = SQLField(default=PaymentStatus.PENDING)

    # Customer contact (never exposed to providers before acceptance)
    customer_user_id: Optional[str] = None
    customer_name: str = SQLField(max_length=200)
    customer_phone: str = SQLField(max_length=20)
    client_address_text: Optional[str] = None
    client_lat: Optional[float] = None
    client_lng: Optional[float] = None
    notes: Optional[str] = None
    hours: int = SQLField(default=1)
    time_slot: Optional[TimeSlot] = None
    source: str = SQLField(default="web", max_length=20)

    # Pricing
    subtotal: float = SQLField(default=0)
    agreed_price: Optional[float] = None
    provider_share: Optional[float] = None

    # Negotiation
    deal_confirmed_at: Optional[datetime] = None
    deal_confirmed_by: Optional[str] = None
    internal_note: Optional[str] = None

    # Assignment
    assigned_provider_id: Optional[str] = SQLField(default=None, index=True)
    assigned_by: Optional[str] = None
    assigned_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    check_in_at: Optional[datetime] = None

    # Close-out
    completed_at: Optional[datetime] = None
    completed_by: Optional[str] = None
    close_out_note: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    cancel_reason: Optional[str] = None
    rejected_at: Optional[datetime] = None
    rejected_by: Optional[str] = None
    reject_reason: Optional[str] = None

    created_at: datetime = SQLField(default_factory=utcnow)
    updated_at: datetime = SQLField(default_factory=utcnow)


class BookingHistoryDB(SQLModel, table=True):
    """Append-only audit record. The integer id gives store acceptance order."""
    __tablename__ = "booking_history"

    id: Optional[int] = SQLField(default=None, primary_key=True)
    booking_id: uuid.UUID = SQLField(foreign_key="bookings.id", index=True)
    action: HistoryAction
    performed_by: str = SQLField(max_length=64)
    performer_role: str = SQLField(max_length=20)
    note: Optional[str] = None
    created_at: datetime = SQLField(default_factory=utcnow)


class WalletLedgerEntryDB(SQLModel, table=True):
    """Signed wallet movement: negative is owed to the platform."""
    __tablename__ = "provider_wallet_ledger"

    id: Optional[int] = SQLField(default=None, primary_key=True)
    provider_id: str = SQLField(index=True, max_length=64)
    amount: float
    reason: LedgerReason
    booking_id: Optional[uuid.UUID] = SQLField(default=None, foreign_key="bookings.id")
    created_at: datetime = SQLField(default_factory=utcnow)


class OutboxEntryDB(SQLModel, table=True):
    """One booking event awaiting delivery to an external destination."""
    __tablename__ = "booking_outbox"

    id: uuid.UUID = SQLField(default_factory=uuid.uuid4, primary_key=True)
    booking_id: uuid.UUID = SQLField(foreign_key="bookings.id", index=True)
    destination: str = SQLField(default="google_sheets", max_length=50)
    payload: dict[str, Any] = SQLField(default_factory=dict, sa_column=Column(JSON))
    status: OutboxStatus = SQLField(default=OutboxStatus.PENDING, index=True)
    attempts: int = SQLField(default=0)
    last_error: Optional[str] = None
    next_retry_at: datetime = SQLField(default_factory=utcnow, index=True)
    created_at: datetime = SQLField(default_factory=utcnow)
    updated_at: datetime = SQLField(default_factory=utcnow)


class StaffNotificationDB(SQLModel, table=True):
    """Record-and-poll notification for staff dashboards."""
    __tablename__ = "staff_notifications"

    id: uuid.UUID = SQLField(default_factory=uuid.uuid4, primary_key=True)
    target_role: str = SQLField(default="admin", max_length=20)
    kind: str = SQLField(max_length=50, index=True)
    title: str
    body: Optional[str] = None
    booking_id: Optional[uuid.UUID] = SQLField(default=None, foreign_key="bookings.id")
    provider_id: Optional[str] = None
    read: bool = SQLField(default=False)
    created_at: datetime = SQLField(default_factory=utcnow)


class PlatformSettingsDB(SQLModel, table=True):
    """Singleton row holding the commercial policy."""
    __tablename__ = "platform_settings"

    id: Optional[int] = SQLField(default=None, primary_key=True)
    fee_percent: float = SQLField(default=10)
    deposit_percent: float = SQLField(default=20)
    debt_limit: Optional[float] = SQLField(default=-20)
    updated_at: datetime = SQLField(default_factory=utcnow)


# ============== API SCHEMAS (Pydantic) ==============

# --- Booking Schemas ---
class BookingCreate(BaseModel):
    """Intake request from the public booking form or a CS operator."""
    customer_name: str = Field(min_length=1)
    customer_phone: str = Field(min_length=1)
    city: str = Field(min_length=1)
    service_id: uuid.UUID
    scheduled_at: datetime
    client_address_text: Optional[str] = None
    client_lat: Optional[float] = None
    client_lng: Optional[float] = None
    hours: int = 1
    time_slot: Optional[TimeSlot] = None
    notes: Optional[str] = None
    source: str = "web"


class BookingCreated(BaseModel):
    success: bool = True
    booking_id: uuid.UUID
    booking_number: str


class BookingPublic(BaseModel):
    """Staff view of a booking."""
    id: uuid.UUID
    booking_number: str
    service_id: uuid.UUID
    city: str
    scheduled_at: datetime
    status: BookingStatus
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    customer_name: str
    customer_phone: str
    client_address_text: Optional[str] = None
    client_lat: Optional[float] = None
    client_lng: Optional[float] = None
    hours: int
    time_slot: Optional[TimeSlot] = None
    subtotal: float
    agreed_price: Optional[float] = None
    provider_share: Optional[float] = None
    deal_confirmed_at: Optional[datetime] = None
    deal_confirmed_by: Optional[str] = None
    internal_note: Optional[str] = None
    assigned_provider_id: Optional[str] = None
    assigned_by: Optional[str] = None
    assigned_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    check_in_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    completed_by: Optional[str] = None
    close_out_note: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class BookingsPublic(BaseModel):
    data: List[BookingPublic]
    count: int


class HistoryEntryPublic(BaseModel):
    id: int
    booking_id: uuid.UUID
    action: HistoryAction
    performed_by: str
    performer_role: str
    note: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class HistoryPublic(BaseModel):
    data: List[HistoryEntryPublic]
    count: int


class ReasonRequest(BaseModel):
    reason: str = ""


class CompleteRequest(BaseModel):
    close_out_note: Optional[str] = None


# --- Workflow Schemas ---
class ClientAgreementRequest(BaseModel):
    """Phase 1: price agreed with the customer."""
    agreed_price: float = Field(allow_inf_nan=False)
    internal_note: Optional[str] = None


class ProviderShareRequest(BaseModel):
    """Phase 3: amount agreed with the selected provider."""
    provider_share: float = Field(allow_inf_nan=False)
    provider_id: Optional[str] = None
    provider_agreed: bool = False


class AssignRequest(BaseModel):
    """Phase 4: final assignment."""
    provider_id: Optional[str] = None


class WorkflowStatePublic(BaseModel):
    booking_id: uuid.UUID
    status: BookingStatus
    deal_confirmed: bool
    priced: bool
    client_agreement_done: bool
    provider_share_set: bool
    assigned: bool
    agreed_price: Optional[float] = None
    provider_share: Optional[float] = None
    profit: Optional[float] = None
    profit_negative: bool = False


class ProviderCandidate(BaseModel):
    """A provider as shown in one of the assignment candidate lists."""
    provider_id: str
    full_name: Optional[str] = None
    phone: Optional[str] = None
    city: Optional[str] = None
    role_type: Optional[RoleType] = None
    experience_years: Optional[int] = None
    available_now: bool = False
    distance_km: Optional[float] = None


class CandidateLists(BaseModel):
    """Nearest, same-city and other-city candidates; pairwise disjoint."""
    nearest: List[ProviderCandidate] = []
    same_city: List[ProviderCandidate] = []
    other_cities: List[ProviderCandidate] = []

    @property
    def is_empty(self) -> bool:
        return not (self.nearest or self.same_city or self.other_cities)

    def provider_ids(self) -> List[str]:
        return [
            c.provider_id for c in [*self.nearest, *self.same_city, *self.other_cities]
        ]


class ProviderOutreach(BaseModel):
    """Data the UI needs to contact the assigned provider."""
    provider_id: str
    provider_name: Optional[str] = None
    provider_phone: Optional[str] = None
    service_name: Optional[str] = None
    city: str
    provider_share: Optional[float] = None
    message: str


class AssignmentResult(BaseModel):
    booking: BookingPublic
    outreach: ProviderOutreach


# --- Wallet Schemas ---
class LedgerEntryPublic(BaseModel):
    id: int
    provider_id: str
    amount: float
    reason: LedgerReason
    booking_id: Optional[uuid.UUID] = None
    created_at: datetime

    class Config:
        from_attributes = True


class LedgerEntriesPublic(BaseModel):
    data: List[LedgerEntryPublic]
    count: int


class BalancePublic(BaseModel):
    provider_id: str
    balance: float


class BalancesPublic(BaseModel):
    data: List[BalancePublic]
    count: int
    total_debt: float


class SettlementRequest(BaseModel):
    amount: float = Field(allow_inf_nan=False)


# --- Outbox Schemas ---
class OutboxEntryPublic(BaseModel):
    id: uuid.UUID
    booking_id: uuid.UUID
    destination: str
    status: OutboxStatus
    attempts: int
    last_error: Optional[str] = None
    next_retry_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class OutboxRowsPublic(BaseModel):
    data: List[OutboxEntryPublic]
    count: int


class DispatchRequest(BaseModel):
    ids: Optional[List[uuid.UUID]] = None


class DispatchResult(BaseModel):
    processed: int
    sent: int = 0
    failed: int = 0
    message: Optional[str] = None


# --- Notification Schemas ---
class NotificationPublic(BaseModel):
    id: uuid.UUID
    target_role: str
    kind: str
    title: str
    body: Optional[str] = None
    booking_id: Optional[uuid.UUID] = None
    provider_id: Optional[str] = None
    read: bool
    created_at: datetime

    class Config:
        from_attributes = True


class NotificationsPublic(BaseModel):
    data: List[NotificationPublic]
    count: int


# --- Platform Policy Schemas ---
class PlatformPolicyUpdate(BaseModel):
    fee_percent: Optional[float] = Field(default=None, ge=0, le=100)
    deposit_percent: Optional[float] = Field(default=None, ge=0, le=100)
    debt_limit: Optional[float] = None
    clear_debt_limit: bool = False
