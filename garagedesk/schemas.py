"""
Record and payload types exchanged with the workshop API.

Every response is parsed into one of these models before the rest of the
application sees it; request bodies are built from the payload models.
Field names are snake_case in Python and camelCase on the wire.
"""
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, List, Optional

from pydantic import (
    AliasChoices, BaseModel, BeforeValidator, ConfigDict, Field, PlainSerializer,
    ValidationError as PydanticValidationError, model_validator,
)
from pydantic.alias_generators import to_camel

from .errors import ValidationError
from .services.lifecycle import InvoiceStatus, QuotationStatus
from .services.money import ZERO, compute_totals
from .services.payments import invoice_paid
from .services.projections import AdjustmentType, collection_rate


def _float_via_str(v):
    # 45.99 from JSON must stay 45.99, not its binary expansion
    return str(v) if isinstance(v, float) else v


Amount = Annotated[Decimal, BeforeValidator(_float_via_str)]
# JSON numbers on the wire, Decimal in Python
WireDecimal = Annotated[Amount, PlainSerializer(float, return_type=float, when_used="json")]
Percent = Annotated[WireDecimal, Field(ge=0, le=100)]


class ItemType(str, Enum):
    PART = "PART"
    SERVICE = "SERVICE"
    LABOR = "LABOR"
    CONSUMABLE = "CONSUMABLE"
    MISC = "MISC"


def _read_item_type(v):
    # kinds this client does not know yet are shown as MISC
    if isinstance(v, str):
        v = v.strip().upper()
        return v if v in ItemType.__members__ else ItemType.MISC
    return v


class PaymentMethod(str, Enum):
    CASH = "CASH"
    CARD = "CARD"
    BANK_TRANSFER = "BANK_TRANSFER"
    MOBILE_MONEY = "MOBILE_MONEY"
    CHEQUE = "CHEQUE"


class ApiModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
        extra="ignore",
    )

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def parse(model, data, remote: bool = False):
    """Validate ``data`` into ``model``; failures become ValidationError."""
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        fields = {}
        for err in e.errors():
            loc = ".".join(str(p) for p in err.get("loc", ())) or "__root__"
            fields[loc] = err.get("msg", "invalid")
        if remote:
            msg = f"The server returned an unexpected {model.__name__} record."
        else:
            msg = "Please correct the highlighted fields."
        raise ValidationError(msg, fields=fields, remote=remote)


def parse_many(model, rows, remote: bool = False):
    return [parse(model, r, remote=remote) for r in rows or []]


# -------------------------
# Line items
# -------------------------
class LineItem(ApiModel):
    item_id: Optional[str] = None
    product_id: Optional[str] = None
    product_code: Optional[str] = None
    description: str = ""
    quantity: Amount = Field(ge=0)
    unit_price: Amount = Field(ge=0)
    item_type: Annotated[ItemType, BeforeValidator(_read_item_type)] = ItemType.PART

    @property
    def total_price(self) -> Decimal:
        return self.quantity * self.unit_price


class LineItemPayload(ApiModel):
    product_id: Optional[str] = None
    description: str = Field(min_length=1)
    quantity: WireDecimal = Field(ge=0)
    unit_price: WireDecimal = Field(ge=0)
    item_type: ItemType = ItemType.PART


# -------------------------
# Quotations
# -------------------------
class Quotation(ApiModel):
    quotation_id: str
    quotation_number: Optional[str] = None
    client_id: Optional[str] = None
    client_name: Optional[str] = None
    client_surname: Optional[str] = None
    vehicle_id: Optional[str] = None
    vehicle_info: Optional[str] = None
    quotation_date: Optional[date] = None
    valid_until: Optional[date] = None
    status: QuotationStatus = QuotationStatus.DRAFT
    tax_rate: Amount = Field(default=Decimal("0"), ge=0, le=100)
    discount_percentage: Amount = Field(default=Decimal("0"), ge=0, le=100)
    notes: Optional[str] = None
    terms_and_conditions: Optional[str] = None
    converted_to_job_card: bool = False
    created_at: Optional[datetime] = None
    items: List[LineItem] = Field(default_factory=list)

    def totals(self):
        return compute_totals(self.items, self.tax_rate, self.discount_percentage)


class QuotationPayload(ApiModel):
    client_id: str = Field(min_length=1)
    vehicle_id: Optional[str] = None
    valid_until: Optional[date] = None
    tax_rate: Percent = Decimal("0")
    discount_percentage: Percent = Decimal("0")
    notes: Optional[str] = None
    terms_and_conditions: Optional[str] = None
    items: List[LineItemPayload] = Field(default_factory=list)


# -------------------------
# Invoices & payments
# -------------------------
class Payment(ApiModel):
    payment_id: str
    invoice_id: Optional[str] = None
    amount: Amount
    payment_method: PaymentMethod = PaymentMethod.CASH
    payment_date: Optional[date] = None
    status: str = "COMPLETED"
    notes: Optional[str] = None
    created_at: Optional[datetime] = None


class PaymentPayload(ApiModel):
    invoice_id: str = Field(min_length=1)
    amount: WireDecimal = Field(gt=0)
    payment_method: PaymentMethod
    payment_date: date
    notes: Optional[str] = None


class Invoice(ApiModel):
    invoice_id: str
    invoice_number: Optional[str] = None
    client_id: Optional[str] = None
    client_name: Optional[str] = None
    vehicle_id: Optional[str] = None
    vehicle_info: Optional[str] = None
    job_card_id: Optional[str] = None
    quotation_id: Optional[str] = None
    invoice_date: Optional[date] = None
    due_date: Optional[date] = None
    payment_terms: Optional[str] = None
    tax_rate: Amount = Field(default=Decimal("0"), ge=0, le=100)
    discount_percentage: Amount = Field(default=Decimal("0"), ge=0, le=100)
    status: InvoiceStatus = InvoiceStatus.DRAFT
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    items: List[LineItem] = Field(default_factory=list)
    payments: List[Payment] = Field(default_factory=list)
    # running total from the server; list rows come without payments
    reported_paid: Optional[Amount] = Field(
        default=None, exclude=True,
        validation_alias=AliasChoices("amountPaid", "reported_paid"),
    )

    def totals(self):
        return compute_totals(self.items, self.tax_rate, self.discount_percentage)

    @property
    def paid_amount(self) -> Decimal:
        return invoice_paid(self)

    @property
    def balance_due(self) -> Decimal:
        return self.totals().total_amount - self.paid_amount

    @property
    def outstanding(self) -> Decimal:
        return max(self.balance_due, ZERO)

    @property
    def payment_progress(self) -> Decimal:
        return collection_rate(self.paid_amount, self.totals().total_amount)


class InvoicePayload(ApiModel):
    client_id: str = Field(min_length=1)
    vehicle_id: Optional[str] = None
    job_card_id: Optional[str] = None
    quotation_id: Optional[str] = None
    invoice_date: date
    due_date: date
    payment_terms: Optional[str] = None
    tax_rate: Percent = Decimal("0")
    discount_percentage: Percent = Decimal("0")
    notes: Optional[str] = None
    items: List[LineItemPayload] = Field(default_factory=list)

    @model_validator(mode="after")
    def _due_after_invoice(self):
        if self.due_date < self.invoice_date:
            raise ValueError("Due date must be on or after the invoice date")
        return self


class StatusUpdate(ApiModel):
    status: str
    notes: Optional[str] = None


# -------------------------
# Inventory
# -------------------------
class Product(ApiModel):
    product_id: str
    product_code: Optional[str] = None
    product_name: str = ""
    description: Optional[str] = None
    category_name: Optional[str] = None
    unit_price: Amount = Field(
        default=Decimal("0"), ge=0,
        validation_alias=AliasChoices("unitPrice", "sellingPrice", "unit_price"),
    )
    cost_price: Optional[Amount] = None
    stock_level: int = Field(
        default=0, ge=0,
        validation_alias=AliasChoices("stockLevel", "currentStock", "stock_level"),
    )
    min_stock_level: int = Field(
        default=0, ge=0,
        validation_alias=AliasChoices("minStockLevel", "minimumStock", "min_stock_level"),
    )
    is_active: bool = True


class ProductPayload(ApiModel):
    product_code: str = Field(min_length=1)
    product_name: str = Field(min_length=1)
    description: Optional[str] = None
    unit_price: WireDecimal = Field(ge=0)
    cost_price: Optional[WireDecimal] = Field(default=None, ge=0)
    stock_level: int = Field(default=0, ge=0)
    min_stock_level: int = Field(default=0, ge=0)
    supplier_id: Optional[str] = None


class StockAdjustmentPayload(ApiModel):
    product_id: str = Field(min_length=1)
    adjustment_type: AdjustmentType
    quantity: int = Field(ge=0)
    reason: str = Field(min_length=1)
    notes: Optional[str] = None
    adjusted_by: Optional[str] = None
    adjustment_date: datetime

    @model_validator(mode="after")
    def _movement_needs_quantity(self):
        if self.adjustment_type != AdjustmentType.ADJUSTMENT and self.quantity < 1:
            raise ValueError("Quantity must be at least 1 for IN and OUT adjustments")
        return self


# -------------------------
# Job cards
# -------------------------
class JobCard(ApiModel):
    id: str = Field(validation_alias=AliasChoices("id", "jobCardId"))
    job_card_name: str = ""
    job_card_number: Optional[int] = None
    client_id: Optional[str] = None
    client_name: Optional[str] = None
    vehicle_id: Optional[str] = None
    vehicle_name: Optional[str] = None
    service_advisor_id: Optional[str] = None
    supervisor_id: Optional[str] = None
    date_and_time_in: Optional[datetime] = None
    estimated_time_of_completion: Optional[datetime] = None
    job_card_deadline: Optional[datetime] = None
    date_and_time_frozen: Optional[datetime] = None
    date_and_time_closed: Optional[datetime] = None
    priority: bool = False


class JobCardPayload(ApiModel):
    job_card_name: Optional[str] = None
    client_id: str = Field(min_length=1)
    vehicle_id: str = Field(min_length=1)
    service_advisor_id: str = Field(min_length=1)
    supervisor_id: str = Field(min_length=1)
    estimated_time_of_completion: datetime
    job_card_deadline: datetime
    priority: bool = False


# -------------------------
# Clients & vehicles
# -------------------------
class Vehicle(ApiModel):
    id: str = Field(validation_alias=AliasChoices("id", "vehicleId"))
    make: Optional[str] = None
    model: Optional[str] = None
    year: Optional[int] = None
    registration_number: Optional[str] = None
    vin_number: Optional[str] = None
    client_id: Optional[str] = None


class VehiclePayload(ApiModel):
    make: str = Field(min_length=1)
    model: str = Field(min_length=1)
    year: Optional[int] = Field(default=None, ge=1900, le=2100)
    registration_number: Optional[str] = None
    vin_number: Optional[str] = None
    client_id: str = Field(min_length=1)


class Client(ApiModel):
    id: str = Field(validation_alias=AliasChoices("id", "clientId"))
    client_name: str = ""
    client_surname: str = ""
    gender: Optional[str] = None
    job_title: Optional[str] = None
    company: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    vehicles: List[Vehicle] = Field(default_factory=list)


class ClientPayload(ApiModel):
    client_name: str = Field(min_length=1)
    client_surname: str = Field(min_length=1)
    gender: Optional[str] = None
    job_title: Optional[str] = None
    company: Optional[str] = None
    phone: str = Field(min_length=1)
    email: Optional[str] = None
    address: Optional[str] = None


# -------------------------
# Session
# -------------------------
class AuthResult(ApiModel):
    access_token: str = Field(validation_alias=AliasChoices("accessToken", "token", "access_token"))
    user_id: str = Field(validation_alias=AliasChoices("userId", "id", "user_id"))
    name: str = Field(default="", validation_alias=AliasChoices("name", "username", "fullName"))
    role: Optional[str] = None


RECORD_TYPES = {
    "quotations": Quotation,
    "invoices": Invoice,
    "payments": Payment,
    "products": Product,
    "jobcards": JobCard,
    "clients": Client,
    "vehicles": Vehicle,
}
