"""Order-related data models."""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from uuid import uuid4

from pydantic import AliasChoices, Field

from fulfillment.models.base import CamelModel, Money
from fulfillment.models.catalog import CatalogItemSummary


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrderStatus(str, Enum):
    """Order status progression."""

    ORDER_RECEIVED = "Order Received"
    PREPARING = "Preparing"
    OUT_FOR_DELIVERY = "Out for Delivery"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (OrderStatus.DELIVERED, OrderStatus.CANCELLED)


class PaymentMethod(str, Enum):
    CASH = "cash"
    CARD = "card"
    ONLINE = "online"


class PaymentStatus(str, Enum):
    PENDING = "Pending"
    PAID = "Paid"
    FAILED = "Failed"


class CustomerSnapshot(CamelModel):
    """Delivery details copied onto the order when it is placed."""

    name: str = Field(min_length=1)
    address: str = Field(min_length=1)
    phone: str = Field(min_length=1)
    email: str = "N/A"


class OrderItem(CamelModel):
    """Individual line item, priced from the catalog at order time."""

    menu_item_id: str
    name: str
    quantity: int = Field(ge=1)
    unit_price: Money = Field(ge=0)
    line_total: Money = Field(ge=0)


class TimeEstimate(CamelModel):
    """Remaining-time window shown to customers and operators."""

    min: int
    max: int
    unit: str = "mins"


class Order(CamelModel):
    """Complete order record as persisted by the order store."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    order_number: str
    customer: CustomerSnapshot
    items: list[OrderItem] = Field(min_length=1)

    # Pricing
    subtotal: Money = Field(ge=0)
    delivery_fee: Money = Field(default=Decimal("0.00"), ge=0)
    total_amount: Money = Field(ge=0)

    status: OrderStatus = OrderStatus.ORDER_RECEIVED
    payment_method: PaymentMethod = PaymentMethod.CASH
    payment_status: PaymentStatus = PaymentStatus.PENDING
    delivery_instructions: str = ""

    # Timing
    order_date: datetime = Field(default_factory=utcnow)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    delivered_at: datetime | None = None
    cancelled_at: datetime | None = None

    def apply_status(self, status: OrderStatus, now: datetime | None = None) -> None:
        """Move to ``status`` and stamp the side effects of terminal states.

        Callers are responsible for checking the transition is allowed.
        """
        now = now or utcnow()
        self.status = status
        self.updated_at = now

        if status == OrderStatus.DELIVERED:
            self.delivered_at = now
            self.payment_status = PaymentStatus.PAID
        elif status == OrderStatus.CANCELLED:
            self.cancelled_at = now


# Views returned to API callers and realtime subscribers


class OrderItemView(OrderItem):
    """Line item with the current catalog entry resolved for display."""

    menu_item: CatalogItemSummary | None = None


class OrderView(Order):
    """Order plus read-time presentation fields (never persisted)."""

    items: list[OrderItemView]
    estimates: TimeEstimate | None = None


# Requests


class CustomerInput(CamelModel):
    name: str | None = None
    address: str | None = None
    phone: str | None = None
    email: str | None = None


class OrderLineRequest(CamelModel):
    menu_item_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("menuItemId", "catalogItemId", "menu_item_id"),
    )
    quantity: int | None = None


class CreateOrderRequest(CamelModel):
    """Checkout payload. Presence checks happen in the order engine."""

    customer: CustomerInput | None = None
    items: list[OrderLineRequest] = Field(default_factory=list)
    delivery_instructions: str | None = None
    payment_method: PaymentMethod | None = None
    delivery_fee: Decimal | None = Field(default=None, ge=0)
    total_amount: Decimal | None = None


class StatusUpdateRequest(CamelModel):
    status: str | None = None
