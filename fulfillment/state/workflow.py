"""Order status state machine."""

from fulfillment.models.order import OrderStatus


class OrderTransitions:
    """Valid order status transitions.

    Statuses only move forward along the delivery pipeline (skipping stages
    is allowed); Cancelled is reachable from any non-terminal status.
    """

    TRANSITIONS = {
        OrderStatus.ORDER_RECEIVED: [
            OrderStatus.PREPARING,
            OrderStatus.OUT_FOR_DELIVERY,
            OrderStatus.DELIVERED,
            OrderStatus.CANCELLED,
        ],
        OrderStatus.PREPARING: [
            OrderStatus.OUT_FOR_DELIVERY,
            OrderStatus.DELIVERED,
            OrderStatus.CANCELLED,
        ],
        OrderStatus.OUT_FOR_DELIVERY: [
            OrderStatus.DELIVERED,
            OrderStatus.CANCELLED,
        ],
        OrderStatus.DELIVERED: [],
        OrderStatus.CANCELLED: [],
    }

    @classmethod
    def can_transition(cls, from_state: OrderStatus, to_state: OrderStatus) -> bool:
        """Check if a state transition is valid."""
        return to_state in cls.TRANSITIONS.get(from_state, [])

    @classmethod
    def allowed_from(cls, from_state: OrderStatus) -> list[OrderStatus]:
        return list(cls.TRANSITIONS.get(from_state, []))
