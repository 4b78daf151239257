"""State management modules."""

from fulfillment.state.manager import StateManager
from fulfillment.state.orders import OrderStore
from fulfillment.state.workflow import OrderTransitions

__all__ = ["StateManager", "OrderStore", "OrderTransitions"]
