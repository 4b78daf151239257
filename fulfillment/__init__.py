"""Order fulfillment backend: order lifecycle and realtime fan-out."""

__version__ = "1.0.0"
