"""Order intake API and order-side workers of the fulfillment saga."""

__version__ = "0.1.0"
