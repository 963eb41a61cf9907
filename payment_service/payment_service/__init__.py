"""Payment processor: payment_requests topic -> simulated bank -> payment_results queue."""

__version__ = "0.1.0"
