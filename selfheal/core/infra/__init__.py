"""Infrastructure helpers (retry strategies)."""

from .retry import get_network_retry

__all__ = ["get_network_retry"]
