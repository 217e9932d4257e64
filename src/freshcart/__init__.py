"""FreshCart catalogue service.

Cache-aside product reads with cursor pagination, webhook deduplication,
rate limiting and a resilient upstream client.
"""

__version__ = "0.1.0"
