"""Per-user log aggregation with batched, retried delivery to a collector."""

__version__ = "0.1.0"
