"""Kernel services (flush-only; callers own the transaction)."""
