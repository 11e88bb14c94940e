"""Recurring job entrypoints for eligibility maintenance."""

__all__ = ["eligibility"]
