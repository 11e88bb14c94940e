"""Celery task modules for the offers service."""

# Import submodules so Celery autodiscovery registers tasks.
from . import eligibility as _eligibility  # noqa: F401

__all__ = ["_eligibility"]
