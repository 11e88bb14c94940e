"""Background workers supporting async processing."""

from .eligibility import EligibilityWorkerPool

__all__ = ["EligibilityWorkerPool"]
