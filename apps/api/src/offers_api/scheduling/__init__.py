"""Scheduling utilities for recurring eligibility maintenance."""

from .config import JobDefinition, load_job_definitions
from .runner import EligibilityJobScheduler

__all__ = ["EligibilityJobScheduler", "JobDefinition", "load_job_definitions"]
