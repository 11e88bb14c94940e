"""Eligibility materialization engine exports."""

from .dispatch import (  # noqa: F401
    CeleryEligibilityDispatcher,
    EligibilityDispatchError,
    EligibilityDispatcher,
    EligibilityJob,
    QueuePriority,
)
from .materializer import EligibilityComputationService  # noqa: F401
from .queue import EligibilityQueueService  # noqa: F401
from .variants import UnknownEntityTypeError, get_variant  # noqa: F401
