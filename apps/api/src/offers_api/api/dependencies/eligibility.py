"""Dependencies wiring eligibility components from application state."""

from __future__ import annotations

from fastapi import Request

from offers_api.core.options import EligibilityOptions
from offers_api.services.eligibility.dispatch import EligibilityDispatcher


def get_eligibility_options(request: Request) -> EligibilityOptions:
    options = getattr(request.app.state, "eligibility_options", None)
    return options or EligibilityOptions.from_settings()


def get_eligibility_dispatcher(request: Request) -> EligibilityDispatcher | None:
    return getattr(request.app.state, "eligibility_dispatcher", None)
