from fastapi import APIRouter

from .endpoints import eligibility, offers

router = APIRouter()
router.include_router(offers.router)
router.include_router(eligibility.router)
