from fastapi import APIRouter

from app.api.v1.endpoints import credits, gamification, referrals

api_v1_router = APIRouter()

api_v1_router.include_router(credits.router, prefix="/credits", tags=["credits"])
api_v1_router.include_router(referrals.router, prefix="/referrals", tags=["referrals"])
api_v1_router.include_router(gamification.router, prefix="/gamification", tags=["gamification"])
