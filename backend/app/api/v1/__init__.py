"""
API v1 Router - FruFresco Ops
"""
from fastapi import APIRouter
from app.api.v1.endpoints import procurement

router = APIRouter()

# Procurement (buyer board, consolidation, purchases, substitutions)
router.include_router(
    procurement.router,
    prefix="/procurement",
    tags=["procurement"]
)
