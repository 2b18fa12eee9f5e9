from fastapi import APIRouter
from leavebilling.api.v1 import billing, organizations

api_router = APIRouter()

api_router.include_router(billing.router, prefix="/billing", tags=["billing"])
api_router.include_router(organizations.router, prefix="/organizations", tags=["organizations"])
