from fastapi import APIRouter

from app.api.api_v1.endpoints import reminders

api_router = APIRouter()
api_router.include_router(reminders.router, prefix="/reminders", tags=["reminders"])
