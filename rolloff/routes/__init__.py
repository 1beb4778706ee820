"""
rolloff/routes/__init__.py
Route registration
"""
from fastapi import APIRouter
from rolloff.routes import rolloffs

router = APIRouter()

router.include_router(rolloffs.router)
