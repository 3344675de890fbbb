# app/modules/router.py
from fastapi import APIRouter
from app.modules.governedchat.api.chats_router import router as chats_router
from app.modules.governedchat.api.documents_router import router as documents_router

router = APIRouter()
router.include_router(chats_router)
router.include_router(documents_router)
