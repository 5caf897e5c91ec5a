from fastapi import APIRouter
from app.api.functions import upload_file, chat_completion

router = APIRouter()

router.include_router(upload_file.router, tags=["functions"])
router.include_router(chat_completion.router, tags=["functions"])
