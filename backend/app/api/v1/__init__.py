from fastapi import APIRouter
from app.api.v1 import auth, projects, chats, files

router = APIRouter()

router.include_router(auth.router, prefix="/auth", tags=["auth"])
router.include_router(projects.router, prefix="/projects", tags=["projects"])
router.include_router(chats.router, tags=["chats"])
router.include_router(files.router, tags=["files"])
