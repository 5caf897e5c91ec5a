from app.services.storage import StorageService
from app.services.completion_client import CompletionClient
from app.services.file_mirror import FileMirror
from app.services.upload_relay import UploadRelay
from app.services.completion_relay import CompletionRelay

__all__ = [
    "StorageService",
    "CompletionClient",
    "FileMirror",
    "UploadRelay",
    "CompletionRelay",
]
