import uuid
import aiofiles
import aiofiles.os
from pathlib import Path
from app.core.config import get_settings

settings = get_settings()


class StorageService:
    """Private object bucket on local disk.

    Object keys are ``<owner_id>/<object name>``; the first path segment is
    the owning identity and is checked by ``is_owned_by``.
    """

    def __init__(self, bucket: str | None = None, root: str | Path | None = None):
        self.bucket = bucket or settings.storage_bucket
        self.bucket_dir = Path(root or settings.storage_dir) / self.bucket
        self.bucket_dir.mkdir(parents=True, exist_ok=True)

    def _get_object_path(self, key: str) -> Path:
        """Get object path with path traversal protection."""
        if not key or ".." in key or key.startswith("/") or key.startswith("\\"):
            raise ValueError(f"Invalid storage key: {key}")

        object_path = (self.bucket_dir / key).resolve()

        if not str(object_path).startswith(str(self.bucket_dir.resolve())):
            raise ValueError(f"Path traversal attempt detected: {key}")

        return object_path

    @staticmethod
    def new_object_key(owner_id: uuid.UUID | str, filename: str) -> str:
        """Randomised key scoped under the owner's folder."""
        ext = Path(filename or "").suffix.lstrip(".")
        name = f"{uuid.uuid4()}.{ext}" if ext else str(uuid.uuid4())
        return f"{owner_id}/{name}"

    @staticmethod
    def is_owned_by(key: str, owner_id: uuid.UUID | str) -> bool:
        folder, sep, _ = key.partition("/")
        return bool(sep) and folder == str(owner_id)

    async def upload(self, key: str, content: bytes) -> str:
        """Write an object; an existing key is never overwritten."""
        object_path = self._get_object_path(key)
        object_path.parent.mkdir(parents=True, exist_ok=True)

        if await aiofiles.os.path.exists(object_path):
            raise FileExistsError(f"Object already exists: {key}")

        async with aiofiles.open(object_path, "wb") as f:
            await f.write(content)

        return key

    async def get_object_path(self, key: str) -> Path:
        """Get absolute path for a stored object."""
        object_path = self._get_object_path(key)
        if not await aiofiles.os.path.exists(object_path):
            raise FileNotFoundError(f"Object not found: {key}")
        return object_path

    async def download(self, key: str) -> bytes:
        object_path = await self.get_object_path(key)
        async with aiofiles.open(object_path, "rb") as f:
            return await f.read()

    async def remove(self, keys: list[str]) -> None:
        """Delete objects; missing keys are ignored."""
        for key in keys:
            object_path = self._get_object_path(key)
            if await aiofiles.os.path.exists(object_path):
                await aiofiles.os.remove(object_path)


def get_storage() -> StorageService:
    return StorageService()
