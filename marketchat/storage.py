import asyncio
import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path, PurePosixPath
from urllib.parse import quote

import jwt

from marketchat.services.exceptions import SignedUrlError, StorageError

logger = logging.getLogger(__name__)

SIGNING_ALGORITHM = "HS256"


class LocalStorageClient:
    """Private object store on the local filesystem.

    Objects are never public; readers need a signed URL whose token is a
    short JWT naming the object path and an expiry.
    """

    def __init__(self, root: str | Path, secret: str, base_url: str):
        self.root = Path(root).resolve()
        self.secret = secret
        self.base_url = base_url.rstrip("/")

    def _resolve(self, path: str) -> Path:
        relative = PurePosixPath(path)
        if relative.is_absolute() or ".." in relative.parts or not relative.parts:
            raise StorageError(f"Invalid object path '{path}'.")
        target = (self.root / relative).resolve()
        if self.root not in target.parents:
            raise StorageError(f"Invalid object path '{path}'.")
        return target

    async def upload(
        self, path: str, data: bytes, content_type: str | None = None
    ) -> None:
        target = self._resolve(path)
        if target.exists():
            raise StorageError(f"Object '{path}' already exists.", status_code=409)

        def _write() -> None:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)

        try:
            await asyncio.to_thread(_write)
        except OSError as e:
            logger.error(f"Failed to write object '{path}': {e}", exc_info=True)
            raise StorageError(f"Failed to store object '{path}'.") from e
        logger.info(f"Stored object '{path}' ({len(data)} bytes, {content_type})")

    async def open(self, path: str) -> bytes:
        target = self._resolve(path)
        if not target.is_file():
            raise StorageError(f"Object '{path}' not found.", status_code=404)
        return await asyncio.to_thread(target.read_bytes)

    def create_signed_url(self, path: str, ttl_seconds: int) -> str:
        self._resolve(path)
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=ttl_seconds)
        token = jwt.encode(
            {"path": path, "exp": expires_at},
            self.secret,
            algorithm=SIGNING_ALGORITHM,
        )
        return f"{self.base_url}/attachments/{quote(path)}?token={token}"

    def verify_token(self, path: str, token: str) -> None:
        """Raises SignedUrlError unless token grants read access to path."""
        try:
            payload = jwt.decode(token, self.secret, algorithms=[SIGNING_ALGORITHM])
        except jwt.ExpiredSignatureError as e:
            raise SignedUrlError("Signed URL has expired.") from e
        except jwt.InvalidTokenError as e:
            raise SignedUrlError("Signed URL is invalid.") from e

        if payload.get("path") != path:
            raise SignedUrlError("Signed URL does not match the requested object.")
