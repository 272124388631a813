import mimetypes

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response

from marketchat.api.decorators import handle_route_errors
from marketchat.api.logging import log_route_call
from marketchat.core.config import settings
from marketchat.storage import LocalStorageClient

attachments_router = APIRouter(prefix="/attachments", tags=["attachments"])


def get_storage_client() -> LocalStorageClient:
    """Dependency provider for the attachment store."""
    return LocalStorageClient(
        root=settings.STORAGE_ROOT,
        secret=settings.SECRET,
        base_url=settings.STORAGE_BASE_URL,
    )


@attachments_router.get("/{path:path}")
@log_route_call
@handle_route_errors
async def read_attachment(
    path: str,
    token: str = Query(...),
    storage: LocalStorageClient = Depends(get_storage_client),
):
    """Serve a private attachment to the holder of a valid signed URL."""
    storage.verify_token(path, token)
    data = await storage.open(path)
    media_type = mimetypes.guess_type(path)[0] or "application/octet-stream"
    return Response(content=data, media_type=media_type)
