from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs, urlsplit

import jwt
import pytest

from marketchat.services.exceptions import SignedUrlError, StorageError
from marketchat.storage import LocalStorageClient

pytestmark = pytest.mark.asyncio

PATH = "5b0c6f4e-8f0e-4f51-9a5e-0d2f6e1f9c11/1718000000000_floor plan.pdf"


def token_of(url: str) -> str:
    return parse_qs(urlsplit(url).query)["token"][0]


async def test_upload_and_open(storage: LocalStorageClient):
    await storage.upload(PATH, b"%PDF-1.7", "application/pdf")

    assert await storage.open(PATH) == b"%PDF-1.7"
    assert (storage.root / PATH).is_file()


async def test_upload_refuses_to_overwrite(storage):
    await storage.upload(PATH, b"one")

    with pytest.raises(StorageError) as exc_info:
        await storage.upload(PATH, b"two")

    assert exc_info.value.status_code == 409
    assert await storage.open(PATH) == b"one"


async def test_open_missing_object(storage):
    with pytest.raises(StorageError) as exc_info:
        await storage.open("nowhere/missing.txt")

    assert exc_info.value.status_code == 404


@pytest.mark.parametrize("path", ["../escape.txt", "/etc/passwd", "a/../../b.txt", ""])
async def test_paths_outside_root_are_rejected(storage, path):
    with pytest.raises(StorageError):
        await storage.upload(path, b"x")


async def test_signed_url_shape_and_verification(storage):
    url = storage.create_signed_url(PATH, ttl_seconds=60)

    parts = urlsplit(url)
    assert f"{parts.scheme}://{parts.netloc}" == "http://test"
    assert parts.path.startswith("/attachments/")
    assert "floor%20plan.pdf" in parts.path

    token = token_of(url)
    storage.verify_token(PATH, token)
    payload = jwt.decode(token, "test-secret", algorithms=["HS256"])
    assert payload["path"] == PATH


async def test_signed_url_expiry_is_ttl_from_now(storage):
    before = datetime.now(timezone.utc)
    url = storage.create_signed_url(PATH, ttl_seconds=60 * 60 * 24 * 365)

    payload = jwt.decode(token_of(url), "test-secret", algorithms=["HS256"])
    expires_at = datetime.fromtimestamp(payload["exp"], tz=timezone.utc)
    assert expires_at - before >= timedelta(days=364)


async def test_expired_token_is_rejected(storage):
    url = storage.create_signed_url(PATH, ttl_seconds=-10)

    with pytest.raises(SignedUrlError, match="expired"):
        storage.verify_token(PATH, token_of(url))


async def test_token_for_another_object_is_rejected(storage):
    url = storage.create_signed_url("other/object.png", ttl_seconds=60)

    with pytest.raises(SignedUrlError, match="does not match"):
        storage.verify_token(PATH, token_of(url))


async def test_token_signed_with_another_secret_is_rejected(storage, tmp_path):
    forger = LocalStorageClient(tmp_path, secret="not-the-secret", base_url="http://test")
    url = forger.create_signed_url(PATH, ttl_seconds=60)

    with pytest.raises(SignedUrlError) as exc_info:
        storage.verify_token(PATH, token_of(url))

    assert exc_info.value.status_code == 403


async def test_garbage_token_is_rejected(storage):
    with pytest.raises(SignedUrlError, match="invalid"):
        storage.verify_token(PATH, "not-a-jwt")
