"""
Soporte API — Image Storage Backends
======================================

What:  Two interchangeable stores for decoded image bytes:
       LocalImageStore   → files under UPLOADS_DIR, served at /uploads/...
       SupabaseImageStore → objects in a Supabase Storage bucket
Why:   The attachment resolver picks a store per image according to the
       storage mode; each store only knows how to write, check, and delete.
How:   Local writes use aiofiles so the event loop is never blocked; Supabase
       Storage is reached through the supabase client in a worker thread.

Directory / key layout:
    uploads/
    └── PC001/                     ← equipo_id with non-alphanumerics removed
        ├── 1718000000000-1.png    ← <epoch-millis>-<index>.<subtype>
        └── 1718000000000-2.jpeg

    bucket imagenes-soporte:
    └── PC-001/1718000000000-1.png ← <equipo_id>/<epoch-millis>-<index>.<subtype>
"""

import asyncio
import logging
import os
import re
import time
from pathlib import Path
from typing import Any, Dict, List, NamedTuple, Optional

import aiofiles
from supabase import Client, ClientOptions, create_client

from soporte.exceptions import FileStorageError, ObjectStorageError, ValidationError

logger = logging.getLogger(__name__)

# Extension → Content-Type used when serving or uploading images
CONTENT_TYPES = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "webp": "image/webp",
}
DEFAULT_CONTENT_TYPE = "application/octet-stream"

_UNSAFE_DIR_CHARS = re.compile(r"[^a-zA-Z0-9]")


class StoredImage(NamedTuple):
    """Result of persisting one image."""
    filename: str  # relative path (local) or object key (remote)
    url: str
    size: int


def content_type_for(name: str) -> str:
    """Content-Type derived from a file name's extension."""
    ext = name.rsplit(".", 1)[-1].lower() if "." in name else ""
    return CONTENT_TYPES.get(ext, DEFAULT_CONTENT_TYPE)


def sanitize_equipo_id(equipo_id: str) -> str:
    """Directory name for an equipment: alphanumerics only."""
    return _UNSAFE_DIR_CHARS.sub("", equipo_id)


def build_file_name(index: int, subtype: str, millis: Optional[int] = None) -> str:
    """`<epoch-millis>-<index>.<subtype>`"""
    if millis is None:
        millis = int(time.time() * 1000)
    return f"{millis}-{index}.{subtype}"


# ══════════════════════════════════════════════════════════════════════════
# Local Disk
# ══════════════════════════════════════════════════════════════════════════


class LocalImageStore:
    """
    Stores images as files under a root directory.

    The stored reference is the path relative to the root, so records stay
    valid when the uploads directory moves between machines.
    """

    def __init__(self, root: str, url_prefix: str = "/uploads"):
        self.root = Path(root).resolve()
        self.url_prefix = url_prefix.rstrip("/")
        self.root.mkdir(parents=True, exist_ok=True)
        logger.info("LocalImageStore initialized with root=%s", self.root)

    def resolve(self, relative_path: str) -> Path:
        """
        Absolute path for a stored reference.

        Raises:
            ValidationError if the path escapes the uploads root.
        """
        full_path = (self.root / relative_path.lstrip("/")).resolve()
        if full_path != self.root and self.root not in full_path.parents:
            raise ValidationError(message="Invalid file path", field="path")
        return full_path

    def exists(self, relative_path: str) -> bool:
        try:
            return self.resolve(relative_path).is_file()
        except ValidationError:
            return False

    async def save(
        self, content: bytes, equipo_id: str, index: int, subtype: str
    ) -> StoredImage:
        """
        Write image bytes to `<root>/<safe equipo_id>/<millis>-<index>.<subtype>`.

        Raises:
            FileStorageError if the directory or the file cannot be written.
        """
        safe_id = sanitize_equipo_id(equipo_id)
        relative_path = f"{safe_id}/{build_file_name(index, subtype)}"
        absolute_path = self.root / relative_path

        try:
            absolute_path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(absolute_path, "wb") as f:
                await f.write(content)
        except OSError as e:
            logger.error("Failed to store file at %s: %s", absolute_path, str(e))
            raise FileStorageError(
                message="Failed to save image",
                context={"path": relative_path, "os_error": str(e)},
            )

        logger.info("Image stored locally: %s (%d bytes)", relative_path, len(content))
        return StoredImage(
            filename=relative_path,
            url=f"{self.url_prefix}/{relative_path}",
            size=len(content),
        )

    async def delete(self, relative_path: str) -> bool:
        """
        Remove a stored file. Best-effort: never raises.

        Returns:
            True if a file was removed, False if it was missing or removal failed.
        """
        try:
            path = self.resolve(relative_path)
            if path.is_file():
                os.remove(path)
                logger.info("Local image deleted: %s", relative_path)
                return True
            logger.info("Local image not found: %s", relative_path)
            return False
        except (OSError, ValidationError) as e:
            logger.warning("Failed to delete image %s: %s", relative_path, str(e))
            return False

    def is_writable(self) -> bool:
        """Probe write access by creating and removing a scratch file."""
        probe = self.root / ".write-test"
        try:
            probe.write_text("test")
            probe.unlink()
            return True
        except OSError:
            return False


# ══════════════════════════════════════════════════════════════════════════
# Supabase Storage
# ══════════════════════════════════════════════════════════════════════════


class SupabaseImageStore:
    """
    Stores images in a Supabase Storage bucket through the supabase client.

    The client is synchronous, so network calls run in a worker thread.
    It is built on first use: a store without credentials can still be
    constructed (health, diagnostics) and only fails when it is asked to
    talk to Supabase.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        bucket: str,
        timeout: float = 30.0,
        client: Optional[Client] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.bucket = bucket
        self.timeout = timeout
        self._client = client

    @property
    def configured(self) -> bool:
        return bool(self.base_url)

    @property
    def client(self) -> Client:
        """
        Raises:
            ObjectStorageError if no URL/key is configured or the client
            rejects them.
        """
        if self._client is None:
            if not self.configured or not self.api_key:
                raise ObjectStorageError(
                    message="Supabase Storage is not configured",
                    context={"bucket": self.bucket},
                )
            try:
                self._client = create_client(
                    self.base_url,
                    self.api_key,
                    options=ClientOptions(storage_client_timeout=int(self.timeout)),
                )
            except Exception as e:
                raise ObjectStorageError(
                    message="Could not create the Supabase client",
                    context={"error": str(e)},
                )
        return self._client

    def _bucket(self):
        return self.client.storage.from_(self.bucket)

    async def _call(self, action: str, fn, *args):
        try:
            return await asyncio.to_thread(fn, *args)
        except Exception as e:
            raise ObjectStorageError(
                message=f"Supabase Storage {action} failed",
                context={"bucket": self.bucket, "error": str(e)},
            )

    def object_key(self, equipo_id: str, index: int, subtype: str) -> str:
        return f"{equipo_id}/{build_file_name(index, subtype)}"

    def public_url(self, key: str) -> Optional[str]:
        """Public URL of an object, or None when it cannot be derived."""
        if not self.configured or not key:
            return None
        if key.startswith(("http://", "https://")):
            return key
        try:
            url = self._bucket().get_public_url(key.lstrip("/"))
        except ObjectStorageError as e:
            logger.warning("No public URL for %s: %s", key, e.message)
            return None
        # Some client versions append an empty query string
        return url.rstrip("?")

    def key_from_reference(self, reference: str) -> str:
        """Object key from either a key or a public URL of this bucket."""
        marker = f"/object/public/{self.bucket}/"
        if marker in reference:
            return reference.split(marker, 1)[1]
        return reference

    async def save(
        self, content: bytes, equipo_id: str, index: int, subtype: str
    ) -> StoredImage:
        """
        Upload image bytes under `<equipo_id>/<millis>-<index>.<subtype>`.

        Raises:
            ObjectStorageError when the client is unavailable or the upload fails.
        """
        key = self.object_key(equipo_id, index, subtype)
        await self._call(
            "upload",
            self._bucket().upload,
            key,
            content,
            {"content-type": content_type_for(key), "upsert": "false"},
        )
        logger.info("Image uploaded to bucket %s: %s (%d bytes)", self.bucket, key, len(content))
        return StoredImage(filename=key, url=self.public_url(key) or key, size=len(content))

    async def delete(self, reference: str) -> bool:
        """Remove an object. Best-effort: never raises."""
        key = self.key_from_reference(reference)
        try:
            await self._call("delete", self._bucket().remove, [key])
        except ObjectStorageError as e:
            logger.warning("Failed to delete object %s: %s", key, e.context.get("error", e.message))
            return False
        logger.info("Object deleted from bucket %s: %s", self.bucket, key)
        return True

    async def list_buckets(self) -> List[Dict[str, Any]]:
        """
        Raises:
            ObjectStorageError if the bucket list cannot be read.
        """
        buckets = await self._call("bucket listing", self.client.storage.list_buckets)
        return [
            {"id": bucket.id, "name": bucket.name, "public": bucket.public}
            for bucket in buckets
        ]

    async def create_bucket(self, public: bool = True, file_size_limit: int = 52_428_800) -> None:
        """
        Raises:
            ObjectStorageError unless the bucket was created or already exists.
        """
        try:
            await self._call(
                "bucket creation",
                self.client.storage.create_bucket,
                self.bucket,
                self.bucket,
                {"public": public, "file_size_limit": file_size_limit},
            )
        except ObjectStorageError as e:
            if "already exists" not in e.context.get("error", ""):
                raise
