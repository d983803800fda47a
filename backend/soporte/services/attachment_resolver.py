"""
Soporte API — Attachment Resolver
===================================

What:  Turns the `imagenes` array of a create/update request into the
       normalized array stored on the record, and decides which stored images
       are still visible or must be deleted.
Why:   The three storage modes differ only in where new images go and which
       existing references are trusted; keeping that policy here lets the
       record service stay mode-agnostic.

Per-image policy (in submission order, 1-based index):
    1. `base64` holds `data:image/<subtype>;base64,<payload>`
       → decode and persist with the mode's store for new images
    2. otherwise an existing reference passes through if the mode trusts it:
         local   keep local entries whose file still exists
         remote  keep everything
         hybrid  keep hosted entries; keep local entries whose file exists

Reference classification (write and read paths alike):
    remote         every reference is an object key or a hosted URL
    local/hybrid   a `url` or `filename` starting with http(s) is hosted and
                   becomes the reference; anything else is a local path
    A `storage` tag on the input is ignored.
    3. anything else is dropped silently (never reported to the client)

Mode summary:
    mode     new images   deleted with the record
    ──────   ──────────   ───────────────────────
    local    disk         local files
    remote   bucket       bucket objects
    hybrid   disk         local files only
"""

import base64
import binascii
import logging
import re
from datetime import datetime, timezone
from typing import Any, Iterable, List, NamedTuple, Optional, Sequence, Tuple

from soporte.config import Settings, StorageMode
from soporte.exceptions import AttachmentDecodeError, FileStorageError, ObjectStorageError
from soporte.schemas.computador import Imagen, ImagenEntrada, StorageKind, is_url
from soporte.services.image_store import LocalImageStore, SupabaseImageStore

logger = logging.getLogger(__name__)

_DATA_URI = re.compile(r"^data:image/([a-zA-Z]+);base64,(.*)$", re.DOTALL)


class DecodedImage(NamedTuple):
    subtype: str
    content: bytes


class ResolvedImages(NamedTuple):
    imagenes: List[Imagen]
    creadas: List[Imagen]  # subset of imagenes stored by this call

    @property
    def nuevas(self) -> int:
        return len(self.creadas)


def decode_data_uri(data_uri: str) -> DecodedImage:
    """
    Decode `data:image/<subtype>;base64,<payload>`.

    Raises:
        AttachmentDecodeError on a malformed header or payload.
    """
    match = _DATA_URI.match(data_uri.strip())
    if not match:
        raise AttachmentDecodeError(context={"reason": "header"})
    subtype, payload = match.group(1).lower(), match.group(2)
    try:
        content = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise AttachmentDecodeError(context={"reason": "payload", "error": str(e)})
    if not content:
        raise AttachmentDecodeError(context={"reason": "empty"})
    return DecodedImage(subtype=subtype, content=content)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class AttachmentResolver:
    """
    Storage-mode policy over a local store and (optionally) a Supabase store.

    Args:
        mode: "local", "remote" or "hybrid"
        local_store: required for local and hybrid modes
        remote_store: required for remote mode; in hybrid mode it only
            resolves public URLs of pre-existing images
    """

    def __init__(
        self,
        mode: StorageMode,
        local_store: Optional[LocalImageStore] = None,
        remote_store: Optional[SupabaseImageStore] = None,
    ):
        if mode in ("local", "hybrid") and local_store is None:
            raise ValueError(f"STORAGE_MODE={mode} requires a local image store")
        if mode == "remote" and remote_store is None:
            raise ValueError("STORAGE_MODE=remote requires a Supabase image store")
        self.mode = mode
        self.local_store = local_store
        self.remote_store = remote_store

    @property
    def new_image_kind(self) -> StorageKind:
        return StorageKind.REMOTE if self.mode == "remote" else StorageKind.LOCAL

    def classify(
        self, filename: Optional[str], url: Optional[str]
    ) -> Optional[Tuple[str, StorageKind]]:
        """
        Reference and storage kind of an existing image in this mode.

        Returns None when neither `filename` nor `url` is set.
        """
        if self.mode == "remote":
            reference = filename or url
            return (reference, StorageKind.REMOTE) if reference else None

        # Entries written by the hosted variant keep the object key in
        # `filename`; their URL is what still resolves here.
        for candidate in (url, filename):
            if is_url(candidate):
                return candidate, StorageKind.REMOTE

        reference = filename or url
        return (reference, StorageKind.LOCAL) if reference else None

    # ── Write path ────────────────────────────────────────────────────────

    async def resolve(
        self, descriptors: Optional[Sequence[ImagenEntrada]], equipo_id: str
    ) -> ResolvedImages:
        """
        Normalize a submitted `imagenes` array.

        Returns:
            ResolvedImages with the array to store and the count of images
            persisted by this call.
        """
        imagenes: List[Imagen] = []
        creadas: List[Imagen] = []

        for index, descriptor in enumerate(descriptors or [], start=1):
            title = descriptor.title or f"Imagen {index}"

            if descriptor.base64_data:
                imagen = await self._persist_new(descriptor.base64_data, equipo_id, index, title)
                if imagen is not None:
                    imagenes.append(imagen)
                    creadas.append(imagen)
                continue

            if descriptor.filename or descriptor.url:
                imagen = self._pass_through(descriptor, title)
                if imagen is not None:
                    imagenes.append(imagen)
                continue

            logger.debug("Image %d has neither payload nor reference; dropped", index)

        if descriptors:
            logger.info(
                "Resolved %d of %d images for %s (%d new, mode=%s)",
                len(imagenes), len(descriptors), equipo_id, len(creadas), self.mode,
            )
        return ResolvedImages(imagenes=imagenes, creadas=creadas)

    async def _persist_new(
        self, data_uri: str, equipo_id: str, index: int, title: str
    ) -> Optional[Imagen]:
        try:
            decoded = decode_data_uri(data_uri)
        except AttachmentDecodeError as e:
            logger.warning("Image %d for %s skipped: %s (%s)", index, equipo_id, e.message, e.context)
            return None

        store = self.remote_store if self.new_image_kind is StorageKind.REMOTE else self.local_store
        try:
            stored = await store.save(decoded.content, equipo_id, index, decoded.subtype)
        except (FileStorageError, ObjectStorageError) as e:
            logger.error("Image %d for %s could not be stored: %s", index, equipo_id, e.message)
            return None

        return Imagen(
            title=title,
            filename=stored.filename,
            url=stored.url,
            size=stored.size,
            fecha_subida=_now_iso(),
            storage=self.new_image_kind,
        )

    def _pass_through(self, descriptor: ImagenEntrada, title: str) -> Optional[Imagen]:
        reference, kind = self.classify(descriptor.filename, descriptor.url)
        imagen = Imagen(
            title=title,
            filename=reference,
            url=descriptor.url or self._url_for(reference, kind),
            size=descriptor.size or 0,
            fecha_subida=descriptor.fecha_subida or _now_iso(),
            storage=kind,
        )
        return imagen if self.is_visible(imagen) else None

    def _url_for(self, reference: str, kind: StorageKind) -> str:
        if kind is StorageKind.LOCAL:
            return f"{self.local_store.url_prefix}/{reference}" if self.local_store else reference
        if self.remote_store is not None:
            return self.remote_store.public_url(reference) or reference
        return reference

    # ── Read path ─────────────────────────────────────────────────────────

    def is_visible(self, imagen: Imagen) -> bool:
        """Whether a stored image should be returned/kept in this mode."""
        if self.mode == "remote":
            return True
        if imagen.storage is StorageKind.REMOTE:
            return self.mode == "hybrid"
        if self.local_store is None:
            return False
        if not self.local_store.exists(imagen.filename):
            logger.info("Local image not found: %s", imagen.filename)
            return False
        return True

    def load(self, stored: Optional[Iterable[Any]]) -> List[Imagen]:
        """Parse a record's JSONB array into tagged Imagen objects."""
        imagenes = []
        for item in stored or []:
            if not isinstance(item, dict):
                continue
            classified = self.classify(item.get("filename"), item.get("url"))
            if classified is not None:
                imagenes.append(Imagen.from_stored(item, *classified))
        return imagenes

    def visible(self, stored: Optional[Iterable[Any]]) -> List[Imagen]:
        """Images of a stored array that still resolve in this mode."""
        return [imagen for imagen in self.load(stored) if self.is_visible(imagen)]

    # ── Delete path ───────────────────────────────────────────────────────

    def _deletable(self, imagen: Imagen) -> bool:
        if imagen.storage is StorageKind.LOCAL:
            return self.local_store is not None
        return self.mode == "remote" and self.remote_store is not None

    async def discard(self, imagenes: Iterable[Imagen]) -> int:
        """
        Delete stored images owned by this mode. Best-effort: individual
        failures are logged and skipped.

        Returns:
            Number of images actually removed.
        """
        removed = 0
        for imagen in imagenes:
            if not self._deletable(imagen):
                logger.info("Image kept in remote storage: %s", imagen.filename)
                continue
            store = self.local_store if imagen.storage is StorageKind.LOCAL else self.remote_store
            if await store.delete(imagen.filename):
                removed += 1
        return removed

    async def discard_replaced(
        self, previous: Iterable[Imagen], current: Iterable[Imagen]
    ) -> int:
        """Delete images that were on the record but are not in the new array."""
        kept = {imagen.filename for imagen in current}
        return await self.discard(img for img in previous if img.filename not in kept)


def build_attachment_resolver(settings: Settings) -> AttachmentResolver:
    """Assemble the resolver and its stores for the configured storage mode."""
    local_store = None
    if settings.uses_local_storage:
        local_store = LocalImageStore(settings.uploads_dir)

    remote_store = None
    if settings.storage_mode == "remote" or settings.supabase_url:
        remote_store = SupabaseImageStore(
            base_url=settings.supabase_url,
            api_key=settings.storage_key,
            bucket=settings.storage_bucket,
            timeout=settings.storage_timeout,
        )

    return AttachmentResolver(settings.storage_mode, local_store, remote_store)
