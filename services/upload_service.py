"""
Content-addressed upload store.

Raw price lists are written to storage at {supplier_id}/{sha256}.csv, so the
same bytes for the same supplier always land on the same object and
re-writing it is harmless. Metadata dedups on (supplier_id, sha256): a
repeated submission returns the existing upload record, flagged reused.
"""

import hashlib
import io
import os
import shutil
import tempfile
from typing import BinaryIO, Optional, Union
import structlog

from config import get_supabase_client, settings
from models.upload import UploadRecord
from exceptions import StoreError, UploadNotFoundError

logger = structlog.get_logger(__name__)

# Bytes read per hashing step
STREAM_CHUNK_BYTES = 1024 * 1024

FileSource = Union[bytes, bytearray, BinaryIO]


def compute_digest(source: FileSource, chunk_size: int = STREAM_CHUNK_BYTES) -> str:
    """
    SHA-256 hex digest of a byte stream, read chunk by chunk.

    File-like sources are read from their current position to EOF.
    """
    stream = io.BytesIO(source) if isinstance(source, (bytes, bytearray)) else source
    hasher = hashlib.sha256()
    for block in iter(lambda: stream.read(chunk_size), b""):
        hasher.update(block)
    return hasher.hexdigest()


def storage_path_for(supplier_id: int, digest: str) -> str:
    """Object path for a supplier's file with this digest."""
    return f"{supplier_id}/{digest}.csv"


class UploadService:
    """
    Upload metadata + raw file storage.

    Handles:
    - Streaming content digest of submitted files
    - Idempotent object writes at the content-addressed path
    - One upload record per (supplier, digest)
    """

    def __init__(self):
        self.db = get_supabase_client()
        self.table = "upload"
        self.bucket = settings.upload_bucket

    # ===================
    # SUBMIT
    # ===================

    def submit(self, supplier_id: int, file: FileSource, filename: str) -> UploadRecord:
        """
        Store a price list and return its upload record.

        Args:
            supplier_id: Owning supplier
            file: Raw bytes or a seekable binary stream
            filename: Original filename (kept for display only)

        Returns:
            UploadRecord (reused=True if this content was already uploaded)

        Raises:
            StoreError: If storage or the metadata store fails
        """
        if isinstance(file, (bytes, bytearray)):
            digest = compute_digest(file)
        else:
            file.seek(0)
            digest = compute_digest(file)
            file.seek(0)

        path = storage_path_for(supplier_id, digest)
        logger.info(
            "submitting_upload",
            supplier_id=supplier_id,
            filename=filename,
            sha256=digest,
            storage_path=path
        )

        self._put_object(path, file)

        existing = self.get_by_digest(supplier_id, digest)
        if existing:
            logger.info(
                "upload_deduplicated",
                upload_id=existing.upload_id,
                supplier_id=supplier_id,
                sha256=digest
            )
            return existing.model_copy(update={"reused": True})

        try:
            result = (
                self.db.table(self.table)
                .insert({
                    "supplier_id": supplier_id,
                    "filename": filename,
                    "sha256": digest,
                    "parsed_ok": False,
                })
                .execute()
            )
        except Exception as e:
            logger.error("upload_record_insert_failed", sha256=digest, error=str(e))
            raise StoreError("insert", str(e))

        upload = UploadRecord(**result.data[0])
        logger.info("upload_recorded", upload_id=upload.upload_id, sha256=digest)
        return upload

    def _put_object(self, path: str, file: FileSource) -> None:
        """
        Write (or overwrite) the raw file at path.

        In-memory bytes and real file handles go to storage as they are.
        Other streams (e.g. the spooled file behind an UploadFile) are
        copied chunk by chunk to a temporary file and uploaded from its
        path; the payload is never read into memory whole.
        """
        if isinstance(file, (bytes, bytearray, io.BufferedReader)):
            self._upload_payload(path, file)
            return

        with tempfile.NamedTemporaryFile(delete=False, suffix=".csv") as tmp:
            shutil.copyfileobj(file, tmp, STREAM_CHUNK_BYTES)
            tmp_path = tmp.name
        try:
            self._upload_payload(path, tmp_path)
        finally:
            os.unlink(tmp_path)

    def _upload_payload(self, path: str, payload: Union[bytes, bytearray, BinaryIO, str]) -> None:
        try:
            self.db.storage.from_(self.bucket).upload(
                path,
                payload,
                file_options={"content-type": "text/csv", "upsert": "true"}
            )
        except Exception as e:
            logger.error("upload_object_put_failed", storage_path=path, error=str(e))
            raise StoreError("storage_upload", str(e), details={"path": path})
        logger.debug("upload_object_written", storage_path=path)

    # ===================
    # READ OPERATIONS
    # ===================

    def get_by_digest(self, supplier_id: int, digest: str) -> Optional[UploadRecord]:
        """Upload previously recorded for this supplier and content, or None."""
        try:
            result = (
                self.db.table(self.table)
                .select("*")
                .eq("supplier_id", supplier_id)
                .eq("sha256", digest)
                .order("upload_id")
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error("get_upload_by_digest_failed", sha256=digest, error=str(e))
            raise StoreError("select", str(e))
        return UploadRecord(**result.data[0]) if result.data else None

    def get_by_id(self, upload_id: int) -> UploadRecord:
        """
        Get a single upload.

        Raises:
            UploadNotFoundError: If no such upload
        """
        try:
            result = (
                self.db.table(self.table)
                .select("*")
                .eq("upload_id", upload_id)
                .execute()
            )
        except Exception as e:
            logger.error("get_upload_failed", upload_id=upload_id, error=str(e))
            raise StoreError("select", str(e))
        if not result.data:
            raise UploadNotFoundError(str(upload_id))
        return UploadRecord(**result.data[0])

    def get_all(
        self,
        page: int = 1,
        page_size: int = 20,
        supplier_id: Optional[int] = None
    ) -> tuple[list[UploadRecord], int]:
        """Uploads newest first, optionally for one supplier."""
        try:
            query = self.db.table(self.table).select("*", count="exact")
            if supplier_id is not None:
                query = query.eq("supplier_id", supplier_id)
            offset = (page - 1) * page_size
            result = (
                query.order("upload_id", desc=True)
                .range(offset, offset + page_size - 1)
                .execute()
            )
        except Exception as e:
            logger.error("get_uploads_failed", error=str(e))
            raise StoreError("select", str(e))

        uploads = [UploadRecord(**row) for row in result.data]
        return uploads, result.count or 0

    def download(self, upload: UploadRecord) -> bytes:
        """Raw bytes of a stored upload."""
        try:
            return self.db.storage.from_(self.bucket).download(upload.storage_path)
        except Exception as e:
            logger.error(
                "upload_object_download_failed",
                storage_path=upload.storage_path,
                error=str(e)
            )
            raise StoreError("storage_download", str(e), details={"path": upload.storage_path})

    # ===================
    # WRITE OPERATIONS
    # ===================

    def mark_parsed(self, upload_id: int) -> None:
        """Flag an upload as fully ingested."""
        try:
            self.db.table(self.table).update({"parsed_ok": True}).eq("upload_id", upload_id).execute()
        except Exception as e:
            logger.error("mark_upload_parsed_failed", upload_id=upload_id, error=str(e))
            raise StoreError("update", str(e))
        logger.info("upload_marked_parsed", upload_id=upload_id)


# Singleton instance for convenience
_upload_service: Optional[UploadService] = None


def get_upload_service() -> UploadService:
    """Get or create UploadService instance."""
    global _upload_service
    if _upload_service is None:
        _upload_service = UploadService()
    return _upload_service
