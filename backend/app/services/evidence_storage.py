"""
Purchase evidence (voucher / invoice photo) storage.

Backends return a durable reference (URL or Drive link) that is stored on the
purchase. A failed upload raises EvidenceUploadError so the caller can stop
before any purchase is written.
"""
import mimetypes
import os
import secrets
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from app.core.settings import get_settings
from app.exceptions import EvidenceUploadError, FileStorageError, ValidationError
from app.integrations import google_drive
from app.logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class EvidenceFile:
    """Uploaded voucher as received from the buyer"""
    content: bytes
    filename: str
    content_type: Optional[str] = None

    @property
    def extension(self) -> str:
        return os.path.splitext(self.filename or "")[1].lower()

    @property
    def mime_type(self) -> str:
        return self.content_type or mimetypes.guess_type(self.filename or "")[0] or "application/octet-stream"


def check_evidence_file(evidence: EvidenceFile) -> None:
    """Reject voucher files with a disallowed type or over the size limit."""
    settings = get_settings()
    if evidence.extension not in settings.EVIDENCE_ALLOWED_EXTENSIONS:
        raise ValidationError(
            f"File type '{evidence.extension or 'unknown'}' not allowed. "
            f"Allowed: {', '.join(settings.EVIDENCE_ALLOWED_EXTENSIONS)}",
            field="evidence",
            value=evidence.filename,
        )
    if len(evidence.content) > settings.evidence_max_bytes:
        raise ValidationError(
            f"Voucher exceeds {settings.EVIDENCE_MAX_FILE_SIZE_MB} MB",
            field="evidence",
            value=evidence.filename,
        )


def build_evidence_filename(original_filename: str) -> str:
    """Unique storage name: <epoch millis>_<random>.<ext>"""
    ext = os.path.splitext(original_filename or "")[1].lower() or ".jpg"
    unique_id = secrets.token_hex(5)[:9]
    return f"{int(time.time() * 1000)}_{unique_id}{ext}"


class EvidenceStorage:
    """Base class for voucher storage backends"""

    backend_name = "base"

    def store(self, evidence: EvidenceFile) -> str:
        """Persist the voucher and return its durable reference."""
        raise NotImplementedError

    def discard(self, reference: str) -> None:
        """Remove a stored voucher whose purchase was never written."""


class LocalEvidenceStorage(EvidenceStorage):
    """Vouchers on the local filesystem, optionally served under a public URL"""

    backend_name = "local"

    def __init__(self, upload_dir: str, public_base_url: Optional[str] = None):
        self.upload_dir = Path(upload_dir)
        self.public_base_url = public_base_url.rstrip("/") if public_base_url else None

    def _reference_for(self, stored_name: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url}/{stored_name}"
        return str(self.upload_dir / stored_name)

    def _path_for(self, reference: str) -> Path:
        if self.public_base_url and reference.startswith(self.public_base_url + "/"):
            return self.upload_dir / reference[len(self.public_base_url) + 1:]
        return Path(reference)

    def store(self, evidence: EvidenceFile) -> str:
        stored_name = build_evidence_filename(evidence.filename)
        try:
            self.upload_dir.mkdir(parents=True, exist_ok=True)
            (self.upload_dir / stored_name).write_bytes(evidence.content)
        except OSError as e:
            logger.error(
                "Failed to save voucher locally",
                extra={"upload_filename": evidence.filename, "error": str(e)},
            )
            raise EvidenceUploadError(
                "Voucher could not be saved, please retry",
                filename=evidence.filename,
            ) from e

        logger.info("Voucher saved locally", extra={"stored_name": stored_name})
        return self._reference_for(stored_name)

    def discard(self, reference: str) -> None:
        try:
            self._path_for(reference).unlink(missing_ok=True)
        except OSError as e:
            raise FileStorageError("Could not remove voucher", filename=reference) from e


class GoogleDriveEvidenceStorage(EvidenceStorage):
    """Vouchers uploaded to a Google Drive folder"""

    backend_name = "gdrive"

    def __init__(self, token: str, folder_id: Optional[str] = None, timeout: Optional[float] = None):
        self.token = token
        self.folder_id = folder_id
        self.timeout = timeout

    def store(self, evidence: EvidenceFile) -> str:
        stored_name = build_evidence_filename(evidence.filename)
        tmp_path = None
        try:
            with tempfile.NamedTemporaryFile(suffix=evidence.extension, delete=False) as tmp:
                tmp.write(evidence.content)
                tmp_path = tmp.name
            file_id = google_drive.upload_file(
                self.token,
                file_path=tmp_path,
                mime_type=evidence.mime_type,
                folder_id=self.folder_id,
                name=stored_name,
                timeout=self.timeout,
            )
        except Exception as e:
            logger.error(
                "Google Drive voucher upload failed",
                extra={"upload_filename": evidence.filename, "error": str(e)},
            )
            raise EvidenceUploadError(
                "Voucher could not be uploaded, please retry",
                filename=evidence.filename,
            ) from e
        finally:
            if tmp_path:
                Path(tmp_path).unlink(missing_ok=True)

        logger.info("Voucher uploaded to Google Drive", extra={"file_id": file_id})
        return google_drive.file_view_url(file_id)

    def discard(self, reference: str) -> None:
        file_id = google_drive.file_id_from_url(reference)
        if not file_id:
            return
        try:
            google_drive.delete_file(self.token, file_id, timeout=self.timeout)
        except Exception as e:
            raise FileStorageError("Could not remove voucher", filename=reference) from e


def get_evidence_storage() -> EvidenceStorage:
    """Storage backend selected by EVIDENCE_STORAGE_BACKEND (FastAPI dependency)."""
    settings = get_settings()
    backend = settings.EVIDENCE_STORAGE_BACKEND.strip().lower()
    if backend == GoogleDriveEvidenceStorage.backend_name:
        if not settings.GDRIVE_TOKEN:
            raise FileStorageError("GDRIVE_TOKEN is required for the gdrive evidence backend")
        return GoogleDriveEvidenceStorage(
            settings.GDRIVE_TOKEN,
            folder_id=settings.GDRIVE_FOLDER_ID,
            timeout=settings.EVIDENCE_UPLOAD_TIMEOUT_SECONDS,
        )
    if backend == LocalEvidenceStorage.backend_name:
        return LocalEvidenceStorage(settings.EVIDENCE_UPLOAD_DIR, settings.EVIDENCE_PUBLIC_BASE_URL)
    raise FileStorageError(f"Unknown evidence storage backend: {settings.EVIDENCE_STORAGE_BACKEND}")
