"""
Optional Google Drive integration for purchase vouchers.
- Lazy-imports Google libs only when used.
- Controlled by settings ENABLE_GOOGLE_DRIVE (default False).
"""
from __future__ import annotations
import os
from typing import Optional

from app.core.settings import get_settings

DRIVE_VIEW_URL = "https://drive.google.com/file/d/{file_id}/view"


class GoogleDriveUnavailable(RuntimeError):
    pass


def _require_enabled():
    if not get_settings().ENABLE_GOOGLE_DRIVE:
        raise GoogleDriveUnavailable("Google Drive integration disabled (ENABLE_GOOGLE_DRIVE=false).")


def _import_google():
    try:
        import httplib2  # type: ignore
        import google_auth_httplib2  # type: ignore
        from googleapiclient.discovery import build  # type: ignore
        from googleapiclient.http import MediaFileUpload  # type: ignore
        from google.oauth2.credentials import Credentials  # type: ignore
        return build, MediaFileUpload, Credentials, google_auth_httplib2, httplib2
    except ImportError as e:
        raise GoogleDriveUnavailable(
            "Google client libs not installed. Install: "
            "pip install 'frufresco-ops[gdrive]'"
        ) from e


def get_service(token: str, timeout: Optional[float] = None):
    """Return a Drive service client. Raises if disabled or deps missing."""
    _require_enabled()
    build, _MediaFileUpload, Credentials, google_auth_httplib2, httplib2 = _import_google()
    creds = Credentials(token)
    http = google_auth_httplib2.AuthorizedHttp(creds, http=httplib2.Http(timeout=timeout))
    return build("drive", "v3", http=http, cache_discovery=False)


def upload_file(
    token: str,
    *,
    file_path: str,
    mime_type: str,
    folder_id: Optional[str] = None,
    name: Optional[str] = None,
    timeout: Optional[float] = None,
) -> str:
    """Upload a file and return its Drive file ID."""
    service = get_service(token, timeout=timeout)
    _build, MediaFileUpload, _Credentials, _gah, _httplib2 = _import_google()

    media = MediaFileUpload(file_path, mimetype=mime_type, resumable=False)
    metadata = {"name": name or os.path.basename(file_path)}
    if folder_id:
        metadata["parents"] = [folder_id]

    created = service.files().create(body=metadata, media_body=media, fields="id").execute()
    return created["id"]


def delete_file(token: str, file_id: str, timeout: Optional[float] = None) -> None:
    service = get_service(token, timeout=timeout)
    service.files().delete(fileId=file_id).execute()


def file_view_url(file_id: str) -> str:
    return DRIVE_VIEW_URL.format(file_id=file_id)


def file_id_from_url(url: str) -> Optional[str]:
    prefix, _, suffix = DRIVE_VIEW_URL.partition("{file_id}")
    if url.startswith(prefix) and url.endswith(suffix):
        return url[len(prefix):len(url) - len(suffix)] or None
    return None
