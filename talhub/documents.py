"""
Document Handling
=================

Blob + metadata lifecycle for case documents.

Upload writes the blob first, then the metadata row. If the row cannot be
written the blob is removed again, so no orphan blob outlives a failed
upload. Delete goes the other way round: the blob is removed first and the
row is kept when that fails, so the document stays visible and retryable.
"""

import logging
import os
from typing import List, Optional, Dict, Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from .auth import AuthContext, AuthService
from .config import get_settings
from .db.models import Document, MessageType
from .errors import (
    ExternalServiceError, NotFoundError, PermissionDeniedError, ValidationError,
)
from .messages import append_message
from .permissions import can_delete_document
from .storage import StorageError, get_storage

logger = logging.getLogger(__name__)

# Extension -> document type shown in the case file list
DOCUMENT_TYPE_BY_EXTENSION = {
    "pdf": "notice", "doc": "notice", "docx": "notice", "txt": "notice", "rtf": "notice",
    "jpg": "photo", "jpeg": "photo", "png": "photo", "gif": "photo",
    "bmp": "photo", "webp": "photo", "heic": "photo",
    "mp3": "audio", "wav": "audio", "m4a": "audio", "aac": "audio",
    "mp4": "video", "avi": "video", "mov": "video", "wmv": "video",
    "eml": "email", "msg": "email",
    "xls": "invoice", "xlsx": "invoice", "csv": "invoice",
}
DEFAULT_DOCUMENT_TYPE = "other"


def document_type_for(filename: str) -> str:
    ext = os.path.splitext(filename)[1].lstrip(".").lower()
    return DOCUMENT_TYPE_BY_EXTENSION.get(ext, DEFAULT_DOCUMENT_TYPE)


def upload_message(name: str) -> str:
    return f"📎 {name} uploaded"


def document_to_dict(document: Document) -> Dict[str, Any]:
    uploader = document.uploader
    return {
        "id": document.id,
        "case_id": document.case_id,
        "user_id": document.user_id,
        "name": document.name,
        "type": document.type,
        "storage_path": document.storage_path,
        "size_bytes": document.size_bytes,
        "created_at": document.created_at.isoformat() if document.created_at else None,
        "uploader": {
            "id": uploader.id,
            "email": uploader.email,
            "full_name": uploader.full_name,
        } if uploader else None,
    }


def list_documents(db: Session, auth: AuthContext, case_id: str) -> List[Document]:
    """Documents of a case, newest first."""
    AuthService(db).require_case_access(auth, case_id)
    return (
        db.query(Document)
        .options(joinedload(Document.uploader))
        .filter(Document.case_id == case_id)
        .order_by(Document.created_at.desc())
        .all()
    )


def _get_visible_document(db: Session, auth: AuthContext, document_id: str) -> Document:
    document = db.query(Document).filter(Document.id == document_id).first()
    if not document:
        raise NotFoundError("Document not found")
    try:
        AuthService(db).require_case_access(auth, document.case_id)
    except NotFoundError:
        raise NotFoundError("Document not found")
    return document


def upload_document(
    db: Session,
    auth: AuthContext,
    case_id: str,
    filename: str,
    data: bytes,
    content_type: Optional[str] = None,
    storage=None,
) -> Document:
    """
    Store a file and record it against a case.

    Steps:
        1. Authorization gate and validation (nothing is written on failure)
        2. Blob write
        3. Metadata write; on failure the blob is deleted again
        4. System message announcing the upload
    """
    AuthService(db).require_case_access(auth, case_id)

    filename = os.path.basename((filename or "").replace("\\", "/")).strip()
    if not filename:
        raise ValidationError("File name is required")
    if not data:
        raise ValidationError("File is empty")
    max_bytes = get_settings().max_upload_bytes
    if len(data) > max_bytes:
        raise ValidationError(f"File too large (max {max_bytes // (1024 * 1024)} MB)")

    storage = storage or get_storage()
    storage_key = storage.generate_key(case_id, auth.user_id, filename)

    try:
        meta = storage.put(storage_key, data, content_type)
    except StorageError as e:
        logger.error(f"Blob upload failed for case {case_id}: {e}")
        raise ExternalServiceError("Failed to upload file")

    document = Document(
        case_id=case_id,
        user_id=auth.user_id,
        name=filename,
        type=document_type_for(filename),
        storage_path=storage_key,
        size_bytes=meta.size_bytes,
    )
    try:
        db.add(document)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning(f"Metadata write failed for {storage_key}, removing blob: {e}")
        _remove_orphan_blob(storage, storage_key)
        raise ExternalServiceError("Failed to save document")

    db.refresh(document)
    logger.info(f"Document {document.id} uploaded to case {case_id} by {auth.user_id}")

    try:
        append_message(db, case_id, auth.user_id, upload_message(filename), MessageType.SYSTEM)
    except ExternalServiceError as e:
        logger.warning(f"Upload message for document {document.id} not posted: {e}")

    return document


def _remove_orphan_blob(storage, storage_key: str) -> None:
    # Deleting an absent blob is a no-op, so this is safe to repeat
    try:
        storage.delete(storage_key)
    except StorageError as e:
        logger.error(f"Orphan blob left behind at {storage_key}: {e}")


def create_download_link(db: Session, auth: AuthContext, document_id: str, storage=None) -> Dict[str, Any]:
    """Time-boxed retrieval handle for a document. No bytes are returned."""
    document = _get_visible_document(db, auth, document_id)
    expires_in = get_settings().signed_url_expire_seconds
    storage = storage or get_storage()
    try:
        url = storage.create_signed_url(document.storage_path, document.name, expires_in)
    except StorageError as e:
        logger.error(f"Signing failed for document {document_id}: {e}")
        raise ExternalServiceError("Failed to create download link")
    return {"url": url, "filename": document.name, "expires_in": expires_in}


def delete_document(db: Session, auth: AuthContext, document_id: str, storage=None) -> None:
    """Uploader or admin only. Blob first, then metadata."""
    document = _get_visible_document(db, auth, document_id)
    if not can_delete_document(document, auth):
        logger.warning(f"Permission denied: {auth.user_id} cannot delete document {document_id}")
        raise PermissionDeniedError("Only the uploader or an admin can delete this document")

    storage = storage or get_storage()
    try:
        storage.delete(document.storage_path)
    except StorageError as e:
        logger.error(f"Blob delete failed for document {document_id}, keeping metadata: {e}")
        raise ExternalServiceError("Failed to delete file")

    try:
        db.delete(document)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise ExternalServiceError(f"Failed to delete document: {e}")
    logger.info(f"Document {document_id} deleted by {auth.user_id}")
