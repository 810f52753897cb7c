"""
Document API Endpoints
======================

- GET    /api/v1/cases/{case_id}/documents   - List documents
- POST   /api/v1/cases/{case_id}/documents   - Upload a document (multipart field 'file')
- GET    /api/v1/documents/{doc_id}/download - Time-boxed download link
- DELETE /api/v1/documents/{doc_id}          - Delete (uploader or admin)
- GET    /api/v1/storage/{token}             - Serve a signed local-storage handle
"""

import logging
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from fastapi.responses import Response
from sqlalchemy.orm import Session

from . import documents as document_service
from .auth import AuthContext, STORAGE_TOKEN, decode_token
from .deps import get_db_dependency, require_auth
from .schemas import DownloadLinkResponse
from .storage import LocalStorage, StorageError, get_storage

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Documents"])


@router.get("/cases/{case_id}/documents")
async def list_documents(case_id: str, auth: AuthContext = Depends(require_auth),
                         db: Session = Depends(get_db_dependency)):
    documents = document_service.list_documents(db, auth, case_id)
    return [document_service.document_to_dict(d) for d in documents]


@router.post("/cases/{case_id}/documents", status_code=201)
async def upload_document(
    case_id: str,
    file: UploadFile = File(...),
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db_dependency),
):
    """
    Upload a file to a case.

    The blob is stored first, then the metadata row; a system message
    announces the upload in the case feed.
    """
    data = await file.read()
    document = document_service.upload_document(
        db, auth, case_id,
        filename=file.filename or "",
        data=data,
        content_type=file.content_type,
    )
    return document_service.document_to_dict(document)


@router.get("/documents/{doc_id}/download", response_model=DownloadLinkResponse)
async def download_document(doc_id: str, auth: AuthContext = Depends(require_auth),
                            db: Session = Depends(get_db_dependency)):
    """Return a signed URL valid for one hour, not the bytes themselves."""
    return document_service.create_download_link(db, auth, doc_id)


@router.delete("/documents/{doc_id}")
async def delete_document(doc_id: str, auth: AuthContext = Depends(require_auth),
                          db: Session = Depends(get_db_dependency)):
    document_service.delete_document(db, auth, doc_id)
    return {"message": "Document deleted successfully", "id": doc_id}


@router.get("/storage/{token}")
async def serve_signed_blob(token: str):
    """
    Serve a blob from local storage. The token itself is the authorization:
    it was minted for one path after the gate ran, and it expires.
    """
    payload = decode_token(token, STORAGE_TOKEN)
    if not payload or not payload.get("path"):
        raise HTTPException(status_code=404, detail="Link expired or invalid")

    storage = get_storage()
    if not isinstance(storage, LocalStorage):
        raise HTTPException(status_code=404, detail="Link expired or invalid")

    try:
        data = storage.get(payload["path"])
    except StorageError as e:
        logger.warning(f"Signed blob not readable: {e}")
        raise HTTPException(status_code=404, detail="File not found")

    filename = payload.get("filename") or "download"
    return Response(
        content=data,
        media_type="application/octet-stream",
        headers={"Content-Disposition": f"attachment; filename*=UTF-8''{quote(filename)}"},
    )
