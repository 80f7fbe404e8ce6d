import logging
import os
from fastapi import APIRouter, Depends, HTTPException, Query, UploadFile, File, Form
from fastapi.responses import FileResponse
from sqlalchemy import desc
from sqlalchemy.orm import Session
from opsdesk.db.session import get_db
from opsdesk.core.auth import get_current_user, get_company_id, is_admin
from opsdesk.core.config import MAX_UPLOAD_MB
from opsdesk.models.models import Document, User
from opsdesk.services.storage_service import save_upload, remove_file, format_file_size, format_display_date
from opsdesk.api.common import respond, is_blank, iso

router = APIRouter(prefix="/api/v1/documents", tags=["documents"])

logger = logging.getLogger(__name__)


def _serialize_document(d: Document) -> dict:
    return {
        "id": d.id,
        "company_id": d.company_id,
        "user_id": d.user_id,
        "user_name": d.user.name if d.user else None,
        "title": d.title,
        "category": d.category,
        "description": d.description,
        "file_path": d.file_path,
        "file_name": d.file_name,
        "file_size": d.file_size,
        "file_type": d.file_type,
        "size": format_file_size(d.file_size) if d.file_size else "-",
        "date": format_display_date(d.created_at),
        "created_at": iso(d.created_at),
        "updated_at": iso(d.updated_at),
    }


def _visible_documents(user: User, db: Session):
    q = db.query(Document).filter(Document.company_id == get_company_id(user), Document.is_deleted == False)
    if not is_admin(user):
        q = q.filter(Document.user_id == user.id)
    return q


def _get_document_or_404(document_id: int, user: User, db: Session) -> Document:
    doc = _visible_documents(user, db).filter(Document.id == document_id).first()
    if not doc:
        raise HTTPException(status_code=404, detail="Document not found")
    return doc


@router.get("")
def list_documents(category: str = Query(None), user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    q = _visible_documents(user, db)
    if category:
        q = q.filter(Document.category == category)
    docs = q.order_by(desc(Document.created_at), desc(Document.id)).all()
    return respond([_serialize_document(d) for d in docs])


@router.get("/{document_id}")
def get_document(document_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return respond(_serialize_document(_get_document_or_404(document_id, user, db)))


@router.post("", status_code=201)
def upload_document(
    file: UploadFile = File(None),
    title: str = Form(None),
    category: str = Form(None),
    description: str = Form(None),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    company_id = get_company_id(user)
    if file is None or not file.filename:
        raise HTTPException(status_code=400, detail="File is required")
    if is_blank(title):
        raise HTTPException(status_code=400, detail="Title is required")

    file_path, size = save_upload(file, f"documents/{company_id}", MAX_UPLOAD_MB)
    doc = Document(
        company_id=company_id,
        user_id=user.id,
        title=title.strip(),
        category=category or None,
        file_path=file_path,
        file_name=file.filename,
        file_size=size,
        file_type=os.path.splitext(file.filename)[1].lower(),
        description=description or None,
    )
    db.add(doc)
    try:
        db.commit()
    except Exception:
        db.rollback()
        remove_file(file_path)
        raise
    db.refresh(doc)
    logger.info("Document %s uploaded by %s (%s bytes)", doc.id, user.id, size)
    return respond(_serialize_document(doc), message="Document uploaded successfully")


@router.delete("/{document_id}")
def delete_document(document_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    doc = _get_document_or_404(document_id, user, db)
    doc.is_deleted = True
    db.commit()
    remove_file(doc.file_path)
    return {"success": True, "message": "Document deleted successfully"}


@router.get("/{document_id}/download")
def download_document(document_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    doc = _get_document_or_404(document_id, user, db)
    if not doc.file_path:
        raise HTTPException(status_code=404, detail="File path not found")
    if not os.path.exists(doc.file_path):
        raise HTTPException(status_code=404, detail="File not found on server")
    return FileResponse(doc.file_path, filename=doc.file_name or "document")
