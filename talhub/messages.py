"""
Case message feed.

Messages are append-only: there is no edit or delete path. Every insert is
announced on the case channel so open views can refresh.
"""

import logging
from typing import List, Dict, Any

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from .auth import AuthContext, AuthService
from .db.models import Message, MessageType
from .errors import ExternalServiceError, ValidationError
from .realtime import get_hub, MESSAGE_INSERTED

logger = logging.getLogger(__name__)


def message_to_dict(message: Message) -> Dict[str, Any]:
    sender = message.sender
    return {
        "id": message.id,
        "case_id": message.case_id,
        "sender_id": message.sender_id,
        "type": message.type.value,
        "content": message.content,
        "created_at": message.created_at.isoformat() if message.created_at else None,
        "sender": {
            "id": sender.id,
            "email": sender.email,
            "full_name": sender.full_name,
            "role": sender.role.value,
        } if sender else None,
    }


def list_messages(db: Session, auth: AuthContext, case_id: str) -> List[Message]:
    """Full history, oldest first."""
    AuthService(db).require_case_access(auth, case_id)
    return fetch_messages(db, case_id)


def fetch_messages(db: Session, case_id: str) -> List[Message]:
    # Callers must have run the authorization gate for case_id
    return (
        db.query(Message)
        .options(joinedload(Message.sender))
        .filter(Message.case_id == case_id)
        .order_by(Message.created_at.asc(), Message.id.asc())
        .all()
    )


def append_message(db: Session, case_id: str, sender_id: str, content: str,
                   message_type: MessageType = MessageType.TEXT) -> Message:
    """Insert a message and announce it. No authorization check."""
    message = Message(case_id=case_id, sender_id=sender_id, type=message_type, content=content)
    try:
        db.add(message)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise ExternalServiceError(f"Failed to send message: {e}")
    db.refresh(message)

    get_hub().publish(case_id, MESSAGE_INSERTED, {"message_id": message.id})
    return message


def send_message(db: Session, auth: AuthContext, case_id: str, content: str,
                 message_type: str = MessageType.TEXT.value) -> Message:
    AuthService(db).require_case_access(auth, case_id)

    content = (content or "").strip()
    if not content:
        raise ValidationError("Message content is required")
    try:
        message_type = MessageType(message_type)
    except ValueError:
        raise ValidationError(f"Invalid message type {message_type!r}")

    return append_message(db, case_id, auth.user_id, content, message_type)


def message_stats(db: Session, auth: AuthContext, case_id: str) -> Dict[str, Any]:
    AuthService(db).require_case_access(auth, case_id)
    total, last_at = (
        db.query(func.count(Message.id), func.max(Message.created_at))
        .filter(Message.case_id == case_id)
        .one()
    )
    return {
        "total_messages": total,
        "last_message_at": last_at.isoformat() if last_at else None,
    }
