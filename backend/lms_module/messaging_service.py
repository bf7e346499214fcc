import logging

from sqlalchemy import or_
from sqlalchemy.orm import Session

from .errors import NotFound
from .models import Account, Announcement, Message, SchoolClass

logger = logging.getLogger(__name__)


def send_message(db: Session, *, sender: Account, receiver_id: int, content: str) -> Message:
    if not db.query(Account).filter(Account.id == receiver_id).first():
        raise NotFound("Receiver not found")
    message = Message(sender_id=sender.id, receiver_id=receiver_id, content=content)
    db.add(message)
    db.commit()
    db.refresh(message)
    return message


def list_messages(db: Session, *, account: Account) -> list[Message]:
    return (
        db.query(Message)
        .filter(or_(Message.sender_id == account.id, Message.receiver_id == account.id))
        .order_by(Message.created_at.desc(), Message.id.desc())
        .all()
    )


def post_announcement(db: Session, *, class_id: int, author: Account, content: str) -> Announcement:
    if not db.query(SchoolClass).filter(SchoolClass.id == class_id).first():
        raise NotFound("Class not found")
    announcement = Announcement(class_id=class_id, teacher_id=author.id, content=content)
    db.add(announcement)
    db.commit()
    db.refresh(announcement)
    logger.info(f"Announcement id={announcement.id} posted to class id={class_id}")
    return announcement


def list_announcements(db: Session, *, class_id: int) -> list[Announcement]:
    return (
        db.query(Announcement)
        .filter(Announcement.class_id == class_id)
        .order_by(Announcement.created_at.desc(), Announcement.id.desc())
        .all()
    )
