# services/user_service.py
import uuid

from sqlalchemy.orm import Session

from core.logging import logger
from models import User


def get_or_create_user(db: Session, *, user_id: str, email: str) -> User:
    """
    Local mirror of an auth-backend user.
    Rows share the auth user's id; created the first time a session is seen.
    """
    uid = uuid.UUID(str(user_id))
    user = db.get(User, uid)
    if user:
        if email and user.email != email:
            user.email = email
            db.commit()
        return user

    user = User(id=uid, email=email)
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("Created user id=%s email=%s", user.id, user.email)
    return user
