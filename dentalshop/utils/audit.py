# dentalshop/utils/audit.py
import logging
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from dentalshop.models.log import Log

logger = logging.getLogger(__name__)

def write_log(db: Session, *, user_id, action, resource, status="SUCCESS", ip=None, meta=None):
    entry = Log(user_id=user_id, action=action, resource=resource, status=status, ip=ip, meta=meta or {})
    db.add(entry)
    db.commit()


def write_log_safe(db: Session, **kwargs):
    """Audit write that runs after a committed business change and must not undo it."""
    try:
        write_log(db, **kwargs)
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("Failed to write audit log %s: %s", kwargs.get("action"), e)


def client_ip(request):
    return request.client.host if request is not None and request.client else None
