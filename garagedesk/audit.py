import logging

from flask import has_request_context
from flask_login import current_user

logger = logging.getLogger("garagedesk.audit")


def log_audit(entity, entity_id, action, field=None, old=None, new=None):
    try:
        user_id = None
        if has_request_context() and current_user.is_authenticated:
            user_id = current_user.id
        logger.info(
            "entity=%s id=%s action=%s field=%s old=%s new=%s by=%s",
            entity, entity_id, action, field,
            str(old) if old is not None else None,
            str(new) if new is not None else None,
            user_id,
        )
    except Exception:
        logging.getLogger(__name__).exception("audit log failed for %s %s", entity, entity_id)
