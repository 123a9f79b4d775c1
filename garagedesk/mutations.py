"""
At most one in-flight mutation per (kind, entity, action).

A second submit of the same action on the same record while the first is
still running is refused instead of being sent twice.
"""
import logging
import threading
from contextlib import contextmanager

from .audit import log_audit
from .errors import ConflictError, MutationInFlightError

logger = logging.getLogger(__name__)


class MutationGuard:
    def __init__(self):
        self._lock = threading.Lock()
        self._held = set()

    def is_held(self, key) -> bool:
        with self._lock:
            return key in self._held

    @contextmanager
    def hold(self, key):
        with self._lock:
            if key in self._held:
                raise MutationInFlightError(key)
            self._held.add(key)
        try:
            yield
        finally:
            with self._lock:
                self._held.discard(key)


def run_mutation(repo, guard, kind, entity_id, action, fn, also_invalidate=()):
    """
    guard -> call -> invalidate -> audit.

    The record and its lists are invalidated after success and also after a
    ConflictError, so the next read shows the server's state.
    """
    key = (kind, entity_id, action)
    with guard.hold(key):
        try:
            result = fn()
        except ConflictError:
            repo.invalidate(kind, entity_id)
            raise

        repo.invalidate(kind, entity_id)
        for other in also_invalidate:
            repo.invalidate(other)

        new_id = entity_id
        if new_id is None and result is not None:
            new_id = _record_id(result)
        log_audit(kind, new_id, action)
        return result


def _record_id(record):
    for attr in ("quotation_id", "invoice_id", "payment_id", "product_id", "id"):
        val = getattr(record, attr, None)
        if val:
            return val
    return None
