"""
Read-through cache in front of the API gateway.

Detail entries are keyed ``kind:detail:<id>``. List entries carry a
per-kind generation number, so bumping the generation drops every cached
list of that kind at once. Mutating code calls ``invalidate`` explicitly;
observers registered with ``subscribe`` are told about every invalidation.
"""
import json
import logging

logger = logging.getLogger(__name__)


class Repository:
    def __init__(self, gateway, cache, timeout=None):
        self.gateway = gateway
        self.cache = cache
        self.timeout = timeout
        self._observers = []

    # -------------------------
    # keys
    # -------------------------
    @staticmethod
    def _detail_key(kind, record_id):
        return f"{kind}:detail:{record_id}"

    @staticmethod
    def _gen_key(kind):
        return f"{kind}:gen"

    def _generation(self, kind):
        return self.cache.get(self._gen_key(kind)) or 0

    def _list_key(self, kind, filters):
        flt = json.dumps(filters or {}, sort_keys=True, default=str)
        return f"{kind}:list:{self._generation(kind)}:{flt}"

    # -------------------------
    # reads
    # -------------------------
    def _cached(self, key, loader):
        hit = self.cache.get(key)
        if hit is not None:
            return hit
        value = loader()
        self.cache.set(key, value, timeout=self.timeout)
        return value

    def list(self, kind, filters=None):
        return self._cached(self._list_key(kind, filters),
                            lambda: self.gateway.fetch_collection(kind, filters))

    def get(self, kind, record_id):
        return self._cached(self._detail_key(kind, record_id),
                            lambda: self.gateway.fetch_one(kind, record_id))

    def payments(self, invoice_id):
        return self._cached(self._detail_key("payments", invoice_id),
                            lambda: self.gateway.fetch_payments(invoice_id))

    def invoice_with_payments(self, invoice_id):
        inv = self.get("invoices", invoice_id)
        return inv.model_copy(update={"payments": self.payments(invoice_id)})

    def prime(self, kind, record_id, record):
        """Store a record the API just returned from a mutation."""
        self.cache.set(self._detail_key(kind, record_id), record, timeout=self.timeout)

    # -------------------------
    # invalidation
    # -------------------------
    def invalidate(self, kind, record_id=None):
        if record_id is not None:
            self.cache.delete(self._detail_key(kind, record_id))
        self.cache.set(self._gen_key(kind), self._generation(kind) + 1, timeout=0)
        logger.debug("invalidated %s %s", kind, record_id or "*")
        self._notify(kind, record_id)

    def invalidate_payments(self, invoice_id):
        self.cache.delete(self._detail_key("payments", invoice_id))
        self._notify("payments", invoice_id)

    def subscribe(self, callback):
        self._observers.append(callback)
        return callback

    def unsubscribe(self, callback):
        if callback in self._observers:
            self._observers.remove(callback)

    def _notify(self, kind, record_id):
        for cb in list(self._observers):
            try:
                cb(kind, record_id)
            except Exception:
                logger.exception("cache observer %r failed for %s %s", cb, kind, record_id)
