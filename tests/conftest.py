import itertools
from datetime import date, datetime
from decimal import Decimal

import pytest

from config import TestConfig
from garagedesk import create_app
from garagedesk.errors import AuthenticationError, NotFoundError
from garagedesk.schemas import (
    RECORD_TYPES, AuthResult, Client, Invoice, JobCard, Payment, Product, Quotation, Vehicle,
    parse,
)
from garagedesk.services.lifecycle import QuotationStatus
from garagedesk.services.payments import REFUNDED

ID_FIELDS = {
    "quotations": "quotationId",
    "invoices": "invoiceId",
    "products": "productId",
    "jobcards": "id",
    "clients": "id",
    "vehicles": "id",
}


def record_id(kind, record):
    return getattr(record, {"quotations": "quotation_id", "invoices": "invoice_id",
                            "products": "product_id"}.get(kind, "id"))


class FakeGateway:
    """In-memory stand-in for ApiGateway with the same method surface."""

    def __init__(self):
        self.records = {kind: {} for kind in ID_FIELDS}
        self.payments = {}
        self.calls = []
        self.fail_next = None
        self._seq = itertools.count(1)

    # helpers for tests
    def add(self, kind, record):
        self.records[kind][record_id(kind, record)] = record
        return record

    def add_payment(self, invoice_id, amount, status="COMPLETED"):
        p = Payment(payment_id=f"pay-{next(self._seq)}", invoice_id=invoice_id,
                    amount=Decimal(str(amount)), payment_date=date.today(), status=status)
        self.payments.setdefault(invoice_id, []).append(p)
        return p

    def count(self, *call):
        return sum(1 for c in self.calls if c[:len(call)] == call)

    def _mutate(self, *call):
        self.calls.append(call)
        if self.fail_next is not None:
            exc, self.fail_next = self.fail_next, None
            raise exc

    def _one(self, kind, rid):
        try:
            return self.records[kind][rid]
        except KeyError:
            raise NotFoundError(f"{kind} {rid} not found.")

    def _store(self, kind, data):
        rec = parse(RECORD_TYPES[kind], data)
        return self.add(kind, rec)

    # reads
    def fetch_collection(self, kind, filters=None):
        self.calls.append(("list", kind))
        return list(self.records[kind].values())

    def fetch_one(self, kind, rid):
        self.calls.append(("get", kind, rid))
        return self._one(kind, rid)

    def fetch_payments(self, invoice_id):
        self.calls.append(("payments", invoice_id))
        return list(self.payments.get(invoice_id, []))

    # generic mutations
    def create_record(self, kind, payload):
        self._mutate("create", kind)
        data = payload.model_dump(by_alias=True)
        data[ID_FIELDS[kind]] = f"{kind[:3]}-{next(self._seq)}"
        return self._store(kind, data)

    def update_record(self, kind, rid, payload):
        self._mutate("update", kind, rid)
        data = self._one(kind, rid).model_dump(by_alias=True)
        data.update(payload.model_dump(by_alias=True, exclude_none=True))
        return self._store(kind, data)

    def delete_record(self, kind, rid):
        self._mutate("delete", kind, rid)
        self._one(kind, rid)
        del self.records[kind][rid]

    def transition_status(self, kind, rid, new_status, notes=None):
        self._mutate("status", kind, rid, getattr(new_status, "value", new_status))
        rec = self._one(kind, rid).model_copy(update={"status": new_status})
        return self.add(kind, rec)

    # payments
    def record_payment(self, invoice_id, payload):
        self._mutate("pay", invoice_id)
        p = Payment(payment_id=f"pay-{next(self._seq)}", invoice_id=invoice_id,
                    amount=payload.amount, payment_method=payload.payment_method,
                    payment_date=payload.payment_date)
        self.payments.setdefault(invoice_id, []).append(p)
        return p

    def refund_payment(self, payment_id, reason=None):
        self._mutate("refund", payment_id)
        for rows in self.payments.values():
            for i, p in enumerate(rows):
                if p.payment_id == payment_id:
                    rows[i] = p.model_copy(update={"status": REFUNDED})
                    return rows[i]
        raise NotFoundError(f"Payment {payment_id} not found.")

    # documents
    def send_invoice(self, invoice_id):
        self._mutate("send", invoice_id)

    def convert_quotation(self, quotation_id, job_card_id=None):
        self._mutate("convert", quotation_id)
        rec = self._one("quotations", quotation_id).model_copy(
            update={"status": QuotationStatus.CONVERTED, "converted_to_job_card": True})
        return self.add("quotations", rec)

    # inventory
    def adjust_stock(self, payload):
        self._mutate("adjust", payload.product_id)
        p = self._one("products", payload.product_id)
        kind = payload.adjustment_type.value
        if kind == "IN":
            level = p.stock_level + payload.quantity
        elif kind == "OUT":
            level = max(0, p.stock_level - payload.quantity)
        else:
            level = payload.quantity
        return self.add("products", p.model_copy(update={"stock_level": level}))

    # job cards
    def _card(self, card_id, **update):
        return self.add("jobcards", self._one("jobcards", card_id).model_copy(update=update))

    def freeze_jobcard(self, card_id, reason=None):
        self._mutate("freeze", card_id)
        return self._card(card_id, date_and_time_frozen=datetime.now())

    def unfreeze_jobcard(self, card_id):
        self._mutate("unfreeze", card_id)
        return self._card(card_id, date_and_time_frozen=None)

    def close_jobcard(self, card_id, notes=None):
        self._mutate("close", card_id)
        return self._card(card_id, date_and_time_closed=datetime.now())

    def set_priority(self, card_id, priority):
        self._mutate("priority", card_id)
        return self._card(card_id, priority=priority)

    # session
    def authenticate(self, username, password):
        self.calls.append(("auth", username))
        if password != "secret":
            raise AuthenticationError("Invalid username or password.")
        return AuthResult(access_token="tok-123", user_id="u1", name="Tendai Moyo", role="ADMIN")


# -------------------------
# record builders
# -------------------------
def item(qty="1", price="10", **kw):
    return {"description": kw.pop("description", "Oil filter"), "quantity": qty,
            "unitPrice": price, **kw}


def quotation(qid="q1", **kw):
    data = {"quotationId": qid, "quotationNumber": f"QT-{qid}", "clientId": "c1",
            "clientName": "Tendai", "clientSurname": "Moyo", "status": "DRAFT",
            "taxRate": "15", "items": [item("2", "45.99")]}
    data.update(kw)
    return Quotation.model_validate(data)


def invoice(iid="i1", **kw):
    data = {"invoiceId": iid, "invoiceNumber": f"INV-{iid}", "clientId": "c1",
            "clientName": "Tendai Moyo", "status": "SENT", "taxRate": "0",
            "invoiceDate": date.today().isoformat(), "dueDate": date.today().isoformat(),
            "items": [item("1", "100")]}
    data.update(kw)
    return Invoice.model_validate(data)


def product(pid="p1", stock=10, minimum=5, **kw):
    data = {"productId": pid, "productCode": f"SKU-{pid}", "productName": "Brake pad",
            "unitPrice": "25.00", "costPrice": "15.00", "stockLevel": stock,
            "minStockLevel": minimum}
    data.update(kw)
    return Product.model_validate(data)


def jobcard(cid="j1", **kw):
    data = {"id": cid, "jobCardName": "Tendai Moyo - Toyota Hilux", "clientId": "c1",
            "vehicleId": "v1", "serviceAdvisorId": "e1", "supervisorId": "e2"}
    data.update(kw)
    return JobCard.model_validate(data)


def client_rec(cid="c1", **kw):
    data = {"id": cid, "clientName": "Tendai", "clientSurname": "Moyo", "phone": "0771000000"}
    data.update(kw)
    return Client.model_validate(data)


def vehicle(vid="v1", **kw):
    data = {"id": vid, "make": "Toyota", "model": "Hilux", "registrationNumber": "ABC1234",
            "clientId": "c1"}
    data.update(kw)
    return Vehicle.model_validate(data)


# -------------------------
# fixtures
# -------------------------
@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def app(gateway):
    return create_app(TestConfig, gateway=gateway)


@pytest.fixture
def repository(app):
    return app.extensions["garagedesk"]["repository"]


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def auth_client(client):
    resp = client.post("/login", json={"username": "tendai", "password": "secret"})
    assert resp.status_code == 200
    return client


def flashes(client):
    return client.get("/notifications").get_json()
