"""
HTTP adapter to the workshop API.

The API owns persistence and re-validates every mutation. This module only
maps requests/responses to domain records and HTTP failures to the error
taxonomy in ``errors.py``. It never retries.
"""
import logging
from collections import namedtuple

import requests

from .errors import (
    AuthenticationError, ConflictError, NetworkError, NotFoundError, ValidationError,
)
from .schemas import RECORD_TYPES, AuthResult, Payment, Product, StatusUpdate, parse, parse_many

logger = logging.getLogger(__name__)

Resource = namedtuple("Resource", ["base", "list", "one", "create", "update", "delete", "status"])

RESOURCES = {
    "quotations": Resource("/quotations", "/all", "/{id}", "/new", "/update/{id}", "/delete/{id}", "/{id}/status"),
    "invoices": Resource("/invoices", "/all", "/{id}", "/new", "/update/{id}", "/delete/{id}", "/{id}/status"),
    "products": Resource("/products", "/all", "/{id}", "/new", "/update/{id}", "/delete/{id}", None),
    "jobcards": Resource("/jobCards", "/all", "/get/{id}", "/new", "/update/{id}", None, "/status/{id}"),
    "clients": Resource("/clients", "/all", "/get/{id}", "/new", "/update/{id}", "/delete/{id}", None),
    "vehicles": Resource("/vehicles", "/all", "/get/{id}", "/new", "/update/{id}", "/delete/{id}", None),
}


def _resource(kind: str) -> Resource:
    try:
        return RESOURCES[kind]
    except KeyError:
        raise ValueError(f"Unknown record kind: {kind}")


def _rows(data):
    # list endpoints answer either a bare list or a page object
    if isinstance(data, dict):
        for key in ("content", "data", "items"):
            if isinstance(data.get(key), list):
                return data[key]
        return []
    return data or []


def _error_body(resp):
    try:
        data = resp.json()
    except ValueError:
        return (resp.text or resp.reason or "").strip(), {}
    if not isinstance(data, dict):
        return str(data), {}
    message = data.get("message") or data.get("error") or data.get("detail") or ""
    fields = data.get("errors") or data.get("fieldErrors") or {}
    if not isinstance(fields, dict):
        fields = {"__root__": str(fields)}
    return str(message), fields


class ApiGateway:
    def __init__(self, base_url: str, timeout: float = 10, token_provider=None, session=None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.token_provider = token_provider
        self.session = session or requests.Session()
        self.session.headers.update({"Content-Type": "application/json"})

    # -------------------------
    # transport
    # -------------------------
    def _headers(self, path: str):
        headers = {}
        if self.token_provider and path != "/auth":
            token = self.token_provider()
            if token:
                headers["Authorization"] = f"Bearer {token}"
        return headers

    def _request(self, method: str, path: str, json=None, params=None):
        url = f"{self.base_url}{path}"
        logger.debug("%s %s", method, url)
        try:
            resp = self.session.request(
                method, url, json=json, params=params,
                headers=self._headers(path), timeout=self.timeout,
            )
        except requests.Timeout:
            logger.warning("%s %s timed out after %ss", method, url, self.timeout)
            raise NetworkError("The server did not respond in time.")
        except requests.RequestException as e:
            logger.warning("%s %s failed: %s", method, url, e)
            raise NetworkError("Could not reach the server.")

        logger.debug("%s %s -> %s", method, url, resp.status_code)
        if resp.status_code >= 400:
            self._raise_for(resp, method, url)

        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError:
            return resp.text

    def _raise_for(self, resp, method, url):
        status = resp.status_code
        message, fields = _error_body(resp)
        logger.warning("%s %s -> %s %s", method, url, status, message)

        if status in (400, 422):
            raise ValidationError(message or "The server rejected the request.",
                                  fields=fields, remote=True)
        if status == 401:
            raise AuthenticationError(message or "Your session has expired.")
        if status == 404:
            raise NotFoundError(message or "Record not found.")
        if status == 409:
            raise ConflictError(message or "The record was changed by someone else.")
        if status >= 500:
            raise NetworkError(message or "The server failed to process the request.")
        raise ValidationError(message or f"Request failed ({status}).", fields=fields, remote=True)

    def _path(self, kind: str, attr: str, record_id=None) -> str:
        res = _resource(kind)
        tail = getattr(res, attr)
        if tail is None:
            raise ValueError(f"{kind} has no {attr} endpoint")
        return res.base + tail.format(id=record_id)

    # -------------------------
    # generic records
    # -------------------------
    def fetch_collection(self, kind: str, filters=None):
        params = {k: v for k, v in (filters or {}).items() if v not in (None, "")}
        data = self._request("GET", self._path(kind, "list"), params=params or None)
        return parse_many(RECORD_TYPES[kind], _rows(data), remote=True)

    def fetch_one(self, kind: str, record_id: str):
        data = self._request("GET", self._path(kind, "one", record_id))
        if data is None:
            raise NotFoundError(f"{kind[:-1].capitalize()} {record_id} not found.")
        return parse(RECORD_TYPES[kind], data, remote=True)

    def create_record(self, kind: str, payload):
        data = self._request("POST", self._path(kind, "create"), json=payload.to_wire())
        return parse(RECORD_TYPES[kind], data, remote=True)

    def update_record(self, kind: str, record_id: str, payload):
        data = self._request("PUT", self._path(kind, "update", record_id), json=payload.to_wire())
        return parse(RECORD_TYPES[kind], data, remote=True)

    def delete_record(self, kind: str, record_id: str):
        self._request("DELETE", self._path(kind, "delete", record_id))

    def transition_status(self, kind: str, record_id: str, new_status, notes=None):
        body = StatusUpdate(status=getattr(new_status, "value", new_status), notes=notes or None)
        data = self._request("PUT", self._path(kind, "status", record_id), json=body.to_wire())
        return parse(RECORD_TYPES[kind], data, remote=True)

    # -------------------------
    # payments
    # -------------------------
    def record_payment(self, invoice_id: str, payload):
        body = payload.to_wire()
        body["invoiceId"] = invoice_id
        data = self._request("POST", "/payments/process", json=body)
        return parse(Payment, data, remote=True)

    def fetch_payments(self, invoice_id: str):
        data = self._request("GET", f"/payments/invoice/{invoice_id}")
        return parse_many(Payment, _rows(data), remote=True)

    def refund_payment(self, payment_id: str, reason=None):
        body = {"reason": reason} if reason else None
        data = self._request("POST", f"/payments/refund/{payment_id}", json=body)
        return parse(Payment, data, remote=True) if isinstance(data, dict) else None

    # -------------------------
    # document actions
    # -------------------------
    def send_invoice(self, invoice_id: str):
        self._request("POST", f"/invoices/{invoice_id}/send")

    def convert_quotation(self, quotation_id: str, job_card_id=None):
        params = {"jobCardId": job_card_id} if job_card_id else None
        data = self._request("POST", f"/quotations/{quotation_id}/convert-to-job-card", params=params)
        return parse(RECORD_TYPES["quotations"], data, remote=True) if isinstance(data, dict) else None

    # -------------------------
    # inventory
    # -------------------------
    def adjust_stock(self, payload):
        data = self._request("POST", "/products/adjust-stock", json=payload.to_wire())
        return parse(Product, data, remote=True)

    # -------------------------
    # job cards
    # -------------------------
    def freeze_jobcard(self, card_id: str, reason=None):
        data = self._request("PUT", f"/jobCards/freeze/{card_id}", json={"reason": reason})
        return parse(RECORD_TYPES["jobcards"], data, remote=True)

    def unfreeze_jobcard(self, card_id: str):
        data = self._request("PUT", f"/jobCards/unfreeze/{card_id}")
        return parse(RECORD_TYPES["jobcards"], data, remote=True)

    def close_jobcard(self, card_id: str, notes=None):
        data = self._request("PUT", f"/jobCards/close/{card_id}", json={"notes": notes})
        return parse(RECORD_TYPES["jobcards"], data, remote=True)

    def set_priority(self, card_id: str, priority: bool):
        data = self._request("PUT", f"/jobCards/priority/{card_id}", json={"priority": bool(priority)})
        return parse(RECORD_TYPES["jobcards"], data, remote=True)

    # -------------------------
    # session
    # -------------------------
    def authenticate(self, username: str, password: str) -> AuthResult:
        data = self._request("POST", "/auth", json={"username": username, "password": password})
        return parse(AuthResult, data, remote=True)
