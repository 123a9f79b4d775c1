from datetime import date, timedelta

from conftest import flashes, quotation

NEW = {
    "clientId": "c1",
    "items": [{"description": "Brake job", "quantity": 2, "unitPrice": 45.99}],
}


def test_create_applies_defaults_and_totals(auth_client, gateway):
    resp = auth_client.post("/quotations/", json=NEW)
    assert resp.status_code == 201
    data = resp.get_json()["data"]
    assert data["status"] == "DRAFT"
    assert data["taxRate"] == "15"
    assert data["validUntil"] == (date.today() + timedelta(days=30)).isoformat()
    assert data["subtotal"] == "91.98"
    assert data["totalAmount"] == "105.78"
    assert data["items"][0]["totalPrice"] == "91.98"
    assert data["actions"] == ["send"]
    assert {"category": "success", "message": "Quotation created (Draft) ✅"} in flashes(auth_client)
    assert gateway.count("create", "quotations") == 1


def test_create_without_items_is_rejected_locally(auth_client, gateway):
    resp = auth_client.post("/quotations/", json={"clientId": "c1", "items": []})
    assert resp.status_code == 422
    body = resp.get_json()
    assert body["view_state"] == "error"
    assert body["fields"] == {"items": "required"}
    assert body["remote"] is False
    assert gateway.count("create") == 0
    assert flashes(auth_client)[0]["category"] == "danger"


def test_create_rejects_discount_over_100(auth_client, gateway):
    resp = auth_client.post("/quotations/", json={**NEW, "discountPercentage": 120})
    assert resp.status_code == 422
    assert "discountPercentage" in resp.get_json()["fields"]
    assert gateway.count("create") == 0


def test_totals_preview(auth_client):
    resp = auth_client.post("/quotations/totals", json={
        "items": [{"quantity": "2", "unitPrice": "45.99"}], "taxRate": "15",
    })
    data = resp.get_json()["data"]
    assert data["exact"]["totalAmount"] == "105.777"
    assert data["display"]["totalAmount"] == "105.78"


def test_full_lifecycle_to_conversion(auth_client, gateway):
    gateway.add("quotations", quotation("q1"))

    r = auth_client.post("/quotations/q1/send")
    assert r.get_json()["data"]["status"] == "PENDING"
    r = auth_client.post("/quotations/q1/approve")
    assert r.get_json()["data"]["status"] == "APPROVED"
    r = auth_client.post("/quotations/q1/convert")
    data = r.get_json()["data"]
    assert data["status"] == "CONVERTED"
    assert data["convertedToJobCard"] is True

    again = auth_client.post("/quotations/q1/convert")
    assert again.status_code == 409
    assert gateway.count("convert", "q1") == 1


def test_illegal_transition_never_reaches_the_api(auth_client, gateway):
    gateway.add("quotations", quotation("q1", status="DRAFT"))
    resp = auth_client.post("/quotations/q1/approve")
    assert resp.status_code == 409
    assert "Cannot approve a quotation in status DRAFT" in resp.get_json()["error"]
    assert gateway.count("status") == 0


def test_expired_quotation_cannot_be_approved(auth_client, gateway):
    gateway.add("quotations", quotation(
        "q1", status="EXPIRED", validUntil=(date.today() - timedelta(days=2)).isoformat()))
    assert auth_client.post("/quotations/q1/approve").status_code == 409


def test_approved_quotation_is_locked(auth_client, gateway):
    gateway.add("quotations", quotation("q1", status="APPROVED"))
    resp = auth_client.put("/quotations/q1", json=NEW)
    assert resp.status_code == 422
    assert gateway.count("update") == 0


def test_pending_quotation_can_be_edited(auth_client, gateway):
    gateway.add("quotations", quotation("q1", status="PENDING"))
    resp = auth_client.put("/quotations/q1", json={**NEW, "notes": "Use OEM pads"})
    assert resp.status_code == 200
    assert resp.get_json()["data"]["notes"] == "Use OEM pads"


def test_list_filters_by_display_status(auth_client, gateway):
    yesterday = (date.today() - timedelta(days=1)).isoformat()
    gateway.add("quotations", quotation("q1", status="PENDING", validUntil=yesterday))
    gateway.add("quotations", quotation("q2", status="PENDING",
                                        validUntil=(date.today() + timedelta(days=9)).isoformat()))
    rows = auth_client.get("/quotations/?status=expired").get_json()["data"]
    assert [q["quotationId"] for q in rows] == ["q1"]
    assert rows[0]["displayStatus"] == "EXPIRED"
    assert rows[0]["status"] == "PENDING"


def test_list_empty_state(auth_client):
    body = auth_client.get("/quotations/").get_json()
    assert body == {"view_state": "empty", "data": []}


def test_missing_quotation(auth_client):
    resp = auth_client.get("/quotations/nope")
    assert resp.status_code == 404
    assert resp.get_json()["view_state"] == "not_found"


def test_metrics(auth_client, gateway):
    gateway.add("quotations", quotation("q1", status="APPROVED"))
    gateway.add("quotations", quotation("q2"))
    data = auth_client.get("/quotations/metrics").get_json()["data"]
    assert data["total"] == 2
    assert data["approved"] == 1
    assert data["approvalRate"] == "50.00"
    assert data["totalValue"] == "211.55"
