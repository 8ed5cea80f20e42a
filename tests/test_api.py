from bson import ObjectId

import main
from database import StoreError, StoreErrorKind
from schemas import MenuItem


def _open_cart(client, *item_ids):
    cart_id = client.post("/carts").json()["cart_id"]
    for item_id in item_ids:
        r = client.post(f"/carts/{cart_id}/items", json={"item_id": item_id})
        assert r.status_code == 200
    return cart_id


def test_root(client):
    assert client.get("/").json() == {"message": "Restaurant POS API running"}


def test_menu_listing(client):
    r = client.get("/menu")
    assert r.status_code == 200
    assert [m["name"] for m in r.json()] == ["Burger", "Fries", "Soda"]


def test_cart_voucher_checkout_flow(client, store):
    cart_id = _open_cart(client, "burger", "burger", "fries")

    r = client.post(f"/carts/{cart_id}/voucher", json={"code": "save20"})
    body = r.json()
    assert body["result"]["ok"] is True
    assert body["cart"]["subtotal"] == 25.0
    assert body["cart"]["discount_amount"] == 5.0
    assert body["cart"]["total"] == 20.0
    assert body["cart"]["active_discount"]["source"] == "voucher"

    r = client.post(f"/carts/{cart_id}/checkout")
    assert r.status_code == 200
    body = r.json()
    assert body["saved"] is True
    assert body["warnings"] == []
    assert body["order"]["appliedVoucherCode"] == "SAVE20"
    assert body["order"]["total"] == 20.0
    assert store.vouchers["v-save20"].times_used == 1

    # checkout leaves the cart for the caller to clear after printing
    assert client.get(f"/carts/{cart_id}").json()["cart"]["total"] == 20.0
    cleared = client.post(f"/carts/{cart_id}/clear").json()["cart"]
    assert cleared["items"] == []
    assert cleared["active_discount"]["source"] == "none"


def test_checkout_empty_cart(client):
    cart_id = _open_cart(client)
    r = client.post(f"/carts/{cart_id}/checkout")
    assert r.status_code == 400
    assert r.json()["detail"] == "Cart is empty."


def test_checkout_with_store_down_still_returns_order(client, store):
    cart_id = _open_cart(client, "fries")
    store.fail("persist_order")
    body = client.post(f"/carts/{cart_id}/checkout").json()
    assert body["saved"] is False
    assert "id" not in body["order"]
    assert body["order"]["token"].startswith("TKN-")
    assert body["warnings"]


def test_unknown_cart_and_item(client):
    assert client.get("/carts/nope").status_code == 404
    cart_id = _open_cart(client)
    r = client.post(f"/carts/{cart_id}/items", json={"item_id": "pizza"})
    assert r.status_code == 404


def test_quantity_and_removal(client):
    cart_id = _open_cart(client, "burger", "fries")
    cart = client.put(f"/carts/{cart_id}/items/burger", json={"quantity": 3}).json()["cart"]
    assert cart["subtotal"] == 35.0
    cart = client.delete(f"/carts/{cart_id}/items/fries").json()["cart"]
    assert cart["subtotal"] == 30.0


def test_loyal_conflict_is_a_notice(client):
    cart_id = _open_cart(client, "burger")
    client.put(f"/carts/{cart_id}/customer", json={"name": "Ana", "mobile": "01711000000"})
    body = client.post(f"/carts/{cart_id}/loyal-check", json={}).json()
    assert body["cart"]["active_discount"]["source"] == "loyal"

    r = client.post(f"/carts/{cart_id}/manual-discount", json={"discount_type": "fixed", "value": 2})
    assert r.status_code == 200
    assert r.json()["result"]["kind"] == "conflict"
    assert r.json()["cart"]["discount_amount"] == 3.0


def test_manual_discount_endpoints(client):
    cart_id = _open_cart(client, "burger")
    body = client.post(f"/carts/{cart_id}/manual-discount", json={"discount_type": "percentage", "value": 150}).json()
    assert body["result"]["kind"] == "rejected"

    body = client.post(f"/carts/{cart_id}/manual-discount", json={"discount_type": "percentage", "value": 50}).json()
    assert body["cart"]["total"] == 5.0
    body = client.delete(f"/carts/{cart_id}/manual-discount").json()
    assert body["cart"]["manual_discount"] == {"discount_type": "fixed", "value": 0.0}


def test_validate_voucher_endpoint(client):
    r = client.post("/vouchers/validate", json={"code": "", "subtotal": 10})
    assert r.json() == {"valid": False, "kind": "rejected", "error": "Please enter a voucher code.", "voucher": None}
    r = client.post("/vouchers/validate", json={"code": "SAVE20", "subtotal": 10})
    assert r.json()["valid"] is True


def test_loyal_lookup_endpoint(client):
    body = client.get("/loyal-discounts/lookup", params={"mobile": "01711000000"}).json()
    assert body["found"] is True
    assert body["discount"]["discount_value"] == 3


def test_store_failure_maps_to_503(client, store):
    store.fail("list_vouchers")
    r = client.get("/admin/vouchers")
    assert r.status_code == 503
    assert r.json()["kind"] == "unavailable"


def test_create_voucher_rejects_duplicate_code(client, monkeypatch):
    monkeypatch.setattr(main, "get_documents", lambda *a, **k: [{"_id": "existing"}])
    r = client.post("/admin/vouchers", json={"code": " Save20 ", "discount_type": "fixed", "discount_value": 5})
    assert r.status_code == 400
    assert r.json()["detail"] == 'Voucher code "Save20" already exists.'


def test_create_voucher_normalizes_code(client, monkeypatch):
    saved = {}
    new_id = str(ObjectId())

    def fake_create(collection, voucher):
        saved["collection"] = collection
        saved["voucher"] = voucher
        return new_id

    monkeypatch.setattr(main, "get_documents", lambda *a, **k: [])
    monkeypatch.setattr(main, "create_document", fake_create)
    r = client.post("/admin/vouchers", json={"code": " Lunch10 ", "discount_type": "percentage", "discount_value": 10})
    assert r.status_code == 200
    assert r.json() == {"_id": new_id}
    assert saved["collection"] == "voucher"
    assert saved["voucher"].code == "Lunch10"
    assert saved["voucher"].code_lower == "lunch10"
    assert saved["voucher"].times_used == 0


def test_create_voucher_rejects_bad_percentage(client):
    r = client.post("/admin/vouchers", json={"code": "BIG", "discount_type": "percentage", "discount_value": 120})
    assert r.status_code == 422


def test_update_voucher_never_writes_usage_counter(client, monkeypatch):
    voucher_id = str(ObjectId())
    existing = {
        "_id": voucher_id, "code": "SAVE20", "code_lower": "save20", "discount_type": "percentage",
        "discount_value": 20, "times_used": 7, "is_active": True,
    }
    written = {}
    monkeypatch.setattr(main, "get_document_by_id", lambda collection, _id: existing)
    monkeypatch.setattr(main, "update_document", lambda collection, _id, data: written.update(data) or True)

    r = client.put(f"/admin/vouchers/{voucher_id}", json={"is_active": False})
    assert r.status_code == 200
    assert written["is_active"] is False
    assert "times_used" not in written


def test_create_loyal_discount_rejects_duplicate_mobile(client, monkeypatch):
    monkeypatch.setattr(main, "get_documents", lambda *a, **k: [{"_id": "other"}])
    r = client.post(
        "/admin/loyal-discounts",
        json={"mobile_number": " 01711000000 ", "discount_type": "fixed", "discount_value": 3},
    )
    assert r.status_code == 400
    assert "01711000000" in r.json()["detail"]


def test_admin_store_error_from_helpers(client, monkeypatch):
    def down(*a, **k):
        raise StoreError(StoreErrorKind.PERMISSION_DENIED, "not authorized")

    monkeypatch.setattr(main, "get_documents", down)
    r = client.post("/admin/vouchers", json={"code": "X", "discount_type": "fixed", "discount_value": 1})
    assert r.status_code == 503
    assert r.json()["kind"] == "permission_denied"


def test_orders_listing(client):
    cart_id = _open_cart(client, "burger")
    order = client.post(f"/carts/{cart_id}/checkout").json()["order"]
    listed = client.get("/orders").json()
    assert [o["token"] for o in listed] == [order["token"]]
    assert client.get(f"/orders/{order['id']}").json()["total"] == 10.0
    assert client.get("/orders/missing").status_code == 404


def test_unavailable_item_cannot_be_added(client, store):
    store.menu["special"] = MenuItem(id="special", name="Special", price=12.0, is_available=False)
    cart_id = _open_cart(client)
    r = client.post(f"/carts/{cart_id}/items", json={"item_id": "special"})
    assert r.status_code == 400
    assert r.json()["detail"] == "Special is not available"
    assert client.get(f"/carts/{cart_id}").json()["cart"]["items"] == []


def test_checkout_with_close_releases_cart(client):
    cart_id = _open_cart(client, "burger")
    r = client.post(f"/carts/{cart_id}/checkout", params={"close": True})
    assert r.status_code == 200
    assert r.json()["order"]["total"] == 10.0
    assert cart_id not in main._carts
    assert client.get(f"/carts/{cart_id}").status_code == 404


def test_close_cart(client):
    cart_id = _open_cart(client)
    assert client.delete(f"/carts/{cart_id}").json() == {"deleted": True}
    assert cart_id not in main._carts
