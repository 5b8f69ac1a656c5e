from storefront.common import database
from storefront.common.config import settings
from storefront.payments.gateway import GatewayError, GatewayTimeout, PaymentCheck, PaymentInit, notification_token
from storefront.payments.service import complete_order, split_name

from conftest import register


async def _shopper_with_cart(client, make_product, quantity=3, price="10.00"):
    prod = await make_product(price=price)
    await register(client)
    await client.post("/api/cart", json={"product_id": prod["id"], "quantity": quantity})
    return prod


async def _initiate(client, amount=3500, **extra):
    return await client.post("/api/payment/initiate", json={"amount": amount, "currency": "XOF", **extra})


def _accepted(transaction_id):
    return {
        "cpm_trans_id": transaction_id,
        "cpm_amount": "3500",
        "cpm_currency": "XOF",
        "cpm_result": "00",
        "cpm_trans_status": "ACCEPTED",
    }


def _refused(transaction_id):
    return {
        "cpm_trans_id": transaction_id,
        "cpm_amount": "3500",
        "cpm_currency": "XOF",
        "cpm_result": "600",
        "cpm_trans_status": "REFUSED",
    }


async def _order(client, order_id):
    return await (await client.get(f"/api/orders/{order_id}")).get_json()


def test_split_name():
    assert split_name("Awa Marie Traoré") == ("Awa", "Marie Traoré")
    assert split_name("Awa") == ("Awa", "")
    assert split_name("  ") == ("Client", "")


async def test_initiate_creates_pending_order(client, gateway, make_product):
    prod = await _shopper_with_cart(client, make_product)

    resp = await _initiate(client, description="Commande test")
    assert resp.status_code == 200
    data = await resp.get_json()
    assert data["success"] is True
    assert data["payment_url"] == "https://checkout.cinetpay.com/payment/abc123"
    assert data["payment_token"] == "abc123"
    assert data["transaction_id"].startswith("TXN_")

    order = await _order(client, data["order_id"])
    assert order["status"] == "pending"
    assert order["transaction_id"] == data["transaction_id"]
    assert order["total_amount"] == "3500.00"
    assert order["payment_method"] == "cinetpay"
    assert order["items"] == [{"product_id": prod["id"], "quantity": 3, "price": "10.00"}]

    call = gateway.init_calls[0]
    assert call["amount"] == 3500
    assert call["customer_name"] == "Awa"
    assert call["customer_surname"] == "Traoré"
    assert call["customer_email"] == "awa@example.com"
    assert call["customer_phone_number"] == settings.CINETPAY_DEFAULT_PHONE
    assert call["notify_url"] == "https://shop.example/api/payment/notify"
    assert call["return_url"] == "https://shop.example/payment/success"
    assert call["description"] == "Commande test"


async def test_initiate_forwards_customer_phone(client, gateway, make_product):
    await _shopper_with_cart(client, make_product)
    resp = await _initiate(client, customer_phone_number="+22507080910")
    assert resp.status_code == 200
    assert gateway.init_calls[0]["customer_phone_number"] == "+22507080910"


async def test_initiate_transaction_ids_are_unique(client, make_product):
    await _shopper_with_cart(client, make_product)
    first = await (await _initiate(client)).get_json()
    second = await (await _initiate(client)).get_json()
    assert first["transaction_id"] != second["transaction_id"]


async def test_gateway_refusal_creates_no_order(client, gateway, make_product):
    await _shopper_with_cart(client, make_product)
    gateway.init_result = PaymentInit(ok=False, code="608", message="MINIMUM_REQUIRED_FIELDS")

    resp = await _initiate(client)
    assert resp.status_code == 400
    data = await resp.get_json()
    assert data["success"] is False
    assert data["message"] == "MINIMUM_REQUIRED_FIELDS"
    assert await (await client.get("/api/orders")).get_json() == []


async def test_gateway_refusal_without_message_uses_default(client, gateway, make_product):
    await _shopper_with_cart(client, make_product)
    gateway.init_result = PaymentInit(ok=False, code="500")

    data = await (await _initiate(client)).get_json()
    assert data["message"] == "Erreur lors de l'initialisation du paiement"


async def test_gateway_timeout_is_retryable(client, gateway, make_product):
    await _shopper_with_cart(client, make_product)
    gateway.init_error = GatewayTimeout("slow")

    resp = await _initiate(client)
    assert resp.status_code == 504
    assert (await resp.get_json())["retryable"] is True
    assert await (await client.get("/api/orders")).get_json() == []


async def test_gateway_unreachable(client, gateway, make_product):
    await _shopper_with_cart(client, make_product)
    gateway.init_error = GatewayError("connection refused")

    resp = await _initiate(client)
    assert resp.status_code == 502
    assert await (await client.get("/api/orders")).get_json() == []


async def test_initiate_validates_amount(client, gateway, make_product):
    await _shopper_with_cart(client, make_product)
    for amount in (0, -10, "abc", 12.5):
        resp = await _initiate(client, amount=amount)
        assert resp.status_code == 400
    assert gateway.init_calls == []


async def test_initiate_requires_session(client):
    assert (await _initiate(client)).status_code == 401


async def test_notify_accepted_completes_order_and_clears_cart(client, make_product):
    await _shopper_with_cart(client, make_product)
    data = await (await _initiate(client)).get_json()

    resp = await client.post("/api/payment/notify", form=_accepted(data["transaction_id"]))
    assert resp.status_code == 200
    assert await resp.get_data(as_text=True) == "OK"

    assert (await _order(client, data["order_id"]))["status"] == "completed"
    assert await (await client.get("/api/cart")).get_json() == []


async def test_notify_accepts_json_body(client, make_product):
    await _shopper_with_cart(client, make_product)
    data = await (await _initiate(client)).get_json()

    resp = await client.post("/api/payment/notify", json=_accepted(data["transaction_id"]))
    assert resp.status_code == 200
    assert (await _order(client, data["order_id"]))["status"] == "completed"


async def test_notify_refused_fails_order_and_keeps_cart(client, make_product):
    await _shopper_with_cart(client, make_product)
    data = await (await _initiate(client)).get_json()

    await client.post("/api/payment/notify", form=_refused(data["transaction_id"]))
    assert (await _order(client, data["order_id"]))["status"] == "failed"
    assert len(await (await client.get("/api/cart")).get_json()) == 1


async def test_notify_without_outcome_leaves_order_pending(client, make_product):
    await _shopper_with_cart(client, make_product)
    data = await (await _initiate(client)).get_json()

    resp = await client.post(
        "/api/payment/notify",
        form={"cpm_trans_id": data["transaction_id"], "cpm_trans_status": "WAITING_CUSTOMER_PAYMENT"},
    )
    assert resp.status_code == 200
    assert await resp.get_data(as_text=True) == "OK"
    assert (await _order(client, data["order_id"]))["status"] == "pending"
    assert len(await (await client.get("/api/cart")).get_json()) == 1

    # a later accepted notification still settles it
    await client.post("/api/payment/notify", form=_accepted(data["transaction_id"]))
    assert (await _order(client, data["order_id"]))["status"] == "completed"


async def test_notify_error_code_without_status_fails_order(client, make_product):
    await _shopper_with_cart(client, make_product)
    data = await (await _initiate(client)).get_json()

    resp = await client.post(
        "/api/payment/notify",
        form={"cpm_trans_id": data["transaction_id"], "cpm_result": "600", "cpm_trans_status": ""},
    )
    assert resp.status_code == 200
    assert (await _order(client, data["order_id"]))["status"] == "failed"


async def test_notify_unknown_transaction_is_acknowledged(client, make_product):
    await _shopper_with_cart(client, make_product)
    data = await (await _initiate(client)).get_json()

    resp = await client.post("/api/payment/notify", form=_accepted("TXN_0_deadbeef"))
    assert resp.status_code == 200
    assert await resp.get_data(as_text=True) == "OK"
    assert (await _order(client, data["order_id"]))["status"] == "pending"
    assert len(await (await client.get("/api/cart")).get_json()) == 1


async def test_notify_malformed_is_acknowledged(client):
    resp = await client.post("/api/payment/notify", form={"cpm_result": "00"})
    assert resp.status_code == 200


async def test_notify_twice_has_no_second_side_effect(client, make_product):
    prod = await _shopper_with_cart(client, make_product)
    data = await (await _initiate(client)).get_json()
    await client.post("/api/payment/notify", form=_accepted(data["transaction_id"]))

    # the shopper starts a new cart; a redelivered notification must not wipe it
    await client.post("/api/cart", json={"product_id": prod["id"], "quantity": 1})
    resp = await client.post("/api/payment/notify", form=_accepted(data["transaction_id"]))
    assert resp.status_code == 200
    assert (await _order(client, data["order_id"]))["status"] == "completed"
    assert len(await (await client.get("/api/cart")).get_json()) == 1


async def test_terminal_status_is_never_overwritten(client, make_product):
    await _shopper_with_cart(client, make_product)
    data = await (await _initiate(client)).get_json()
    await client.post("/api/payment/notify", form=_accepted(data["transaction_id"]))
    await client.post("/api/payment/notify", form=_refused(data["transaction_id"]))
    assert (await _order(client, data["order_id"]))["status"] == "completed"


async def test_complete_order_is_idempotent(client, make_product):
    await _shopper_with_cart(client, make_product)
    data = await (await _initiate(client)).get_json()

    first = await complete_order(data["transaction_id"], source="test")
    second = await complete_order(data["transaction_id"], source="test")
    assert first["status"] == "completed"
    assert second is None
    order = await database.fetch_order_by_transaction(data["transaction_id"])
    assert order["status"] == "completed"


async def test_notify_token_checked_when_secret_configured(client, make_product, monkeypatch):
    monkeypatch.setattr(settings, "CINETPAY_SECRET_KEY", "s3cret")
    await _shopper_with_cart(client, make_product)
    data = await (await _initiate(client)).get_json()
    form = dict(_accepted(data["transaction_id"]), cpm_site_id="123456", cpm_trans_date="2024-05-01 10:00:00")

    bad = await client.post("/api/payment/notify", form=form, headers={"x-token": "forged"})
    assert bad.status_code == 403
    assert (await _order(client, data["order_id"]))["status"] == "pending"

    token = notification_token(form, "s3cret")
    good = await client.post("/api/payment/notify", form=form, headers={"x-token": token})
    assert good.status_code == 200
    assert (await _order(client, data["order_id"]))["status"] == "completed"


async def test_status_poll_completes_order(client, gateway, make_product):
    await _shopper_with_cart(client, make_product)
    data = await (await _initiate(client)).get_json()

    resp = await client.get(f"/api/payment/status/{data['transaction_id']}")
    assert resp.status_code == 200
    assert await resp.get_json() == {"success": True, "status": "ACCEPTED", "amount": "3500", "currency": "XOF"}
    assert gateway.check_calls == [data["transaction_id"]]
    assert (await _order(client, data["order_id"]))["status"] == "completed"
    assert await (await client.get("/api/cart")).get_json() == []


async def test_status_poll_pending_changes_nothing(client, gateway, make_product):
    await _shopper_with_cart(client, make_product)
    data = await (await _initiate(client)).get_json()
    gateway.check_result = PaymentCheck(ok=True, code="00", status="PENDING", amount="3500", currency="XOF")

    resp = await client.get(f"/api/payment/status/{data['transaction_id']}")
    assert (await resp.get_json())["status"] == "PENDING"
    assert (await _order(client, data["order_id"]))["status"] == "pending"


async def test_status_poll_only_touches_own_orders(client, app, make_product):
    await _shopper_with_cart(client, make_product)
    data = await (await _initiate(client)).get_json()

    other = app.test_client()
    await register(other, email="koffi@example.com", name="Koffi")
    resp = await other.get(f"/api/payment/status/{data['transaction_id']}")
    assert resp.status_code == 200
    assert (await _order(client, data["order_id"]))["status"] == "pending"
    assert len(await (await client.get("/api/cart")).get_json()) == 1


async def test_status_poll_not_found(client, gateway):
    await register(client)
    gateway.check_result = PaymentCheck(ok=False, code="627", message="TRANSACTION_NOT_FOUND")

    resp = await client.get("/api/payment/status/TXN_1_missing")
    assert resp.status_code == 200
    assert await resp.get_json() == {"success": False, "message": "TRANSACTION_NOT_FOUND"}


async def test_status_poll_timeout(client, gateway):
    await register(client)
    gateway.check_error = GatewayTimeout("slow")
    resp = await client.get("/api/payment/status/TXN_1_any")
    assert resp.status_code == 504


async def test_checkout_end_to_end(client, gateway, make_product):
    prod = await make_product(name="Produit A", price="10.00")
    await register(client)
    await client.post("/api/cart", json={"product_id": prod["id"], "quantity": 3})

    summary = await (await client.get("/api/cart/summary")).get_json()
    assert (summary["subtotal"], summary["shipping"], summary["total"]) == ("30.00", "5.00", "35.00")

    data = await (await _initiate(client, amount=3500)).get_json()
    assert data["success"] is True
    assert (await _order(client, data["order_id"]))["status"] == "pending"

    await client.post("/api/payment/notify", form=_accepted(data["transaction_id"]))
    assert (await _order(client, data["order_id"]))["status"] == "completed"
    assert await (await client.get("/api/cart")).get_json() == []

    orders = await (await client.get("/api/orders")).get_json()
    assert [o["id"] for o in orders] == [data["order_id"]]
