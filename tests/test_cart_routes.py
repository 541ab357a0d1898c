from decimal import Decimal


def test_guest_cart_gets_cookie_and_persists(client, make_product):
    product = make_product(inclusions=[("Warranty", "5000")])
    inclusion_id = product.inclusions[0].id

    res = client.post("/cart/add", json={"product_id": product.id, "quantity": 1, "inclusion_ids": [inclusion_id]})
    assert res.status_code == 200
    assert client.cookies.get("cart_guest_id")
    body = res.json()
    assert body["identity"].startswith("guest:")
    assert Decimal(body["total"]) == Decimal("155000.00")
    assert Decimal(body["lines"][0]["line_total"]) == Decimal("155000.00")

    again = client.get("/cart")
    assert Decimal(again.json()["total"]) == Decimal("155000.00")


def test_price_snapshot_comes_from_catalog(client, make_product, customer_headers):
    product = make_product(price="6500.00")

    res = client.post("/cart/add", json={"product_id": product.id, "quantity": 2}, headers=customer_headers)
    line = res.json()["lines"][0]
    assert line["name"] == product.name
    assert Decimal(line["unit_price"]) == Decimal("6500.00")
    assert line["quantity"] == 2


def test_user_cart_is_separate_from_guest_cart(client, make_product, customer, customer_headers):
    chair = make_product(name="Chair")
    scaler = make_product(name="Scaler", price="9800.00")

    client.post("/cart/add", json={"product_id": chair.id})
    client.post("/cart/add", json={"product_id": scaler.id}, headers=customer_headers)

    guest = client.get("/cart").json()
    mine = client.get("/cart", headers=customer_headers).json()
    assert [l["product_id"] for l in guest["lines"]] == [chair.id]
    assert [l["product_id"] for l in mine["lines"]] == [scaler.id]
    assert mine["identity"] == str(customer.id)


def test_update_and_remove_items(client, make_product, customer_headers):
    chair = make_product(name="Chair", price="100.00")
    light = make_product(name="Curing Light", price="40.00")
    client.post("/cart/add", json={"product_id": chair.id}, headers=customer_headers)
    client.post("/cart/add", json={"product_id": light.id}, headers=customer_headers)

    res = client.put(f"/cart/items/{light.id}", json={"quantity": 3}, headers=customer_headers)
    assert Decimal(res.json()["total"]) == Decimal("220.00")

    res = client.delete(f"/cart/items/{chair.id}", headers=customer_headers)
    assert [l["product_id"] for l in res.json()["lines"]] == [light.id]
    assert Decimal(res.json()["total"]) == Decimal("120.00")


def test_quantity_below_one_is_rejected(client, make_product, customer_headers):
    product = make_product()
    client.post("/cart/add", json={"product_id": product.id}, headers=customer_headers)
    res = client.put(f"/cart/items/{product.id}", json={"quantity": 0}, headers=customer_headers)
    assert res.status_code == 422


def test_clear_cart(client, make_product, customer_headers):
    product = make_product()
    client.post("/cart/add", json={"product_id": product.id}, headers=customer_headers)

    res = client.delete("/cart", headers=customer_headers)
    assert res.json()["lines"] == []
    assert client.get("/cart", headers=customer_headers).json()["lines"] == []


def test_unknown_product_is_404(client, customer_headers):
    res = client.post("/cart/add", json={"product_id": 999}, headers=customer_headers)
    assert res.status_code == 404
    assert res.json()["error"] == "product_not_found"


def test_foreign_inclusion_is_rejected(client, make_product, customer_headers):
    chair = make_product(name="Chair", inclusions=[("Warranty", "5000")])
    xray = make_product(name="X-Ray", inclusions=[("Apron", "3500")])

    res = client.post(
        "/cart/add",
        json={"product_id": chair.id, "inclusion_ids": [xray.inclusions[0].id]},
        headers=customer_headers,
    )
    assert res.status_code == 400
    assert res.json()["error"] == "invalid_inclusion"
