from decimal import Decimal

import pytest

from dentalshop.models.order import Order, OrderItem, OrderItemInclusion
from dentalshop.schemas.cart import CartLine, SelectedInclusion
from dentalshop.schemas.order import CustomerInfo
from dentalshop.services import orders as order_service
from dentalshop.services.errors import (
    EmptyCartError, InvalidInclusionError, MissingCustomerFieldError, OrderNotFoundError, OrderStateError,
    ProductsUnavailableError, QuoteMismatchError
)


def _count(db, model):
    return db.query(model).count()


def test_create_order_copies_lines_and_inclusions(db_session, make_product, cart_line, customer, customer_info):
    product = make_product(price="150000.00", inclusions=[("Warranty", "5000")])

    order, created = order_service.create_order(db_session, [cart_line(product)], customer_info, customer)

    assert created is True
    assert order.status == "pending"
    assert order.total == Decimal("155000.00")
    assert order.customer_name == "Maria Santos"
    assert len(order.items) == 1
    item = order.items[0]
    assert item.price == Decimal("150000.00")
    assert item.quantity == 1
    assert [(inc.name, inc.price) for inc in item.included_items] == [("Warranty", Decimal("5000.00"))]


def test_create_order_does_not_touch_stock(db_session, make_product, cart_line, customer, customer_info):
    product = make_product(stock=5)
    order_service.create_order(db_session, [cart_line(product, quantity=2)], customer_info, customer)
    db_session.refresh(product)
    assert product.stock == 5


def test_missing_product_creates_nothing(db_session, make_product, cart_line, customer, customer_info):
    product = make_product()
    ghost = CartLine(product_id=4242, name="Discontinued unit", unit_price=Decimal("10.00"))

    with pytest.raises(ProductsUnavailableError) as exc:
        order_service.create_order(db_session, [cart_line(product), ghost], customer_info, customer)

    assert exc.value.extra["missing_product_ids"] == [4242]
    assert "4242" in exc.value.message
    assert _count(db_session, Order) == 0
    assert _count(db_session, OrderItem) == 0
    assert _count(db_session, OrderItemInclusion) == 0


def test_empty_cart_is_rejected(db_session, customer, customer_info):
    with pytest.raises(EmptyCartError):
        order_service.create_order(db_session, [], customer_info, customer)


def test_blank_customer_fields_are_reported(db_session, make_product, cart_line, customer):
    product = make_product()
    info = CustomerInfo(name="Maria", address="  ", mobile=None, zip_code="1200")

    with pytest.raises(MissingCustomerFieldError) as exc:
        order_service.create_order(db_session, [cart_line(product)], info, customer)

    assert exc.value.extra["fields"] == ["address", "mobile"]
    assert _count(db_session, Order) == 0


def test_empty_cart_is_checked_before_customer_info(db_session, customer):
    with pytest.raises(EmptyCartError):
        order_service.create_order(db_session, [], CustomerInfo(), customer)


def test_catalog_price_change_does_not_touch_existing_order(db_session, make_product, cart_line, customer, customer_info):
    product = make_product(price="150000.00", inclusions=[("Warranty", "5000")])
    order, _ = order_service.create_order(db_session, [cart_line(product)], customer_info, customer)

    product.price = Decimal("175000.00")
    product.inclusions[0].price = Decimal("9000.00")
    db_session.commit()

    reloaded = order_service.get_order(db_session, order.id)
    assert reloaded.total == Decimal("155000.00")
    assert reloaded.items[0].price == Decimal("150000.00")
    assert reloaded.items[0].included_items[0].price == Decimal("5000.00")


def test_quoted_price_is_kept_even_if_catalog_moved(db_session, make_product, cart_line, customer, customer_info):
    product = make_product(price="100.00")
    line = cart_line(product, quantity=2)
    product.price = Decimal("120.00")
    db_session.commit()

    order, _ = order_service.create_order(db_session, [line], customer_info, customer, quoted_lines=[line])
    assert order.total == Decimal("200.00")


def test_stale_price_without_saved_quote_is_rejected(db_session, make_product, cart_line, customer, customer_info):
    product = make_product(price="100.00")
    line = cart_line(product)
    product.price = Decimal("120.00")
    db_session.commit()

    with pytest.raises(QuoteMismatchError) as exc:
        order_service.create_order(db_session, [line], customer_info, customer)
    assert exc.value.extra["product_ids"] == [product.id]
    assert _count(db_session, Order) == 0


def test_made_up_unit_price_creates_nothing(db_session, make_product, cart_line, customer, customer_info):
    product = make_product(price="150000.00")
    cheap = cart_line(product).model_copy(update={"unit_price": Decimal("1.00")})

    with pytest.raises(QuoteMismatchError):
        order_service.create_order(db_session, [cheap], customer_info, customer, quoted_lines=[cart_line(product)])

    assert _count(db_session, Order) == 0
    assert _count(db_session, OrderItem) == 0


def test_made_up_inclusion_price_is_rejected(db_session, make_product, cart_line, customer, customer_info):
    product = make_product(inclusions=[("Warranty", "5000")])
    line = cart_line(product)
    free_warranty = line.model_copy(update={
        "selected_inclusions": [line.selected_inclusions[0].model_copy(update={"price": Decimal("0")})]
    })

    with pytest.raises(QuoteMismatchError):
        order_service.create_order(db_session, [free_warranty], customer_info, customer)
    assert _count(db_session, OrderItemInclusion) == 0


def test_foreign_or_unknown_inclusion_is_rejected(db_session, make_product, cart_line, customer, customer_info):
    chair = make_product(inclusions=[("Warranty", "5000")])
    xray = make_product(name="Portable X-Ray", price="80000.00", inclusions=[("Lead Apron", "2500")])

    borrowed = cart_line(chair, inclusions=xray.inclusions)
    with pytest.raises(InvalidInclusionError) as exc:
        order_service.create_order(db_session, [borrowed], customer_info, customer)
    assert exc.value.extra["inclusion_ids"] == [xray.inclusions[0].id]

    invented = CartLine(
        product_id=chair.id, name=chair.name, unit_price=Decimal("150000.00"),
        selected_inclusions=[SelectedInclusion(inclusion_id=99999, name="Gold plating", price=Decimal("0"))],
    )
    with pytest.raises(InvalidInclusionError):
        order_service.create_order(db_session, [invented], customer_info, customer)

    warranty = chair.inclusions[0]
    twice = cart_line(chair, inclusions=[warranty, warranty])
    with pytest.raises(InvalidInclusionError):
        order_service.create_order(db_session, [twice], customer_info, customer)
    assert _count(db_session, Order) == 0


def test_retry_with_same_cart_reuses_pending_order(db_session, make_product, cart_line, customer, customer_info):
    product = make_product()
    lines = [cart_line(product)]

    first, created_first = order_service.create_order(db_session, lines, customer_info, customer)
    second, created_second = order_service.create_order(db_session, lines, customer_info, customer)

    assert created_first is True
    assert created_second is False
    assert first.id == second.id
    assert _count(db_session, Order) == 1


def test_changed_cart_creates_new_order(db_session, make_product, cart_line, customer, customer_info):
    product = make_product()
    first, _ = order_service.create_order(db_session, [cart_line(product)], customer_info, customer)
    second, created = order_service.create_order(db_session, [cart_line(product, quantity=2)], customer_info, customer)

    assert created is True
    assert first.id != second.id


def test_fingerprint_ignores_line_order(customer_info):
    a = CartLine(product_id=1, name="A", unit_price=Decimal("1.00"))
    b = CartLine(product_id=2, name="B", unit_price=Decimal("2.00"))
    assert order_service.checkout_fingerprint(1, [a, b], customer_info) == \
        order_service.checkout_fingerprint(1, [b, a], customer_info)
    assert order_service.checkout_fingerprint(1, [a], customer_info) != \
        order_service.checkout_fingerprint(2, [a], customer_info)


def test_get_order_for_user_hides_foreign_orders(db_session, make_product, cart_line, customer, other_customer,
                                                 admin, customer_info):
    product = make_product()
    order, _ = order_service.create_order(db_session, [cart_line(product)], customer_info, customer)

    with pytest.raises(OrderNotFoundError):
        order_service.get_order_for_user(db_session, order.id, other_customer)
    assert order_service.get_order_for_user(db_session, order.id, admin).id == order.id
    with pytest.raises(OrderNotFoundError):
        order_service.get_order_for_user(db_session, order.id, admin, allow_admin=False)


def test_status_transitions(db_session, make_product, cart_line, customer, customer_info):
    product = make_product()
    order, _ = order_service.create_order(db_session, [cart_line(product)], customer_info, customer)

    with pytest.raises(OrderStateError):
        order_service.change_status(db_session, order, "shipped")
    with pytest.raises(OrderStateError):
        order_service.change_status(db_session, order, "paid")

    cancelled = order_service.change_status(db_session, order, "cancelled")
    assert cancelled.status == "cancelled"
    with pytest.raises(OrderStateError):
        order_service.change_status(db_session, cancelled, "pending")


def test_list_orders_pages_newest_first(db_session, make_product, cart_line, customer, other_customer, customer_info):
    product = make_product()
    for qty in (1, 2, 3):
        order_service.create_order(db_session, [cart_line(product, quantity=qty)], customer_info, customer)
    order_service.create_order(db_session, [cart_line(product)], customer_info, other_customer)

    rows, total = order_service.list_orders_for_user(db_session, customer, page=1, page_size=2)
    assert total == 3
    assert len(rows) == 2
    assert rows[0].id > rows[1].id

    rows, total = order_service.list_orders(db_session, status="pending")
    assert total == 4
