import asyncio

import pytest

from dentalshop.models.product import Product
from dentalshop.schemas.payment import PaymentVerification
from dentalshop.services import orders as order_service
from dentalshop.services.errors import (
    OrderNotFoundError, OrderStateError, PaymentMismatchError, PaymentNotConfirmedError, PaymentVerificationError
)
from dentalshop.services.payments import apply_payment, reconcile_payment


@pytest.fixture()
def products(make_product):
    return (
        make_product(name="Dental Chair DC-500", price="150000.00", stock=5, inclusions=[("Warranty", "5000")]),
        make_product(name="High Speed Handpiece", price="6500.00", stock=10),
    )


@pytest.fixture()
def order(db_session, products, cart_line, customer, customer_info):
    chair, handpiece = products
    created, _ = order_service.create_order(
        db_session, [cart_line(chair), cart_line(handpiece, quantity=3)], customer_info, customer
    )
    return created


def _stock(db, product_id):
    db.expire_all()
    return db.get(Product, product_id).stock


def _reconcile(db, provider, order_id, payment_id="cs_test_1"):
    return asyncio.run(reconcile_payment(db, provider, payment_id, order_id))


def test_confirmed_payment_marks_paid_and_decrements_stock(db_session, fake_provider, order, products):
    chair, handpiece = products
    fake_provider.metadata = {"order_id": str(order.id)}
    fake_provider.amount_minor = int(order.total * 100)

    result = _reconcile(db_session, fake_provider, order.id)

    assert result.success is True
    assert result.status == "paid"
    assert result.already_paid is False
    assert _stock(db_session, chair.id) == 4
    assert _stock(db_session, handpiece.id) == 7

    paid = order_service.get_order(db_session, order.id)
    assert paid.status == "paid"
    assert paid.payment_info["payment_intent_id"] == "pi_test_1"
    assert paid.payment_info["reference_id"] == "cs_test_1"


def test_reconciling_twice_decrements_stock_once(db_session, fake_provider, order, products):
    chair, handpiece = products

    first = _reconcile(db_session, fake_provider, order.id)
    second = _reconcile(db_session, fake_provider, order.id)

    assert first.already_paid is False
    assert second.already_paid is True
    assert second.status == "paid"
    assert _stock(db_session, chair.id) == 4
    assert _stock(db_session, handpiece.id) == 7
    # The settled order short-circuits before asking the provider again
    assert len(fake_provider.retrieve_calls) == 1


def test_shipped_order_is_a_noop(db_session, fake_provider, order, products):
    _reconcile(db_session, fake_provider, order.id)
    order_service.change_status(db_session, order_service.get_order(db_session, order.id), "shipped")

    result = _reconcile(db_session, fake_provider, order.id)

    assert result.already_paid is True
    assert result.status == "shipped"
    assert _stock(db_session, products[0].id) == 4


def test_unconfirmed_payment_leaves_order_pending(db_session, fake_provider, order, products):
    fake_provider.status = "awaiting_payment_method"

    with pytest.raises(PaymentNotConfirmedError) as exc:
        _reconcile(db_session, fake_provider, order.id)

    assert exc.value.extra["provider_status"] == "awaiting_payment_method"
    assert order_service.get_order(db_session, order.id).status == "pending"
    assert _stock(db_session, products[0].id) == 5


def test_provider_outage_leaves_order_pending(db_session, fake_provider, order, products):
    fake_provider.retrieve_error = PaymentVerificationError("Payment provider timed out")

    with pytest.raises(PaymentVerificationError):
        _reconcile(db_session, fake_provider, order.id)
    assert order_service.get_order(db_session, order.id).status == "pending"


def test_payment_for_another_order_is_refused(db_session, fake_provider, order, products):
    fake_provider.metadata = {"order_id": str(order.id + 100)}

    with pytest.raises(PaymentMismatchError):
        _reconcile(db_session, fake_provider, order.id)
    assert order_service.get_order(db_session, order.id).status == "pending"


def test_amount_mismatch_is_refused(db_session, fake_provider, order, products):
    fake_provider.amount_minor = 100

    with pytest.raises(PaymentMismatchError):
        _reconcile(db_session, fake_provider, order.id)
    assert _stock(db_session, products[1].id) == 10


def test_cancelled_order_cannot_be_paid(db_session, fake_provider, order):
    order_service.change_status(db_session, order, "cancelled")

    with pytest.raises(OrderStateError):
        _reconcile(db_session, fake_provider, order.id)
    assert fake_provider.retrieve_calls == []


def test_unknown_order(db_session, fake_provider):
    with pytest.raises(OrderNotFoundError):
        _reconcile(db_session, fake_provider, 9999)


def test_oversell_is_applied_exactly(db_session, fake_provider, make_product, cart_line, customer, customer_info):
    light = make_product(name="LED Curing Light", price="4200.00", stock=1)
    order, _ = order_service.create_order(db_session, [cart_line(light, quantity=3)], customer_info, customer)

    _reconcile(db_session, fake_provider, order.id)

    assert _stock(db_session, light.id) == -2


def _verification(reference_id="cs_rival"):
    return PaymentVerification(reference_id=reference_id, status="succeeded", succeeded=True, payment_intent_id="pi_rival")


def test_apply_payment_on_stale_order_reports_lost_race(db_session, order, products):
    chair, handpiece = products
    stale = order_service.get_order(db_session, order.id)

    assert apply_payment(db_session, stale, _verification()) is True
    assert apply_payment(db_session, stale, _verification("cs_late")) is False

    assert _stock(db_session, chair.id) == 4
    assert _stock(db_session, handpiece.id) == 7
    settled = order_service.get_order(db_session, order.id)
    assert settled.status == "paid"
    assert settled.payment_info["reference_id"] == "cs_rival"


def test_payment_settled_while_verifying_is_a_noop(db_session, fake_provider, order, products):
    chair, handpiece = products

    def rival_settles(identifier):
        apply_payment(db_session, order_service.get_order(db_session, order.id), _verification())
    fake_provider.on_retrieve = rival_settles

    result = _reconcile(db_session, fake_provider, order.id)

    assert result.success is True
    assert result.already_paid is True
    assert result.status == "paid"
    assert _stock(db_session, chair.id) == 4
    assert _stock(db_session, handpiece.id) == 7


def test_order_cancelled_while_verifying_is_refused(db_session, fake_provider, order, products):
    def admin_cancels(identifier):
        order_service.change_status(db_session, order_service.get_order(db_session, order.id), "cancelled")
    fake_provider.on_retrieve = admin_cancels

    with pytest.raises(OrderStateError) as exc:
        _reconcile(db_session, fake_provider, order.id)

    assert exc.value.extra["status"] == "cancelled"
    assert _stock(db_session, products[0].id) == 5
