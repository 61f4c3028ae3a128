"""Tests for order creation, line-item edits, status transitions and deletion."""

from concurrent.futures import ThreadPoolExecutor

import pytest
from conftest import items, stock
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import sessionmaker

from order_service.core.errors import (
    EmptyOrder, Forbidden, InsufficientStock, InvalidStatus, NotFound, VariantNotFound, VoucherInvalid,
)
from order_service.db.models import Order, OrderItem, OrderStatus, ProductVariant, Voucher
from order_service.db.session import Base
from order_service.services import orders, pricing, vouchers
from order_service.services.policy import Principal, Role


def _expected_total(db, order):
    db.expire_all()
    order = db.get(Order, order.id)
    return max(0, sum(i.unit_price_cents * i.qty for i in order.items) - pricing.voucher_discount(order.voucher))


def _order_count(db):
    return db.execute(select(func.count(Order.id))).scalar_one()


@pytest.fixture()
def pending_order(db, catalog, customer):
    return orders.create_order(db, customer, items((catalog["A"], 2), (catalog["B"], 1)))


class TestCreateOrder:
    def test_scenario_a_total_without_voucher(self, db, catalog, customer):
        order = orders.create_order(db, customer, items((catalog["A"], 2), (catalog["B"], 1)))
        assert order.total_cents == 250
        assert order.status == OrderStatus.PENDING
        assert order.user_id == customer.user_id
        assert order.voucher_id is None
        assert [(i.variant_id, i.qty, i.unit_price_cents) for i in order.items] == [
            (catalog["A"], 2, 100),
            (catalog["B"], 1, 50),
        ]

    def test_scenario_b_voucher_discount(self, db, catalog, customer, make_voucher):
        v = make_voucher(code="SAVE80", discount_cents=80, quantity=3)
        order = orders.create_order(db, customer, items((catalog["A"], 2), (catalog["B"], 1)), voucher_code="SAVE80")
        assert order.total_cents == 170
        assert order.voucher_id == v.id
        db.expire_all()
        assert db.get(Voucher, v.id).quantity == 2

    def test_scenario_c_discount_larger_than_subtotal(self, db, catalog, customer, make_voucher):
        make_voucher(code="BIG", discount_cents=500)
        order = orders.create_order(db, customer, items((catalog["A"], 2), (catalog["B"], 1)), voucher_code="BIG")
        assert order.total_cents == 0

    def test_customer_fields_are_stored(self, db, catalog, customer):
        order = orders.create_order(db, customer, items((catalog["A"], 1)), customer_name="Lan",
                                    phone="0901", address="12 Hang Bac", note="ring twice")
        assert (order.customer_name, order.phone, order.address, order.note) == ("Lan", "0901", "12 Hang Bac", "ring twice")

    def test_creation_does_not_touch_stock(self, db, catalog, customer):
        orders.create_order(db, customer, items((catalog["A"], 2)))
        assert stock(db, catalog["A"]) == 10

    def test_empty_order_is_rejected(self, db, customer):
        with pytest.raises(EmptyOrder):
            orders.create_order(db, customer, [])
        assert _order_count(db) == 0

    def test_unknown_variant_rejects_the_whole_order(self, db, catalog, customer, make_voucher):
        make_voucher(code="SAVE80", quantity=1)
        with pytest.raises(VariantNotFound):
            orders.create_order(db, customer, items((catalog["A"], 1), (777, 1)), voucher_code="SAVE80")
        assert _order_count(db) == 0
        db.expire_all()
        assert vouchers_left(db, "SAVE80") == 1

    def test_invalid_voucher_aborts_creation(self, db, catalog, customer, make_voucher):
        make_voucher(code="DEAD", is_active=False)
        with pytest.raises(VoucherInvalid):
            orders.create_order(db, customer, items((catalog["A"], 1)), voucher_code="DEAD")
        assert _order_count(db) == 0

    def test_price_is_a_snapshot(self, db, catalog, customer, pending_order):
        db.get(ProductVariant, catalog["A"]).price_cents = 999
        db.commit()
        item = pending_order.items[0]
        updated, total = orders.update_item(db, customer, pending_order.id, item.id, qty=3)
        assert updated.unit_price_cents == 100
        assert total == 350


def vouchers_left(db, code):
    return db.execute(select(Voucher.quantity).where(Voucher.code == code)).scalar_one()


class TestLineItems:
    def test_add_item_recomputes_total(self, db, catalog, customer, pending_order):
        item, total = orders.add_item(db, customer, pending_order.id, catalog["B"], 3)
        assert item.id and item.unit_price_cents == 50 and item.order_id == pending_order.id
        assert total == 400
        assert total == _expected_total(db, pending_order)

    def test_add_unknown_variant(self, db, customer, pending_order):
        with pytest.raises(VariantNotFound):
            orders.add_item(db, customer, pending_order.id, 12345, 1)
        assert _expected_total(db, pending_order) == 250

    def test_update_quantity(self, db, customer, pending_order):
        item = pending_order.items[1]
        updated, total = orders.update_item(db, customer, pending_order.id, item.id, qty=4)
        assert updated.qty == 4
        assert total == 400 == _expected_total(db, pending_order)

    def test_update_variant_resnapshots_price(self, db, catalog, customer, pending_order):
        item = pending_order.items[0]
        updated, total = orders.update_item(db, customer, pending_order.id, item.id, variant_id=catalog["B"])
        assert (updated.variant_id, updated.unit_price_cents) == (catalog["B"], 50)
        assert total == 150

    def test_update_to_unknown_variant_changes_nothing(self, db, customer, pending_order):
        item = pending_order.items[0]
        with pytest.raises(VariantNotFound):
            orders.update_item(db, customer, pending_order.id, item.id, variant_id=555, qty=9)
        db.expire_all()
        assert db.get(OrderItem, item.id).qty == 2

    def test_update_missing_item(self, db, customer, pending_order):
        with pytest.raises(NotFound):
            orders.update_item(db, customer, pending_order.id, 9999, qty=1)

    def test_remove_item(self, db, customer, pending_order):
        item = pending_order.items[1]
        assert orders.remove_item(db, customer, pending_order.id, item.id) == 200
        assert db.get(OrderItem, item.id) is None
        assert _expected_total(db, pending_order) == 200

    def test_cannot_remove_last_item(self, db, catalog, customer):
        order = orders.create_order(db, customer, items((catalog["A"], 1)))
        with pytest.raises(EmptyOrder):
            orders.remove_item(db, customer, order.id, order.items[0].id)

    def test_total_keeps_voucher_discount_through_edits(self, db, catalog, customer, make_voucher):
        make_voucher(code="SAVE80", discount_cents=80)
        order = orders.create_order(db, customer, items((catalog["A"], 2), (catalog["B"], 1)), voucher_code="SAVE80")
        _, total = orders.add_item(db, customer, order.id, catalog["A"], 1)
        assert total == 270
        _, total = orders.update_item(db, customer, order.id, order.items[0].id, qty=1)
        assert total == 170 == _expected_total(db, order)
        assert orders.remove_item(db, customer, order.id, order.items[0].id) == 70

    def test_recompute_reads_the_voucher_discount_at_edit_time(self, db, catalog, customer, staff, make_voucher):
        v = make_voucher(code="SAVE80", discount_cents=80)
        order = orders.create_order(db, customer, items((catalog["A"], 2), (catalog["B"], 1)), voucher_code="SAVE80")
        vouchers.update_voucher(db, staff, v.id, {"discount_cents": 250})
        db.expire_all()
        assert db.get(Order, order.id).total_cents == 170
        _, total = orders.update_item(db, customer, order.id, order.items[0].id, qty=2)
        assert total == 0 == _expected_total(db, order)

    def test_other_customer_cannot_edit(self, db, other_customer, pending_order):
        with pytest.raises(Forbidden):
            orders.update_item(db, other_customer, pending_order.id, pending_order.items[0].id, qty=1)

    def test_scenario_e_owner_blocked_on_paid_order_staff_allowed(self, db, customer, staff, pending_order):
        orders.set_status(db, staff, pending_order.id, "PAID")
        item_id = pending_order.items[1].id
        with pytest.raises(Forbidden):
            orders.remove_item(db, customer, pending_order.id, item_id)
        assert orders.remove_item(db, staff, pending_order.id, item_id) == 200

    def test_missing_order(self, db, customer):
        with pytest.raises(NotFound):
            orders.add_item(db, customer, 4040, 1, 1)


class TestStatusTransitions:
    def test_pay_takes_stock(self, db, catalog, staff, pending_order):
        order = orders.set_status(db, staff, pending_order.id, "PAID")
        assert order.status == OrderStatus.PAID
        assert stock(db, catalog["A"]) == 8
        assert stock(db, catalog["B"]) == 9

    def test_status_is_case_insensitive(self, db, admin, pending_order):
        assert orders.set_status(db, admin, pending_order.id, "paid").status == OrderStatus.PAID

    def test_scenario_d_short_stock_aborts_without_partial_decrement(self, db, catalog, customer, staff):
        db.get(ProductVariant, catalog["A"]).in_stock = 1
        db.commit()
        order = orders.create_order(db, customer, items((catalog["A"], 2), (catalog["B"], 1)))
        with pytest.raises(InsufficientStock) as exc:
            orders.set_status(db, staff, order.id, "PAID")
        assert exc.value.variant_id == catalog["A"]
        assert stock(db, catalog["A"]) == 1
        assert stock(db, catalog["B"]) == 10
        assert db.get(Order, order.id).status == OrderStatus.PENDING

    def test_earlier_decrements_are_rolled_back(self, db, catalog, customer, staff):
        # A is adjusted before B; B is short, so A must come back
        db.get(ProductVariant, catalog["B"]).in_stock = 0
        db.commit()
        order = orders.create_order(db, customer, items((catalog["A"], 2), (catalog["B"], 1)))
        with pytest.raises(InsufficientStock) as exc:
            orders.set_status(db, staff, order.id, "PAID")
        assert exc.value.variant_id == catalog["B"]
        assert stock(db, catalog["A"]) == 10
        assert stock(db, catalog["B"]) == 0

    def test_scenario_f_cancel_restores_stock_once(self, db, catalog, staff, pending_order):
        orders.set_status(db, staff, pending_order.id, "PAID")
        orders.set_status(db, staff, pending_order.id, "CANCELLED")
        assert stock(db, catalog["A"]) == 10
        assert stock(db, catalog["B"]) == 10
        with pytest.raises(InvalidStatus):
            orders.set_status(db, staff, pending_order.id, "CANCELLED")
        assert stock(db, catalog["A"]) == 10

    def test_customer_cannot_transition(self, db, customer, pending_order):
        with pytest.raises(Forbidden):
            orders.set_status(db, customer, pending_order.id, "PAID")

    def test_unknown_status_value(self, db, staff, pending_order):
        with pytest.raises(InvalidStatus):
            orders.set_status(db, staff, pending_order.id, "SHIPPED")

    def test_missing_order(self, db, staff):
        with pytest.raises(NotFound):
            orders.set_status(db, staff, 4040, "PAID")

    @pytest.mark.parametrize("current", list(OrderStatus))
    @pytest.mark.parametrize("requested", list(OrderStatus))
    def test_transition_table_is_total(self, current, requested):
        if (current, requested) in {(OrderStatus.PENDING, OrderStatus.PAID), (OrderStatus.PAID, OrderStatus.CANCELLED)}:
            orders.check_transition(current, requested)
        else:
            with pytest.raises(InvalidStatus):
                orders.check_transition(current, requested)

    def test_pending_cannot_jump_to_cancelled(self, db, catalog, staff, pending_order):
        with pytest.raises(InvalidStatus):
            orders.set_status(db, staff, pending_order.id, "CANCELLED")
        assert stock(db, catalog["A"]) == 10

    def test_cancellation_keeps_voucher_use(self, db, catalog, customer, staff, make_voucher):
        make_voucher(code="ONCE", quantity=1)
        order = orders.create_order(db, customer, items((catalog["A"], 1)), voucher_code="ONCE")
        orders.set_status(db, staff, order.id, "PAID")
        orders.set_status(db, staff, order.id, "CANCELLED")
        assert vouchers_left(db, "ONCE") == 0


def test_concurrent_payments_take_stock_once(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'pay.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(engine)
    Session = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    staff = Principal(user_id=1, role=Role.STAFF)
    with Session() as s:
        s.add(ProductVariant(id=1, sku="A", price_cents=100, in_stock=10))
        s.commit()
        order_id = orders.create_order(s, Principal(user_id=10, role=Role.USER), items((1, 3))).id

    def attempt(_):
        with Session() as s:
            try:
                orders.set_status(s, staff, order_id, "PAID")
                return "ok"
            except InvalidStatus:
                return "invalid"

    with ThreadPoolExecutor(max_workers=4) as pool:
        results = list(pool.map(attempt, range(4)))

    assert results.count("ok") == 1
    with Session() as s:
        assert s.get(ProductVariant, 1).in_stock == 7
    engine.dispose()


class TestDeleteOrder:
    def test_owner_deletes_pending_order_with_items(self, db, catalog, customer, pending_order):
        item_ids = [i.id for i in pending_order.items]
        orders.delete_order(db, customer, pending_order.id)
        db.expire_all()
        assert db.get(Order, pending_order.id) is None
        assert all(db.get(OrderItem, i) is None for i in item_ids)
        assert stock(db, catalog["A"]) == 10

    def test_owner_cannot_delete_paid_order(self, db, customer, staff, pending_order):
        orders.set_status(db, staff, pending_order.id, "PAID")
        with pytest.raises(Forbidden):
            orders.delete_order(db, customer, pending_order.id)
        orders.delete_order(db, staff, pending_order.id)
        assert _order_count(db) == 0

    def test_delete_missing(self, db, admin):
        with pytest.raises(NotFound):
            orders.delete_order(db, admin, 1)


class TestReads:
    def test_list_my_orders(self, db, catalog, customer, other_customer):
        mine = orders.create_order(db, customer, items((catalog["A"], 1)))
        orders.create_order(db, other_customer, items((catalog["B"], 1)))
        assert [o.id for o in orders.list_orders_for_user(db, customer)] == [mine.id]

    def test_list_all_requires_staff(self, db, catalog, customer, staff):
        orders.create_order(db, customer, items((catalog["A"], 1)))
        with pytest.raises(Forbidden):
            orders.list_all_orders(db, customer)
        assert len(orders.list_all_orders(db, staff)) == 1
        assert orders.list_all_orders(db, staff, status="PAID") == []

    def test_get_order_visibility(self, db, customer, other_customer, staff, pending_order):
        assert orders.get_order(db, customer, pending_order.id).id == pending_order.id
        assert orders.get_order(db, staff, pending_order.id).id == pending_order.id
        with pytest.raises(Forbidden):
            orders.get_order(db, other_customer, pending_order.id)
