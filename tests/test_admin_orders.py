"""Tests for the admin order back-office: RBAC, listing, status changes and edits."""

import pytest
from sqlalchemy import select

from watchshop.errors import ErrorKind, OrderUpdateError
from watchshop.models import OrderStatusLog, User
from watchshop.services import order_admin
from watchshop.services.checkout import place_order
from watchshop.utils.enums import OrderStatus, UserRole

from .conftest import address, cart_line, login, stock_of


def _place(database, user_id, lines):
    session = database.session()
    try:
        return place_order(session, user_id, lines, address())
    finally:
        session.close()


def _status_log(database, order_id):
    session = database.session()
    try:
        rows = session.scalars(
            select(OrderStatusLog).where(OrderStatusLog.order_id == order_id).order_by(OrderStatusLog.id)
        ).all()
        return [(r.old_status, r.new_status, r.user) for r in rows]
    finally:
        session.close()


@pytest.fixture
def orders(database, catalog):
    """One order by Alice, one by Bob."""
    alice = _place(database, catalog.alice, [cart_line(catalog.submariner, "15000.00", 1)])
    bob = _place(database, catalog.bob, [cart_line(catalog.speedmaster, "4000.00", 2)])
    return alice, bob


@pytest.fixture
def admin(client, catalog):
    return login(client, catalog.admin, UserRole.ADMIN.value)


class TestAccess:
    def test_no_session(self, client):
        resp = client.get("/api/admin/orders")
        assert resp.status_code == 401
        assert resp.json()["error"] == "NOT_AUTHENTICATED"

    def test_customer_is_forbidden(self, client, catalog):
        login(client, catalog.alice)
        resp = client.get("/api/admin/orders")
        assert resp.status_code == 403
        assert resp.json()["error"] == "FORBIDDEN"

    def test_manager_may_manage_orders(self, client, catalog):
        login(client, catalog.bob, UserRole.MANAGER.value)
        assert client.get("/api/admin/orders").status_code == 200

    def test_admin(self, admin):
        assert admin.get("/api/admin/orders").status_code == 200


class TestListing:
    def test_lists_all_orders(self, admin, orders):
        data = admin.get("/api/admin/orders").json()

        assert data["pagination"] == {"page": 1, "per_page": 20, "total": 2, "pages": 1}
        assert {o["customer_email"] for o in data["orders"]} == {"alice@example.com", "bob@example.com"}

    @pytest.mark.parametrize("term", ["bob@", "Bob Stone", "stone"])
    def test_search_by_customer(self, admin, orders, term):
        data = admin.get("/api/admin/orders", params={"search": term}).json()

        assert [o["order_number"] for o in data["orders"]] == [orders[1].order_number]

    def test_search_by_order_number(self, admin, orders):
        number = orders[0].order_number
        data = admin.get("/api/admin/orders", params={"search": number[-6:]}).json()
        assert [o["order_number"] for o in data["orders"]] == [number]

    @pytest.mark.parametrize("term", ["%", "_", "%@%", "ORD_"])
    def test_wildcards_are_literal(self, admin, orders, term):
        data = admin.get("/api/admin/orders", params={"search": term}).json()

        assert data["orders"] == []
        assert data["pagination"]["total"] == 0

    def test_underscore_does_not_match_any_character(self, database, db, catalog, orders):
        session = database.session()
        try:
            session.get(User, catalog.bob).email = "bobXstone@example.com"
            session.commit()
        finally:
            session.close()

        assert order_admin.list_orders(db, search="bob_stone")["orders"] == []
        found = order_admin.list_orders(db, search="bobXstone")
        assert [o["id"] for o in found["orders"]] == [orders[1].id]

    def test_status_filter(self, admin, orders):
        admin.patch("/api/admin/orders/{0}/status".format(orders[0].id), json={"status": "processing"})

        data = admin.get("/api/admin/orders", params={"status": "processing"}).json()

        assert [o["id"] for o in data["orders"]] == [orders[0].id]

    def test_unknown_status_filter(self, admin):
        resp = admin.get("/api/admin/orders", params={"status": "lost"})
        assert resp.status_code == 400
        assert resp.json()["error"] == "INVALID_REQUEST"
        assert resp.json()["field"] == "status"

    def test_pagination(self, db, orders):
        first = order_admin.list_orders(db, page=1, per_page=1)
        second = order_admin.list_orders(db, page=2, per_page=1)

        assert first["pagination"]["pages"] == 2
        assert first["pagination"]["total"] == 2
        assert len(first["orders"]) == 1
        assert len(second["orders"]) == 1
        assert first["orders"][0]["id"] != second["orders"][0]["id"]


class TestDetail:
    def test_detail(self, admin, orders):
        order = admin.get("/api/admin/orders/{0}".format(orders[1].id)).json()["order"]

        assert order["customer_name"] == "Bob Stone"
        assert order["items"][0]["quantity"] == 2
        assert order["shipping_address"]["address_line_1"] == "12 Clockmaker Lane"
        assert order["flags"] == []

    def test_unknown_order(self, admin):
        resp = admin.get("/api/admin/orders/999")
        assert resp.status_code == 404
        assert resp.json()["error"] == "NOT_FOUND"


class TestStatusChanges:
    def _move(self, client, order_id, status, **extra):
        return client.patch("/api/admin/orders/{0}/status".format(order_id), json=dict(status=status, **extra))

    def test_full_lifecycle(self, admin, database, orders, catalog):
        order_id = orders[0].id

        assert self._move(admin, order_id, "processing").status_code == 200
        shipped = self._move(admin, order_id, "shipped").json()["order"]
        assert shipped["status"] == "shipped"
        assert shipped["shipped_at"] is not None
        assert "shipped without tracking number" in shipped["flags"]

        delivered = self._move(admin, order_id, "delivered", note="signed by concierge").json()["order"]
        assert delivered["delivered_at"] is not None

        refunded = self._move(admin, order_id, "refunded").json()["order"]
        assert refunded["status"] == "refunded"
        assert refunded["payment_status"] == "refunded"

        actor = "admin:{0}".format(catalog.admin)
        assert _status_log(database, order_id) == [
            ("pending", "processing", actor),
            ("processing", "shipped", actor),
            ("shipped", "delivered", actor),
            ("delivered", "refunded", actor),
        ]
        # refunds do not put the watch back on the shelf
        assert stock_of(database, catalog.submariner) == 2

    def test_skipping_a_step_is_rejected(self, admin, database, orders):
        resp = self._move(admin, orders[0].id, "delivered")

        assert resp.status_code == 409
        assert resp.json()["error"] == "INVALID_TRANSITION"
        assert resp.json()["status"] == "pending"
        assert _status_log(database, orders[0].id) == []

    def test_same_status_is_a_no_op(self, admin, database, orders):
        resp = self._move(admin, orders[0].id, "pending")

        assert resp.status_code == 200
        assert resp.json()["order"]["status"] == "pending"
        assert _status_log(database, orders[0].id) == []

    def test_admin_cancel_restores_stock(self, admin, database, orders, catalog):
        assert stock_of(database, catalog.speedmaster) == 0

        resp = self._move(admin, orders[1].id, "cancelled")

        assert resp.status_code == 200
        assert stock_of(database, catalog.speedmaster) == 2

    def test_terminal_states(self, admin, orders):
        self._move(admin, orders[1].id, "cancelled")
        resp = self._move(admin, orders[1].id, "processing")
        assert resp.status_code == 409

    def test_unknown_status(self, admin, orders):
        resp = self._move(admin, orders[0].id, "lost")
        assert resp.status_code == 400
        assert resp.json()["error"] == "INVALID_REQUEST"

    def test_service_rejects_shipped_to_cancelled(self, db, orders):
        order_admin.change_status(db, orders[0].id, OrderStatus.PROCESSING)
        order_admin.change_status(db, orders[0].id, OrderStatus.SHIPPED)

        with pytest.raises(OrderUpdateError) as exc:
            order_admin.change_status(db, orders[0].id, OrderStatus.CANCELLED)
        assert exc.value.kind == ErrorKind.INVALID_TRANSITION


class TestEdits:
    def _edit(self, client, order_id, body):
        return client.patch("/api/admin/orders/{0}".format(order_id), json=body)

    def test_shipping_amount_recomputes_total(self, admin, orders):
        resp = self._edit(admin, orders[0].id, {"shipping_amount": "75.00"})

        assert resp.status_code == 200
        order = resp.json()["order"]
        assert order["shipping_amount"] == 75.0
        assert order["total_amount"] == 16275.0
        assert order["flags"] == []

    def test_tracking_and_payment(self, admin, orders):
        order = self._edit(
            admin, orders[0].id, {"tracking_number": " 1Z999 ", "payment_status": "paid", "notes": "vip"}
        ).json()["order"]

        assert order["tracking_number"] == "1Z999"
        assert order["payment_status"] == "paid"
        assert order["notes"] == "vip"

    def test_empty_edit(self, admin, orders):
        resp = self._edit(admin, orders[0].id, {})
        assert resp.status_code == 400
        assert resp.json()["message"] == "No fields to update"

    def test_negative_shipping(self, admin, orders):
        resp = self._edit(admin, orders[0].id, {"shipping_amount": "-1"})
        assert resp.status_code == 400
        assert resp.json()["error"] == "ORDER_UPDATE_FAILED"

    def test_unknown_order(self, admin):
        assert self._edit(admin, 999, {"notes": "x"}).status_code == 404
