"""
Orders API: creation, lifecycle transitions, table coupling, conflicts.
"""
import json

import pytest

from conftest import auth_headers, order_payload
from pizzeria.core.access_policy import ActorContext
from pizzeria.db import order_ops
from pizzeria.db.database import SessionLocal
from pizzeria.db.repository import OrderRepository
from pizzeria.models.order import OrderStatus
from pizzeria.models.user import UserRole


async def _create(client, headers, menu, table_id=None, order_type="DINE_IN", **extra):
    r = await client.post("/orders", json=order_payload(menu, table_id, order_type, **extra), headers=headers)
    assert r.status_code == 201, r.text
    return r.json()


async def _move(client, headers, order_id, expected, target):
    return await client.post(
        f"/orders/{order_id}/transition",
        json={"expected_status": expected, "target_status": target},
        headers=headers,
    )


async def _table_status(client, headers, table_id):
    r = await client.get(f"/tables/{table_id}", headers=headers)
    assert r.status_code == 200, r.text
    return r.json()["status"]


@pytest.mark.asyncio
async def test_dine_in_order_full_lifecycle(client, headers, menu, table):
    """Create on T1, cook, serve: the table follows the order to CLEANING."""
    server, kitchen = headers[UserRole.SERVER], headers[UserRole.KITCHEN]

    order = await _create(client, server, menu, table.id)
    assert order["status"] == "PLACED"
    assert order["order_number"].startswith("ORD-")
    assert order["subtotal_cents"] == 3850
    assert order["tax_cents"] == 318
    assert order["tip_cents"] == 0
    assert order["total_cents"] == 4168
    assert order["estimated_completion_time"] is None
    assert [i["name"] for i in order["items"]] == ["Margherita", "Pepperoni"]
    assert order["items"][1]["customizations"] == ["extra cheese"]
    assert await _table_status(client, server, table.id) == "OCCUPIED"

    r = await _move(client, kitchen, order["id"], "PLACED", "PREPARING")
    assert r.status_code == 200, r.text
    assert r.json()["estimated_completion_time"] is not None

    r = await _move(client, kitchen, order["id"], "PREPARING", "READY")
    assert r.status_code == 200, r.text
    assert await _table_status(client, server, table.id) == "OCCUPIED"

    r = await _move(client, server, order["id"], "READY", "COMPLETED")
    assert r.status_code == 200, r.text
    assert r.json()["status"] == "COMPLETED"
    assert await _table_status(client, server, table.id) == "CLEANING"

    r = await client.post(
        f"/tables/{table.id}/status",
        json={"expected_status": "CLEANING", "target_status": "AVAILABLE"},
        headers=server,
    )
    assert r.status_code == 200, r.text
    assert r.json()["status"] == "AVAILABLE"


@pytest.mark.asyncio
async def test_delivery_order_goes_through_delivering(client, headers, menu):
    server, kitchen = headers[UserRole.SERVER], headers[UserRole.KITCHEN]
    order = await _create(client, server, menu, order_type="DELIVERY", customer_name="Ana")
    assert order["table_id"] is None

    assert (await _move(client, kitchen, order["id"], "PLACED", "PREPARING")).status_code == 200
    assert (await _move(client, kitchen, order["id"], "PREPARING", "READY")).status_code == 200

    r = await _move(client, server, order["id"], "READY", "COMPLETED")
    assert r.status_code == 409
    assert r.json()["error"] == "InvalidTransition"

    assert (await _move(client, server, order["id"], "READY", "DELIVERING")).status_code == 200
    r = await _move(client, server, order["id"], "DELIVERING", "COMPLETED")
    assert r.status_code == 200
    assert r.json()["status"] == "COMPLETED"


@pytest.mark.asyncio
async def test_cancelled_order_cannot_start_preparing(client, headers, menu, table):
    server, kitchen = headers[UserRole.SERVER], headers[UserRole.KITCHEN]
    order = await _create(client, server, menu, table.id)

    assert (await _move(client, server, order["id"], "PLACED", "CANCELLED")).status_code == 200
    assert await _table_status(client, server, table.id) == "CLEANING"

    r = await _move(client, kitchen, order["id"], "CANCELLED", "PREPARING")
    assert r.status_code == 409
    body = r.json()
    assert body["error"] == "InvalidTransition"
    assert body["from_status"] == "CANCELLED"
    assert body["to_status"] == "PREPARING"
    assert body["stale"] is False


@pytest.mark.asyncio
async def test_backwards_transition_rejected(client, headers, menu):
    kitchen = headers[UserRole.KITCHEN]
    order = await _create(client, headers[UserRole.SERVER], menu, order_type="TAKEOUT")
    await _move(client, kitchen, order["id"], "PLACED", "PREPARING")
    await _move(client, kitchen, order["id"], "PREPARING", "READY")

    r = await _move(client, headers[UserRole.ADMIN], order["id"], "READY", "PLACED")
    assert r.status_code == 409
    assert r.json()["from_status"] == "READY"
    assert r.json()["to_status"] == "PLACED"


@pytest.mark.asyncio
async def test_conflicting_transitions_only_one_wins(client, headers, menu):
    """Kitchen starts the order while the server, who also saw PLACED, tries to cancel it."""
    server, kitchen = headers[UserRole.SERVER], headers[UserRole.KITCHEN]
    order = await _create(client, server, menu, order_type="TAKEOUT")

    first = await _move(client, kitchen, order["id"], "PLACED", "PREPARING")
    second = await _move(client, server, order["id"], "PLACED", "CANCELLED")

    assert first.status_code == 200
    assert second.status_code == 409
    body = second.json()
    assert body["stale"] is True
    assert body["from_status"] == "PREPARING"
    assert body["to_status"] == "CANCELLED"

    r = await client.get(f"/orders/{order['id']}", headers=server)
    assert r.json()["status"] == "PREPARING"
    assert r.json()["version_id"] == order["version_id"] + 1


@pytest.mark.asyncio
async def test_transition_loses_race_after_passing_checks(client, users, headers, menu, monkeypatch):
    """The cook commits PREPARING between the server's read and its conditional update."""
    order = await _create(client, headers[UserRole.SERVER], menu, order_type="TAKEOUT")
    cook = users[UserRole.KITCHEN]
    real_compare_and_set = OrderRepository.compare_and_set
    interleaved = []

    async def compare_and_set_after_cook(self, order_id, expected_status, expected_version=None, **values):
        if not interleaved:
            interleaved.append(order_id)
            async with SessionLocal() as other:
                await order_ops.transition_order(
                    other, ActorContext(user_id=cook.id, role=UserRole.KITCHEN),
                    order_id, OrderStatus.PLACED, OrderStatus.PREPARING,
                )
        return await real_compare_and_set(self, order_id, expected_status, expected_version, **values)

    monkeypatch.setattr(OrderRepository, "compare_and_set", compare_and_set_after_cook)
    r = await _move(client, headers[UserRole.SERVER], order["id"], "PLACED", "CANCELLED")

    assert interleaved == [order["id"]]
    assert r.status_code == 409
    body = r.json()
    assert body["stale"] is True
    assert body["from_status"] == "PREPARING"
    assert body["to_status"] == "CANCELLED"

    r = await client.get(f"/orders/{order['id']}", headers=headers[UserRole.SERVER])
    assert r.json()["status"] == "PREPARING"
    assert r.json()["version_id"] == order["version_id"] + 1


@pytest.mark.asyncio
async def test_customer_cannot_move_someone_elses_order(client, headers, menu, other_customer):
    order = await _create(client, headers[UserRole.CUSTOMER], menu, order_type="TAKEOUT")

    for expected in ("PLACED", "PREPARING"):
        r = await _move(client, auth_headers(other_customer), order["id"], expected, "CANCELLED")
        assert r.status_code == 403
        assert "from_status" not in r.json()

    r = await client.get(f"/orders/{order['id']}", headers=headers[UserRole.CUSTOMER])
    assert r.json()["status"] == "PLACED"

@pytest.mark.asyncio
async def test_role_not_allowed_to_move_order(client, headers, menu):
    order = await _create(client, headers[UserRole.SERVER], menu, order_type="TAKEOUT")
    await _move(client, headers[UserRole.KITCHEN], order["id"], "PLACED", "PREPARING")

    r = await _move(client, headers[UserRole.SERVER], order["id"], "PREPARING", "READY")
    assert r.status_code == 403
    assert r.json()["error"] == "Unauthorized"
    assert r.json()["role"] == "SERVER"


@pytest.mark.asyncio
async def test_occupied_table_rejects_second_dine_in(client, headers, menu, table):
    server = headers[UserRole.SERVER]
    await _create(client, server, menu, table.id)

    r = await client.post("/orders", json=order_payload(menu, table.id), headers=server)
    assert r.status_code == 409
    assert r.json()["error"] == "TableUnavailable"
    assert r.json()["table_status"] == "OCCUPIED"


@pytest.mark.asyncio
async def test_cleaning_table_rejects_dine_in(client, headers, menu, table):
    server = headers[UserRole.SERVER]
    order = await _create(client, server, menu, table.id)
    await _move(client, server, order["id"], "PLACED", "CANCELLED")

    r = await client.post("/orders", json=order_payload(menu, table.id), headers=server)
    assert r.status_code == 409
    assert r.json()["table_status"] == "CLEANING"


@pytest.mark.asyncio
async def test_reserved_table_seats_matching_booking(client, headers, menu, table):
    server = headers[UserRole.SERVER]
    r = await client.post(
        f"/tables/{table.id}/status",
        json={"expected_status": "AVAILABLE", "target_status": "RESERVED", "reservation_ref": "BK-42"},
        headers=server,
    )
    assert r.status_code == 200, r.text
    assert r.json()["reservation_ref"] == "BK-42"

    r = await client.post("/orders", json=order_payload(menu, table.id, reservation_ref="BK-7"), headers=server)
    assert r.status_code == 409

    order = await _create(client, server, menu, table.id, reservation_ref="BK-42")
    assert order["reservation_ref"] == "BK-42"
    r = await client.get(f"/tables/{table.id}", headers=server)
    assert r.json()["status"] == "OCCUPIED"
    assert r.json()["reservation_ref"] is None
    assert r.json()["active_order"]["id"] == order["id"]


@pytest.mark.asyncio
async def test_failed_creation_leaves_table_untouched(client, headers, menu, table):
    server = headers[UserRole.SERVER]
    payload = order_payload(menu, table.id)
    payload["items"].append({"menu_item_id": "no-such-item", "quantity": 1})

    r = await client.post("/orders", json=payload, headers=server)
    assert r.status_code == 404
    assert r.json()["error"] == "NotFound"
    assert await _table_status(client, server, table.id) == "AVAILABLE"


@pytest.mark.asyncio
@pytest.mark.parametrize("payload_change", [
    {"items": []},
    {"order_type": "TAKEOUT", "table_id": "t-1"},
    {"table_id": None},
])
async def test_invalid_orders_are_validation_errors(client, headers, menu, payload_change):
    payload = order_payload(menu, "t-1")
    payload.update(payload_change)
    r = await client.post("/orders", json=payload, headers=headers[UserRole.SERVER])
    assert r.status_code == 422
    assert r.json()["error"] == "ValidationError"


@pytest.mark.asyncio
async def test_zero_quantity_rejected(client, headers, menu):
    payload = order_payload(menu, order_type="TAKEOUT")
    payload["items"][0]["quantity"] = 0
    r = await client.post("/orders", json=payload, headers=headers[UserRole.SERVER])
    assert r.status_code == 422
    assert r.json()["error"] == "ValidationError"


@pytest.mark.asyncio
async def test_unavailable_item_rejected(client, headers, menu):
    payload = {"order_type": "TAKEOUT", "items": [{"menu_item_id": menu["truffle"].id, "quantity": 1}]}
    r = await client.post("/orders", json=payload, headers=headers[UserRole.SERVER])
    assert r.status_code == 422
    assert "not available" in r.json()["detail"]


@pytest.mark.asyncio
async def test_anonymous_cannot_order(client, menu):
    r = await client.post("/orders", json=order_payload(menu, order_type="TAKEOUT"))
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_invalid_token_rejected(client, menu):
    r = await client.get("/orders", headers={"Authorization": "Bearer not-a-jwt"})
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_kitchen_cannot_create_orders(client, headers, menu):
    r = await client.post("/orders", json=order_payload(menu, order_type="TAKEOUT"), headers=headers[UserRole.KITCHEN])
    assert r.status_code == 403


@pytest.mark.asyncio
async def test_customers_only_see_their_own_orders(client, users, headers, menu, other_customer):
    mine = await _create(client, headers[UserRole.CUSTOMER], menu, order_type="TAKEOUT")
    await _create(client, headers[UserRole.SERVER], menu, order_type="TAKEOUT")

    r = await client.get("/orders", headers=headers[UserRole.CUSTOMER])
    assert [o["id"] for o in r.json()] == [mine["id"]]

    r = await client.get("/orders", headers=headers[UserRole.SERVER])
    assert len(r.json()) == 2

    r = await client.get(f"/orders/{mine['id']}", headers=auth_headers(other_customer))
    assert r.status_code == 403


@pytest.mark.asyncio
async def test_list_orders_filters_by_status(client, headers, menu):
    server = headers[UserRole.SERVER]
    first = await _create(client, server, menu, order_type="TAKEOUT")
    await _create(client, server, menu, order_type="DELIVERY")
    await _move(client, headers[UserRole.KITCHEN], first["id"], "PLACED", "PREPARING")

    r = await client.get("/orders", params={"status": "PREPARING"}, headers=server)
    assert [o["id"] for o in r.json()] == [first["id"]]
    r = await client.get("/orders", params={"order_type": "DELIVERY"}, headers=server)
    assert len(r.json()) == 1


@pytest.mark.asyncio
async def test_replace_items_recomputes_totals(client, headers, menu):
    server = headers[UserRole.SERVER]
    order = await _create(client, server, menu, order_type="TAKEOUT")

    r = await client.put(
        f"/orders/{order['id']}/items",
        json={"expected_version": order["version_id"], "items": [{"menu_item_id": menu["cola"].id, "quantity": 2}]},
        headers=server,
    )
    assert r.status_code == 200, r.text
    body = r.json()
    assert [i["name"] for i in body["items"]] == ["Cola"]
    assert body["subtotal_cents"] == 600
    assert body["tax_cents"] == 50  # 49.5 rounds half up
    assert body["total_cents"] == 650
    assert body["version_id"] == order["version_id"] + 1

    # Same version again is stale
    r = await client.put(
        f"/orders/{order['id']}/items",
        json={"expected_version": order["version_id"], "items": [{"menu_item_id": menu["cola"].id, "quantity": 1}]},
        headers=server,
    )
    assert r.status_code == 409
    assert r.json()["stale"] is True


@pytest.mark.asyncio
async def test_items_frozen_once_preparing(client, headers, menu):
    server = headers[UserRole.SERVER]
    order = await _create(client, server, menu, order_type="TAKEOUT")
    moved = await _move(client, headers[UserRole.KITCHEN], order["id"], "PLACED", "PREPARING")

    r = await client.put(
        f"/orders/{order['id']}/items",
        json={"expected_version": moved.json()["version_id"], "items": [{"menu_item_id": menu["cola"].id, "quantity": 1}]},
        headers=server,
    )
    assert r.status_code == 409
    assert r.json()["from_status"] == "PREPARING"


@pytest.mark.asyncio
async def test_menu_price_change_does_not_touch_existing_orders(client, headers, menu):
    server = headers[UserRole.SERVER]
    order = await _create(client, server, menu, order_type="TAKEOUT")

    r = await client.patch(
        f"/menu/items/{menu['margherita'].id}", json={"price_cents": 9900}, headers=headers[UserRole.ADMIN],
    )
    assert r.status_code == 200

    r = await client.get(f"/orders/{order['id']}", headers=server)
    assert r.json()["items"][0]["unit_price_cents"] == 1200
    assert r.json()["total_cents"] == 4168


@pytest.mark.asyncio
async def test_kitchen_board_lists_active_orders(client, headers, menu):
    server, kitchen = headers[UserRole.SERVER], headers[UserRole.KITCHEN]
    takeout = await _create(client, server, menu, order_type="TAKEOUT")
    delivery = await _create(client, server, menu, order_type="DELIVERY")
    cancelled = await _create(client, server, menu, order_type="TAKEOUT")
    await _move(client, server, cancelled["id"], "PLACED", "CANCELLED")
    await _move(client, kitchen, delivery["id"], "PLACED", "PREPARING")
    await _move(client, kitchen, delivery["id"], "PREPARING", "READY")

    r = await client.get("/kitchen/board", headers=kitchen)
    assert r.status_code == 200
    board = {entry["id"]: entry for entry in r.json()}
    assert set(board) == {takeout["id"], delivery["id"]}
    assert board[takeout["id"]]["next_statuses"] == ["PREPARING", "CANCELLED"]
    assert board[delivery["id"]]["next_statuses"] == ["DELIVERING"]

    r = await client.get("/kitchen/board", headers=server)
    assert r.status_code == 403


@pytest.mark.asyncio
async def test_status_changes_are_published(client, headers, menu, fake_redis):
    server = headers[UserRole.SERVER]
    order = await _create(client, server, menu, order_type="TAKEOUT")
    await _move(client, headers[UserRole.KITCHEN], order["id"], "PLACED", "PREPARING")

    board = [json.loads(data) for channel, data in fake_redis.published if channel == "orders:board"]
    assert [e["status"] for e in board] == ["PLACED", "PREPARING"]
    assert board[1]["previous_status"] == "PLACED"
    single = [channel for channel, _ in fake_redis.published if channel == f"order:{order['id']}"]
    assert len(single) == 2


@pytest.mark.asyncio
async def test_redis_outage_does_not_fail_transition(client, headers, menu, fake_redis):
    server = headers[UserRole.SERVER]
    order = await _create(client, server, menu, order_type="TAKEOUT")
    fake_redis.fail = True

    r = await _move(client, headers[UserRole.KITCHEN], order["id"], "PLACED", "PREPARING")
    assert r.status_code == 200
    assert r.json()["status"] == "PREPARING"


@pytest.mark.asyncio
async def test_items_cannot_drop_below_amount_paid(client, headers, menu):
    server = headers[UserRole.SERVER]
    order = await _create(client, server, menu, order_type="TAKEOUT")
    r = await client.post(
        f"/orders/{order['id']}/payments", json={"amount_cents": 4168, "method": "CASH"}, headers=server,
    )
    assert r.json()["status"] == "COMPLETED"
    version = (await client.get(f"/orders/{order['id']}", headers=server)).json()["version_id"]

    r = await client.put(
        f"/orders/{order['id']}/items",
        json={"expected_version": version, "items": [{"menu_item_id": menu["cola"].id, "quantity": 1}]},
        headers=server,
    )
    assert r.status_code == 422
    assert r.json()["error"] == "ValidationError"
    assert "already paid" in r.json()["detail"]

    r = await client.get(f"/orders/{order['id']}", headers=server)
    assert r.json()["total_cents"] == 4168
    assert r.json()["version_id"] == version
    assert [i["name"] for i in r.json()["items"]] == ["Margherita", "Pepperoni"]

    # Adding to a paid order is fine
    items = order_payload(menu)["items"] + [{"menu_item_id": menu["cola"].id, "quantity": 1}]
    r = await client.put(
        f"/orders/{order['id']}/items", json={"expected_version": version, "items": items}, headers=server,
    )
    assert r.status_code == 200, r.text
    assert r.json()["total_cents"] == 4492


# ─── Priced modifiers ─────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_modifiers_priced_into_line(client, headers, menu, modifiers):
    server = headers[UserRole.SERVER]
    payload = {
        "order_type": "TAKEOUT",
        "items": [
            {
                "menu_item_id": menu["margherita"].id,
                "quantity": 2,
                "modifier_ids": [modifiers["deep_dish"].id, modifiers["extra_cheese"].id],
            },
            {"menu_item_id": menu["cola"].id, "quantity": 1},
        ],
    }
    r = await client.post("/orders", json=payload, headers=server)
    assert r.status_code == 201, r.text
    order = r.json()

    pizza = order["items"][0]
    assert pizza["unit_price_cents"] == 1200
    assert pizza["modifier_cents"] == 350
    assert [m["name"] for m in pizza["modifiers"]] == ["Deep Dish", "Extra Cheese"]
    assert pizza["modifiers"][0]["kind"] == "CRUST"
    assert order["items"][1]["modifiers"] == []
    assert order["subtotal_cents"] == 3400
    assert order["tax_cents"] == 281  # 280.5 rounds half up
    assert order["total_cents"] == 3681

    r = await client.patch(
        f"/menu/modifiers/{modifiers['deep_dish'].id}",
        json={"price_adjustment_cents": 500},
        headers=headers[UserRole.ADMIN],
    )
    assert r.status_code == 200
    r = await client.get(f"/orders/{order['id']}", headers=server)
    assert r.json()["items"][0]["modifier_cents"] == 350
    assert r.json()["total_cents"] == 3681


@pytest.mark.asyncio
@pytest.mark.parametrize("item,options,status_code", [
    ("margherita", ["thin", "deep_dish"], 422),
    ("margherita", ["extra_cheese", "extra_cheese"], 422),
    ("margherita", ["mushrooms"], 422),
    ("cola", ["extra_cheese"], 422),
    ("margherita", ["no-such-option"], 404),
])
async def test_invalid_modifier_choices(client, headers, menu, modifiers, item, options, status_code):
    ids = [modifiers[name].id if name in modifiers else name for name in options]
    payload = {"order_type": "TAKEOUT", "items": [{"menu_item_id": menu[item].id, "quantity": 1, "modifier_ids": ids}]}
    r = await client.post("/orders", json=payload, headers=headers[UserRole.SERVER])
    assert r.status_code == status_code
