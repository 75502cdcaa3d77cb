import uuid
from decimal import Decimal

import pytest

from conftest import Factory, fetch_product
from core.exceptions import InvalidTransactionError, ReferenceNotFoundError
from services.containers import status_for
from services.products import get_container_sale_history, get_product_containers, receive_containers
from services.stock_ledger import list_movements
from services.transaction_inventory import TransactionInventoryService


@pytest.fixture
def service(db):
    return TransactionInventoryService(db)


def _volume(product, quantity, **kwargs):
    return Factory.item(product_id=product.id, quantity=quantity, sale_type="volume", **kwargs)


async def _sell(service, factory, *items, number=None):
    txn = factory.transaction(items, number=number)
    result = await service.process_transaction_inventory(txn, "cashier")
    assert result.success is True, result.errors
    return txn, result


class TestDrawDown:
    async def test_bottle_sequence(self, db, factory, service):
        product = await factory.bottled_product(capacity=50, full=5)

        await _sell(service, factory, _volume(product, 10), number="TXN-BOTTLE-1")
        p = await fetch_product(db, product.id)
        assert p.full_containers == 4
        assert len(p.containers) == 1
        assert p.containers[0].remaining == Decimal("40")
        assert p.containers[0].status == "partial"

        await _sell(service, factory, _volume(product, 25), number="TXN-BOTTLE-2")
        p = await fetch_product(db, product.id)
        assert p.containers[0].remaining == Decimal("15")
        assert len(p.containers[0].sales) == 2

        await _sell(service, factory, _volume(product, 10), number="TXN-BOTTLE-3")
        p = await fetch_product(db, product.id)
        assert p.containers[0].remaining == Decimal("5")
        assert len(p.containers[0].sales) == 3
        assert p.full_containers == 4
        assert [s.transaction_ref for s in p.containers[0].sales] == ["TXN-BOTTLE-1", "TXN-BOTTLE-2", "TXN-BOTTLE-3"]
        assert p.current_stock == Decimal("205")

    async def test_first_partial_is_drawn_before_full_ones(self, db, factory, service):
        product = await factory.bottled_product(capacity=100, full=3, partial=[("BOTTLE_001", 50), ("BOTTLE_002", 80)])

        await _sell(service, factory, _volume(product, 20))

        p = await fetch_product(db, product.id)
        assert [(c.id, c.remaining) for c in p.containers] == [
            ("BOTTLE_001", Decimal("30")),
            ("BOTTLE_002", Decimal("80")),
        ]
        assert p.full_containers == 3

    async def test_requested_container_is_drawn_first(self, db, factory, service):
        product = await factory.bottled_product(capacity=100, full=1, partial=[("BOTTLE_A", 50), ("BOTTLE_B", 70)])

        await _sell(service, factory, _volume(product, 20, container_id="BOTTLE_B"))

        p = await fetch_product(db, product.id)
        remaining = {c.id: c.remaining for c in p.containers}
        assert remaining == {"BOTTLE_A": Decimal("50"), "BOTTLE_B": Decimal("50")}

    async def test_unknown_requested_container_falls_back_to_draw_order(self, db, factory, service):
        product = await factory.bottled_product(capacity=100, full=1, partial=[("BOTTLE_A", 50)])

        await _sell(service, factory, _volume(product, 20, container_id="BOTTLE_X"))

        p = await fetch_product(db, product.id)
        assert p.containers[0].remaining == Decimal("30")

    async def test_exhausted_containers_are_skipped_and_kept(self, db, factory, service):
        product = await factory.bottled_product(capacity=50, full=1, partial=[("BOTTLE_E", 0), ("BOTTLE_P", 20)])

        await _sell(service, factory, _volume(product, 5))

        p = await fetch_product(db, product.id)
        assert [(c.id, c.remaining, c.status) for c in p.containers] == [
            ("BOTTLE_E", Decimal("0"), "empty"),
            ("BOTTLE_P", Decimal("15"), "partial"),
        ]

    async def test_container_reaching_zero_becomes_empty(self, db, factory, service):
        product = await factory.bottled_product(capacity=50, full=0, partial=[("BOTTLE_001", 15)])

        await _sell(service, factory, _volume(product, 15))

        p = await fetch_product(db, product.id)
        assert p.containers[0].remaining == Decimal("0")
        assert p.containers[0].status == "empty"
        assert len(p.containers) == 1

    async def test_sale_spills_into_next_container(self, db, factory, service):
        product = await factory.bottled_product(capacity=50, full=2, partial=[("BOTTLE_001", 15)])

        _, result = await _sell(service, factory, _volume(product, 25))

        p = await fetch_product(db, product.id)
        assert p.full_containers == 1
        assert [(c.remaining, c.status) for c in p.containers] == [
            (Decimal("0"), "empty"),
            (Decimal("40"), "partial"),
        ]
        # one movement, two history entries pointing at it
        assert len(result.movements) == 1
        movement_id = result.movements[0].id
        assert [s.movement_id for c in p.containers for s in c.sales] == [movement_id, movement_id]
        assert [s.quantity_sold for c in p.containers for s in c.sales] == [Decimal("15"), Decimal("25")]

    async def test_oversell_with_no_containers_left(self, db, factory, service):
        product = await factory.bottled_product(capacity=50, full=0, partial=[("BOTTLE_001", 5)])

        _, result = await _sell(service, factory, _volume(product, 20))

        p = await fetch_product(db, product.id)
        assert len(p.containers) == 1
        assert p.containers[0].remaining == Decimal("-15")
        assert p.containers[0].status == "oversold"
        assert p.current_stock == Decimal("-15")
        assert result.movements[0].container_tracked is True

    async def test_oversell_without_any_container_creates_one(self, db, factory, service):
        product = await factory.bottled_product(capacity=50, full=0, stock=0)

        await _sell(service, factory, _volume(product, 10))

        p = await fetch_product(db, product.id)
        assert len(p.containers) == 1
        assert p.containers[0].remaining == Decimal("-10")
        assert p.containers[0].status == "oversold"
        assert p.containers[0].id.startswith("BOTTLE_")

    async def test_quantity_sale_of_bottled_product_leaves_containers_alone(self, db, factory, service):
        product = await factory.bottled_product(capacity=50, full=2)

        _, result = await _sell(service, factory, factory.item(product_id=product.id, quantity=10))

        p = await fetch_product(db, product.id)
        assert p.containers == []
        assert p.full_containers == 2
        assert result.movements[0].container_tracked is False


class TestContainerReversal:
    async def test_reversal_restores_remaining(self, db, factory, service):
        product = await factory.bottled_product(capacity=50, full=5, partial=[("BOTTLE_001", 30)])
        txn, _ = await _sell(service, factory, _volume(product, 10))

        await service.reverse_transaction_inventory(txn.transaction_number, "manager")

        p = await fetch_product(db, product.id)
        c = p.containers[0]
        assert c.remaining == Decimal("30")
        assert c.status == "partial"
        assert [s.quantity_sold for s in c.sales] == [Decimal("10"), Decimal("-10")]
        assert c.sales[-1].transaction_ref == f"CANCEL-{txn.transaction_number}"

    async def test_reversal_of_spilled_sale_restores_each_container(self, db, factory, service):
        product = await factory.bottled_product(capacity=50, full=2, partial=[("BOTTLE_001", 15)])
        txn, _ = await _sell(service, factory, _volume(product, 25))

        await service.reverse_transaction_inventory(txn.transaction_number, "manager")

        p = await fetch_product(db, product.id)
        assert [(c.remaining, c.status) for c in p.containers] == [
            (Decimal("15"), "partial"),
            (Decimal("50"), "full"),
        ]
        # an opened bottle does not go back to the sealed pool
        assert p.full_containers == 1
        assert p.current_stock == Decimal("115")

    async def test_reversal_of_oversold_container(self, db, factory, service):
        product = await factory.bottled_product(capacity=50, full=0, partial=[("BOTTLE_001", 5)])
        txn, _ = await _sell(service, factory, _volume(product, 20))

        await service.reverse_transaction_inventory(txn.transaction_number, "manager")

        p = await fetch_product(db, product.id)
        assert p.containers[0].remaining == Decimal("5")
        assert p.containers[0].status == "partial"
        assert p.current_stock == Decimal("5")


class TestContainerQueries:
    async def test_product_containers_summary(self, db, factory, service):
        product = await factory.bottled_product(capacity=50, full=2, partial=[("BOTTLE_E", 0), ("BOTTLE_P", 20)])

        data = await get_product_containers(db, product.id)

        assert data["full"] == 2
        assert [c["id"] for c in data["partial"]] == ["BOTTLE_E", "BOTTLE_P"]
        assert data["summary"] == {
            "total_full": 2,
            "total_partial": 1,
            "total_empty": 1,
            "total_oversold": 0,
            "total_remaining": Decimal("20"),
        }

    async def test_sale_history_is_ordered(self, db, factory, service):
        product = await factory.bottled_product(capacity=50, full=0, partial=[("BOTTLE_001", 50)])
        await _sell(service, factory, _volume(product, 5), number="TXN-H1")
        await _sell(service, factory, _volume(product, 7), number="TXN-H2")

        history = await get_container_sale_history(db, "BOTTLE_001")

        assert [(h.entry_no, h.transaction_ref, h.quantity_sold, h.sold_by) for h in history] == [
            (0, "TXN-H1", Decimal("5"), "cashier"),
            (1, "TXN-H2", Decimal("7"), "cashier"),
        ]

    async def test_unknown_container_history(self, db):
        with pytest.raises(ReferenceNotFoundError):
            await get_container_sale_history(db, "BOTTLE_NOPE")


class TestContainerStatus:
    @pytest.mark.parametrize(
        "remaining, expected",
        [("50", "full"), ("49.999", "partial"), ("0", "empty"), ("-1", "oversold")],
    )
    def test_status_for(self, remaining, expected):
        assert status_for(Decimal(remaining), Decimal("50")) == expected

    async def test_bottle_restored_to_capacity_reads_full(self, db, factory, service):
        product = await factory.bottled_product(capacity=50, full=1)
        txn, _ = await _sell(service, factory, _volume(product, 10))

        await service.reverse_transaction_inventory(txn.transaction_number, "manager")

        p = await fetch_product(db, product.id)
        assert [(c.remaining, c.status) for c in p.containers] == [(Decimal("50"), "full")]
        data = await get_product_containers(db, product.id)
        assert data["summary"]["total_full"] == 1
        assert data["summary"]["total_partial"] == 0


class TestRestoreWithoutHistory:
    async def _sell_and_drop_history(self, db, service, factory, product, quantity):
        txn, _ = await _sell(service, factory, _volume(product, quantity))
        p = await fetch_product(db, product.id)
        for c in p.containers:
            c.sales.clear()
        await db.commit()
        return txn

    async def test_volume_goes_to_latest_partial_container(self, db, factory, service):
        product = await factory.bottled_product(capacity=50, full=0, partial=[("BOTTLE_A", 30), ("BOTTLE_B", 20)])
        txn = await self._sell_and_drop_history(db, service, factory, product, 10)

        await service.reverse_transaction_inventory(txn.transaction_number, "manager")

        p = await fetch_product(db, product.id)
        assert [(c.id, c.remaining) for c in p.containers] == [
            ("BOTTLE_A", Decimal("20")),
            ("BOTTLE_B", Decimal("30")),
        ]
        assert p.current_stock == Decimal("50")

    async def test_volume_goes_to_new_container_when_none_is_partial(self, db, factory, service):
        product = await factory.bottled_product(capacity=50, full=1)
        txn = await self._sell_and_drop_history(db, service, factory, product, 50)

        await service.reverse_transaction_inventory(txn.transaction_number, "manager")

        p = await fetch_product(db, product.id)
        assert [(c.remaining, c.status) for c in p.containers] == [
            (Decimal("0"), "empty"),
            (Decimal("50"), "full"),
        ]
        assert p.containers[1].sales[0].transaction_ref == f"CANCEL-{txn.transaction_number}"
        assert p.current_stock == Decimal("50")


class TestContainerIntake:
    async def test_receive_into_sealed_pool(self, db, factory, service):
        product = await factory.bottled_product(capacity=50, full=0, stock=0)

        movement = await receive_containers(db, product.id, 3, "receiver")

        p = await fetch_product(db, product.id)
        assert p.full_containers == 3
        assert p.containers == []
        assert p.current_stock == Decimal("150")
        assert movement.movement_type == "adjustment"
        assert movement.change == Decimal("150")
        assert movement.reason == "Received 3 container(s)"
        assert movement.created_by == "receiver"

        await _sell(service, factory, _volume(product, 10))
        p = await fetch_product(db, product.id)
        assert p.full_containers == 2
        assert p.containers[0].remaining == Decimal("40")

    async def test_receive_with_batch_number_tracks_each_container(self, db, factory, service):
        product = await factory.bottled_product(capacity=50, full=0, stock=0)

        await receive_containers(db, product.id, 2, "receiver", batch_number="LOT-42")

        data = await get_product_containers(db, product.id)
        assert data["full"] == 2
        assert data["partial"] == []
        assert [(c["status"], c["batch_number"], c["opened_at"]) for c in data["sealed"]] == [
            ("full", "LOT-42", None),
            ("full", "LOT-42", None),
        ]
        assert data["summary"]["total_full"] == 2

        await _sell(service, factory, _volume(product, 60))

        p = await fetch_product(db, product.id)
        assert p.full_containers == 0
        assert [(c.remaining, c.status, c.batch_number) for c in p.containers] == [
            (Decimal("0"), "empty", "LOT-42"),
            (Decimal("40"), "partial", "LOT-42"),
        ]
        assert all(c.opened_at is not None for c in p.containers)
        assert p.current_stock == Decimal("40")

    async def test_opened_containers_are_drawn_before_received_ones(self, db, factory, service):
        product = await factory.bottled_product(capacity=50, full=0, partial=[("BOTTLE_P", 20)])
        await receive_containers(db, product.id, 1, "receiver", batch_number="LOT-7")

        await _sell(service, factory, _volume(product, 5))

        p = await fetch_product(db, product.id)
        assert [(c.id, c.remaining, c.status) for c in p.containers][0] == ("BOTTLE_P", Decimal("15"), "partial")
        assert (p.containers[1].remaining, p.containers[1].status) == (Decimal("50"), "full")
        assert p.containers[1].opened_at is None

    async def test_intake_is_in_the_ledger(self, db, factory):
        product = await factory.bottled_product(capacity=50, full=0, stock=0)

        await receive_containers(db, product.id, 1, "receiver", batch_number="LOT-9")

        rows = await list_movements(db, product_id=product.id)
        assert [(m.movement_type, m.change, m.source_id) for m in rows] == [("adjustment", Decimal("50"), "LOT-9")]

    async def test_intake_rejections(self, db, factory):
        plain_id = (await factory.product(stock=10)).id
        bottled_id = (await factory.bottled_product(capacity=50, full=0)).id

        with pytest.raises(InvalidTransactionError):
            await receive_containers(db, plain_id, 1, "receiver")
        with pytest.raises(InvalidTransactionError):
            await receive_containers(db, bottled_id, 0, "receiver")
        with pytest.raises(ReferenceNotFoundError):
            await receive_containers(db, uuid.uuid4(), 1, "receiver")
        p = await fetch_product(db, bottled_id)
        assert (p.full_containers, p.current_stock) == (0, Decimal("0"))
