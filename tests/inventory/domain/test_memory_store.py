"""Tests for the in-memory store's unit-of-work semantics."""

from datetime import UTC, datetime

import pytest

from commerce.inventory.store.port import Reservation, ReservationState, StockLevel

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)


def _reservation(reservation_id="res-1", state=ReservationState.HELD, expires_at=None):
    return Reservation(
        id=reservation_id,
        tenant_id="store-001",
        order_id="ord-1",
        state=state,
        created_at=NOW,
        expires_at=expires_at,
    )


class TestTransactions:
    def test_commit_on_normal_exit(self, store, widget):
        with store.transaction() as tx:
            tx.put_stock(StockLevel(key=widget, stock=3))
        with store.transaction() as tx:
            assert tx.get_stock(widget).stock == 3

    def test_rollback_on_exception(self, store, widget):
        with store.transaction() as tx:
            tx.put_stock(StockLevel(key=widget, stock=3))

        with pytest.raises(RuntimeError):
            with store.transaction() as tx:
                tx.decrement_if_available(widget, 2)
                tx.insert_reservation(_reservation())
                raise RuntimeError("boom")

        with store.transaction() as tx:
            assert tx.get_stock(widget).stock == 3
            assert tx.get_reservation("res-1") is None

    def test_reads_see_staged_writes(self, store, widget):
        with store.transaction() as tx:
            tx.put_stock(StockLevel(key=widget, stock=3))
            assert tx.decrement_if_available(widget, 1) == 2
            assert tx.get_stock(widget).stock == 2


class TestConditionalOperations:
    def test_decrement_refuses_when_short(self, store, widget):
        with store.transaction() as tx:
            tx.put_stock(StockLevel(key=widget, stock=1))
            assert tx.decrement_if_available(widget, 2) is None
            assert tx.get_stock(widget).stock == 1

    def test_transition_is_compare_and_set(self, store):
        with store.transaction() as tx:
            tx.insert_reservation(_reservation())
        with store.transaction() as tx:
            assert tx.transition_reservation("res-1", ReservationState.HELD, ReservationState.CONFIRMED, NOW)
        with store.transaction() as tx:
            assert not tx.transition_reservation("res-1", ReservationState.HELD, ReservationState.RELEASED, NOW)
            assert tx.get_reservation("res-1").state == ReservationState.CONFIRMED

    def test_mark_applied_once(self, store):
        with store.transaction() as tx:
            assert tx.mark_applied("refund:ret-1")
            assert not tx.mark_applied("refund:ret-1")
        with store.transaction() as tx:
            assert not tx.mark_applied("refund:ret-1")

    def test_expiring_reservations_only_held(self, store):
        with store.transaction() as tx:
            tx.insert_reservation(_reservation("res-1", expires_at=NOW))
            tx.insert_reservation(_reservation("res-2", state=ReservationState.CONFIRMED, expires_at=NOW))
            tx.insert_reservation(_reservation("res-3"))
        with store.transaction() as tx:
            assert [r.id for r in tx.held_reservations_expiring_before(NOW)] == ["res-1"]

    def test_reset_clears_everything(self, store, widget):
        with store.transaction() as tx:
            tx.put_stock(StockLevel(key=widget, stock=3))
            tx.insert_reservation(_reservation())
        store.reset()
        with store.transaction() as tx:
            assert tx.get_stock(widget) is None
            assert tx.get_reservation("res-1") is None
