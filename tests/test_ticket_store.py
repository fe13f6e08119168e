from dataclasses import replace

import pytest

from qrlogin.core.errors import Conflict, TicketNotFound, VersionConflict
from qrlogin.services import lifecycle
from qrlogin.services.lifecycle import TicketState


def _ticket(now=1000.0):
    return lifecycle.new_ticket(now, 120)


def test_create_and_get(store):
    ticket = _ticket()
    assert store.create(ticket) == ticket.id
    assert store.get(ticket.id) is ticket
    assert len(store) == 1


def test_duplicate_id_rejected(store):
    ticket = _ticket()
    store.create(ticket)
    with pytest.raises(ValueError):
        store.create(ticket)


def test_get_unknown_raises_not_found(store):
    with pytest.raises(TicketNotFound):
        store.get("nope")


def test_compare_and_swap_bumps_version(store):
    ticket = _ticket()
    store.create(ticket)

    updated = store.compare_and_swap(ticket.id, 0, lambda t: lifecycle.scan(t, "alice", 1001.0))
    assert updated.version == 1
    assert updated.state == TicketState.SCANNED
    assert store.get(ticket.id) == updated


def test_compare_and_swap_stale_version_conflicts(store):
    ticket = _ticket()
    store.create(ticket)
    store.compare_and_swap(ticket.id, 0, lambda t: lifecycle.scan(t, "alice", 1001.0))

    with pytest.raises(VersionConflict):
        store.compare_and_swap(ticket.id, 0, lambda t: lifecycle.cancel(t))
    assert store.get(ticket.id).state == TicketState.SCANNED


def test_compare_and_swap_ignores_version_and_id_from_mutate(store):
    ticket = _ticket()
    store.create(ticket)

    updated = store.compare_and_swap(ticket.id, 0, lambda t: replace(t, id="other", version=99))
    assert updated.id == ticket.id
    assert updated.version == 1


def test_failed_mutation_leaves_record_untouched(store):
    ticket = _ticket()
    store.create(ticket)

    with pytest.raises(Conflict):
        store.compare_and_swap(ticket.id, 0, lambda t: lifecycle.consume(t))
    assert store.get(ticket.id) is ticket


def test_compare_and_swap_unknown_id(store):
    with pytest.raises(TicketNotFound):
        store.compare_and_swap("nope", 0, lambda t: t)


def test_evict(store):
    ticket = _ticket()
    store.create(ticket)
    assert store.evict(ticket.id) is True
    assert store.evict(ticket.id) is False
    with pytest.raises(TicketNotFound):
        store.get(ticket.id)


def test_evict_with_stale_version_keeps_ticket(store):
    ticket = _ticket()
    store.create(ticket)
    store.compare_and_swap(ticket.id, 0, lambda t: lifecycle.cancel(t))

    assert store.evict(ticket.id, expected_version=0) is False
    assert store.evict(ticket.id, expected_version=1) is True


def test_snapshot_is_a_copy(store):
    a, b = _ticket(), _ticket()
    store.create(a)
    store.create(b)
    snap = store.snapshot()
    store.evict(a.id)
    assert {t.id for t in snap} == {a.id, b.id}
