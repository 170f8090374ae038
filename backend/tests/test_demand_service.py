import pytest

from app.core.errors import ConflictError, NotFoundError, ValidationError
from app.db.models.demand import Demand, compute_pending
from app.db.session import SessionLocal
from services.demand.service import apply_supply_update, create_demand, get_demand, list_demands, set_delayed


def _create(db, **kw):
    args = dict(project="Site A", demand_no="D-001", item="Cement (OPC)", unit="bags", demanded_qty=100)
    args.update(kw)
    return create_demand(db, **args)


@pytest.mark.parametrize(
    "supplied, status, pending",
    [
        (0, "Pending", 100),
        (40, "Partially Supplied", 60),
        (100, "Supplied", 0),
        (150, "Supplied", 0),
    ],
)
def test_status_derivation(db, supplied, status, pending):
    d = _create(db)
    d, _ = apply_supply_update(db, d.id, supplied_qty=supplied)
    assert d.status == status
    assert d.pending_qty == pending


def test_pending_invariant_holds_after_each_update(db):
    d = _create(db, demanded_qty=1200)
    for received in (100, 250, 0, 900, 50):
        d, _ = apply_supply_update(db, d.id, received_qty=received)
        assert d.pending_qty == compute_pending(d.demanded_qty, d.supplied_qty)
    assert d.supplied_qty == 1300
    assert d.pending_qty == 0
    assert d.supplied_date is not None


def test_create_computes_quantities(db):
    d = _create(db, supplied_qty=30, priority="High")
    assert d.id is not None
    assert d.pending_qty == 70
    assert d.status == "Partially Supplied"
    assert d.version == 1


def test_create_rejects_bad_input(db):
    with pytest.raises(ValidationError):
        _create(db, priority="Urgent")
    with pytest.raises(ValidationError):
        _create(db, demanded_qty=-1)
    with pytest.raises(ValidationError):
        _create(db, item="  ")


def test_supplied_quantity_never_decreases(db):
    d = _create(db)
    apply_supply_update(db, d.id, supplied_qty=60)
    with pytest.raises(ValidationError):
        apply_supply_update(db, d.id, supplied_qty=50)
    assert get_demand(db, d.id).supplied_qty == 60


def test_exactly_one_quantity_required(db):
    d = _create(db)
    with pytest.raises(ValidationError):
        apply_supply_update(db, d.id)
    with pytest.raises(ValidationError):
        apply_supply_update(db, d.id, supplied_qty=1, received_qty=1)


def test_increase_is_returned(db):
    d = _create(db)
    apply_supply_update(db, d.id, supplied_qty=10)
    _, increase = apply_supply_update(db, d.id, supplied_qty=35)
    assert increase == 25


def test_stale_version_is_rejected(db):
    d = _create(db)
    seen = d.version
    apply_supply_update(db, d.id, received_qty=10, expected_version=seen)
    with pytest.raises(ConflictError):
        apply_supply_update(db, d.id, received_qty=10, expected_version=seen)
    assert get_demand(db, d.id).supplied_qty == 10


def _supply_elsewhere(demand_id, supplied_qty):
    other = SessionLocal()
    try:
        row = other.get(Demand, demand_id)
        row.supplied_qty = supplied_qty
        row.recompute()
        other.commit()
    finally:
        other.close()


def test_concurrent_commit_during_supply_update_conflicts(db):
    d = _create(db)
    # db still holds version 1 when the other writer commits version 2
    assert get_demand(db, d.id).version == 1
    _supply_elsewhere(d.id, 5)
    with pytest.raises(ConflictError):
        apply_supply_update(db, d.id, received_qty=10)
    assert get_demand(db, d.id).supplied_qty == 5


def test_concurrent_commit_during_delay_conflicts(db):
    d = _create(db)
    get_demand(db, d.id)
    _supply_elsewhere(d.id, 5)
    with pytest.raises(ConflictError):
        set_delayed(db, d.id, True)
    assert get_demand(db, d.id).delayed is False


@pytest.mark.parametrize("bad", [float("nan"), float("inf"), float("-inf")])
def test_non_finite_quantities_are_rejected(db, bad):
    with pytest.raises(ValidationError):
        create_demand(db, project="P", demand_no="D-9", item="Sand", demanded_qty=bad)
    d = _create(db)
    with pytest.raises(ValidationError):
        apply_supply_update(db, d.id, received_qty=bad)
    with pytest.raises(ValidationError):
        apply_supply_update(db, d.id, supplied_qty=bad)
    assert get_demand(db, d.id).supplied_qty == 0
    assert len(list_demands(db)) == 1


def test_delayed_override_and_filtering(db):
    a = _create(db, demand_no="D-1")
    _create(db, demand_no="D-2")
    set_delayed(db, a.id, True)
    assert get_demand(db, a.id).effective_status == "Delayed"
    assert [r.demand_no for r in list_demands(db, status="Delayed")] == ["D-1"]
    assert [r.demand_no for r in list_demands(db, status="Pending")] == ["D-2"]
    set_delayed(db, a.id, False)
    assert get_demand(db, a.id).effective_status == "Pending"


def test_unknown_demand(db):
    with pytest.raises(NotFoundError):
        get_demand(db, 404)
