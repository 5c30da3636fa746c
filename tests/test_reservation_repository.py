import asyncio
from datetime import date, datetime, time, timezone

import pytest
from sqlalchemy import func, select

from app.core.config import settings
from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.models import Client, Court, Reservation, Transaction
from app.services.reservation_repository import reservation_repository
from tests.helpers import DAY, booking


async def test_create_returns_stored_reservation(db, facility):
    reservation = await reservation_repository.create(db, booking(facility))

    assert reservation.id is not None
    assert reservation.version == 1
    assert reservation.total == 40
    assert reservation.created_by_name == "Sam"


async def test_overlapping_booking_is_refused(db, facility):
    first = await reservation_repository.create(db, booking(facility))

    with pytest.raises(ConflictError) as excinfo:
        await reservation_repository.create(
            db, booking(facility, start_time=time(9, 30), end_time=time(10, 30))
        )

    assert excinfo.value.conflicting_ids == [first.id]


async def test_refused_booking_writes_nothing(db, session_factory, facility):
    await reservation_repository.create(db, booking(facility))

    with pytest.raises(ConflictError):
        await reservation_repository.create(
            db, booking(facility, start_time=time(9, 30), end_time=time(10, 30), card_amount=5)
        )

    async with session_factory() as session:
        count = await session.scalar(select(func.count()).select_from(Transaction))
    assert count == 1


async def test_touching_intervals_do_not_overlap(db, facility):
    await reservation_repository.create(db, booking(facility))

    later = await reservation_repository.create(
        db, booking(facility, start_time=time(10, 0), end_time=time(11, 0))
    )

    assert later.start_time == time(10, 0)


async def test_same_slot_on_another_court_is_free(db, facility):
    await reservation_repository.create(db, booking(facility))

    other = await reservation_repository.create(db, booking(facility, court_id=facility.court_b))

    assert other.court_id == facility.court_b


async def test_allow_overlap_bypasses_check(db, facility):
    await reservation_repository.create(db, booking(facility))

    second = await reservation_repository.create(db, booking(facility, allow_overlap=True))

    assert second.id is not None


async def test_overlap_not_enforced_when_disabled(db, facility, monkeypatch):
    monkeypatch.setattr(settings, "ENFORCE_NO_OVERLAP", False)
    await reservation_repository.create(db, booking(facility))

    second = await reservation_repository.create(db, booking(facility))

    assert second.id is not None


async def test_concurrent_bookings_for_same_slot(session_factory, facility):
    async def attempt():
        async with session_factory() as session:
            return await reservation_repository.create(session, booking(facility))

    results = await asyncio.gather(attempt(), attempt(), return_exceptions=True)

    assert sum(isinstance(r, ConflictError) for r in results) == 1
    assert sum(not isinstance(r, Exception) for r in results) == 1


@pytest.mark.parametrize(
    "overrides",
    [
        {"end_time": time(9, 0)},
        {"end_time": time(8, 0)},
        {"start_time": time(9, 0, 30), "end_time": time(9, 0, 45)},
        {"cash_amount": -1},
        {"created_by_role": "owner"},
        {"court_id": 9999},
        {"client_id": 9999},
    ],
)
async def test_invalid_input_is_rejected(db, facility, overrides):
    with pytest.raises(ValidationError):
        await reservation_repository.create(db, booking(facility, **overrides))


async def test_inactive_court_is_rejected(db, session_factory, facility):
    async with session_factory() as session:
        court = await session.get(Court, facility.court_a)
        court.deleted_at = datetime.now(timezone.utc)
        await session.commit()

    with pytest.raises(ValidationError):
        await reservation_repository.create(db, booking(facility))


async def test_free_booking_has_no_ledger_rows(db, facility):
    reservation = await reservation_repository.create(db, booking(facility, cash_amount=0))

    rows = await db.scalar(
        select(func.count()).select_from(Transaction).where(Transaction.reservation_id == reservation.id)
    )
    assert rows == 0


async def test_free_booking_refused_when_disallowed(db, facility, monkeypatch):
    monkeypatch.setattr(settings, "ALLOW_FREE_BOOKINGS", False)

    with pytest.raises(ValidationError):
        await reservation_repository.create(db, booking(facility, cash_amount=0))


async def test_update_bumps_version(db, facility):
    reservation = await reservation_repository.create(db, booking(facility))

    updated = await reservation_repository.update(
        db, reservation.id, {"end_time": time(10, 30), "expected_version": 1}
    )

    assert updated.version == 2
    assert updated.end_time == time(10, 30)


async def test_update_with_stale_version(db, facility):
    reservation = await reservation_repository.create(db, booking(facility))
    await reservation_repository.update(db, reservation.id, {"card_amount": 5})

    with pytest.raises(ConflictError):
        await reservation_repository.update(
            db, reservation.id, {"cash_amount": 0, "expected_version": 1}
        )


async def test_update_can_shift_within_own_slot(db, facility):
    reservation = await reservation_repository.create(db, booking(facility))

    moved = await reservation_repository.update(
        db, reservation.id, {"start_time": time(9, 30), "end_time": time(10, 30)}
    )

    assert moved.start_time == time(9, 30)


async def test_update_into_another_booking_is_refused(db, facility):
    await reservation_repository.create(db, booking(facility))
    later = await reservation_repository.create(
        db, booking(facility, start_time=time(10, 0), end_time=time(11, 0))
    )

    with pytest.raises(ConflictError):
        await reservation_repository.update(db, later.id, {"start_time": time(9, 30)})


async def test_update_checks_merged_interval(db, facility):
    reservation = await reservation_repository.create(db, booking(facility))

    with pytest.raises(ValidationError):
        await reservation_repository.update(db, reservation.id, {"start_time": time(10, 0)})


async def test_update_rejects_seconds(db, facility):
    reservation = await reservation_repository.create(db, booking(facility))

    with pytest.raises(ValidationError):
        await reservation_repository.update(db, reservation.id, {"end_time": time(10, 0, 30)})


async def test_update_follows_reservation_moved_while_waiting(db, session_factory, facility):
    reservation = await reservation_repository.create(db, booking(facility))
    court_a_lock = reservation_repository._lock_for((facility.court_a, DAY))
    court_b_lock = reservation_repository._lock_for((facility.court_b, DAY))

    await court_a_lock.acquire()
    pending = asyncio.create_task(
        reservation_repository.update(db, reservation.id, {"end_time": time(10, 30)})
    )
    await asyncio.sleep(0.05)

    async with session_factory() as session:
        moved = await session.get(Reservation, reservation.id)
        moved.court_id = facility.court_b
        await session.commit()

    await court_b_lock.acquire()
    court_a_lock.release()
    await asyncio.sleep(0.05)
    assert not pending.done()

    court_b_lock.release()
    updated = await asyncio.wait_for(pending, timeout=2)

    assert updated.court_id == facility.court_b
    assert updated.end_time == time(10, 30)
    assert updated.version == 3


async def test_update_cannot_clear_required_fields(db, facility):
    reservation = await reservation_repository.create(db, booking(facility))

    with pytest.raises(ValidationError):
        await reservation_repository.update(db, reservation.id, {"court_id": None})


async def test_update_to_inactive_client_is_rejected(db, session_factory, facility):
    reservation = await reservation_repository.create(db, booking(facility))
    async with session_factory() as session:
        client = await session.get(Client, facility.bob)
        client.deleted_at = datetime.now(timezone.utc)
        await session.commit()

    with pytest.raises(ValidationError):
        await reservation_repository.update(db, reservation.id, {"client_id": facility.bob})


async def test_update_missing_reservation(db, facility):
    with pytest.raises(NotFoundError):
        await reservation_repository.update(db, 9999, {"cash_amount": 1})


async def test_delete_removes_ledger_rows(db, session_factory, facility):
    reservation = await reservation_repository.create(
        db, booking(facility, card_amount=10)
    )

    await reservation_repository.delete(db, reservation.id)

    async with session_factory() as session:
        rows = await session.scalar(select(func.count()).select_from(Transaction))
    assert rows == 0
    with pytest.raises(NotFoundError):
        await reservation_repository.get(db, reservation.id)


async def test_delete_missing_reservation(db, facility):
    with pytest.raises(NotFoundError):
        await reservation_repository.delete(db, 9999)


async def test_list_by_date_range(db, facility):
    await reservation_repository.create(db, booking(facility))
    await reservation_repository.create(db, booking(facility, court_id=facility.court_c))
    await reservation_repository.create(db, booking(facility, date=date(2025, 3, 20)))

    same_day = await reservation_repository.list_by_date_range(db, DAY, DAY)
    on_court_c = await reservation_repository.list_by_date_range(
        db, DAY, date(2025, 3, 31), court_id=facility.court_c
    )
    month = await reservation_repository.list_by_date_range(db, date(2025, 3, 1), date(2025, 3, 31))

    assert len(same_day) == 2
    assert [r.court_id for r in on_court_c] == [facility.court_c]
    assert [r.date for r in month] == [DAY, DAY, date(2025, 3, 20)]


async def test_list_by_inverted_range(db, facility):
    with pytest.raises(ValidationError):
        await reservation_repository.list_by_date_range(db, DAY, date(2025, 3, 1))


async def test_schedule_grid_marks_covered_slots(db, facility):
    reservation = await reservation_repository.create(db, booking(facility))

    grid = await reservation_repository.get_schedule_grid(db, None, DAY)

    assert grid.granularity_minutes == 30
    assert len(grid.cells) == 4 * 48
    court_a = {c.slot: c.reservation for c in grid.cells if c.court_id == facility.court_a}
    assert court_a[time(9, 0)].id == reservation.id
    assert court_a[time(9, 30)].id == reservation.id
    assert court_a[time(10, 0)] is None
    assert court_a[time(8, 30)] is None


async def test_schedule_grid_for_selected_courts(db, facility):
    grid = await reservation_repository.get_schedule_grid(
        db, [facility.court_c, facility.court_b], DAY, granularity_minutes=60
    )

    assert len(grid.cells) == 2 * 24
    assert grid.cells[0].court_name == "Court B"


async def test_schedule_grid_unknown_court(db, facility):
    with pytest.raises(NotFoundError):
        await reservation_repository.get_schedule_grid(db, [facility.court_a, 9999], DAY)
