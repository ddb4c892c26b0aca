import anyio
import pytest

from lifecycle import BookingLifecycle
from schemas import BookingStatus
from sweeper import ExpirySweeper

from conftest import NOW


@pytest.fixture
def engine(booking_repo):
    return BookingLifecycle(api=None, bookings=booking_repo, clock=lambda: NOW)


def test_sweep_once_cancels_and_reports(engine, booking_repo, insert_booking):
    ended = insert_booking(hoursFrom="9", hoursTo="10")
    insert_booking(hoursFrom="10", hoursTo="11")
    working_set = booking_repo.list_by_user("u@x.com")
    reported = []
    sweeper = ExpirySweeper(engine, lambda: working_set, on_expired=reported.append)

    assert sweeper.sweep_once() == [ended]
    assert reported == [[ended]]
    assert booking_repo.get(ended).status is BookingStatus.CANCELLED


def test_sweep_once_without_matches_does_not_report(engine, booking_repo, insert_booking):
    insert_booking(date="Tomorrow", hoursFrom="8", hoursTo="9")
    reported = []
    sweeper = ExpirySweeper(engine, lambda: booking_repo.list_by_user("u@x.com"), on_expired=reported.append)

    assert sweeper.sweep_once() == []
    assert reported == []


@pytest.mark.anyio
async def test_background_sweep_runs_until_stopped(engine, booking_repo, insert_booking):
    ended = insert_booking(hoursFrom="9", hoursTo="10")
    working_set = booking_repo.list_by_user("u@x.com")
    reported = []
    sweeper = ExpirySweeper(engine, lambda: working_set, interval=0.01, on_expired=reported.append)

    task = sweeper.start()
    assert sweeper.start() is task
    with anyio.fail_after(5):
        while not reported:
            await anyio.sleep(0.01)
    await sweeper.stop()

    assert not sweeper.running
    assert task.cancelled()
    assert reported[0] == [ended]
    assert booking_repo.get(ended).status is BookingStatus.CANCELLED


@pytest.mark.anyio
async def test_stop_without_start_is_harmless(engine):
    sweeper = ExpirySweeper(engine, lambda: [])

    await sweeper.stop()

    assert not sweeper.running
