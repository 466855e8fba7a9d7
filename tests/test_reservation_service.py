"""
Unit tests for the reservation engine (in-memory repositories).
"""

from datetime import timedelta

import pytest

from app.models.generation_job import JobStatus
from app.models.user_request import RequestStatus
from app.models.video_asset import AssetStatus
from app.services.reservation_service import ReservationKind, is_expired, is_servable
from app.utils.time import utc_now


@pytest.mark.unit
@pytest.mark.asyncio
async def test_first_order_reserves_generation(store, reservations):
    outcome = await reservations.reserve(1, "Default", 5)

    assert outcome.kind == ReservationKind.GENERATE
    asset = store.assets[outcome.asset_id]
    assert asset.name == "default"
    assert asset.status == AssetStatus.PENDING
    assert asset.telegram_file_id is None

    requests = store.requests_for(asset.id)
    assert [(r.user_id, r.status, r.child_age) for r in requests] == [(1, RequestStatus.PENDING, 5)]

    jobs = store.jobs_for(asset.id)
    assert len(jobs) == 1
    assert jobs[0].status == JobStatus.QUEUED


@pytest.mark.unit
@pytest.mark.asyncio
async def test_names_are_deduplicated_case_insensitively(store, reservations):
    first = await reservations.reserve(1, "default", None)
    second = await reservations.reserve(2, "  Default ", None)

    assert first.kind == ReservationKind.GENERATE
    assert second.kind == ReservationKind.SUBSCRIBED
    assert first.asset_id == second.asset_id
    assert len(store.assets) == 1
    # exactly one generation for the epoch
    assert len(store.jobs_for(first.asset_id)) == 1
    assert [r.status for r in store.requests_for(first.asset_id)] == [RequestStatus.PENDING, RequestStatus.PENDING]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_order_while_generating_subscribes(store, reservations):
    asset = store.add_asset("masha", status=AssetStatus.GENERATING)
    store.add_job(asset.id, status=JobStatus.RUNNING, attempts=1)

    outcome = await reservations.reserve(7, "Masha", 4)

    assert outcome.kind == ReservationKind.SUBSCRIBED
    assert asset.status == AssetStatus.GENERATING
    assert len(store.jobs_for(asset.id)) == 1
    assert store.requests_for(asset.id)[0].status == RequestStatus.PENDING


@pytest.mark.unit
@pytest.mark.asyncio
async def test_fresh_cache_hit_is_served_and_completed(store, reservations):
    asset = store.add_asset("anna", status=AssetStatus.AVAILABLE, file_id="file-anna", generated_at=utc_now())

    outcome = await reservations.reserve(3, "Anna", 6)

    assert outcome.kind == ReservationKind.SERVE_CACHED
    assert outcome.file_id == "file-anna"
    assert [r.status for r in store.requests_for(asset.id)] == [RequestStatus.COMPLETED]
    assert store.jobs_for(asset.id) == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_expired_asset_is_regenerated(store, reservations):
    asset = store.add_asset(
        "ivan",
        status=AssetStatus.AVAILABLE,
        file_id="file-old",
        generated_at=utc_now() - timedelta(days=8),
    )

    outcome = await reservations.reserve(4, "Ivan", 3)

    assert outcome.kind == ReservationKind.GENERATE
    assert outcome.asset_id == asset.id
    assert asset.status == AssetStatus.PENDING
    assert asset.telegram_file_id is None
    assert len(store.jobs_for(asset.id)) == 1
    store.assert_handle_iff_available()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_failed_asset_is_rearmed_by_a_new_order(store, reservations):
    asset = store.add_asset("olga", status=AssetStatus.FAILED)
    old_job = store.add_job(asset.id, status=JobStatus.FAILED, attempts=3)
    store.add_request(9, asset.id, RequestStatus.FAILED)

    outcome = await reservations.reserve(5, "Olga", None)

    assert outcome.kind == ReservationKind.GENERATE
    assert asset.status == AssetStatus.PENDING
    active = store.active_job(asset.id)
    assert active is not None and active.id != old_job.id
    # the earlier failed request is left alone; only the new order is pending
    statuses = {(r.user_id, r.status) for r in store.requests_for(asset.id)}
    assert statuses == {(9, RequestStatus.FAILED), (5, RequestStatus.PENDING)}


@pytest.mark.unit
@pytest.mark.asyncio
async def test_same_user_may_order_same_name_twice(store, reservations):
    await reservations.reserve(1, "Petya", None)
    await reservations.reserve(1, "Petya", None)

    asset = store.asset_named("petya")
    assert len(store.requests_for(asset.id)) == 2
    assert len(store.jobs_for(asset.id)) == 1


@pytest.mark.unit
def test_expiry_uses_generation_time_then_creation_time():
    now = utc_now()

    class Row:
        generated_at = None
        created_at = now - timedelta(days=6)

    assert not is_expired(Row, now)
    Row.created_at = now - timedelta(days=7, seconds=1)
    assert is_expired(Row, now)
    Row.generated_at = now - timedelta(days=1)
    assert not is_expired(Row, now)
    assert is_expired(Row, now, retention_days=0)


@pytest.mark.unit
def test_servable_requires_available_with_handle(store):
    now = utc_now()
    available = store.add_asset("a", status=AssetStatus.AVAILABLE, file_id="f", generated_at=now)
    generating = store.add_asset("b", status=AssetStatus.GENERATING)
    failed = store.add_asset("c", status=AssetStatus.FAILED)

    assert is_servable(available, now)
    assert not is_servable(generating, now)
    assert not is_servable(failed, now)
