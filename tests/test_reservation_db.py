"""
Concurrency tests for the reservation engine against PostgreSQL.

Requires a migrated database (alembic upgrade head) and RUN_DB_TESTS=1.
"""

import asyncio
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from app.core.config import settings
from app.models.generation_job import GenerationJob, JobStatus
from app.models.user_request import RequestStatus, UserRequest
from app.models.video_asset import AssetStatus, VideoAsset
from app.repositories.user_repository import BotUserRepository
from app.services.job_queue_service import JobQueueService
from app.services.reservation_service import ReservationKind, ReservationService


@pytest_asyncio.fixture
async def db_session_factory(monkeypatch):
    monkeypatch.setattr(settings, "SERIALIZABLE_MAX_ATTEMPTS", 20)
    engine = create_async_engine(settings.DATABASE_URL, poolclass=NullPool)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


async def ensure_users(session_factory, user_ids):
    async with session_factory() as db:
        users = BotUserRepository(db)
        for user_id in user_ids:
            await users.upsert(user_id=user_id, first_name="Load test")
        await db.commit()


@pytest.mark.db
@pytest.mark.asyncio
async def test_concurrent_orders_create_one_asset_and_one_job(db_session_factory):
    name = f"default{uuid4().hex[:8]}"
    service = ReservationService(db_session_factory)
    spellings = [name, name.upper(), f"  {name.capitalize()} "]
    await ensure_users(db_session_factory, range(1000, 1008))

    outcomes = await asyncio.gather(
        *(service.reserve(1000 + i, spellings[i % len(spellings)], None) for i in range(8))
    )

    kinds = [o.kind for o in outcomes]
    assert kinds.count(ReservationKind.GENERATE) == 1
    assert kinds.count(ReservationKind.SUBSCRIBED) == 7
    assert len({o.asset_id for o in outcomes}) == 1

    asset_id = outcomes[0].asset_id
    async with db_session_factory() as db:
        assets = await db.scalar(select(func.count()).select_from(VideoAsset).where(VideoAsset.name == name))
        requests = await db.scalar(
            select(func.count()).select_from(UserRequest).where(
                UserRequest.asset_id == asset_id,
                UserRequest.status == RequestStatus.PENDING,
            )
        )
        jobs = await db.scalar(
            select(func.count()).select_from(GenerationJob).where(
                GenerationJob.asset_id == asset_id,
                GenerationJob.status.in_(JobStatus.ACTIVE),
            )
        )
    assert (assets, requests, jobs) == (1, 8, 1)


@pytest.mark.db
@pytest.mark.asyncio
async def test_concurrent_orders_after_failure_rearm_once(db_session_factory):
    name = f"failed{uuid4().hex[:8]}"
    async with db_session_factory() as db:
        asset = VideoAsset(name=name, status=AssetStatus.FAILED)
        db.add(asset)
        await db.commit()
        asset_id = asset.id

    await ensure_users(db_session_factory, range(2000, 2006))
    service = ReservationService(db_session_factory)
    outcomes = await asyncio.gather(*(service.reserve(2000 + i, name, None) for i in range(6)))

    assert [o.kind for o in outcomes].count(ReservationKind.GENERATE) == 1
    async with db_session_factory() as db:
        active = await JobQueueService(db).get_active_job(asset_id)
        refreshed = await db.get(VideoAsset, asset_id)
    assert active is not None
    assert refreshed.status == AssetStatus.PENDING
    assert refreshed.telegram_file_id is None
