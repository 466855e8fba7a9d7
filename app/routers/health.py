"""Health check router."""

import logging
from pathlib import Path
from typing import Dict, Optional

from alembic.config import Config
from alembic.script import ScriptDirectory
from fastapi import APIRouter, Depends
from sqlalchemy import func, select, text
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import get_db
from app.models.generation_job import GenerationJob, JobStatus

logger = logging.getLogger(__name__)

router = APIRouter()


def _load_alembic_head() -> Optional[str]:
    project_root = Path(__file__).resolve().parents[2]
    cfg_path = project_root / "alembic.ini"
    script_location = project_root / "alembic"
    if not cfg_path.exists() or not script_location.exists():
        return None

    config = Config(str(cfg_path))
    config.set_main_option("script_location", str(script_location))
    return ScriptDirectory.from_config(config).get_current_head()


async def _job_counts(db: AsyncSession) -> Dict[str, int]:
    result = await db.execute(
        select(GenerationJob.status, func.count())
        .where(GenerationJob.status.in_(JobStatus.ACTIVE))
        .group_by(GenerationJob.status)
    )
    counts = {status: 0 for status in JobStatus.ACTIVE}
    counts.update({status: int(count) for status, count in result.all()})
    return counts


@router.get("/health")
async def health_check(db: AsyncSession = Depends(get_db)):
    """DB reachability, migration state and generation queue depth."""
    db_ok = False
    alembic_current: Optional[str] = None
    jobs: Optional[Dict[str, int]] = None

    try:
        await db.execute(text("SELECT 1"))
        db_ok = True
    except Exception as exc:
        logger.warning("Health check: database unreachable: %s", exc)

    if db_ok:
        try:
            version_result = await db.execute(text("SELECT version_num FROM alembic_version"))
            alembic_current = version_result.scalar_one_or_none()
            jobs = await _job_counts(db)
        except Exception as exc:
            logger.warning("Health check: schema not ready: %s", exc)

    try:
        alembic_head = _load_alembic_head()
    except Exception as exc:
        logger.warning("Health check: cannot read migration scripts: %s", exc)
        alembic_head = None

    return {
        "api_ok": True,
        "db_ok": db_ok,
        "alembic_head_ok": bool(alembic_current and alembic_current == alembic_head),
        "alembic_current": alembic_current,
        "alembic_head": alembic_head,
        "jobs": jobs,
    }
