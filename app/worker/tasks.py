"""ARQ job definitions. The accrual loop itself runs inside the worker process (see startup)."""

import uuid
from typing import Any

from arq.connections import RedisSettings

from app.core.config import get_settings
from app.core.logging import bind_job, get_logger
from app.worker.scheduler import AccrualScheduler

log = get_logger(__name__)


async def _run_with_dlq(ctx: dict[str, Any], job_name: str, coro) -> Any:
    """Run coroutine; on exception persist to FailedJob then re-raise so arq records the failure too."""
    job_id = ctx.get("job_id") if isinstance(ctx.get("job_id"), str) else None
    bind_job(job_name, job_id)
    try:
        return await coro
    except Exception as e:
        from app.db.init import init_db
        from app.models.failed_job import FailedJob
        await init_db()
        fid = job_id or str(uuid.uuid4())
        await FailedJob(
            job_name=job_name,
            job_id=fid,
            job_try=ctx.get("job_try") or 1,
            error_type=type(e).__name__,
            reason=str(e)[:2000],
        ).insert()
        log.exception("job_failed", job=job_name, job_id=fid, reason=str(e))
        raise


async def refresh_prices(ctx: dict[str, Any]) -> dict[str, int]:
    """Cron job: update stored crypto prices."""
    from app.worker.cron import run_refresh_prices
    return await _run_with_dlq(ctx, "refresh_prices", run_refresh_prices())


async def expire_contracts(ctx: dict[str, Any]) -> int:
    """Cron job: settle and deactivate ended contracts."""
    from app.worker.cron import run_expire_contracts
    return await _run_with_dlq(ctx, "expire_contracts", run_expire_contracts())


async def startup(ctx: dict) -> None:
    from app.db.init import init_db
    from app.services.plans import seed_default_plans
    from app.services.prices import refresh_prices as _refresh

    await init_db()
    await seed_default_plans()
    await _refresh()
    if get_settings().accrual_enabled:
        scheduler = AccrualScheduler()
        scheduler.start()
        ctx["accrual_scheduler"] = scheduler


async def shutdown(ctx: dict) -> None:
    scheduler: AccrualScheduler | None = ctx.get("accrual_scheduler")
    if scheduler is not None:
        await scheduler.stop()


def get_redis_settings() -> RedisSettings:
    from urllib.parse import urlparse
    s = get_settings()
    u = urlparse(s.redis_url)
    return RedisSettings(
        host=u.hostname or "localhost",
        port=u.port or 6379,
        password=u.password,
        database=int(u.path.lstrip("/")) if u.path.lstrip("/") else 0,
    )
