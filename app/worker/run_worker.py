"""Run ARQ worker. Usage: python -m app.worker.run_worker"""

from arq import run_worker
from arq.cron import cron

from app.core.config import get_settings
from app.core.logging import configure_logging
from app.worker.tasks import expire_contracts, get_redis_settings, refresh_prices, shutdown, startup


class WorkerSettings:
    redis_settings = get_redis_settings()
    functions = [refresh_prices, expire_contracts]
    cron_jobs = [
        cron(
            refresh_prices,
            minute=set(range(0, 60, get_settings().price_refresh_minutes)),
            second=0,
            unique=True,
        ),
        cron(expire_contracts, second=30, unique=True),  # every minute at :30
    ]
    on_startup = startup
    on_shutdown = shutdown


def main() -> None:
    configure_logging(debug=get_settings().debug)
    run_worker(WorkerSettings)


if __name__ == "__main__":
    main()
