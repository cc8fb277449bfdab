from arq import cron
from arq.connections import RedisSettings
from opentelemetry import trace

from clypse.config import settings
from clypse.services.file_service import FileShareService
from clypse.storage.factory import build_store
from clypse.utils.logger import log_info
from clypse.utils.telemetry import init_otel


async def sweep_expired_files(ctx) -> dict:
    """Periodic sweep: drop file records whose expiry has passed."""
    r = ctx["redis"]
    tracer = trace.get_tracer("worker")
    await r.incr("jobs:sweep:started")
    try:
        with tracer.start_as_current_span("sweep_expired_files"):
            removed = await ctx["files"].sweep_expired()
        await r.incr("jobs:sweep:finished")
        return {"removed": removed}
    except Exception:
        await r.incr("jobs:sweep:failed")
        raise


class WorkerSettings:
    functions = [sweep_expired_files]
    redis_settings = RedisSettings.from_dsn(settings.REDIS_URL)
    cron_jobs = [
        cron(sweep_expired_files, second=0),  # once a minute
    ]

    @staticmethod
    async def startup(ctx):
        # Initialize telemetry on worker start (console exporter)
        init_otel(service_name=f"{settings.SERVICE_NAME}-worker")
        store = build_store(settings)
        ctx["store"] = store
        ctx["files"] = FileShareService(
            store,
            max_file_size=settings.MAX_FILE_SIZE,
            file_ttl_seconds=settings.FILE_TTL_SECONDS,
            code_max_attempts=settings.CODE_MAX_ATTEMPTS,
        )
        log_info(f"Worker: sweeping {type(store).__name__} every minute")

    @staticmethod
    async def shutdown(ctx):
        store = ctx.pop("store", None)
        if store is not None:
            await store.close()
