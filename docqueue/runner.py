"""CLI entrypoint and programmatic interface for the queue runner."""

import argparse
import asyncio
import importlib
import logging
import os
import signal
import sys
from typing import Optional

import asyncpg

from docqueue.config import DocQueueConfig
from docqueue.documents import DocumentStore
from docqueue.memory_store import InMemoryDocumentStore
from docqueue.processors import register_default_processors
from docqueue.queue import JobQueue
from docqueue.registry import ProcessorRegistry
from docqueue.scheduler import ScheduledTaskManager
from docqueue.store import PostgresDocumentStore


def setup_logging():
    """Setup logging configuration."""
    log_level = os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


async def create_db_pool(config: DocQueueConfig):
    """Create database connection pool."""
    return await asyncpg.create_pool(config.db_dsn, min_size=2, max_size=10)


def load_processors(
    module_path: str,
    registry: ProcessorRegistry,
    job_queue: JobQueue,
    logger: logging.Logger,
) -> None:
    """
    Import a module of extra processors and let it register them.

    The module must expose ``register(registry, job_queue)``.
    """
    module = importlib.import_module(module_path)
    register = getattr(module, "register", None)
    if register is None:
        raise ValueError(f"Processors module {module_path} has no register() function")
    register(registry, job_queue)
    logger.info(f"Loaded processors from {module_path}")


def create_app(job_queue: JobQueue, scheduler: Optional[ScheduledTaskManager], auth_token):
    """Build a FastAPI app serving the jobs router."""
    from fastapi import FastAPI

    from docqueue.fastapi_router import create_jobs_router

    app = FastAPI(title="docqueue")
    app.include_router(
        create_jobs_router(
            lambda: job_queue,
            (lambda: scheduler) if scheduler is not None else None,
            auth_token=auth_token,
        )
    )
    return app


async def run_queue(
    config: Optional[DocQueueConfig] = None,
    store: Optional[DocumentStore] = None,
    registry: Optional[ProcessorRegistry] = None,
    logger: Optional[logging.Logger] = None,
    shutdown_event: Optional[asyncio.Event] = None,
    processors_module: Optional[str] = None,
    http_host: str = "0.0.0.0",
    http_port: Optional[int] = None,
):
    """
    Run the job queue and scheduler until shutdown_event is set.

    Args:
        config: DocQueueConfig instance. If None, will load from environment.
        store: Document store. If None, PostgreSQL when config.db_dsn is set,
            otherwise an in-memory store.
        registry: ProcessorRegistry instance. If None, a new one is created.
        logger: Logger instance. If None, will create default logger.
        shutdown_event: Optional asyncio.Event for graceful shutdown.
        processors_module: Module path with a register(registry, job_queue) function.
        http_host: Interface for the HTTP API
        http_port: Serve the jobs HTTP API on this port if set.

    Example:
        ```python
        from docqueue.runner import run_queue
        import asyncio

        asyncio.run(run_queue(processors_module="myapp.jobs.processors"))
        ```
    """
    if config is None:
        config = DocQueueConfig.from_env()

    if logger is None:
        logger = logging.getLogger(__name__)

    if registry is None:
        registry = ProcessorRegistry()

    if shutdown_event is None:
        shutdown_event = asyncio.Event()

    db_pool = None
    if store is None:
        if config.db_dsn:
            db_pool = await create_db_pool(config)
            store = PostgresDocumentStore(db_pool)
            await store.create_schema()
            logger.info("Using PostgreSQL document store")
        else:
            store = InMemoryDocumentStore()
            logger.warning("DOCQUEUE_DB_DSN not set, jobs are kept in memory only")

    job_queue = JobQueue(store, registry, config=config, logger=logger)
    register_default_processors(registry, job_queue, store, config)
    if processors_module:
        load_processors(processors_module, registry, job_queue, logger)

    scheduler = None
    if config.scheduler_enabled:
        scheduler = ScheduledTaskManager(
            job_queue,
            tick_interval_seconds=config.scheduler_tick_seconds,
            timezone=config.get_scheduler_tz(),
            logger=logger,
        )

    server = None
    server_task = None

    try:
        await job_queue.start()
        if scheduler is not None:
            await scheduler.start()

        if http_port is not None:
            import uvicorn

            app = create_app(job_queue, scheduler, config.auth_token)
            server = uvicorn.Server(
                uvicorn.Config(app, host=http_host, port=http_port, log_level="info")
            )
            server_task = asyncio.create_task(server.serve())
            logger.info(f"Serving jobs API on {http_host}:{http_port}")

        await shutdown_event.wait()

    finally:
        logger.info("Shutting down...")
        if server is not None:
            server.should_exit = True
            await asyncio.gather(server_task, return_exceptions=True)
        if scheduler is not None:
            await scheduler.stop()
        await job_queue.stop()
        if db_pool is not None:
            await db_pool.close()


def main():
    """Main entrypoint for the runner."""
    setup_logging()
    logger = logging.getLogger(__name__)

    parser = argparse.ArgumentParser(description="docqueue runner")
    parser.add_argument(
        "--processors-module",
        default=os.getenv("DOCQUEUE_PROCESSORS_MODULE"),
        help="Module exposing register(registry, job_queue) for extra processors",
    )
    parser.add_argument(
        "--http-port",
        type=int,
        default=None,
        help="Serve the jobs HTTP API on this port",
    )
    parser.add_argument(
        "--http-host",
        default="0.0.0.0",
        help="Interface for the jobs HTTP API (default: 0.0.0.0)",
    )

    args = parser.parse_args()

    try:
        config = DocQueueConfig.from_env()
    except Exception as e:
        logger.error(f"Failed to load config: {e}")
        sys.exit(1)

    # Setup shutdown event
    shutdown_event = asyncio.Event()

    def signal_handler(signum, frame):
        logger.info(f"Received signal {signum}, shutting down...")
        shutdown_event.set()

    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)

    async def run():
        """Async main function."""
        try:
            logger.info("Starting docqueue runner...")
            await run_queue(
                config=config,
                logger=logger,
                shutdown_event=shutdown_event,
                processors_module=args.processors_module,
                http_host=args.http_host,
                http_port=args.http_port,
            )
        except Exception as e:
            logger.error(f"Fatal error in runner: {e}", exc_info=True)
            sys.exit(1)

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
