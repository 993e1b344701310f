#!/usr/bin/env python3
"""
Celery worker entry point for the COD service.
Consumes the SMS notification queue filled by order transitions.
"""
import os


def run_worker() -> None:
    from core.celery import celery_app
    from core.config import settings
    from core.log import configure_logging

    configure_logging()
    celery_app.start([
        "worker",
        f"--loglevel={settings.LOG_LEVEL.lower()}",
        f"--concurrency={os.getenv('CELERY_CONCURRENCY', '4')}",
        "--without-gossip",
        "--without-mingle",
        "--without-heartbeat",
    ])


if __name__ == "__main__":
    run_worker()
