### advanced_export/worker/start_worker.py

"""
Celery worker startup script

Starts a worker consuming the export queue.
"""

# Local imports
from advanced_export.core.config import get_export_config, settings
from advanced_export.utils.logger import get_logger
from advanced_export.worker.app import app

logger = get_logger(__name__)


def start_worker():
    """Start the celery worker."""
    queue_name = get_export_config().queue.name

    argv = [
        "worker",
        f"--loglevel={settings.log_level.lower()}",
        f"--queues={queue_name}",
        "--concurrency=4",
        "--max-tasks-per-child=100",
        "--prefetch-multiplier=1",
    ]

    logger.info("Starting Celery worker", queue=queue_name, broker=f"redis://{settings.redis_host}:{settings.redis_port}")
    app.worker_main(argv)


if __name__ == "__main__":
    start_worker()
