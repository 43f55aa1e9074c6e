### advanced_export/worker/config.py

"""
Celery configuration settings

This file contains all the Celery configurations including:
- Broker and result backend settings
- Task serialization settings
- Routing of export jobs to their queue
"""

# Local imports
from advanced_export.core.config import get_export_config, settings

_export_config = get_export_config()

# Broker and result backend configurations
broker_url = settings.celery_broker
result_backend = settings.celery_backend

# Task serialization
task_serializer = "json"
accept_content = ["json"]
result_serializer = "json"
timezone = "UTC"
enable_utc = True

# Task settings
task_track_started = True
task_time_limit = _export_config.queue.timeout
task_soft_time_limit = max(_export_config.queue.timeout - 30, 1)
# One job per worker process at a time
worker_prefetch_multiplier = 1
task_acks_late = True

broker_connection_retry_on_startup = True
broker_connection_max_retries = 10

broker_transport_options = {
    "socket_timeout": 10,
    "socket_connect_timeout": 10,
    "socket_keepalive": True,
    "retry_on_timeout": True,
    "health_check_interval": 30,
}

# Export jobs go to the configured queue
task_routes = {
    "exports.*": {"queue": _export_config.queue.name},
}

# Worker configuration
worker_hijack_root_logger = False
worker_log_color = False
