### advanced_export/worker/app.py

"""
Main Celery Application Configuration

Sets up the Celery application instance with Redis as broker and result
backend, imports the modules registering exportable models and discovers the
export tasks.
"""

# Third party imports
from celery import Celery

# Local imports
from advanced_export.core.config import settings
from advanced_export.exports.entities import load_entity_modules
from advanced_export.utils.logger import configure_logging

configure_logging(settings.log_level, json_output=settings.log_json)

# Import all models to ensure they're registered with SQLAlchemy and the
# export registry before any task runs
import advanced_export.exports.models  # noqa: E402,F401
import advanced_export.notifications.models  # noqa: E402,F401

load_entity_modules(settings.export_entity_modules)

# Create Celery Instance
app = Celery("advanced_export")

# Configure celery from separate config file
app.config_from_object("advanced_export.worker.config")

# Auto discover tasks.py modules
app.autodiscover_tasks(["advanced_export.exports"])

if __name__ == "__main__":
    app.start()
