# advanced_export/tests/test_migration.py

from alembic.migration import MigrationContext
from alembic.operations import Operations
from sqlalchemy import create_engine, inspect

from advanced_export.exports.models import ExportJob
from advanced_export.migrations.versions import create_export_tables as migration
from advanced_export.notifications.models import UserNotification


def _run(conn, step):
    with Operations.context(MigrationContext.configure(conn)):
        step()


class TestMigration:
    """Test the export schema migration"""

    def test_upgrade_matches_models_and_downgrade_drops_tables(self):
        engine = create_engine("sqlite://")

        with engine.begin() as conn:
            _run(conn, migration.upgrade)

            inspector = inspect(conn)
            assert {"export_jobs", "export_notifications"} <= set(inspector.get_table_names())

            job_columns = {c["name"] for c in inspector.get_columns("export_jobs")}
            assert job_columns == set(ExportJob.__table__.columns.keys())

            notification_columns = {c["name"] for c in inspector.get_columns("export_notifications")}
            assert notification_columns == set(UserNotification.__table__.columns.keys())

            index_names = {i["name"] for i in inspector.get_indexes("export_jobs")}
            assert {"ix_export_jobs_entity_type", "ix_export_jobs_created_at", "ix_export_jobs_owner_status"} <= index_names

        with engine.begin() as conn:
            _run(conn, migration.downgrade)

            remaining = set(inspect(conn).get_table_names())
            assert "export_jobs" not in remaining
            assert "export_notifications" not in remaining

        engine.dispose()
