from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import inspect

from checkin_hub.commands import create_planned_visit, mark_visitor_arrived
from checkin_hub.database import create_session_factory
from checkin_hub.models import Base

ROOT = Path(__file__).resolve().parents[1]


def _config(url):
    config = Config()
    config.set_main_option("script_location", str(ROOT / "alembic"))
    config.set_main_option("sqlalchemy.url", url)
    return config


def test_upgrade_creates_the_model_schema(database_url):
    command.upgrade(_config(database_url), "head")

    factory = create_session_factory(database_url)
    engine = factory.kw["bind"]
    inspector = inspect(engine)
    columns = {c["name"] for c in inspector.get_columns("visitors")}
    assert columns == set(Base.metadata.tables["visitors"].columns.keys())
    indexes = {i["name"] for i in inspector.get_indexes("visitors")}
    assert "ix_visitors_name_company_created_at" in indexes

    with factory() as db:
        planned = create_planned_visit(db, "Anna Schmidt", "Acme").value
        assert mark_visitor_arrived(db, planned.id).value.version == 2
    engine.dispose()


def test_downgrade_drops_the_table(database_url):
    config = _config(database_url)
    command.upgrade(config, "head")
    command.downgrade(config, "base")

    factory = create_session_factory(database_url)
    assert "visitors" not in inspect(factory.kw["bind"]).get_table_names()
    factory.kw["bind"].dispose()
