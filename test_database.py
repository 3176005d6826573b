from sqlalchemy import create_engine, text

from database import expire_idle_connections


def dbapi_connection_of(engine):
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
        return conn.connection.dbapi_connection


def test_idle_connection_is_replaced(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'idle.db'}")
    expire_idle_connections(engine, 0)
    first = dbapi_connection_of(engine)
    assert dbapi_connection_of(engine) is not first
    engine.dispose()


def test_recently_used_connection_is_reused(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'busy.db'}")
    expire_idle_connections(engine, 3600)
    first = dbapi_connection_of(engine)
    assert dbapi_connection_of(engine) is first
    engine.dispose()
