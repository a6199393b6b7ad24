from jobelix.database import engine_options


def test_sqlite_connections_shared_across_threads():
    assert engine_options("sqlite:///jobelix.db") == {
        "connect_args": {"check_same_thread": False}
    }
    assert engine_options("sqlite://") == {"connect_args": {"check_same_thread": False}}


def test_server_databases_get_default_options():
    assert engine_options("postgresql+psycopg://jobelix@db/jobelix") == {}
