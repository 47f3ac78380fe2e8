import re

import pytest

from visualgit.utils import disposable_db

NAME_RE = re.compile(r'^test_\d{13}_[0-9a-z]{6}$')


def test_unique_names_have_expected_shape():
    names = {disposable_db.unique_database_name() for _ in range(20)}
    assert len(names) == 20
    assert all(NAME_RE.match(n) for n in names)
    assert disposable_db.unique_database_name('ci').startswith('ci_')


def test_sqlite_provision_and_teardown(tmp_path):
    stamp = tmp_path / '.test-db-name'
    environ = {'DB_DIALECT': 'sqlite', 'DB_SQLITE_DIR': str(tmp_path / 'dbs'),
               'DATABASE_URL': 'sqlite:///elsewhere.db'}
    name = disposable_db.provision('test', stamp, environ)

    assert NAME_RE.match(name)
    assert (tmp_path / 'dbs' / f'{name}.db').exists()
    assert disposable_db.read_stamp(stamp) == name
    assert environ['DB_NAME'] == name
    assert environ['ENV'] == 'test'
    assert 'DATABASE_URL' not in environ

    assert disposable_db.teardown(stamp, environ) == name
    assert not (tmp_path / 'dbs' / f'{name}.db').exists()
    assert not stamp.exists()


def test_teardown_without_stamp_is_noop(tmp_path):
    assert disposable_db.teardown(tmp_path / 'missing', {}) is None


def test_teardown_refuses_unsafe_name_but_removes_stamp(tmp_path):
    stamp = tmp_path / '.test-db-name'
    stamp.write_text('x"; DROP DATABASE prod; --', encoding='utf-8')
    with pytest.raises(ValueError):
        disposable_db.teardown(stamp, {'DB_DIALECT': 'postgresql'})
    assert not stamp.exists()


class FakeConnection:
    def __init__(self, log):
        self.log = log

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def execute(self, statement, params=None):
        self.log.append((str(statement), params))


class FakeEngine:
    def __init__(self, log):
        self.log = log
        self.disposed = False

    def connect(self):
        return FakeConnection(self.log)

    def dispose(self):
        self.disposed = True


def test_postgres_statements(tmp_path, monkeypatch):
    log = []
    engines = []

    def fake_admin_engine(environ):
        engine = FakeEngine(log)
        engines.append(engine)
        return engine

    monkeypatch.setattr(disposable_db, 'admin_engine', fake_admin_engine)
    stamp = tmp_path / '.test-db-name'
    environ = {'DB_DIALECT': 'postgresql'}

    name = disposable_db.provision('test', stamp, environ)
    assert log == [(f'CREATE DATABASE "{name}"', None)]

    disposable_db.teardown(stamp, environ)
    terminate, drop = log[1:]
    assert 'pg_terminate_backend' in terminate[0]
    assert terminate[1] == {'name': name}
    assert drop[0] == f'DROP DATABASE IF EXISTS "{name}"'
    assert all(e.disposed for e in engines)
    assert not stamp.exists()


def test_admin_url_uses_maintenance_database():
    url = disposable_db.admin_url({'DB_USER': 'u', 'DB_PASSWORD': 'p', 'DB_HOST': 'db', 'DB_PORT': '6543',
                                   'PG_DATABASE_ADMIN': 'template1'})
    assert url.drivername == 'postgresql+psycopg'
    assert (url.username, url.host, url.port, url.database) == ('u', 'db', 6543, 'template1')
