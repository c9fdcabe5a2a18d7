import pytest
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from batchpos.errors import ConnectivityError, RemoteWriteError, ValidationError
from batchpos.services import concurrency


def test_run_with_retry_retries_stale_data(db_session):
    calls = []

    def _op():
        calls.append(1)
        if len(calls) < 3:
            raise StaleDataError("version mismatch")
        return "ok"

    assert concurrency.run_with_retry(_op, backoff_base=0) == "ok"
    assert len(calls) == 3


def test_run_with_retry_gives_up(db_session):
    def _op():
        raise StaleDataError("version mismatch")

    with pytest.raises(StaleDataError):
        concurrency.run_with_retry(_op, attempts=2, backoff_base=0)


def test_remote_call_translates_transport_errors(db_session):
    def _op():
        raise OperationalError("SELECT 1", {}, Exception("connection refused"))

    with pytest.raises(ConnectivityError):
        concurrency.remote_call(_op)


def test_remote_call_translates_rejected_writes(db_session):
    def _constraint():
        raise IntegrityError("INSERT", {}, Exception("CHECK constraint failed"))

    def _conflict():
        raise StaleDataError("version mismatch")

    with pytest.raises(RemoteWriteError):
        concurrency.remote_call(_constraint)
    with pytest.raises(RemoteWriteError) as excinfo:
        concurrency.remote_call(_conflict)
    assert excinfo.value.details["cause"] == "StaleDataError"


def test_remote_call_passes_own_errors_through(db_session):
    def _op():
        raise ValidationError("quantity must be > 0")

    with pytest.raises(ValidationError):
        concurrency.remote_call(_op)


def test_probe_remote(app, db_session):
    assert concurrency.probe_remote() is True
    app.config['FORCE_OFFLINE'] = True
    assert concurrency.probe_remote() is False


def test_engine_options_bound_remote_calls():
    sqlite = concurrency.engine_options("sqlite:///pos.db", 5)
    assert sqlite["connect_args"] == {"timeout": 5}
    assert sqlite["pool_pre_ping"] is True

    pg = concurrency.engine_options("postgresql://u:p@db/pos", 2.5)
    assert pg["pool_timeout"] == 2.5
    assert pg["connect_args"]["connect_timeout"] == 2
    assert pg["connect_args"]["options"] == "-c statement_timeout=2500"
