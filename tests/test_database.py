"""
Connection pre-flight tests for the database helpers and the load CLI.
"""

import pytest
from sqlalchemy.exc import OperationalError

from scripts import load_data
from src.core.database import check_connection


def test_check_connection_succeeds_on_live_session(session):
    assert check_connection(session) is True


def test_check_connection_reports_failure(session, monkeypatch):
    def refuse(*args, **kwargs):
        raise OperationalError("SELECT 1", {}, Exception("connection refused"))

    monkeypatch.setattr(session, "execute", refuse)
    assert check_connection(session) is False


def test_load_cli_stops_when_database_is_unreachable(monkeypatch):
    def must_not_run(*args, **kwargs):
        raise AssertionError("CLI continued past a failed connection check")

    monkeypatch.setattr(load_data, "setup_logging", lambda: None)
    monkeypatch.setattr(load_data, "check_connection", lambda: False)
    monkeypatch.setattr(load_data, "init_database", must_not_run)
    monkeypatch.setattr(load_data, "print_counts", must_not_run)

    with pytest.raises(SystemExit) as exc:
        load_data.main(["--init-db", "--counts"])

    assert exc.value.code == 1
