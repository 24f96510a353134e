from decimal import Decimal

import pytest
from loguru import logger
from pydantic import ValidationError

from reservation_ledger.config import Settings
from reservation_ledger.logger_config import configure_logging, get_logger


def test_defaults():
    config = Settings(_env_file=None)
    assert config.PNR_FLOOR == 100000000000
    assert config.CANCELLATION_REFUND_RATE == Decimal("0.80")
    assert config.MAX_PASSENGERS_PER_BOOKING == 6
    assert config.MAX_GROUPS_PER_REQUEST == 5
    assert config.LAZY_PNR_ISSUANCE is False
    assert config.is_sqlite


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("SNAPSHOT_BACKEND", "json")
    monkeypatch.setenv("LAZY_PNR_ISSUANCE", "true")
    monkeypatch.setenv("DATABASE_URL", "postgresql://ledger@localhost/ledger")

    config = Settings(_env_file=None)
    assert config.SNAPSHOT_BACKEND == "json"
    assert config.LAZY_PNR_ISSUANCE is True
    assert not config.is_sqlite


def test_unknown_backend_rejected():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, SNAPSHOT_BACKEND="redis")


def test_file_sink_written(tmp_path):
    config = Settings(_env_file=None, LOG_TO_FILE=True, LOG_DIR=str(tmp_path), LOG_LEVEL="DEBUG")
    configure_logging(config)
    try:
        get_logger("test").bind(pnr="100000000001").info("hello ledger")
        logger.complete()
    finally:
        configure_logging()

    written = "".join(p.read_text() for p in tmp_path.glob("*.log"))
    assert "hello ledger" in written
    assert "100000000001" in written
