import json
import logging
from types import SimpleNamespace

from snapforge.core.logging_utils import JsonFormatter, configure_logging


def _settings(**overrides):
    values = dict(LOG_LEVEL="debug", LOG_JSON=True, LOG_FILE="", LOG_MAX_BYTES=1000, LOG_BACKUP_COUNT=1)
    values.update(overrides)
    return SimpleNamespace(**values)


def test_json_formatter_lifts_extra_fields():
    record = logging.LogRecord("audit", logging.INFO, __file__, 1, "gallery.created", (), None)
    record.gallery_id = "abc"
    record.payload = object()
    line = json.loads(JsonFormatter().format(record))
    assert line["event"] == "gallery.created"
    assert line["logger"] == "audit"
    assert line["gallery_id"] == "abc"
    assert line["payload"].startswith("<object")


def test_configure_logging_writes_rotating_file(tmp_path):
    log_file = tmp_path / "logs" / "app.log"
    configure_logging(_settings(LOG_FILE=str(log_file)))
    try:
        logging.getLogger("audit").info("auth.login.success", extra={"user_id": 7})
        for handler in logging.getLogger().handlers:
            handler.flush()
        entry = json.loads(log_file.read_text(encoding="utf-8").splitlines()[-1])
        assert entry["event"] == "auth.login.success"
        assert entry["user_id"] == 7
        assert logging.getLogger().level == logging.DEBUG
        assert logging.getLogger("PIL").level == logging.WARNING
    finally:
        configure_logging(_settings(LOG_LEVEL="INFO"))
