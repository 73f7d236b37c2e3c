import json
import logging
import sys

from editor.log import JsonFormatter, KeyValueFormatter, record_extras


def _record(msg="batch_submitted", exc_info=None, **extra):
    record = logging.LogRecord("editor.batch", logging.INFO, __file__, 10, msg, (), exc_info)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_extras_exclude_standard_attributes():
    extras = record_extras(_record(batch_id="b-1", operations=3))

    assert extras == {"batch_id": "b-1", "operations": 3}


def test_json_formatter_keeps_extra_fields():
    line = JsonFormatter().format(_record(kind="cut", batch_id="b-1", chain=["cut", "resize"]))

    payload = json.loads(line)
    assert payload["message"] == "batch_submitted"
    assert payload["level"] == "INFO"
    assert payload["logger"] == "editor.batch"
    assert payload["kind"] == "cut"
    assert payload["batch_id"] == "b-1"
    assert payload["chain"] == ["cut", "resize"]


def test_json_formatter_stringifies_unknown_values():
    class Marker:
        def __str__(self):
            return "marker"

    payload = json.loads(JsonFormatter().format(_record(thing=Marker())))

    assert payload["thing"] == "marker"


def test_json_formatter_includes_exception():
    try:
        raise ValueError("bad chain")
    except ValueError:
        record = _record(exc_info=sys.exc_info())

    payload = json.loads(JsonFormatter().format(record))
    assert "ValueError: bad chain" in payload["exception"]


def test_plain_formatter_appends_extra_fields():
    line = KeyValueFormatter(fmt="%(levelname)s %(message)s").format(_record(kind="cut", retry_count=2))

    assert line == 'INFO batch_submitted kind="cut" retry_count=2'


def test_plain_formatter_without_extras_is_unchanged():
    assert KeyValueFormatter(fmt="%(message)s").format(_record()) == "batch_submitted"


def test_extra_fields_reach_the_handler(caplog):
    logging.getLogger("editor.batch").warning("batch_failed", extra={"batch_id": "b-2", "status": "error"})

    record = next(r for r in caplog.records if r.message == "batch_failed")
    assert json.loads(JsonFormatter().format(record))["batch_id"] == "b-2"
    assert 'status="error"' in KeyValueFormatter(fmt="%(message)s").format(record)
