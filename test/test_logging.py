import json
import logging

from ipd.logging_config import JsonFormatter


def test_json_formatter_emits_structured_lines():
    record = logging.LogRecord("ipd.sync", logging.INFO, __file__, 1, "product_sold product_id=%s", ("abc",), None)

    payload = json.loads(JsonFormatter(datefmt="%Y-%m-%d %H:%M:%S").format(record))

    assert payload["logger"] == "ipd.sync"
    assert payload["level"] == "INFO"
    assert payload["message"] == "product_sold product_id=abc"
