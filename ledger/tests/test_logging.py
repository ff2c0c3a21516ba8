import json
import logging

from loguru import logger

from ledger.logging import InterceptHandler, serialize_record


METADATA = {"service_name": "loyalty-ledger", "environment": "development", "version": "1.0.0"}


def capture():
    lines = []
    sink_id = logger.add(lambda message: lines.append(serialize_record(message.record, METADATA)))
    return lines, sink_id


def test_json_payload_carries_context():
    lines, sink_id = capture()
    try:
        logger.bind(member_id="m-1").info("Membership renewed")
    finally:
        logger.remove(sink_id)

    payload = json.loads(lines[-1])
    assert payload["message"] == "Membership renewed"
    assert payload["level"] == "info"
    assert payload["service"] == "loyalty-ledger"
    assert payload["member_id"] == "m-1"


def test_stdlib_records_are_bridged():
    lines, sink_id = capture()
    stdlib_logger = logging.getLogger("ledger.tests.bridge")
    handler = InterceptHandler()
    stdlib_logger.addHandler(handler)
    stdlib_logger.setLevel(logging.INFO)
    stdlib_logger.propagate = False
    try:
        stdlib_logger.warning("store slow: {%s}", "ledger")
    finally:
        stdlib_logger.removeHandler(handler)
        logger.remove(sink_id)

    payload = json.loads(lines[-1])
    assert payload["level"] == "warning"
    assert payload["message"] == "store slow: {ledger}"
