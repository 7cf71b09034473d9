import io
import json
from datetime import datetime, timedelta, timezone

import pytest

from regsvc import log


@pytest.fixture
def buf():
    log.reset()
    stream = io.StringIO()
    log.init("logger_tests", stream)
    yield stream
    log.reset()


def _records(stream):
    return [json.loads(line) for line in stream.getvalue().splitlines()]


def test_log_info(buf):
    ctx = log.RequestContext()
    ctx.set("subject", "test")
    ctx.set("username", "usernametest")

    log.info(ctx, "test logger with no formatting")
    value = buf.getvalue()
    assert '"logger":"logger_tests"' in value
    assert '"msg":"test logger with no formatting"' in value
    assert '"user_id":"test"' in value
    assert '"username":"usernametest"' in value
    assert '"level":"info"' in value
    assert '"timestamp":"' in value
    assert f'"commit":"{log.COMMIT}"' in value


def test_log_infof(buf):
    ctx = log.RequestContext()
    ctx.set(log.SUB_KEY, "test")
    ctx.set(log.USERNAME_KEY, "usernametest")

    log.infof(ctx, "test %s", "info")
    value = buf.getvalue()
    assert '"logger":"logger_tests"' in value
    assert '"msg":"test info"' in value
    assert '"user_id":"test"' in value
    assert '"username":"usernametest"' in value
    assert '"level":"info"' in value
    assert '"timestamp":"' in value


def test_log_info_echof(buf):
    req = log.Request(
        method="GET",
        url="https://api-server.com/api/workspaces/path",
        body=b"{}",
    )
    ctx = log.RequestContext(request=req)
    ctx.set(log.SUB_KEY, "test")
    ctx.set(log.USERNAME_KEY, "usernametest")
    ctx.set(log.WORKSPACE_KEY, "coolworkspace")

    log.info_echof(ctx, "test %s", "info")
    value = buf.getvalue()
    assert '"logger":"logger_tests"' in value
    assert '"msg":"test info"' in value
    assert '"user_id":"test"' in value
    assert '"username":"usernametest"' in value
    assert '"level":"info"' in value
    assert '"timestamp":"' in value
    assert '"workspace":"coolworkspace"' in value
    assert '"method":"GET"' in value
    assert '"url":"https://api-server.com/api/workspaces/path"' in value


def test_log_infof_with_no_arguments(buf):
    log.infof(log.RequestContext(), "test")
    value = buf.getvalue()
    assert '"logger":"logger_tests"' in value
    assert '"msg":"test"' in value


def test_log_error(buf):
    log.error(log.RequestContext(), Exception("test error"), "test error with no formatting")
    value = buf.getvalue()
    assert '"logger":"logger_tests"' in value
    assert '"msg":"test error with no formatting"' in value
    assert '"error":"test error"' in value
    assert '"level":"error"' in value
    assert '"timestamp":"' in value


def test_log_errorf(buf):
    log.errorf(log.RequestContext(), Exception("test error"), "test %s", "info")
    value = buf.getvalue()
    assert '"logger":"logger_tests"' in value
    assert '"msg":"test info"' in value
    assert '"error":"test error"' in value
    assert '"level":"error"' in value
    assert '"timestamp":"' in value


def test_log_infof_with_http_request(buf):
    req = log.Request(
        method="GET",
        url="http://example.com/api/v1/health?query_key=query_value",
        headers={"Accept": ["application/json"]},
    )
    log.infof(log.RequestContext(request=req), "test %s", "info")
    value = buf.getvalue()
    assert '"logger":"logger_tests"' in value
    assert '"msg":"test info"' in value
    assert '"req_url":"http://example.com/api/v1/health"' in value
    assert '"level":"info"' in value
    assert '"timestamp":"' in value
    assert '"req_params":{"' in value
    assert '"query_key":["query_value"]' in value
    assert '"req_headers":{"Accept":["application/json"]}' in value


def test_log_infof_with_authorization_header(buf):
    data = b'{"testing-body":"test"}'
    req = log.Request(
        method="GET",
        url="http://example.com/api/v1/health?query_key=query_value&token=token",
        headers={"Accept": ["application/json"], "Authorization": ["Bearer token"]},
        body=data,
    )
    log.infof(log.RequestContext(request=req), "test %s", "info")
    value = buf.getvalue()
    assert '"logger":"logger_tests"' in value
    assert '"msg":"test info"' in value
    assert '"req_url":"http://example.com/api/v1/health"' in value
    assert '"level":"info"' in value
    assert '"timestamp":"' in value
    assert '"req_params":{"' in value
    assert '"query_key":["query_value"]' in value
    assert '"token":["*****"]' in value
    assert '"req_headers":{"' in value
    assert '"Accept":["application/json"]' in value
    assert '"Authorization":"*****"' in value
    assert '"req_payload":"{\\"testing-body\\":\\"test\\"}"' in value
    assert req.body == b'{"testing-body":"test"}'


def test_log_infof_with_values(buf):
    ctx = log.RequestContext()
    ctx.set("subject", "test")
    log.with_values({"testing": "with-values"}).infof(ctx, "test %s", "info")
    value = buf.getvalue()
    assert '"logger":"logger_tests"' in value
    assert '"msg":"test info"' in value
    assert '"testing":"with-values"' in value
    assert '"user_id":"test"' in value
    assert '"level":"info"' in value
    assert '"timestamp":"' in value


def test_log_infof_with_empty_values(buf):
    log.with_values({}).infof(log.RequestContext(), "test %s", "info")
    value = buf.getvalue()
    assert '"logger":"logger_tests"' in value
    assert '"msg":"test info"' in value
    assert '"level":"info"' in value


def test_log_infof_with_none_values(buf):
    log.with_values(None).infof(log.RequestContext(), "test %s", "info")
    value = buf.getvalue()
    assert '"logger":"logger_tests"' in value
    assert '"msg":"test info"' in value
    assert '"level":"info"' in value


def test_log_infof_values_second_set(buf):
    ctx = log.RequestContext()
    ctx.set("subject", "test")
    log.with_values({"testing-2": "with-values-2"}).infof(ctx, "test %s", "info")
    value = buf.getvalue()
    assert '"logger":"logger_tests"' in value
    assert '"msg":"test info"' in value
    assert '"testing-2":"with-values-2"' in value
    assert '"user_id":"test"' in value
    assert '"level":"info"' in value
    assert '"timestamp":"' in value


def test_values_do_not_leak_to_global_logger(buf):
    log.with_values({"testing": "with-values"}).info(None, "first")
    log.info(None, "second")
    first, second = _records(buf)
    assert first["testing"] == "with-values"
    assert "testing" not in second


def test_none_context_has_no_user_fields(buf):
    log.info(None, "plain")
    (record,) = _records(buf)
    assert record["msg"] == "plain"
    assert "user_id" not in record
    assert "username" not in record


def test_timestamp_is_rfc1123z(buf):
    log.info(None, "time")
    (record,) = _records(buf)
    parsed = datetime.strptime(record["timestamp"], "%a, %d %b %Y %H:%M:%S %z")
    now = datetime.now(timezone.utc)
    assert abs(now - parsed) < timedelta(minutes=5)
    assert record["timestamp"][-5] in "+-"


def test_commit_truncated_to_seven_characters(buf, monkeypatch):
    monkeypatch.setattr(log, "COMMIT", "0123456789abcdef")
    log.info(None, "commit")
    (record,) = _records(buf)
    assert record["commit"] == "0123456"


def test_missing_and_extra_format_arguments(buf):
    log.infof(None, "a %s and %s", "one")
    log.infof(None, "only %s", "one", "two")
    first, second = _records(buf)
    assert first["msg"] == "a one and %!s(MISSING)"
    assert second["msg"] == "only one%!(EXTRA string=two)"


def test_init_only_once(buf):
    log.init("other_name", io.StringIO())
    log.info(None, "still here")
    (record,) = _records(buf)
    assert record["logger"] == "logger_tests"


def test_logging_before_init_raises():
    log.reset()
    with pytest.raises(RuntimeError):
        log.info(None, "nobody listens")