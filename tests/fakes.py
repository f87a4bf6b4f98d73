"""In-memory stand-ins for the query service."""
from __future__ import annotations

import io
import json
from typing import Any, List, Sequence

import requests


class FakeRaw(io.BytesIO):
    def __init__(self, body: bytes):
        super().__init__(body)
        self.released = False

    def release_conn(self) -> None:
        self.released = True


def make_response(body: str | bytes, status: int = 200, reason: str = "OK") -> requests.Response:
    resp = requests.Response()
    resp.status_code = status
    resp.reason = reason
    resp.raw = FakeRaw(body.encode("utf-8") if isinstance(body, str) else body)
    resp.encoding = "utf-8"
    return resp


def results_body(records: Sequence[str]) -> str:
    """Render a results array the way the query service pretty-prints it."""
    lines = [
        "{",
        '\t"requestID": "5f6f1a3e-0001",',
        '\t"signature": {',
        '\t\t"*": "*"',
        "\t},",
    ]
    if not records:
        lines.append('\t"results": [ ]')
    else:
        lines.append('\t"results": [ ' + records[0])
        for rec in records[1:]:
            lines.append(", " + rec)
        lines.append(" ]")
    lines += [
        "\t,",
        '\t"plans":{},',
        '\t"status": "success",',
        '\t"metrics": {',
        '\t\t"elapsedTime": "12.3ms",',
        '\t\t"resultCount": ' + str(len(records)),
        "\t}",
        "}",
    ]
    return "\n".join(lines) + "\n"


def error_body(msg: str, code: int = 1) -> str:
    return "\n".join(
        [
            "{",
            '\t"requestID": "5f6f1a3e-0002",',
            '\t"errors": [{ ',
            f'\t\t"code": {code},',
            f'\t\t"msg": {json.dumps(msg)}',
            "\t} ],",
            '\t"status": "fatal",',
            '\t"metrics": {',
            '\t\t"elapsedTime": "1.1ms"',
            "\t}",
            "}",
        ]
    ) + "\n"


def ok(records: Sequence[str] = ()) -> requests.Response:
    return make_response(results_body(records))


def pk_response(*keys: str) -> requests.Response:
    return ok([json.dumps([[k] for k in keys])])


def fields_response(pk: str, fields: Sequence[str]) -> requests.Response:
    desc = [{"FieldName": pk, "FieldType": "string", "IsNullable": False}]
    desc += [{"FieldName": f, "FieldType": "binary", "IsNullable": False} for f in fields]
    return ok([json.dumps(desc)])


class FakeSession:
    """Queue of canned responses (or exceptions) handed out per POST."""

    def __init__(self, responses: Sequence[Any] = ()):
        self.headers: dict = {}
        self.queue: List[Any] = list(responses)
        self.calls: List[dict] = []
        self.returned: List[requests.Response] = []
        self.closed = False

    def push(self, *responses: Any) -> None:
        self.queue.extend(responses)

    def post(self, url, data=None, headers=None, timeout=None, stream=False):
        self.calls.append({"url": url, "data": dict(data or {}), "headers": headers, "timeout": timeout, "stream": stream})
        if not self.queue:
            raise AssertionError(f"unexpected POST: {data}")
        item = self.queue.pop(0)
        if isinstance(item, BaseException):
            raise item
        self.returned.append(item)
        return item

    def close(self) -> None:
        self.closed = True

    @property
    def statements(self) -> List[str]:
        return [c["data"]["statement"] for c in self.calls]
