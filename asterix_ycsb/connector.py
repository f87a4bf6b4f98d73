from __future__ import annotations

import json
import logging
import re
import time
from typing import Dict, Iterator, List, Optional, Sequence

import requests
from urllib3.util import parse_url

from .http_client import HttpClient
from .logging_utils import get_logger, log_json
from .models import ResultPhase
from .statements import fields_query, primary_key_query

logger = get_logger(__name__)

RESULTS_PREFIX = '"results": '
# Prefix plus the array's opening bracket; 12 characters
RESULTS_OPEN = RESULTS_PREFIX + "["
RESULTS_CLOSE = "]"

SERVER_MSG = re.compile(r'"msg"\s*:\s*("(?:[^"\\]|\\.)*")')


def is_valid_service_url(url: str, schemes: Sequence[str] = ("http", "https")) -> bool:
    try:
        parsed = parse_url(url)
    except ValueError:
        return False
    return parsed.scheme in schemes and bool(parsed.host)


def _describe(ex: BaseException) -> str:
    return f"{type(ex).__name__}: {ex}"


def _strip_trailing_comma(line: str) -> str:
    return line[:-1] if line.endswith(",") else line


def _strip_separators(line: str) -> str:
    if line.startswith(","):
        line = line[1:]
    return _strip_trailing_comma(line).strip()


class QueryServiceConnector:
    """Statement execution against one query-service endpoint.

    At most one statement is in flight. A result-bearing statement keeps
    its response open until ``next_result`` reaches the end of the results
    array or ``close_current_response`` is called; until then any other
    ``execute``/``execute_update`` fails with "Another statement is running.".

    Failures never raise: methods return False / "" / None and leave the
    cause in ``error``. Not thread-safe; use one connector per thread.
    """

    def __init__(self, service_url: str, http: HttpClient | None = None, schemes: Sequence[str] = ("http", "https")):
        self.service_url = service_url
        self._valid = is_valid_service_url(service_url, schemes)
        self._http: Optional[HttpClient] = (http or HttpClient()) if self._valid else None
        self._error = ""
        self._elapsed_ms = 0
        self._response: Optional[requests.Response] = None
        self._lines: Optional[Iterator[bytes]] = None
        self._phase = ResultPhase.BEFORE_RESULTS
        # Set once the last statement's results were read to the end
        self._exhausted = False

    @classmethod
    def from_address(cls, host: str, port: int, http: HttpClient | None = None) -> "QueryServiceConnector":
        return cls(f"http://{host}:{port}/query/service", http=http, schemes=("http",))

    def __enter__(self) -> "QueryServiceConnector":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    @property
    def is_valid(self) -> bool:
        return self._valid

    @property
    def error(self) -> str:
        """Cause of the last failure; empty after a successful call."""
        return self._error

    @property
    def has_error(self) -> bool:
        return bool(self._error)

    @property
    def elapsed_ms(self) -> int:
        """Milliseconds spent waiting for the last response's headers."""
        return self._elapsed_ms

    @property
    def in_flight(self) -> bool:
        return self._response is not None

    @property
    def phase(self) -> ResultPhase:
        return self._phase

    # -- statement execution -------------------------------------------------

    def _send(self, statement: str) -> bool:
        if not self._valid or self._http is None:
            self._error = "Invalid connector"
            return False
        if self._response is not None:
            self._error = "Another statement is running."
            return False

        self._error = ""
        self._exhausted = False
        start = time.monotonic()
        try:
            self._response = self._http.post_form(self.service_url, {"statement": statement, "mode": "immediate"})
        except UnicodeError as ex:
            self._error = _describe(ex)
            return False
        except requests.RequestException as ex:
            self._error = _describe(ex)
            self.close_current_response()
            return False
        self._elapsed_ms = int((time.monotonic() - start) * 1000)

        if self._response.status_code == 200:
            return True

        self._error = self._server_error()
        log_json(logger, logging.DEBUG, "statement_rejected", status=self._response.status_code, error=self._error)
        self.close_current_response()
        return False

    def _server_error(self) -> str:
        """Pull the service's "msg" out of an error body, else the reason phrase."""
        resp = self._response
        if resp is None:
            return ""
        fallback = resp.reason or "Unknown error."
        try:
            for raw in resp.iter_lines():
                m = SERVER_MSG.search(raw.decode("utf-8", errors="replace"))
                if m:
                    return str(json.loads(m.group(1))).strip()
        except (requests.RequestException, ValueError) as ex:
            log_json(logger, logging.DEBUG, "server_error_unreadable", error=_describe(ex))
        return fallback

    def execute_update(self, statement: str) -> bool:
        """Run a statement for its effect; the response body is discarded."""
        if not self._send(statement):
            return False
        try:
            for _ in self._response.iter_content(chunk_size=8192):
                pass
        except requests.RequestException as ex:
            # Status 200 already arrived; the statement counts as accepted.
            log_json(logger, logging.WARNING, "drain_failed", error=_describe(ex))
        finally:
            self.close_current_response()
        return True

    def execute(self, statement: str) -> bool:
        """Run a result-bearing statement and leave its body open for ``next_result``."""
        if not self._send(statement):
            return False
        self._lines = self._response.iter_lines()
        self._phase = ResultPhase.BEFORE_RESULTS
        return True

    def _end_of_results(self) -> str:
        self._error = ""
        self.close_current_response()
        self._exhausted = True
        return ""

    def next_result(self) -> str:
        """Return the next record of the results array as JSON text.

        "" means no more results; the response has been released by then.
        Calling again after the end keeps returning "" without an error;
        calling with no statement executed records one.
        """
        if self._lines is None:
            if not self._exhausted:
                self._error = "No statement executed."
            return ""

        try:
            for raw in self._lines:
                line = raw.decode("utf-8").strip()

                if self._phase is ResultPhase.BEFORE_RESULTS:
                    if not line.startswith(RESULTS_PREFIX):
                        continue
                    self._phase = ResultPhase.INSIDE_RESULTS
                    self._error = ""
                    line = _strip_trailing_comma(line[len(RESULTS_OPEN):].strip()).strip()
                    if not line:
                        continue
                    if line == RESULTS_CLOSE:
                        return self._end_of_results()
                    return line

                if line in (RESULTS_CLOSE, RESULTS_CLOSE + ","):
                    return self._end_of_results()
                record = _strip_separators(line)
                if record:
                    self._error = ""
                    return record
        except (requests.RequestException, UnicodeDecodeError) as ex:
            self._error = _describe(ex)
            self.close_current_response()
            return ""

        return self._end_of_results()

    def all_results(self) -> List[str]:
        """Drain every remaining record. Buffers everything; small results only."""
        ret: List[str] = []
        if self._response is None:
            return ret
        while True:
            line = self.next_result()
            if not line:
                return ret
            ret.append(line)

    def close_current_response(self) -> None:
        resp = self._response
        self._response = None
        self._lines = None
        self._phase = ResultPhase.BEFORE_RESULTS
        if resp is not None:
            resp.close()

    def close(self) -> None:
        self.close_current_response()
        if self._http is not None:
            self._http.close()

    # -- metadata ------------------------------------------------------------

    def _check_names(self, dataverse: str, dataset: str) -> bool:
        if not self._valid:
            self._error = "Invalid connector"
            return False
        if not dataverse:
            self._error = "dataverse must not be empty"
            return False
        if not dataset:
            self._error = "dataset must not be empty"
            return False
        return True

    def _first_array(self, statement: str) -> Optional[list]:
        """Execute ``statement`` and parse the first record that is a JSON array."""
        if not self.execute(statement):
            return None
        try:
            while True:
                line = self.next_result()
                if not line:
                    break
                if line.startswith("[") and line.endswith("]"):
                    try:
                        return json.loads(line)
                    except ValueError as ex:
                        self._error = _describe(ex)
                        return None
            if not self._error:
                self._error = "Unknown error"
            return None
        finally:
            self.close_current_response()

    def get_primary_keys(self, dataverse: str, dataset: str) -> Optional[List[str]]:
        """All primary-key components of ``dataverse.dataset``, in order.

        The catalog stores each component as a field path (a list of names).
        Only top-level fields are supported, so a path longer than one name
        fails.
        """
        if not self._check_names(dataverse, dataset):
            return None
        pks = self._first_array(primary_key_query(dataverse, dataset))
        if pks is None:
            return None
        ret: List[str] = []
        for path in pks:
            if not isinstance(path, list) or not path:
                self._error = f"Unsupported primary key descriptor: {path!r}"
                return None
            if len(path) > 1:
                self._error = (
                    f"{dataverse}.{dataset} has a nested primary key "
                    f"({'.'.join(str(p) for p in path)}), which is unsupported"
                )
                return None
            ret.append(str(path[0]))
        return ret

    def get_primary_key(self, dataverse: str, dataset: str) -> Optional[str]:
        pks = self.get_primary_keys(dataverse, dataset)
        if pks is None:
            return None
        if len(pks) > 1:
            self._error = f"{dataverse}.{dataset} has a composite primary key, which is unsupported"
            return None
        if not pks:
            self._error = f"{dataverse}.{dataset} has no primary key"
            return None
        return pks[0]

    def get_field_types(self, dataverse: str, dataset: str) -> Optional[Dict[str, str]]:
        """Field name to type name, including the primary key, in declaration order."""
        if not self._check_names(dataverse, dataset):
            return None
        fields = self._first_array(fields_query(dataverse, dataset))
        if fields is None:
            return None
        if not fields:
            self._error = "No field can be found"
            return None
        ret: Dict[str, str] = {}
        for f in fields:
            if not isinstance(f, dict) or "FieldName" not in f:
                self._error = f"Unsupported field descriptor: {f!r}"
                return None
            ret[str(f["FieldName"])] = str(f.get("FieldType", ""))
        return ret

    def get_fields(self, dataverse: str, dataset: str) -> Optional[List[str]]:
        types = self.get_field_types(dataverse, dataset)
        if types is None:
            return None
        return list(types)
