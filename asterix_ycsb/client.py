from __future__ import annotations

import json
import logging
from collections import defaultdict
from typing import Dict, Iterable, List, Mapping, Optional

from . import statements
from .config import Settings
from .connector import QueryServiceConnector
from .exceptions import AsterixError, ConfigurationError, MetadataError
from .feed import SocketFeed
from .http_client import HttpClient, HttpConfig
from .logging_utils import get_logger, log_json
from .models import Status, TableSchema

logger = get_logger(__name__)

Record = Dict[str, bytes]


class AsterixDBClient:
    """YCSB-style operations translated to SQL++.

    One instance per benchmark thread: it owns its connector, the cached
    schema of the dataset and the insert/update batch buffers.
    Call ``init()`` before any operation and ``cleanup()`` at the end.
    """

    def __init__(self, settings: Settings, connector: QueryServiceConnector | None = None):
        self.settings = settings
        self.last_error = ""
        self._conn = connector
        self._feed: Optional[SocketFeed] = None
        self._schema: Optional[TableSchema] = None
        self._insert_buffers: Dict[str, List[str]] = defaultdict(list)
        self._update_buffers: Dict[str, List[str]] = defaultdict(list)

    def __enter__(self) -> "AsterixDBClient":
        self.init()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.cleanup()

    @property
    def ready(self) -> bool:
        return self._schema is not None

    @property
    def schema(self) -> Optional[TableSchema]:
        return self._schema

    @property
    def connector(self) -> Optional[QueryServiceConnector]:
        return self._conn

    def pending(self) -> int:
        """Number of buffered, not yet committed inserts and updates."""
        return sum(len(b) for b in self._insert_buffers.values()) + sum(
            len(b) for b in self._update_buffers.values()
        )

    # -- lifecycle -----------------------------------------------------------

    def init(self) -> None:
        if self._schema is not None:
            log_json(logger, logging.WARNING, "client_already_initialized")
            return

        s = self.settings
        if not statements.is_valid_name(s.dataverse):
            raise ConfigurationError(f'Invalid dataverse "{s.dataverse}"')
        if not statements.is_valid_name(s.dataset):
            raise ConfigurationError(f'Invalid dataset "{s.dataset}"')

        if s.feed_enabled:
            self._feed = SocketFeed(s.feed_host, s.feed_port)

        try:
            if self._conn is None:
                http = HttpClient(HttpConfig(connect_timeout=s.connect_timeout, read_timeout=s.read_timeout))
                self._conn = QueryServiceConnector(s.db_url, http=http)
            if not self._conn.is_valid:
                raise ConfigurationError(f"Connection is invalid: {s.db_url}")
            self._schema = self._discover_schema()
        except AsterixError:
            self._close_feed()
            if self._conn is not None:
                self._conn.close()
            raise

        log_json(
            logger,
            logging.INFO,
            "client_initialized",
            dataverse=s.dataverse,
            dataset=s.dataset,
            primary_key=self._schema.primary_key,
            fields=list(self._schema.fields),
        )

    def _discover_schema(self) -> TableSchema:
        dv, ds = self.settings.dataverse, self.settings.dataset

        pk = self._conn.get_primary_key(dv, ds)
        if pk is None:
            raise MetadataError(f"Error getting the primary key ({ds}): {self._conn.error}")

        types = self._conn.get_field_types(dv, ds)
        if not types:
            raise MetadataError(f"Error getting all the fields ({ds}): {self._conn.error}")

        fields = tuple(sorted(f for f in types if f != pk))
        return TableSchema(primary_key=pk, fields=fields, field_types=types)

    def cleanup(self) -> Status:
        """Commit pending batches, then close the feed and the connector."""
        status = Status.OK
        if self.ready and self.pending():
            status = self.flush()
        self._close_feed()
        if self._conn is not None:
            self._conn.close()
        return status

    def _close_feed(self) -> None:
        if self._feed is not None:
            self._feed.close()
            self._feed = None

    # -- helpers -------------------------------------------------------------

    def _print_cmd(self, operation: str, cmd: str) -> None:
        if self.settings.print_cmd:
            print(f"{operation}:\n{cmd}")

    def _fail(self, operation: str, table: str, error: str) -> Status:
        self.last_error = error
        log_json(logger, logging.ERROR, "operation_failed", operation=operation, table=table, error=error)
        return Status.ERROR

    def _require_ready(self, operation: str, table: str) -> bool:
        if self._schema is None:
            self._fail(operation, table, "Client is not initialized")
            return False
        if not statements.is_valid_name(table):
            self._fail(operation, table, f'Invalid table "{table}"')
            return False
        return True

    def _requested(self, operation: str, table: str, fields: Optional[Iterable[str]]) -> Optional[List[str]]:
        """Fields to project; None (after recording the cause) if one is not in the schema."""
        if fields is None:
            return list(self._schema.fields)
        cols = list(fields)
        unknown = [f for f in cols if f not in self._schema.fields]
        if unknown:
            self._fail(operation, table, f"Unknown field(s): {', '.join(unknown)}")
            return None
        return cols

    def _run_update(self, operation: str, table: str, sql: str) -> Status:
        self._print_cmd(operation, sql)
        if not self._conn.execute_update(sql):
            return self._fail(operation, table, self._conn.error)
        self.last_error = ""
        return Status.OK

    @staticmethod
    def decode_record(line: str, fields: Iterable[str]) -> Record:
        """Decode one result line into {field: bytes}. Raises ValueError."""
        if not (line.startswith("{") and line.endswith("}")):
            raise ValueError(f"Unsupported record: {line}")
        try:
            record = json.loads(line)
        except ValueError as ex:
            raise ValueError(f"ParseException: {ex}") from ex
        if not isinstance(record, dict):
            raise ValueError(f"Unsupported record: {line}")

        out: Record = {}
        for col in fields:
            if col not in record:
                raise ValueError(f"Field {col} is missing from record")
            try:
                out[col] = statements.hex_to_bytes(str(record[col]))
            except ValueError as ex:
                raise ValueError(f"Field {col} is not hex encoded: {ex}") from ex
        return out

    def _query(self, operation: str, table: str, sql: str, fields: List[str], limit: Optional[int] = None) -> Optional[List[Record]]:
        """Run a SELECT and decode its records; None on any failure.

        A bad record does not stop the loop: the stream is always drained
        so the response is released.
        """
        self._print_cmd(operation, sql)
        if not self._conn.execute(sql):
            self._fail(operation, table, self._conn.error)
            return None

        records: List[Record] = []
        err = ""
        while True:
            line = self._conn.next_result()
            if not line:
                break
            if err:
                continue
            try:
                rec = self.decode_record(line, fields)
            except ValueError as ex:
                err = str(ex)
                continue
            if limit is None or len(records) < limit:
                records.append(rec)

        if not err and self._conn.has_error:
            err = self._conn.error
        if err:
            self._fail(operation, table, err)
            return None
        self.last_error = ""
        return records

    # -- operations ----------------------------------------------------------

    def read(self, table: str, key: str, fields: Optional[Iterable[str]] = None, result: Optional[Record] = None) -> Status:
        if not self._require_ready("READ", table):
            return Status.ERROR
        cols = self._requested("READ", table, fields)
        if cols is None:
            return Status.ERROR
        sql = statements.select_by_key(self.settings.dataverse, table, self._schema.primary_key, cols, key)

        records = self._query("READ", table, sql, cols)
        if records is None:
            return Status.ERROR
        if not records:
            return self._fail("READ", table, f"No record found for key {key!r}")
        if result is not None:
            for rec in records:
                result.update(rec)
        return Status.OK

    def scan(
        self,
        table: str,
        start_key: str,
        record_count: int,
        fields: Optional[Iterable[str]] = None,
        result: Optional[List[Record]] = None,
    ) -> Status:
        if not self._require_ready("SCAN", table):
            return Status.ERROR
        cols = self._requested("SCAN", table, fields)
        if cols is None:
            return Status.ERROR
        sql = statements.scan_from_key(
            self.settings.dataverse, table, self._schema.primary_key, cols, start_key, record_count
        )

        records = self._query("SCAN", table, sql, cols, limit=record_count)
        if records is None:
            return Status.ERROR
        if result is not None:
            result.extend(records)
        return Status.OK

    def delete(self, table: str, key: str) -> Status:
        if not self._require_ready("DELETE", table):
            return Status.ERROR
        sql = statements.delete_by_key(self.settings.dataverse, table, self._schema.primary_key, key)
        return self._run_update("DELETE", table, sql)

    def insert(self, table: str, key: str, values: Mapping[str, bytes]) -> Status:
        if not self._require_ready("INSERT", table):
            return Status.ERROR
        literal = statements.record_literal(self._schema.primary_key, key, self._schema.fields, values)

        if self._feed is not None:
            return self._feed_insert(table, literal)

        upsert = self.settings.upsert
        if self.settings.batch_inserts <= 1:
            sql = statements.insert_records(self.settings.dataverse, table, [literal], upsert)
        else:
            buf = self._insert_buffers[table]
            buf.append(literal)
            if len(buf) < self.settings.batch_inserts:
                return Status.BATCHED_OK
            sql = statements.insert_records(self.settings.dataverse, table, buf, upsert)
            del self._insert_buffers[table]

        return self._run_update("UPSERT" if upsert else "INSERT", table, sql)

    def _feed_insert(self, table: str, literal: str) -> Status:
        self._print_cmd("FEED", literal)
        if self._feed.write(literal):
            self.last_error = ""
            return Status.OK

        status = self._fail("FEED", table, "Error in processing insert via feed")
        try:
            # Reconnect so the caller's next insert can go through.
            self._feed.connect()
        except AsterixError as ex:
            log_json(logger, logging.ERROR, "feed_reconnect_failed", error=str(ex))
        return status

    def update(self, table: str, key: str, values: Mapping[str, bytes]) -> Status:
        if not self._require_ready("UPDATE", table):
            return Status.ERROR
        subquery = statements.update_subquery(table, self._schema.primary_key, self._schema.fields, key, values)

        if self.settings.batch_updates <= 1:
            sql = statements.upsert_subqueries(self.settings.dataverse, table, [subquery])
        else:
            buf = self._update_buffers[table]
            buf.append(subquery)
            if len(buf) < self.settings.batch_updates:
                return Status.BATCHED_OK
            sql = statements.upsert_subqueries(self.settings.dataverse, table, buf)
            del self._update_buffers[table]

        return self._run_update("UPDATE", table, sql)

    def flush(self) -> Status:
        """Commit partially filled batches. ERROR if any flush statement failed."""
        if not self._require_ready("FLUSH", self.settings.dataset):
            return Status.ERROR
        status = Status.OK
        upsert = self.settings.upsert

        for table, buf in list(self._insert_buffers.items()):
            del self._insert_buffers[table]
            if not buf:
                continue
            sql = statements.insert_records(self.settings.dataverse, table, buf, upsert)
            if self._run_update("UPSERT" if upsert else "INSERT", table, sql) is Status.ERROR:
                status = Status.ERROR

        for table, buf in list(self._update_buffers.items()):
            del self._update_buffers[table]
            if not buf:
                continue
            sql = statements.upsert_subqueries(self.settings.dataverse, table, buf)
            if self._run_update("UPDATE", table, sql) is Status.ERROR:
                status = Status.ERROR

        return status
