from __future__ import annotations

import argparse
import logging
import os
import sys
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import replace

from dotenv import load_dotenv

from .client import AsterixDBClient
from .config import Settings, load_settings
from .exceptions import AsterixError
from .logging_utils import configure_logging, get_logger, log_json
from .models import OpStats, Status


def _parse_values(pairs: list[str]) -> dict[str, bytes]:
    values: dict[str, bytes] = {}
    for pair in pairs:
        name, sep, value = pair.partition("=")
        if not sep or not name:
            raise SystemExit(f"Expected FIELD=VALUE, got {pair!r}")
        values[name] = value.encode("utf-8")
    return values


def _print_record(record: dict[str, bytes]) -> None:
    for name in sorted(record):
        print(f"  {name}={record[name].decode('utf-8', errors='backslashreplace')}")


def _report(client: AsterixDBClient, status: Status) -> int:
    print(status.value)
    if status is Status.ERROR:
        print(client.last_error, file=sys.stderr)
        return 1
    return 0


def _load_worker(settings: Settings, start: int, count: int, field_length: int) -> OpStats:
    stats = OpStats()
    with AsterixDBClient(settings) as client:
        for i in range(start, start + count):
            values = {f: os.urandom(field_length) for f in client.schema.fields}
            stats.record(client.insert(settings.dataset, f"user{i:010d}", values))
        if client.pending():
            stats.record(client.flush())
    return stats


def cmd_load(settings: Settings, records: int, threads: int, field_length: int) -> int:
    logger = get_logger()
    threads = max(1, min(threads, records or 1))
    per_thread, extra = divmod(records, threads)

    total = OpStats()
    started = time.monotonic()
    with ThreadPoolExecutor(max_workers=threads) as pool:
        futures = []
        start = 0
        for t in range(threads):
            count = per_thread + (1 if t < extra else 0)
            futures.append(pool.submit(_load_worker, settings, start, count, field_length))
            start += count
        for fut in as_completed(futures):
            total.merge(fut.result())
    elapsed = time.monotonic() - started

    log_json(logger, logging.INFO, "load_complete", records=records, threads=threads, stats=total.__dict__, elapsed_sec=round(elapsed, 3))
    print(f"ok={total.ok} batched={total.batched} errors={total.errors} elapsed={elapsed:.2f}s")
    return 1 if total.errors else 0


def main(argv=None) -> int:
    load_dotenv(override=False)

    parser = argparse.ArgumentParser(prog="asterix_ycsb")
    parser.add_argument("--print-cmd", action="store_true", help="Echo every SQL++ statement")
    sub = parser.add_subparsers(dest="cmd", required=True)

    sub.add_parser("schema", help="Show the dataset's primary key and fields")

    readp = sub.add_parser("read", help="Read one record")
    readp.add_argument("key")
    readp.add_argument("--field", action="append", dest="fields", help="Field to read (repeatable)")

    scanp = sub.add_parser("scan", help="Read records from a start key on")
    scanp.add_argument("start_key")
    scanp.add_argument("count", type=int)
    scanp.add_argument("--field", action="append", dest="fields", help="Field to read (repeatable)")

    insp = sub.add_parser("insert", help="Insert one record")
    insp.add_argument("key")
    insp.add_argument("values", nargs="*", metavar="FIELD=VALUE")

    updp = sub.add_parser("update", help="Update fields of one record")
    updp.add_argument("key")
    updp.add_argument("values", nargs="+", metavar="FIELD=VALUE")

    delp = sub.add_parser("delete", help="Delete one record")
    delp.add_argument("key")

    loadp = sub.add_parser("load", help="Insert generated records from several clients")
    loadp.add_argument("--records", type=int, default=1000)
    loadp.add_argument("--threads", type=int, default=1)
    loadp.add_argument("--field-length", type=int, default=100)

    args = parser.parse_args(argv)

    try:
        settings = load_settings()
        if args.print_cmd and not settings.print_cmd:
            settings = replace(settings, print_cmd=True)
        configure_logging(settings.log_level)

        if args.cmd == "load":
            return cmd_load(settings, args.records, args.threads, args.field_length)

        with AsterixDBClient(settings) as client:
            table = settings.dataset

            if args.cmd == "schema":
                print(f"primary_key: {client.schema.primary_key}")
                for name in client.schema.fields:
                    print(f"  {name}: {client.schema.field_types.get(name, '')}")
                return 0

            if args.cmd == "read":
                record: dict[str, bytes] = {}
                status = client.read(table, args.key, args.fields, record)
                rc = _report(client, status)
                if status is Status.OK:
                    _print_record(record)
                return rc

            if args.cmd == "scan":
                rows: list[dict[str, bytes]] = []
                status = client.scan(table, args.start_key, args.count, args.fields, rows)
                rc = _report(client, status)
                for i, row in enumerate(rows):
                    print(f"[{i}]")
                    _print_record(row)
                return rc

            if args.cmd == "insert":
                return _report(client, client.insert(table, args.key, _parse_values(args.values)))

            if args.cmd == "update":
                return _report(client, client.update(table, args.key, _parse_values(args.values)))

            if args.cmd == "delete":
                return _report(client, client.delete(table, args.key))

    except AsterixError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2

    return 0
