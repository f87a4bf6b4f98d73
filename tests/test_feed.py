import socket
import threading
import unittest

from asterix_ycsb.client import AsterixDBClient
from asterix_ycsb.config import Settings
from asterix_ycsb.connector import QueryServiceConnector
from asterix_ycsb.exceptions import ConfigurationError, FeedError
from asterix_ycsb.feed import SocketFeed
from asterix_ycsb.http_client import HttpClient
from asterix_ycsb.models import Status

from .fakes import FakeSession, fields_response, pk_response

URL = "http://localhost:19002/query/service"


class FeedServer:
    """Accepts one connection and collects everything sent until EOF."""

    def __init__(self):
        self.sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.sock.bind(("127.0.0.1", 0))
        self.sock.listen(1)
        self.port = self.sock.getsockname()[1]
        self.received = b""
        self._thread = threading.Thread(target=self._serve, daemon=True)
        self._thread.start()

    def _serve(self):
        conn, _ = self.sock.accept()
        with conn:
            while True:
                chunk = conn.recv(4096)
                if not chunk:
                    break
                self.received += chunk

    def wait(self):
        self._thread.join(timeout=5)
        self.sock.close()


def _unused_port():
    s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    s.bind(("127.0.0.1", 0))
    port = s.getsockname()[1]
    s.close()
    return port


class TestSocketFeed(unittest.TestCase):
    def test_writes_records_and_closes_once(self):
        server = FeedServer()
        feed = SocketFeed("127.0.0.1", server.port)
        self.assertTrue(feed.connected)
        self.assertTrue(feed.write('{"id":"a"}'))
        self.assertTrue(feed.write('{"id":"b"}'))
        feed.close()
        feed.close()
        server.wait()
        self.assertEqual(server.received, b'{"id":"a"}{"id":"b"}')
        self.assertFalse(feed.write('{"id":"c"}'))

    def test_invalid_port(self):
        with self.assertRaises(ConfigurationError):
            SocketFeed("127.0.0.1", 70000)
        with self.assertRaises(ConfigurationError):
            SocketFeed("127.0.0.1", -1)

    def test_invalid_host(self):
        with self.assertRaises(ConfigurationError):
            SocketFeed("", 10001)

    def test_connection_refused(self):
        with self.assertRaises(FeedError):
            SocketFeed("127.0.0.1", _unused_port())


class TestClientFeedInsert(unittest.TestCase):
    def test_insert_goes_through_feed(self):
        server = FeedServer()
        session = FakeSession([pk_response("YCSB_KEY"), fields_response("YCSB_KEY", ["field0"])])
        conn = QueryServiceConnector(URL, http=HttpClient(session=session))
        settings = Settings(db_url=URL, feed_enabled=True, feed_host="127.0.0.1", feed_port=server.port, batch_inserts=10)
        client = AsterixDBClient(settings, connector=conn)
        client.init()

        self.assertIs(client.insert("usertable", "user1", {"field0": b"\x01"}), Status.OK)
        self.assertEqual(client.pending(), 0)
        client.cleanup()
        server.wait()

        self.assertEqual(server.received, b'{"YCSB_KEY":"user1","field0":hex("01")}')
        # only the two metadata statements went over HTTP
        self.assertEqual(len(session.calls), 2)

    def test_feed_failure_is_fatal_at_init(self):
        settings = Settings(db_url=URL, feed_enabled=True, feed_host="127.0.0.1", feed_port=_unused_port())
        client = AsterixDBClient(settings)
        with self.assertRaises(FeedError):
            client.init()


if __name__ == "__main__":
    unittest.main()
