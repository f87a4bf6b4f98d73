import os
import unittest
from unittest import mock

from asterix_ycsb.config import DEFAULT_DB_URL, load_settings
from asterix_ycsb.exceptions import ConfigurationError


def _clean_env():
    return {k: v for k, v in os.environ.items() if not k.startswith("ASTERIX_")}


class TestLoadSettings(unittest.TestCase):
    def test_defaults(self):
        with mock.patch.dict(os.environ, _clean_env(), clear=True):
            s = load_settings()
        self.assertEqual(s.db_url, DEFAULT_DB_URL)
        self.assertEqual(s.dataverse, "ycsb")
        self.assertEqual(s.dataset, "usertable")
        self.assertEqual(s.batch_inserts, 1)
        self.assertEqual(s.batch_updates, 1)
        self.assertFalse(s.upsert)
        self.assertFalse(s.feed_enabled)
        self.assertEqual(s.feed_port, -1)
        self.assertIsNone(s.connect_timeout)

    def test_overrides(self):
        env = _clean_env()
        env.update(
            {
                "ASTERIX_DB_URL": "https://db:19002/query/service",
                "ASTERIX_DATAVERSE": "bench",
                "ASTERIX_BATCH_INSERTS": "50",
                "ASTERIX_UPSERT": "TRUE",
                "ASTERIX_PRINT_CMD": "yes",
                "ASTERIX_FEED_PORT": "10001",
                "ASTERIX_READ_TIMEOUT": "2.5",
                "ASTERIX_LOG_LEVEL": "debug",
            }
        )
        with mock.patch.dict(os.environ, env, clear=True):
            s = load_settings()
        self.assertEqual(s.db_url, "https://db:19002/query/service")
        self.assertEqual(s.dataverse, "bench")
        self.assertEqual(s.batch_inserts, 50)
        self.assertTrue(s.upsert)
        # only "true" turns a flag on
        self.assertFalse(s.print_cmd)
        self.assertEqual(s.feed_port, 10001)
        self.assertEqual(s.read_timeout, 2.5)
        self.assertEqual(s.log_level, "DEBUG")

    def test_bad_integer(self):
        env = _clean_env()
        env["ASTERIX_BATCH_UPDATES"] = "many"
        with mock.patch.dict(os.environ, env, clear=True):
            with self.assertRaises(ConfigurationError):
                load_settings()


if __name__ == "__main__":
    unittest.main()
