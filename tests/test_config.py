import os
import unittest
from unittest import mock

from hlscdn import config
from hlscdn.config import CdnConfig


class TestFromEnv(unittest.TestCase):

    def testDefaultsComeFromModuleConstants(self):
        with mock.patch.dict(os.environ, {}, clear=True):
            cfg = CdnConfig.from_env()
        self.assertEqual(cfg.host, config.DEFAULT_HOST)
        self.assertEqual(cfg.port, config.DEFAULT_PORT)
        self.assertEqual(cfg.environment, config.DEFAULT_ENV)
        self.assertEqual(cfg.edge_selector, config.DEFAULT_EDGE_SELECTOR)
        self.assertEqual(cfg.store, config.DEFAULT_STORE)
        self.assertEqual(cfg.seed, config.RANDOM_SEED)
        self.assertIsNone(cfg.fixed_edge)
        self.assertFalse(cfg.debug)

    def testModuleConstantChangesFlowThrough(self):
        with mock.patch.dict(os.environ, {}, clear=True), \
                mock.patch.object(config, "DEFAULT_PORT", 4100), \
                mock.patch.object(config, "DEFAULT_STORE", "locked"):
            cfg = CdnConfig.from_env()
        self.assertEqual(cfg.port, 4100)
        self.assertEqual(cfg.store, "locked")

    def testEnvironmentOverrides(self):
        env = {
            "HLSCDN_PORT": "4000",
            "HLSCDN_ENV": "staging",
            "HLSCDN_STORE": "locked",
            "HLSCDN_FIXED_EDGE": "eu-west",
            "HLSCDN_SEED": "7",
            "HLSCDN_DEBUG": "1",
        }
        with mock.patch.dict(os.environ, env, clear=True):
            cfg = CdnConfig.from_env()
        self.assertEqual(cfg.port, 4000)
        self.assertEqual(cfg.environment, "staging")
        self.assertEqual(cfg.store, "locked")
        self.assertEqual(cfg.fixed_edge, "eu-west")
        self.assertEqual(cfg.seed, 7)
        self.assertTrue(cfg.debug)


if __name__ == "__main__":
    unittest.main()
