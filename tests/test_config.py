"""
Unit tests for configuration management.
"""

import json
import os
import shutil
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from mtg_deck_engine.config import ConfigManager, EngineConfig, apply_env_overrides, get_default_config


class TestConfigManager(unittest.TestCase):
    """Test cases for ConfigManager file persistence."""

    def setUp(self):
        self.temp_dir = Path(tempfile.mkdtemp())

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_defaults_are_written_on_first_use(self):
        manager = ConfigManager(self.temp_dir)

        self.assertEqual(manager.get_config(), get_default_config())
        self.assertTrue((self.temp_dir / "config.json").exists())

    def test_update_config_persists(self):
        ConfigManager(self.temp_dir).update_config(default_format='modern', default_user='alice')

        config = ConfigManager(self.temp_dir).get_config()
        self.assertEqual(config.default_format, 'modern')
        self.assertEqual(config.default_user, 'alice')

    def test_update_config_validation(self):
        manager = ConfigManager(self.temp_dir)
        with self.assertRaises(ValueError):
            manager.update_config(colour='blue')
        with self.assertRaises(ValueError):
            manager.update_config(default_format='pauper')

    def test_corrupt_config_is_backed_up(self):
        (self.temp_dir / "config.json").write_text("{broken", encoding='utf-8')

        manager = ConfigManager(self.temp_dir)

        self.assertEqual(manager.get_config(), EngineConfig())
        self.assertTrue((self.temp_dir / "config.json.backup").exists())
        with open(self.temp_dir / "config.json", encoding='utf-8') as f:
            self.assertEqual(json.load(f)['default_format'], 'commander')

    def test_mistyped_and_unknown_settings_are_ignored(self):
        with open(self.temp_dir / "config.json", 'w', encoding='utf-8') as f:
            json.dump({
                'api_retry_attempts': 'many',
                'api_timeout_seconds': True,
                'default_format': 'pauper',
                'default_user': 'carol',
                'theme': 'dark',
            }, f)

        config = ConfigManager(self.temp_dir).get_config()

        self.assertEqual(config.api_retry_attempts, 3)
        self.assertEqual(config.api_timeout_seconds, 15)
        self.assertEqual(config.default_format, 'commander')
        self.assertEqual(config.default_user, 'carol')
        self.assertFalse(hasattr(config, 'theme'))

    def test_reset_to_defaults(self):
        manager = ConfigManager(self.temp_dir)
        manager.update_config(currency_symbol='$')
        manager.reset_to_defaults()
        self.assertEqual(manager.get_config().currency_symbol, '€')

    def test_directories(self):
        manager = ConfigManager(self.temp_dir)

        self.assertEqual(manager.get_data_dir(), self.temp_dir / "data")
        self.assertTrue(manager.get_cache_dir().is_dir())
        self.assertTrue(manager.get_logs_dir().is_dir())

        manager.update_config(data_dir=str(self.temp_dir / "elsewhere"))
        self.assertEqual(manager.get_data_dir(), self.temp_dir / "elsewhere")


class TestEnvOverrides(unittest.TestCase):
    """Test cases for environment variable overrides."""

    def test_overrides_are_applied(self):
        env = {
            'MTG_DECK_ENGINE_DEFAULT_FORMAT': 'legacy',
            'MTG_DECK_ENGINE_USER': 'bob',
            'MTG_DECK_ENGINE_CACHE_ENABLED': 'no',
            'MTG_DECK_ENGINE_RETRY_ATTEMPTS': '7',
        }
        with patch.dict(os.environ, env):
            config = apply_env_overrides(EngineConfig())

        self.assertEqual(config.default_format, 'legacy')
        self.assertEqual(config.default_user, 'bob')
        self.assertFalse(config.scryfall_cache_enabled)
        self.assertEqual(config.api_retry_attempts, 7)

    def test_invalid_values_are_ignored(self):
        env = {
            'MTG_DECK_ENGINE_RETRY_ATTEMPTS': 'lots',
            'MTG_DECK_ENGINE_DEFAULT_FORMAT': 'pauper',
        }
        with patch.dict(os.environ, env):
            config = apply_env_overrides(EngineConfig())

        self.assertEqual(config.api_retry_attempts, 3)
        self.assertEqual(config.default_format, 'commander')


if __name__ == '__main__':
    unittest.main()
