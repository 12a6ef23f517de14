import os
import sys
import unittest

import keyring

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from config import YamlConfig, load_settings


class DummyKeyring(keyring.backend.KeyringBackend):
    priority = 1

    def __init__(self):
        self.store = {}

    def get_password(self, service, username):
        return self.store.get((service, username))

    def set_password(self, service, username, password):
        self.store[(service, username)] = password

    def delete_password(self, service, username):
        self.store.pop((service, username), None)


class SettingsEncryptionTest(unittest.TestCase):
    def setUp(self) -> None:
        self.keyring = DummyKeyring()
        keyring.set_keyring(self.keyring)
        os.environ['ENCRYPT_SETTINGS'] = '1'
        self.path = 'enc_settings.yaml'
        if os.path.exists(self.path):
            os.remove(self.path)

    def tearDown(self) -> None:
        if os.path.exists(self.path):
            os.remove(self.path)
        os.environ.pop('ENCRYPT_SETTINGS', None)
        os.environ.pop('DB_PATH', None)

    def test_encrypt_and_load(self) -> None:
        cfg = YamlConfig(self.path)
        cfg.save({'default_password': 'secret', 'default_username': 'alice'})
        self.assertTrue(os.path.exists(self.path))
        with open(self.path, encoding='utf-8') as f:
            self.assertNotIn('secret', f.read())
        self.assertEqual(self.keyring.store[('fitness-tracker', 'default_password')], 'secret')
        data = cfg.load()
        self.assertEqual(data['default_password'], 'secret')
        self.assertEqual(data['default_username'], 'alice')

    def test_load_settings_applies_defaults_and_env(self) -> None:
        YamlConfig(self.path).save({'default_username': 'alice', 'log_level': 'DEBUG'})
        os.environ['DB_PATH'] = 'other.db'
        settings = load_settings(self.path)
        self.assertEqual(settings.default_username, 'alice')
        self.assertEqual(settings.log_level, 'DEBUG')
        self.assertEqual(settings.db_path, 'other.db')
        self.assertEqual(settings.api_prefix, '/api')

    def test_invalid_settings_rejected(self) -> None:
        YamlConfig(self.path).save({'default_user_id': 0})
        with self.assertRaises(ValueError):
            load_settings(self.path)

    def test_missing_file_gives_defaults(self) -> None:
        settings = load_settings('does_not_exist.yaml')
        self.assertEqual(settings.db_path, 'fitness_tracker.db')
        self.assertTrue(settings.seed_exercises)


if __name__ == '__main__':
    unittest.main()
