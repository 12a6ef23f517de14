import logging
import os

import keyring
import yaml

from settings_schema import AppSettings, validate_settings

APP_VERSION = "1.0.0"

logger = logging.getLogger(__name__)


class YamlConfig:
    """Settings file in YAML; secrets can live in the OS keyring instead.

    With ``ENCRYPT_SETTINGS=1`` every key in :attr:`SENSITIVE_KEYS` is written
    to the keyring and replaced by ``true`` in the file.
    """

    SENSITIVE_KEYS = frozenset({"default_password"})
    SERVICE = "fitness-tracker"

    def __init__(self, path: str = "settings.yaml") -> None:
        self.path = path
        self.encrypt = os.environ.get("ENCRYPT_SETTINGS") == "1"

    def _restore_secrets(self, data: dict) -> dict:
        for key in self.SENSITIVE_KEYS & data.keys():
            secret = keyring.get_password(self.SERVICE, key)
            if secret is None:
                logger.warning("no keyring entry for %s, using default", key)
                del data[key]
            else:
                data[key] = secret
        return data

    def _stash_secrets(self, data: dict) -> dict:
        for key in self.SENSITIVE_KEYS & data.keys():
            keyring.set_password(self.SERVICE, key, str(data[key]))
            data[key] = True
        return data

    def load(self) -> dict:
        if not os.path.exists(self.path):
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        return self._restore_secrets(data) if self.encrypt else data

    def save(self, data: dict) -> None:
        out = dict(data)
        if self.encrypt:
            out = self._stash_secrets(out)
        with open(self.path, "w", encoding="utf-8") as f:
            yaml.safe_dump(out, f)


def load_settings(path: str = "settings.yaml") -> AppSettings:
    """Read ``path`` and apply the ``DB_PATH`` environment override."""
    data = YamlConfig(path).load()
    if os.environ.get("DB_PATH"):
        data["db_path"] = os.environ["DB_PATH"]
    settings = validate_settings(data)
    logger.debug("loaded settings from %s (db_path=%s)", path, settings.db_path)
    return settings
