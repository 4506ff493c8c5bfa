import logging
import os

import keyring
import yaml

from settings_schema import AppSettingsSchema, validate_settings

APP_VERSION = "1.0.0"

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class YamlConfig:
    """Load and save planner settings to a YAML file with optional encryption."""

    SENSITIVE_KEYS = {
        "storage_api_key",
    }

    def __init__(self, path: str = "planner.yaml") -> None:
        self.path = path
        self.encrypt = os.environ.get("ENCRYPT_SETTINGS") == "1"
        self.service = "workout_planner"

    def load(self) -> dict:
        if not os.path.exists(self.path):
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if self.encrypt:
            for key in list(data.keys()):
                if key in self.SENSITIVE_KEYS:
                    secret = keyring.get_password(self.service, key)
                    if secret is not None:
                        data[key] = secret
                    else:
                        data.pop(key, None)
        return data

    def save(self, data: dict) -> None:
        out = dict(data)
        if self.encrypt:
            for key in self.SENSITIVE_KEYS:
                if key in out and out[key] is not None:
                    keyring.set_password(self.service, key, str(out[key]))
                    out[key] = True
        with open(self.path, "w", encoding="utf-8") as f:
            yaml.safe_dump(out, f)


def load_app_config(path: str = "planner.yaml", **overrides) -> AppSettingsSchema:
    """Return validated application settings from ``path`` plus ``overrides``."""
    data = YamlConfig(path).load()
    data.update({k: v for k, v in overrides.items() if v is not None})
    validate_settings(data)
    return AppSettingsSchema(**data)


def setup_logging(level: str = "INFO") -> None:
    root = logging.getLogger()
    if root.handlers:
        root.setLevel(level.upper())
        return
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
