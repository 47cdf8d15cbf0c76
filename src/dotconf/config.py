from __future__ import annotations

import configparser
import copy
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Optional

import yaml

from .crypto import KeyConfig, KeyParams
from .errors import ConfigError
from .paths import expand

if TYPE_CHECKING:
    from .system import Environment


class Config:
    """Configuration for dotconf, read from a YAML file.

    Files ending in ``.conf`` are read as INI with the same sections.

    Example:
        options:
          source_control_folder: ~/.dotfiles
          secret_key: ~/.config/dotconf/key.asc
    """

    DEFAULT_CONFIG = {
        "options": {
            "source_control_folder": "~/.dotfiles",
            "registry_folder": "cfg",
            "secret_key": None,
            "recipient_key": None,
        },
        "key": {
            "name": "dotconf",
            "email": None,
            "bits": 2048,
        },
    }

    # Alternative spellings of option names
    OPTION_ALIASES = {
        "DotfilesDir": "source_control_folder",
        "dotfiles_dir": "source_control_folder",
        "SecretKey": "secret_key",
        "RecipientKey": "recipient_key",
    }

    def __init__(
        self,
        config_path: Optional[Path] = None,
        env: Optional[Environment] = None,
    ):
        # Use deepcopy to avoid mutating the class-level DEFAULT_CONFIG
        self.data = copy.deepcopy(self.DEFAULT_CONFIG)
        self.env = env
        self.path = config_path

        if config_path and config_path.exists():
            user_config = self._load(config_path)
            if user_config:
                self._deep_update(self.data, self._apply_aliases(user_config))

    def _load(self, config_path: Path) -> Optional[Dict]:
        if config_path.suffix == ".conf":
            return self._load_ini(config_path)
        try:
            with open(config_path, "r") as f:
                user_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(config_path, str(e)) from e
        except OSError as e:
            raise ConfigError(config_path, e.strerror) from e

        if user_config is not None and not isinstance(user_config, dict):
            raise ConfigError(config_path, "expected a YAML mapping")
        return user_config

    def _load_ini(self, config_path: Path) -> Dict:
        parser = configparser.ConfigParser(interpolation=None)
        parser.optionxform = str
        try:
            with open(config_path, "r") as f:
                parser.read_file(f)
        except configparser.Error as e:
            raise ConfigError(config_path, str(e)) from e
        except OSError as e:
            raise ConfigError(config_path, e.strerror) from e
        return {name: dict(parser[name]) for name in parser.sections()}

    def _apply_aliases(self, config: Dict) -> Dict:
        options = config.get("options")
        if not isinstance(options, dict):
            return config
        renamed = {
            self.OPTION_ALIASES.get(k, k): v for k, v in options.items()
        }
        return {**config, "options": renamed}

    def _deep_update(self, base: Dict, update: Dict):
        for k, v in update.items():
            if isinstance(v, dict) and k in base and isinstance(base[k], dict):
                self._deep_update(base[k], v)
            else:
                base[k] = v

    def get(self, key_path: str, default: Any = None) -> Any:
        """Get a config value by dot-separated path."""
        keys = key_path.split(".")
        value = self.data
        try:
            for key in keys:
                value = value[key]
            return value
        except (KeyError, TypeError):
            return default

    def get_path(
        self, key_path: str, base: Optional[Path] = None
    ) -> Optional[Path]:
        """Get a path value with ``~`` and ``$VAR`` expanded.

        Relative values are taken relative to ``base`` (default: home).
        """
        value = self.get(key_path)
        if value is None or value == "":
            return None
        variables = self.env.variables if self.env else {}
        home = self.env.home if self.env else Path.home()
        return expand(str(value), variables, home, cwd=base or home)

    @property
    def source_control_root(self) -> Path:
        root = self.get_path("options.source_control_folder")
        if root is None:
            raise ConfigError(self.path, "source_control_folder is empty")
        return root

    @property
    def registry_dir(self) -> Path:
        root = self.source_control_root
        return self.get_path("options.registry_folder", base=root) or root

    def key_config(
        self,
        secret_key: Optional[Path] = None,
        passphrase: Optional[str] = None,
    ) -> KeyConfig:
        """Build the key configuration, letting ``secret_key`` override."""
        return KeyConfig(
            secret_key=secret_key or self.get_path("options.secret_key"),
            recipient_key=self.get_path("options.recipient_key"),
            passphrase=passphrase,
        )

    def key_params(self, passphrase: Optional[str] = None) -> KeyParams:
        return KeyParams(
            name=str(self.get("key.name") or "dotconf"),
            email=self.get("key.email"),
            bits=int(self.get("key.bits", 2048)),
            passphrase=passphrase,
        )
