import os
from dataclasses import dataclass, asdict
from typing import Dict, Any, Optional
from pathlib import Path

from dotenv import dotenv_values

from playmix.domain.weighting import DEFAULT_AVERAGE_DURATION_MS


ENV_PREFIX = 'PLAYMIX_'


class SettingsError(Exception):
    """Configuration error."""
    pass


@dataclass(frozen=True)
class MixSettings:
    """Process-wide defaults the engine falls back to."""

    fallback_average_duration_ms: Optional[int] = DEFAULT_AVERAGE_DURATION_MS
    default_seed: int = 0
    log_level: str = 'INFO'
    report_dir: str = 'reports/'
    structured_logs: bool = True


_INT_KEYS = {'fallback_average_duration_ms', 'default_seed'}
_BOOL_KEYS = {'structured_logs'}
_TRUE_VALUES = {'1', 'true', 'yes', 'on'}
_FALSE_VALUES = {'0', 'false', 'no', 'off'}


class SettingsManager:
    """Loads mix settings from a .env file and PLAYMIX_* environment variables.

    Process environment wins over the .env file; both win over defaults.
    """

    def __init__(self, config_dir: Optional[str] = None):
        """Initialize settings manager."""
        self.config_dir = Path(config_dir) if config_dir else Path.cwd()
        self.env_file = self.config_dir / '.env'

    def load_env_vars(self) -> Dict[str, str]:
        """Load PLAYMIX_* variables from the .env file and the environment."""
        env_vars: Dict[str, str] = {}

        if self.env_file.exists():
            try:
                file_values = dotenv_values(self.env_file)
            except (IOError, UnicodeDecodeError) as e:
                raise SettingsError(f"Failed to load .env file {self.env_file}: {e}")
            env_vars.update({k: v for k, v in file_values.items() if v is not None})

        env_vars.update(os.environ)
        return {k: v for k, v in env_vars.items() if k.startswith(ENV_PREFIX)}

    def save_env_vars(self, env_vars: Dict[str, str]) -> None:
        """Save variables to the .env file."""
        try:
            self.config_dir.mkdir(parents=True, exist_ok=True)
            with open(self.env_file, 'w') as f:
                for key, value in env_vars.items():
                    f.write(f"{key}={value}\n")
        except IOError as e:
            raise SettingsError(f"Failed to save .env file {self.env_file}: {e}")

    def get_mix_settings(self) -> MixSettings:
        """Build MixSettings from defaults overridden by configured values."""
        values: Dict[str, Any] = asdict(MixSettings())
        for key, raw in self.load_env_vars().items():
            name = key[len(ENV_PREFIX):].lower()
            if name not in values:
                continue
            values[name] = self._parse_value(key, name, raw)

        if values['fallback_average_duration_ms'] is not None and values['fallback_average_duration_ms'] < 0:
            raise SettingsError(f"{ENV_PREFIX}FALLBACK_AVERAGE_DURATION_MS must not be negative")
        if values['log_level'].upper() not in ('DEBUG', 'INFO', 'WARNING', 'ERROR'):
            raise SettingsError(f"Unsupported log level: {values['log_level']}")
        values['log_level'] = values['log_level'].upper()

        return MixSettings(**values)

    def _parse_value(self, key: str, name: str, raw: str) -> Any:
        raw = raw.strip()
        if name in _INT_KEYS:
            if name == 'fallback_average_duration_ms' and raw.lower() in ('', 'none'):
                return None
            try:
                return int(raw)
            except ValueError:
                raise SettingsError(f"{key} must be an integer, got {raw!r}")
        if name in _BOOL_KEYS:
            lowered = raw.lower()
            if lowered in _TRUE_VALUES:
                return True
            if lowered in _FALSE_VALUES:
                return False
            raise SettingsError(f"{key} must be a boolean, got {raw!r}")
        return raw

    def get_config_summary(self) -> Dict[str, Any]:
        """Get configuration summary."""
        return {
            'config_dir': str(self.config_dir),
            'env_file': str(self.env_file),
            'has_env_file': self.env_file.exists(),
            'settings': asdict(self.get_mix_settings()),
        }


# Global instance
settings_manager = SettingsManager()


def get_settings_manager() -> SettingsManager:
    """Get global settings manager instance."""
    return settings_manager


def setup_config(config_dir: Optional[str] = None) -> SettingsManager:
    """Setup configuration with custom directory."""
    global settings_manager
    settings_manager = SettingsManager(config_dir)
    return settings_manager
