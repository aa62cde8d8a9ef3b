#!/usr/bin/env python3
"""
Write a .env file with PlayMix settings
"""

import sys
from dataclasses import asdict

from playmix.crosscutting.config import ENV_PREFIX, MixSettings, SettingsError, SettingsManager


def setup_environment(config_dir=None, **overrides):
    """Write PLAYMIX_* defaults, merged with overrides, to <config_dir>/.env"""
    manager = SettingsManager(config_dir)
    values = asdict(MixSettings())
    values.update(overrides)
    env_vars = {
        f"{ENV_PREFIX}{key.upper()}": 'none' if value is None else str(value).lower() if isinstance(value, bool) else str(value)
        for key, value in values.items()
    }
    try:
        manager.save_env_vars(env_vars)
        manager.get_mix_settings()
    except SettingsError as e:
        print(f"Error setting up environment: {e}")
        return False
    print(f"Settings written to {manager.env_file}")
    return True


if __name__ == '__main__':
    sys.exit(0 if setup_environment(sys.argv[1] if len(sys.argv) > 1 else None) else 1)
