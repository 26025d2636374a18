# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
import os
from pathlib import Path

import yaml
from pydantic import ValidationError

from mimir.core.exceptions import ConfigurationError
from mimir.core.types import Settings


SETTINGS_ENV_VAR = "MIMIR_SETTINGS"
DEFAULT_SETTINGS_FILE = "settings.mimir.yaml"


def load_settings(config_path: Path | None = None) -> Settings:
    """Load settings from a YAML file.

    Resolution order:
    1. Explicit config_path parameter (if provided)
    2. MIMIR_SETTINGS environment variable (if set)
    3. Default: 'settings.mimir.yaml' in the current directory

    An empty file yields default settings.

    Args:
        config_path: Optional explicit path to the configuration file.

    Returns:
        Settings populated from the YAML configuration.

    Raises:
        FileNotFoundError: If the configuration file does not exist.
        ConfigurationError: If the YAML is malformed or fails validation.
    """
    if config_path is None:
        env_path = os.environ.get(SETTINGS_ENV_VAR)
        config_path = Path(env_path) if env_path else Path(DEFAULT_SETTINGS_FILE)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found at {config_path}")

    try:
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        return Settings.model_validate(data)
    except (yaml.YAMLError, ValidationError) as e:
        raise ConfigurationError(f"Invalid configuration in {config_path}: {e}") from e
