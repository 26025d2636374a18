# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from mimir.config import load_settings
from mimir.core.exceptions import ConfigurationError
from mimir.core.types import RiskLevel, Settings


def _write(path: Path, data: object) -> Path:
    with open(path, "w") as f:
        yaml.dump(data, f)
    return path


def test_load_settings_valid(tmp_path):
    settings_path = _write(
        tmp_path / "settings.mimir.yaml",
        {
            "permissions": {
                "auto_accept": True,
                "accept_risk_level": "medium",
                "always_accept_commands": ["git status"],
            },
            "enforcement": {"global_blocklist": ["rm -rf *"], "blocked_tools": ["run_shell_command"]},
            "loop_limits": {"max_nesting_depth": 4},
            "orchestration": {"max_parallel": 2},
        },
    )

    settings = load_settings(config_path=settings_path)

    assert isinstance(settings, Settings)
    assert settings.permissions.auto_accept is True
    assert settings.permissions.accept_risk_level == RiskLevel.MEDIUM
    assert settings.permissions.always_accept_commands == ("git status",)
    assert settings.enforcement.global_blocklist == ("rm -rf *",)
    assert settings.enforcement.blocked_tools == ("run_shell_command",)
    assert settings.loop_limits.max_nesting_depth == 4
    assert settings.loop_limits.max_total_agents == 50
    assert settings.orchestration.max_parallel == 2


def test_load_settings_file_not_found():
    with pytest.raises(FileNotFoundError, match="Configuration file not found"):
        load_settings(config_path=Path("nonexistent.yaml"))


def test_load_settings_from_mimir_settings_env_var(tmp_path, monkeypatch):
    """MIMIR_SETTINGS is used when no explicit path is given."""
    settings_path = _write(tmp_path / "custom.yaml", {"log_level": "DEBUG"})
    monkeypatch.setenv("MIMIR_SETTINGS", str(settings_path))

    assert load_settings().log_level == "DEBUG"


def test_load_settings_explicit_path_overrides_env_var(tmp_path, monkeypatch):
    env_path = _write(tmp_path / "env.yaml", {"log_level": "DEBUG"})
    explicit_path = _write(tmp_path / "explicit.yaml", {"log_level": "ERROR"})
    monkeypatch.setenv("MIMIR_SETTINGS", str(env_path))

    assert load_settings(config_path=explicit_path).log_level == "ERROR"


def test_load_settings_default_file_in_cwd(tmp_path, monkeypatch):
    _write(tmp_path / "settings.mimir.yaml", {"orchestration": {"max_parallel": 8}})
    monkeypatch.delenv("MIMIR_SETTINGS", raising=False)
    monkeypatch.chdir(tmp_path)

    assert load_settings().orchestration.max_parallel == 8


def test_empty_file_yields_defaults(tmp_path):
    settings_path = tmp_path / "empty.yaml"
    settings_path.write_text("")

    assert load_settings(config_path=settings_path) == Settings()


@pytest.mark.parametrize(
    "data",
    [
        {"orchestration": {"max_parallel": 0}},
        {"orchestration": {"max_parallel": 65}},
        {"permissions": {"accept_risk_level": "extreme"}},
        {"loop_limits": {"max_total_agents": 0}},
    ],
)
def test_invalid_values_are_rejected(tmp_path, data):
    settings_path = _write(tmp_path / "invalid.yaml", data)

    with pytest.raises(ConfigurationError, match="Invalid configuration in") as exc_info:
        load_settings(config_path=settings_path)

    assert isinstance(exc_info.value.__cause__, ValidationError)


def test_malformed_yaml_raises(tmp_path):
    settings_path = tmp_path / "broken.yaml"
    settings_path.write_text("permissions: [unclosed\n")

    with pytest.raises(ConfigurationError) as exc_info:
        load_settings(config_path=settings_path)

    assert isinstance(exc_info.value.__cause__, yaml.YAMLError)


def test_non_mapping_document_is_rejected(tmp_path):
    settings_path = tmp_path / "list.yaml"
    settings_path.write_text("- just\n- a list\n")

    with pytest.raises(ConfigurationError, match="list.yaml"):
        load_settings(config_path=settings_path)
