"""Tests for environment-based configuration."""

import json
from pathlib import Path

import pytest

from toolgate.actions import ConfigurationError
from toolgate.config import (
    ActionsConfig,
    CapabilityServerConfig,
    load_capability_servers,
    parse_capability_servers,
)

SERVERS = {
    "servers": {
        "filesystem": {
            "command": "npx",
            "args": ["-y", "@modelcontextprotocol/server-filesystem", "."],
            "env": {"DEBUG": 1},
            "description": "File system operations",
        }
    }
}


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "TOOLGATE_WORKSPACE_ROOT",
        "TOOLGATE_AUTO_APPROVE",
        "TOOLGATE_ENABLE_CAPABILITIES",
        "TOOLGATE_DEFAULT_TIMEOUT",
        "TOOLGATE_CALL_TIMEOUT",
        "TOOLGATE_KILL_GRACE",
        "MCP_CONFIG_PATH",
        "MCP_SERVERS",
    ):
        monkeypatch.delenv(name, raising=False)


class TestParseCapabilityServers:
    """Tests for the {"servers": {...}} format."""

    def test_parse(self):
        [server] = parse_capability_servers(SERVERS)
        assert server == CapabilityServerConfig(
            name="filesystem",
            command="npx",
            args=["-y", "@modelcontextprotocol/server-filesystem", "."],
            env={"DEBUG": "1"},
            description="File system operations",
        )

    def test_empty_document(self):
        assert parse_capability_servers({}) == []

    @pytest.mark.parametrize("document", [
        [],
        {"servers": []},
        {"servers": {"x": {}}},
        {"servers": {"x": {"command": "run", "args": "not-a-list"}}},
        {"servers": {"x": {"command": "run", "env": []}}},
    ])
    def test_malformed(self, document):
        with pytest.raises(ConfigurationError):
            parse_capability_servers(document)


class TestLoadCapabilityServers:
    """Tests for MCP_CONFIG_PATH and MCP_SERVERS."""

    def test_nothing_configured(self):
        assert load_capability_servers() == []

    def test_from_file(self, tmp_path, monkeypatch):
        path = tmp_path / "mcp.json"
        path.write_text(json.dumps(SERVERS))
        monkeypatch.setenv("MCP_CONFIG_PATH", str(path))
        assert [s.name for s in load_capability_servers()] == ["filesystem"]

    def test_from_inline_json(self, monkeypatch):
        monkeypatch.setenv("MCP_SERVERS", json.dumps(SERVERS))
        assert [s.command for s in load_capability_servers()] == ["npx"]

    def test_missing_file(self, tmp_path, monkeypatch):
        monkeypatch.setenv("MCP_CONFIG_PATH", str(tmp_path / "missing.json"))
        with pytest.raises(ConfigurationError):
            load_capability_servers()

    def test_bad_inline_json(self, monkeypatch):
        monkeypatch.setenv("MCP_SERVERS", "{not json")
        with pytest.raises(ConfigurationError):
            load_capability_servers()


class TestActionsConfig:
    """Tests for ActionsConfig."""

    def test_defaults(self, tmp_path):
        config = ActionsConfig(workspace_root=tmp_path)
        assert config.auto_approve is False
        assert config.enable_capabilities is False
        assert config.default_timeout == 30.0
        assert config.call_timeout == 60.0
        assert config.kill_grace == 5.0

    def test_workspace_root_is_absolute(self):
        config = ActionsConfig(workspace_root=Path("relative"))
        assert config.workspace_root.is_absolute()

    def test_from_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TOOLGATE_WORKSPACE_ROOT", str(tmp_path))
        monkeypatch.setenv("TOOLGATE_AUTO_APPROVE", "yes")
        monkeypatch.setenv("TOOLGATE_ENABLE_CAPABILITIES", "1")
        monkeypatch.setenv("TOOLGATE_DEFAULT_TIMEOUT", "12.5")
        monkeypatch.setenv("TOOLGATE_KILL_GRACE", "1")
        monkeypatch.setenv("MCP_SERVERS", json.dumps(SERVERS))
        config = ActionsConfig.from_env()
        assert config.workspace_root == tmp_path
        assert config.auto_approve is True
        assert config.enable_capabilities is True
        assert config.default_timeout == 12.5
        assert config.call_timeout == 60.0
        assert config.kill_grace == 1.0
        assert [s.name for s in config.capability_servers] == ["filesystem"]

    def test_from_env_bad_number(self, monkeypatch):
        monkeypatch.setenv("TOOLGATE_CALL_TIMEOUT", "soon")
        with pytest.raises(ConfigurationError):
            ActionsConfig.from_env()
