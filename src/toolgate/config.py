"""
Configuration for the action framework.

All configuration is loaded from environment variables. Capability servers
are described in JSON, either in the file named by MCP_CONFIG_PATH or inline
in MCP_SERVERS:

  {
    "servers": {
      "filesystem": {
        "command": "npx",
        "args": ["-y", "@modelcontextprotocol/server-filesystem", "."],
        "env": {},
        "description": "File system operations"
      }
    }
  }

Malformed configuration raises ConfigurationError; it is a deployment
mistake, not something to recover from at call time.
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from toolgate.actions import ConfigurationError
from toolgate.shell import KILL_GRACE_SECONDS

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number, got {value!r}") from e


@dataclass
class CapabilityServerConfig:
    """How to launch one capability server."""
    name: str
    command: str
    args: list[str] = field(default_factory=list)
    env: dict[str, str] = field(default_factory=dict)
    description: str = ""

    @classmethod
    def from_dict(cls, name: str, data: dict[str, Any]) -> "CapabilityServerConfig":
        if not isinstance(data, dict):
            raise ConfigurationError(f"Server '{name}' must be a JSON object")
        command = data.get("command")
        if not command or not isinstance(command, str):
            raise ConfigurationError(f"Server '{name}' is missing a 'command'")
        args = data.get("args", [])
        env = data.get("env", {})
        if not isinstance(args, list) or not all(isinstance(a, str) for a in args):
            raise ConfigurationError(f"Server '{name}': 'args' must be a list of strings")
        if not isinstance(env, dict):
            raise ConfigurationError(f"Server '{name}': 'env' must be an object")
        return cls(
            name=name,
            command=command,
            args=list(args),
            env={str(k): str(v) for k, v in env.items()},
            description=str(data.get("description", "")),
        )


def parse_capability_servers(config: dict[str, Any]) -> list[CapabilityServerConfig]:
    """Parse the {"servers": {...}} document."""
    if not isinstance(config, dict):
        raise ConfigurationError("Capability server configuration must be a JSON object")
    servers = config.get("servers", {})
    if not isinstance(servers, dict):
        raise ConfigurationError("'servers' must map server names to definitions")
    return [CapabilityServerConfig.from_dict(name, data) for name, data in servers.items()]


def load_capability_servers() -> list[CapabilityServerConfig]:
    """Load server definitions from MCP_CONFIG_PATH or MCP_SERVERS, if set."""
    config_path = os.environ.get("MCP_CONFIG_PATH")
    servers_json = os.environ.get("MCP_SERVERS")

    if config_path:
        try:
            with open(config_path) as f:
                return parse_capability_servers(json.load(f))
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(
                f"Failed to load capability config from {config_path}: {e}"
            ) from e

    if servers_json:
        try:
            return parse_capability_servers(json.loads(servers_json))
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Failed to parse MCP_SERVERS JSON: {e}") from e

    return []


@dataclass
class ActionsConfig:
    """
    Configuration for the orchestrator and built-in actions.

    auto_approve is the orchestrator-level confirmation policy: when set,
    every confirmation request is approved without asking anyone.
    default_timeout bounds execute_safely() calls; call_timeout bounds calls
    made through the AI-facing adapter. Both are in seconds.
    """
    workspace_root: Path
    auto_approve: bool = False
    enable_capabilities: bool = False
    capability_servers: list[CapabilityServerConfig] = field(default_factory=list)
    default_timeout: float = 30.0
    call_timeout: float = 60.0
    kill_grace: float = KILL_GRACE_SECONDS

    def __post_init__(self) -> None:
        self.workspace_root = Path(os.path.abspath(self.workspace_root))

    @classmethod
    def from_env(cls) -> "ActionsConfig":
        """Load configuration from environment variables."""
        return cls(
            workspace_root=Path(os.getenv("TOOLGATE_WORKSPACE_ROOT", os.getcwd())),
            auto_approve=_env_bool("TOOLGATE_AUTO_APPROVE", False),
            enable_capabilities=_env_bool("TOOLGATE_ENABLE_CAPABILITIES", False),
            capability_servers=load_capability_servers(),
            default_timeout=_env_float("TOOLGATE_DEFAULT_TIMEOUT", 30.0),
            call_timeout=_env_float("TOOLGATE_CALL_TIMEOUT", 60.0),
            kill_grace=_env_float("TOOLGATE_KILL_GRACE", KILL_GRACE_SECONDS),
        )
