"""
Tool server configuration.

Servers are declared in an `.mcp.json`-style file:

    {
      "mcpServers": {
        "coralogix": {
          "command": "npx",
          "args": ["mcp-remote", "https://mcp.example.com/sse",
                   "--header", "Authorization: Bearer ${CX_API_KEY}"],
          "env": {"CX_API_KEY": "..."}
        },
        "github": {"type": "http", "url": "https://api.example.com/mcp",
                   "headers": {"Authorization": "Bearer ${GITHUB_TOKEN}"}},
        "local-fs": {"command": "npx", "args": ["@modelcontextprotocol/server-filesystem"]}
      }
    }

Each entry is decided once, at load time, into one of three tagged variants:
StdioServerConfig, SseServerConfig or HttpServerConfig. Entries without an
explicit "type" are inferred from their shape. Stdio servers load fine but
are never connected to by this runtime.
"""

import json
import os
import re
from pathlib import Path
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from agentbridge.errors import ConfigError
from agentbridge.tools.models import QUALIFIED_NAME_SEPARATOR

_ENV_VAR = re.compile(r"\$\{(\w+)\}")


def resolve_env_vars(value: str, env: dict[str, str] | None = None) -> str:
    """
    Replace `${VAR}` references, looking in `env` first and then the process environment.

    Unknown variables resolve to an empty string.
    """
    env = env or {}
    return _ENV_VAR.sub(lambda m: env.get(m.group(1)) or os.environ.get(m.group(1), ""), value)


class _ServerConfigBase(BaseModel):
    env: dict[str, str] = Field(default_factory=dict)
    categories: list[str] = Field(
        default_factory=list,
        description="Domain categories inherited by every tool of this server",
    )
    required_env: list[str] = Field(
        default_factory=list,
        description="Env keys a user overlay is expected to supply (credentials)",
    )

    def missing_env(self) -> list[str]:
        return [k for k in self.required_env if not (self.env.get(k) or os.environ.get(k))]


class StdioServerConfig(_ServerConfigBase):
    """Local subprocess server. Recognized but not supported by this runtime."""

    type: Literal["stdio"] = "stdio"
    command: str
    args: list[str] = Field(default_factory=list)


class SseServerConfig(_ServerConfigBase):
    """
    Server-sent-events transport.

    Either a direct `url`, or an `mcp-remote` proxy command whose first
    http(s) argument is the endpoint and whose `--header "K: V"` pairs
    supply headers.
    """

    type: Literal["sse"] = "sse"
    url: str | None = None
    command: str | None = None
    args: list[str] = Field(default_factory=list)
    headers: dict[str, str] = Field(default_factory=dict)

    def resolved_url(self) -> str | None:
        if self.url:
            return resolve_env_vars(self.url, self.env)
        for arg in self.args:
            if arg.startswith("http"):
                return resolve_env_vars(arg, self.env)
        return None

    def resolved_headers(self) -> dict[str, str]:
        headers = {k: resolve_env_vars(v, self.env) for k, v in self.headers.items()}
        for flag, value in zip(self.args, self.args[1:]):
            if flag == "--header" and ":" in value:
                key, _, raw = value.partition(":")
                headers[key.strip()] = resolve_env_vars(raw.strip(), self.env)
        return headers


class HttpServerConfig(_ServerConfigBase):
    """Direct streamable-HTTP transport."""

    type: Literal["http"] = "http"
    url: str
    headers: dict[str, str] = Field(default_factory=dict)

    def resolved_url(self) -> str:
        return resolve_env_vars(self.url, self.env)

    def resolved_headers(self) -> dict[str, str]:
        return {k: resolve_env_vars(v, self.env) for k, v in self.headers.items()}


ServerConfig = Annotated[
    StdioServerConfig | SseServerConfig | HttpServerConfig,
    Field(discriminator="type"),
]

_server_config_adapter: TypeAdapter = TypeAdapter(ServerConfig)


class UserServerConfig(BaseModel):
    """
    Per-user overlay applied on top of a server's base configuration.

    Merged field by field: env and headers are dict-merged with the user's
    values winning, url replaces the base url when set.
    """

    env: dict[str, str] = Field(default_factory=dict)
    url: str | None = None
    headers: dict[str, str] = Field(default_factory=dict)


def infer_transport(raw: dict[str, Any]) -> str:
    """
    Decide the transport for an entry that does not declare one.

    Raises:
        ConfigError: If the entry has neither a url nor a command
    """
    if raw.get("type") in ("stdio", "sse", "http"):
        return raw["type"]
    if raw.get("url"):
        return "http" if raw.get("headers") else "sse"
    if raw.get("command"):
        if any("mcp-remote" in str(arg) for arg in raw.get("args", [])):
            return "sse"
        return "stdio"
    raise ConfigError("No compatible transport configuration (need 'url' or 'command')")


def parse_server_config(server_id: str, raw: dict[str, Any]) -> ServerConfig:
    """Validate one raw entry into its tagged variant."""
    if not isinstance(raw, dict):
        raise ConfigError(f"Server '{server_id}' entry must be an object")
    if QUALIFIED_NAME_SEPARATOR in server_id:
        # Qualified tool names are split on the first separator
        raise ConfigError(
            f"Server id '{server_id}' must not contain '{QUALIFIED_NAME_SEPARATOR}'"
        )
    try:
        transport = infer_transport(raw)
    except ConfigError as e:
        raise ConfigError(f"Server '{server_id}': {e}") from e
    try:
        return _server_config_adapter.validate_python({**raw, "type": transport})
    except ValidationError as e:
        raise ConfigError(f"Server '{server_id}' is not a valid {transport} config: {e}") from e


def load_server_map(source: str | Path | dict[str, Any]) -> dict[str, ServerConfig]:
    """
    Load the server map from a JSON file path or an already-parsed dict.

    A missing file yields an empty map: no servers configured is a valid state.

    Raises:
        ConfigError: If the file cannot be parsed or an entry is invalid
    """
    if isinstance(source, dict):
        data = source
    else:
        path = Path(source)
        if not path.exists():
            return {}
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigError(f"Failed to read server map {path}: {e}") from e

    servers = data.get("mcpServers", {})
    if not isinstance(servers, dict):
        raise ConfigError("'mcpServers' must be an object mapping server id to config")
    return {server_id: parse_server_config(server_id, raw) for server_id, raw in servers.items()}


def merge_user_config(base: ServerConfig, overlay: UserServerConfig | None) -> ServerConfig:
    """Apply a user overlay to a base config, returning a new config of the same variant."""
    if overlay is None:
        return base
    update: dict[str, Any] = {"env": {**base.env, **overlay.env}}
    if isinstance(base, (SseServerConfig, HttpServerConfig)):
        update["headers"] = {**base.headers, **overlay.headers}
        if overlay.url:
            update["url"] = overlay.url
    return base.model_copy(update=update)
