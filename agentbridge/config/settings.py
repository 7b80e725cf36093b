"""
Application settings and configuration management.

Uses Pydantic Settings for validation and environment variable support.
"""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class LLMSettings(BaseSettings):
    """Inference endpoint configuration."""

    api_key: str = Field(default="", description="API key for the model's provider")
    cheap_model: str = Field(
        default="anthropic/claude-3-5-haiku-latest",
        description="LiteLLM model string for the cheap/fast tier",
    )
    balanced_model: str = Field(
        default="anthropic/claude-sonnet-4-20250514",
        description="LiteLLM model string for the balanced tier",
    )
    capable_model: str = Field(
        default="anthropic/claude-opus-4-20250514",
        description="LiteLLM model string for the most-capable tier",
    )
    max_tokens: int = Field(default=8192, description="Maximum tokens in each model response")
    temperature: float | None = Field(
        default=None,
        description="Sampling temperature. None leaves the provider default in place.",
    )
    thinking_budget: int = Field(
        default=4096,
        description="Token budget for extended thinking when a request enables it",
    )
    request_timeout: float = Field(
        default=120.0,
        description="Seconds before a single model call is abandoned (loop-fatal)",
    )
    prompt_caching: bool = Field(
        default=True,
        description="Mark system prompt, tools and history as cache segments",
    )

    model_config = SettingsConfigDict(env_prefix="LLM_")

    def model_for_tier(self, tier: str) -> str:
        """Map a routing tier name to its configured LiteLLM model string."""
        return {
            "cheap": self.cheap_model,
            "balanced": self.balanced_model,
            "capable": self.capable_model,
        }[tier]


class AgentSettings(BaseSettings):
    """Agent loop behaviour."""

    max_iterations: int = Field(default=20, ge=1, description="Hard ceiling on model calls per request")
    heartbeat_interval: float = Field(
        default=15.0,
        gt=0,
        description="Seconds of stream silence before a heartbeat frame is emitted",
    )
    min_substantive_length: int = Field(
        default=50,
        description="Accumulated text length above which a complete turn ends the loop",
    )
    allow_model_switch: bool = Field(
        default=False,
        description="Re-consult the router on every iteration instead of pinning the first choice",
    )
    tool_timeout: float = Field(
        default=60.0,
        description="Seconds before a single tool invocation is treated as failed",
    )
    verbose: bool = Field(default=False, description="Stream tool inputs, results and thinking")

    model_config = SettingsConfigDict(env_prefix="AGENT_")


class ToolSettings(BaseSettings):
    """Tool server configuration."""

    servers_file: Path = Field(
        default=Path(".mcp.json"),
        description="JSON file with an 'mcpServers' map of server id to transport descriptor",
    )
    connect_timeout: float = Field(
        default=30.0,
        description="Seconds allowed for connecting to one server and listing its tools",
    )
    max_result_tokens: int = Field(
        default=4000,
        description="Tool results above this token count are truncated before reaching the model",
    )
    default_max_tools: int = Field(
        default=40,
        description="Visible-tool cap when the agent preset does not set its own",
    )
    schema_token_cost: int = Field(
        default=150,
        description="Average token cost of one tool schema, used for savings estimates",
    )

    model_config = SettingsConfigDict(env_prefix="TOOL_")


class RoutingSettings(BaseSettings):
    """Model routing configuration."""

    enabled: bool = Field(default=True, description="Disable to always use the default tier")
    profile: Literal[
        "default", "development", "production", "cost_optimized", "quality_optimized"
    ] = Field(default="default", description="Named preset adjusting thresholds and default tier")
    default_tier: Literal["cheap", "balanced", "capable"] | None = Field(
        default=None,
        description="Overrides the profile's default tier when set",
    )
    simple_threshold: int | None = Field(
        default=None, description="Scores at or below this route to the cheap tier"
    )
    moderate_threshold: int | None = Field(
        default=None, description="Scores at or below this route to the balanced tier"
    )

    model_config = SettingsConfigDict(env_prefix="ROUTING_")


class ServerSettings(BaseSettings):
    """HTTP streaming server configuration."""

    host: str = Field(default="127.0.0.1", description="Bind address")
    port: int = Field(default=8000, description="Bind port")

    model_config = SettingsConfigDict(env_prefix="SERVER_")


class Settings(BaseSettings):
    """Main application settings."""

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    log_file: Path | None = Field(default=None, description="Log file path")

    # Sub-configurations
    llm: LLMSettings = Field(default_factory=LLMSettings)
    agent: AgentSettings = Field(default_factory=AgentSettings)
    tools: ToolSettings = Field(default_factory=ToolSettings)
    routing: RoutingSettings = Field(default_factory=RoutingSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )


# Global settings instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get or create the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def load_settings(env_file: str | Path | None = None) -> Settings:
    """
    Load settings from file and environment.

    Args:
        env_file: Path to .env file (optional)

    Returns:
        Loaded settings instance
    """
    global _settings
    if env_file:
        _settings = Settings(_env_file=env_file)
    else:
        _settings = Settings()
    return _settings
