"""Configuration module for the agent server.

Handles environment variables and settings for the dual-protocol server.
"""

import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

# Load .env file from the working directory
load_dotenv()


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


@dataclass
class ServerConfig:
    """Server configuration from environment variables."""

    host: str = "0.0.0.0"
    port: int = 3000

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """Load configuration from environment variables."""
        return cls(
            host=os.getenv("ROBYN_HOST", "0.0.0.0"),
            port=int(os.getenv("ROBYN_PORT", "3000")),
        )


@dataclass
class CorsConfig:
    """CORS settings applied by the dual router."""

    enabled: bool = True
    allow_origin: str = "*"

    @classmethod
    def from_env(cls) -> "CorsConfig":
        """Load CORS configuration from environment variables."""
        return cls(
            enabled=_env_flag("CORS_ENABLED", "true"),
            allow_origin=os.getenv("CORS_ALLOW_ORIGIN", "*"),
        )


@dataclass
class AgentConfig:
    """Descriptive metadata used to build the agent card.

    Example:
        >>> config = AgentConfig.from_env()
        >>> config.name
        'Echo Agent'  # unless AGENT_NAME is set
    """

    name: str = "Echo Agent"
    description: str = "Echoes every message it receives"
    url: str = "http://localhost:3000"
    version: str = "1.0.0"

    @classmethod
    def from_env(cls) -> "AgentConfig":
        """Load agent metadata from environment variables.

        Environment variables:
            AGENT_NAME: Display name of the agent
            AGENT_DESCRIPTION: Human readable description
            AGENT_URL: Public base URL advertised in the agent card
            AGENT_VERSION: Agent version string (default: 1.0.0)
        """
        return cls(
            name=os.getenv("AGENT_NAME", "Echo Agent"),
            description=os.getenv(
                "AGENT_DESCRIPTION", "Echoes every message it receives"
            ),
            url=os.getenv("AGENT_URL", "http://localhost:3000"),
            version=os.getenv("AGENT_VERSION", "1.0.0"),
        )


@dataclass
class A2AConfig:
    """A2A protocol settings.

    Attributes:
        supported_versions: Major protocol versions accepted in the
            ``A2A-Version`` request header. Requests without the header
            are always accepted.
    """

    supported_versions: tuple[str, ...] = ("0", "1")

    @classmethod
    def from_env(cls) -> "A2AConfig":
        """Load A2A configuration from environment variables."""
        raw = os.getenv("A2A_SUPPORTED_VERSIONS", "0,1")
        versions = tuple(v.strip() for v in raw.split(",") if v.strip())
        return cls(supported_versions=versions or ("0", "1"))


@dataclass
class Config:
    """Complete application configuration."""

    server: ServerConfig = field(default_factory=ServerConfig)
    cors: CorsConfig = field(default_factory=CorsConfig)
    agent: AgentConfig = field(default_factory=AgentConfig)
    a2a: A2AConfig = field(default_factory=A2AConfig)

    @classmethod
    def from_env(cls) -> "Config":
        """Load complete configuration from environment variables."""
        return cls(
            server=ServerConfig.from_env(),
            cors=CorsConfig.from_env(),
            agent=AgentConfig.from_env(),
            a2a=A2AConfig.from_env(),
        )


# Global config instance (lazy-loaded)
_config: Config | None = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config.from_env()
    return _config


def reset_config() -> None:
    """Drop the cached configuration so the next access re-reads the env."""
    global _config
    _config = None
