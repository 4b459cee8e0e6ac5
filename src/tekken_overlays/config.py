"""Configuration system using pydantic-settings.

Layered config: defaults → env vars → CLI flags → runtime updates.
"""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppConfig(BaseSettings):
    """Process-wide settings."""

    model_config = SettingsConfigDict(env_prefix="TEKKEN_")

    log_level: str = Field(default="INFO", description="Logging level")
    headless: bool = Field(default=False, description="Serve realtime + REST only, no pages")


class ServerConfig(BaseSettings):
    """Configuration for the realtime/REST server."""

    model_config = SettingsConfigDict(env_prefix="TEKKEN_SERVER_")

    host: str = Field(default="0.0.0.0", description="Bind address")
    port: int = Field(default=3000, description="Bind port")
    connection_key: str | None = Field(
        default=None, description="Shared access key presented as the connection token"
    )
    extra_keys: dict[str, str] = Field(
        default_factory=dict, description="Additional tokens mapped to an identity name"
    )
    data_dir: Path = Field(
        default=Path("~/.tekken-overlays"),
        description="Directory for the entity catalogue and retained snapshots",
    )
    cors_origins: list[str] = Field(default_factory=lambda: ["*"], description="CORS origins")

    @property
    def resolved_data_dir(self) -> Path:
        return self.data_dir.expanduser()


class ClientConfig(BaseSettings):
    """Configuration for transport and REST clients (pages and CLI)."""

    model_config = SettingsConfigDict(env_prefix="TEKKEN_CLIENT_")

    server_url: str = Field(default="http://127.0.0.1:3000", description="Server base URL")
    connect_timeout_s: float = Field(default=10.0, description="Transport handshake timeout")
    reconnection: bool = Field(default=True, description="Let the transport reconnect on drops")
    reconnection_delay_s: float = Field(default=1.0, description="Initial reconnect delay")
    fetch_timeout_s: float = Field(default=5.0, description="Detail fetch timeout")
    session_path: Path = Field(
        default=Path("~/.tekken-overlays/session.json"),
        description="CLI session store (connection key, selections); pages use browser storage",
    )


class OverlayConfig(BaseSettings):
    """Configuration for overlay renderers."""

    model_config = SettingsConfigDict(env_prefix="TEKKEN_OVERLAY_")

    width: int = Field(default=1920, description="Overlay width in px")
    height: int = Field(default=1080, description="Overlay height in px")
    chart_delay_ms: int = Field(
        default=100, description="Delay before applying fresh chart values (lets enter transitions engage)"
    )
    asset_base: str = Field(default="/source/overlay", description="Base URL for overlay assets")
    default_asset: str = Field(
        default="/source/overlay/love_and_war/default.png",
        description="Image shown in idle mode and when a team cannot be resolved",
    )
    textures: list[str] = Field(
        default_factory=lambda: [f"texture_{i:02d}.png" for i in range(1, 9)],
        description="Texture overlays rotated per session",
    )


class UIConfig(BaseSettings):
    """Configuration for the NiceGUI pages."""

    model_config = SettingsConfigDict(env_prefix="TEKKEN_UI_")

    mount_path: str = Field(default="/ui", description="Where the pages are mounted")
    title: str = Field(default="Tekken Overlays", description="Browser title")
    storage_secret: str | None = Field(
        default=None, description="NiceGUI storage secret; a random one is used when unset"
    )


class LogfireConfig(BaseSettings):
    """Configuration for Logfire observability."""

    model_config = SettingsConfigDict(env_prefix="TEKKEN_LOGFIRE_")

    enabled: bool = Field(default=True, description="Enable Logfire observability")
    sample_rate: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        description="Trace sampling rate (0.0-1.0). Errors always captured.",
    )
    environment: str = Field(default="development", description="Environment name")
    dashboard_url: str | None = Field(default=None, description="Logfire dashboard URL")


class Settings(BaseSettings):
    """Root settings container."""

    model_config = SettingsConfigDict(
        env_prefix="TEKKEN_",
        env_nested_delimiter="__",
    )

    app: AppConfig = Field(default_factory=AppConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    client: ClientConfig = Field(default_factory=ClientConfig)
    overlay: OverlayConfig = Field(default_factory=OverlayConfig)
    ui: UIConfig = Field(default_factory=UIConfig)
    logfire: LogfireConfig = Field(default_factory=LogfireConfig)


def load_settings() -> Settings:
    """Load settings from all sources."""
    return Settings()
