"""Configuration models using Pydantic for validation."""
from typing import Dict, Literal, Optional
from urllib.parse import urlparse
from pydantic import BaseModel, ConfigDict, Field, field_validator
import os


class GlobalConfig(BaseModel):
    """Global configuration settings."""
    log_level: str = "INFO"
    log_format: Literal["json", "text"] = "text"


class ServerConfig(BaseModel):
    """Demo HTTP service the pusher runs alongside."""
    bind_address: str = "0.0.0.0"
    port: int = Field(default=8080, ge=0, le=65535)


class RemoteWriteConfig(BaseModel):
    """Remote-write push configuration."""
    enabled: bool = True
    url: str = "http://localhost:9090/api/v1/write"
    push_interval_s: float = Field(default=5.0, gt=0)
    timeout_s: float = Field(default=50.0, gt=0)
    connect_timeout_s: Optional[float] = Field(default=None, gt=0)
    insecure_skip_verify: bool = False
    headers: Dict[str, str] = Field(default_factory=dict)
    user_agent: str = "remotewrite-pusher/0.1.0"

    @field_validator('url')
    @classmethod
    def validate_url(cls, v):
        """Only absolute http(s) URLs can receive remote writes."""
        parsed = urlparse(v)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"Remote write URL must be an absolute http(s) URL, got '{v}'")
        return v


class Config(BaseModel):
    """Root configuration model."""
    model_config = ConfigDict(populate_by_name=True)

    global_: GlobalConfig = Field(default_factory=GlobalConfig, alias="global")
    server: ServerConfig = Field(default_factory=ServerConfig)
    remote_write: RemoteWriteConfig = Field(default_factory=RemoteWriteConfig)


def _apply_env_overrides(raw_config: dict) -> dict:
    if env_url := os.getenv('REMOTE_WRITE_URL'):
        raw_config.setdefault('remote_write', {})
        raw_config['remote_write']['url'] = env_url

    if env_log_level := os.getenv('LOG_LEVEL'):
        raw_config.setdefault('global', {})
        raw_config['global']['log_level'] = env_log_level

    return raw_config


def load_config(config_path: str = None) -> Config:
    """Load and validate configuration from a YAML file.

    Without a path only defaults and environment overrides apply.
    """
    import yaml

    raw_config = {}
    if config_path is not None:
        if not os.path.exists(config_path):
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, 'r') as f:
            raw_config = yaml.safe_load(f) or {}

    if not isinstance(raw_config, dict):
        raise ValueError(f"Configuration must be a mapping, got {type(raw_config).__name__}")

    raw_config = _apply_env_overrides(raw_config)

    try:
        config = Config(**raw_config)
        return config
    except Exception as e:
        raise ValueError(f"Configuration validation failed: {e}")
