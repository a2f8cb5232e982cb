"""Settings for the module lifecycle orchestrator.

Settings are loaded with the following precedence:
1. Explicitly passed parameters
2. Configuration files
3. Default values

Deployment inputs (version, namespace, image) are not settings; they come
from ``vastkmm.config.Config`` and the command line.
"""
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..config import Config

logger = logging.getLogger("vastkmm.settings")

# Default configuration paths
DEFAULT_CONFIG_PATHS = [
    Path("/etc/vastkmm/config.yaml"),
    Path("~/.config/vastkmm/config.yaml").expanduser(),
    Path("vastkmm.yaml").absolute(),
]


class ClusterSettings(BaseModel):
    """How the orchestrator talks to the cluster."""
    oc_binary: str = Field(default=Config.OC_BINARY, description="CLI used for node debug pods and apply")
    kubeconfig: Optional[str] = Field(default=Config.KUBECONFIG or None, description="Path to kubeconfig")
    probe_concurrency: int = Field(default=Config.PROBE_CONCURRENCY, description="Max simultaneous node probes")
    exec_timeout: int = Field(default=Config.NODE_EXEC_TIMEOUT, description="Node exec timeout in seconds")
    apply_timeout: int = Field(default=Config.APPLY_TIMEOUT, description="Apply timeout in seconds")

    @field_validator('probe_concurrency')
    @classmethod
    def positive_concurrency(cls, v: int) -> int:
        if v < 1:
            raise ValueError("probe_concurrency must be at least 1")
        return v

    @field_validator('kubeconfig')
    @classmethod
    def expand_kubeconfig(cls, v: Optional[str]) -> Optional[str]:
        """Expand the user home directory in the kubeconfig path."""
        return os.path.expanduser(v) if v else v


class TimeoutSettings(BaseModel):
    """Polling budgets, in seconds."""
    pods_appear: int = 60
    pods_appear_initial_delay: int = 5
    pod_ready: int = 300
    pod_ready_prebuilt: int = 30
    poll_interval: int = 2
    version_check_every: int = 10
    log_stream_attempts: int = 10
    log_stream_backoff: int = 3
    log_tail_lines: int = 50
    module_ready_poll: int = 5


class LoggingSettings(BaseModel):
    """Logging configuration."""
    level: str = Field(default=Config.LOG_LEVEL, description="Logging level")
    file: Optional[str] = Field(default=None, description="Path to log file (if None, logs to stderr)")
    max_size_mb: int = Field(default=100, description="Maximum log file size in MB before rotation")
    backup_count: int = Field(default=5, description="Number of backup log files to keep")


class KmmSettings(BaseModel):
    """vastkmm settings."""
    model_config = ConfigDict(extra="ignore")

    cluster: ClusterSettings = Field(default_factory=ClusterSettings)
    timeouts: TimeoutSettings = Field(default_factory=TimeoutSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @classmethod
    def load(cls, config_path: Optional[Union[str, Path]] = None) -> 'KmmSettings':
        """Load settings from an explicit file or the first default path found."""
        config_data: Dict[str, Any] = {}

        if config_path:
            config_path = Path(config_path).expanduser().absolute()
            if config_path.exists():
                config_data = cls._load_config_file(config_path)
            else:
                logger.warning(f"Settings file not found: {config_path}, using defaults")
        else:
            for path in DEFAULT_CONFIG_PATHS:
                path = path.expanduser().absolute()
                if path.exists():
                    config_data = cls._load_config_file(path)
                    break

        return cls(**config_data)

    @classmethod
    def _load_config_file(cls, path: Path) -> Dict[str, Any]:
        """Load settings from a YAML file."""
        try:
            with open(path, 'r') as f:
                return yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"Failed to load settings from {path}: {e}")
            return {}

    def save(self, path: Union[str, Path]) -> None:
        """Save settings to a file."""
        path = Path(path).expanduser().absolute()
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, 'w') as f:
            yaml.safe_dump(self.model_dump(exclude_none=True), f, default_flow_style=False, sort_keys=False)


# Global settings instance
_settings: Optional[KmmSettings] = None

def get_settings(config_path: Optional[Union[str, Path]] = None) -> KmmSettings:
    """Get or create the global settings instance."""
    global _settings
    if _settings is None:
        _settings = KmmSettings.load(config_path)
    return _settings

def set_settings(settings: Optional[KmmSettings]) -> None:
    """Set (or reset with None) the global settings instance."""
    global _settings
    _settings = settings
