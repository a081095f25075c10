"""Controller configuration.

Configuration is resolved in this order:
1. Environment variables (COMPLETE_NOTIFY_URL, LOG_LEVEL, ...)
2. Optional YAML file named by $DATASET_CONTROLLER_CONFIG
3. Built-in defaults

The YAML file uses the same keys as ControllerConfig fields, e.g.:

    complete_notify_url: http://dataset-notifier:8080/complete
    system_namespace: datatunerx-dev
    plugin_root: /opt/dataset-controller
"""

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional

import yaml

logger = logging.getLogger(__name__)

CONFIG_ENV = 'DATASET_CONTROLLER_CONFIG'

# In-cluster service account locations
SERVICE_ACCOUNT_DIR = Path('/var/run/secrets/kubernetes.io/serviceaccount')
IN_CLUSTER_API_SERVER = 'https://kubernetes.default.svc'

# field name -> environment variable
ENV_BINDINGS = {
    'complete_notify_url': 'COMPLETE_NOTIFY_URL',
    'log_level': 'LOG_LEVEL',
    'system_namespace': 'DATATUNERX_SYSTEM_NAMESPACE',
    'plugin_root': 'PLUGIN_ROOT',
    'api_server': 'KUBE_API_SERVER',
    'token_file': 'KUBE_TOKEN_FILE',
    'ca_file': 'KUBE_CA_FILE',
    'request_timeout': 'KUBE_REQUEST_TIMEOUT',
}

LOG_LEVELS = {
    'debug': logging.DEBUG,
    'info': logging.INFO,
    'warn': logging.WARNING,
    'warning': logging.WARNING,
    'error': logging.ERROR,
}


class ConfigError(Exception):
    """Configuration error."""


@dataclass
class ControllerConfig:
    """Process-wide controller settings.

    Attributes:
        complete_notify_url: Injected into every plugin manifest as completeNotifyUrl
        log_level: Logging level name (debug, info, warning, error)
        system_namespace: Namespace holding DataPlugin descriptors
        plugin_root: Directory containing plugins/<class>/<provider>/plugin.yaml
        api_server: Kubernetes API server URL
        token_file: Bearer token file for the API server
        ca_file: CA bundle used to verify the API server
        request_timeout: Seconds before an API request is abandoned
    """
    complete_notify_url: str = ''
    log_level: str = 'debug'
    system_namespace: str = 'datatunerx-dev'
    plugin_root: Path = Path('.')
    api_server: str = IN_CLUSTER_API_SERVER
    token_file: Optional[Path] = SERVICE_ACCOUNT_DIR / 'token'
    ca_file: Optional[Path] = SERVICE_ACCOUNT_DIR / 'ca.crt'
    request_timeout: float = 30.0

    def __post_init__(self):
        if isinstance(self.plugin_root, str):
            self.plugin_root = Path(self.plugin_root)
        if isinstance(self.token_file, str):
            self.token_file = Path(self.token_file) if self.token_file else None
        if isinstance(self.ca_file, str):
            self.ca_file = Path(self.ca_file) if self.ca_file else None

        try:
            self.request_timeout = float(self.request_timeout)
        except (TypeError, ValueError):
            raise ConfigError(f"Invalid request_timeout: {self.request_timeout!r}")
        if self.request_timeout <= 0:
            raise ConfigError(f"request_timeout must be positive, got {self.request_timeout}")

        self.log_level = str(self.log_level)
        if self.log_level.lower() not in LOG_LEVELS:
            raise ConfigError(
                f"Invalid log_level: {self.log_level!r} "
                f"(expected one of: {', '.join(sorted(LOG_LEVELS))})"
            )

    def get_api_token(self) -> str:
        """Read the API bearer token, or '' if no token file is available."""
        if self.token_file is None or not self.token_file.exists():
            return ''
        return self.token_file.read_text(encoding='utf-8').strip()


def _parse_yaml(path: Path) -> dict:
    """Parse a YAML config file and return its mapping."""
    try:
        with open(path, encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in config {path}: {e}")
    if not isinstance(data, dict):
        raise ConfigError(f"Config {path} must be a YAML object (dict)")
    return data


def load_config(path: Optional[Path] = None) -> ControllerConfig:
    """Load controller configuration.

    Args:
        path: Optional YAML config file. Defaults to $DATASET_CONTROLLER_CONFIG.

    Returns:
        ControllerConfig with environment overrides applied

    Raises:
        ConfigError: If the config file is missing, malformed, or has unknown keys
    """
    values: dict = {}

    if path is None and (env_path := os.environ.get(CONFIG_ENV)):
        path = Path(env_path)

    if path is not None:
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}")
        values.update(_parse_yaml(path))
        logger.debug(f"Loaded config file {path}")

    known = {f.name for f in fields(ControllerConfig)}
    unknown = set(values) - known
    if unknown:
        raise ConfigError(f"Unknown config keys: {', '.join(sorted(unknown))}")

    for name, env_var in ENV_BINDINGS.items():
        if (env_value := os.environ.get(env_var)) is not None:
            values[name] = env_value

    return ControllerConfig(**values)


def configure_logging(level: str = 'debug') -> None:
    """Configure root logging for the controller process."""
    logging.basicConfig(
        level=LOG_LEVELS.get(level.lower(), logging.DEBUG),
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
