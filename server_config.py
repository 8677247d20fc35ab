import json
import logging
import os

logger = logging.getLogger(__name__)

# Default configuration
DEFAULT_CONFIG = {
    "host": "0.0.0.0",
    "port": 4000,
    "http_port": 8080,
    "allowed_origin": "*",
    "log_level": "INFO",
    "max_message_size": 16 * 1024 * 1024,
    "ssl_certfile": None,
    "ssl_keyfile": None,
}

CONFIG_FILE = 'config.json'

# env var -> config key
ENV_OVERRIDES = {
    "HOST": "host",
    "PORT": "port",
    "HTTP_PORT": "http_port",
    "CLIENT_URL": "allowed_origin",
    "LOG_LEVEL": "log_level",
    "SSL_CERTFILE": "ssl_certfile",
    "SSL_KEYFILE": "ssl_keyfile",
}

INT_KEYS = ("port", "http_port", "max_message_size")


def load_config(path=None, environ=None):
    """Build the server configuration.

    Defaults, then the JSON config file if one exists, then environment
    variables. The file is optional; an explicit path that does not exist is
    an error.
    """
    environ = os.environ if environ is None else environ
    config = dict(DEFAULT_CONFIG)

    explicit = path or environ.get("SIGNALING_CONFIG")
    config_path = explicit or CONFIG_FILE
    if os.path.exists(config_path):
        with open(config_path, 'r') as f:
            loaded = json.load(f)
        unknown = set(loaded) - set(DEFAULT_CONFIG)
        if unknown:
            logger.warning(f"Ignoring unknown config keys in {config_path}: {sorted(unknown)}")
        config.update({k: v for k, v in loaded.items() if k in DEFAULT_CONFIG})
    elif explicit:
        raise FileNotFoundError(f"Config file [{config_path}] not found")

    for var, key in ENV_OVERRIDES.items():
        if environ.get(var):
            config[key] = environ[var]

    for key in INT_KEYS:
        try:
            config[key] = int(config[key])
        except (TypeError, ValueError):
            raise ValueError(f"Config value {key}={config[key]!r} is not an integer")
    return config
