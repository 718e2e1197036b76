import logging
import os
from typing import Mapping, Optional


def _coerce_bool(value: str) -> bool:
    return str(value).strip().lower() in {"1", "true", "yes", "y", "on"}


def _coerce_log_level(value: str) -> int:
    level = logging.getLevelName(str(value).strip().upper())
    if not isinstance(level, int):
        raise ValueError(f"unknown log level: {value}")
    return level


CONFIG_SCHEMA = {
    "BASE_URL": ("https://localhost:7182", str),
    "TIMEOUT": (300.0, float),
    "CONCURRENCY": (5, int),
    "TOTAL_REQUESTS": (10, int),
    "DELAY_MS": (0, int),
    "ENDPOINT": ("batch", str),
    "BATCH_SOURCE": ("C:\\EmailFiles", str),
    "FILE_PATH": ("C:\\EmailFiles\\sample.eml", str),
    "VERIFY_TLS": (True, _coerce_bool),
    "OUTPUT_DIR": ("./load_test_results", str),
    "METRICS_PORT": (0, int),
    "CONTROL_API_PORT": (8080, int),
    "STAGE_PAUSE_SECONDS": (2.0, float),
    "LOG_LEVEL": (logging.INFO, _coerce_log_level),
}

LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'
LOG_FILE = 'load_test.log'


def _cast_value(raw_value, caster, default):
    try:
        return caster(raw_value)
    except (TypeError, ValueError):
        return default


def load_config(environ: Optional[Mapping[str, str]] = None) -> dict:
    """Read CONFIG_SCHEMA keys from the environment, falling back to defaults."""
    if environ is None:
        environ = os.environ
    config = {}
    for key, (default, caster) in CONFIG_SCHEMA.items():
        raw = environ.get(key)
        if raw is None or raw == "":
            config[key] = default
        else:
            config[key] = _cast_value(raw, caster, default)
    return config


CONFIG = load_config()


def setup_logging(level: int = logging.INFO, log_file: Optional[str] = LOG_FILE):
    handlers = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)
    # urllib3 logs every pooled connection at DEBUG
    logging.getLogger("urllib3").setLevel(max(level, logging.WARNING))
