"""
Configuration loading for LessonLoop.

Settings come from ``config.yaml`` and are overridden by environment
variables (loaded from ``.env`` by python-dotenv at start-up). Secrets and
origins are never hard-coded.
"""

import logging
import os
import secrets

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG = {
    "paths": {"database_file": "lessonloop.db", "upload_dir": "uploads/resources"},
    "auth": {"token_ttl_seconds": 86400, "teacher_registration_code": None},
    "cors": {"allowed_origin": None},
    "llm": {"provider": "mock", "model_name": "gemini-2.5-flash"},
}

# env var -> (section, key)
ENV_OVERRIDES = {
    "DATABASE_PATH": ("paths", "database_file"),
    "TEACHER_REGISTRATION_CODE": ("auth", "teacher_registration_code"),
    "CORS_ALLOWED_ORIGIN": ("cors", "allowed_origin"),
    "LLM_PROVIDER": ("llm", "provider"),
}


def load_config(config_path="config.yaml"):
    """Load config.yaml merged over the defaults.

    A missing file is not an error; the defaults plus environment
    overrides are used instead.

    Args:
        config_path: Path to the YAML config file.

    Returns:
        Config dict with every default section present.
    """
    loaded = {}
    if os.path.exists(config_path):
        with open(config_path) as f:
            loaded = yaml.safe_load(f) or {}
    else:
        logger.info("Config file %s not found, using defaults", config_path)
    return apply_env_overrides(merge_config(loaded))


def merge_config(overrides):
    """Return DEFAULT_CONFIG with ``overrides`` merged one level deep."""
    config = {section: dict(values) for section, values in DEFAULT_CONFIG.items()}
    for key, value in (overrides or {}).items():
        if isinstance(value, dict) and isinstance(config.get(key), dict):
            config[key].update(value)
        else:
            config[key] = value
    return config


def apply_env_overrides(config):
    """Apply environment variable overrides in place and return the config."""
    for env_name, (section, key) in ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if value:
            config.setdefault(section, {})[key] = value
    ttl = os.environ.get("TOKEN_TTL_SECONDS")
    if ttl and ttl.isdigit():
        config.setdefault("auth", {})["token_ttl_seconds"] = int(ttl)
    return config


def load_or_generate_secret_key(env_path):
    """Load SECRET_KEY from .env or generate and persist a new one."""
    if os.path.exists(env_path):
        with open(env_path) as f:
            for line in f:
                line = line.strip()
                if line.startswith("SECRET_KEY="):
                    value = line.split("=", 1)[1].strip().strip("'\"")
                    if value:
                        return value

    new_key = secrets.token_hex(32)
    try:
        with open(env_path, "a") as f:
            f.write(f"\nSECRET_KEY={new_key}\n")
    except OSError:
        logger.warning("Could not persist SECRET_KEY to %s; using a per-process key", env_path)
    return new_key


def save_config(config, config_path="config.yaml"):
    """Write the config dict back to config.yaml."""
    with open(config_path, "w") as f:
        yaml.safe_dump(config, f, default_flow_style=False, sort_keys=False)
