"""Configuration loader for agent-keyvault."""
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict

import yaml

from .models import RawToken, TokenResponse
from .preferences import get_preference

logger = logging.getLogger(__name__)

SUPPORTED_AUTH_TYPES = ("bearer_token", "token_file")


class ConfigError(Exception):
    """Configuration error exception."""
    pass


def default_config_path() -> Path:
    return Path.home() / ".config" / "agent-keyvault" / "config.yml"


def _get_config_path() -> str:
    """
    Get config file path using XDG Base Directory standard.

    Priority order:
    1. User preference 'config_path' (~/.config/agent-keyvault/preferences.json)
    2. Default location: ~/.config/agent-keyvault/config.yml

    Resolved on every call so preference changes apply without a restart.

    Raises:
        FileNotFoundError: If no config file exists in either location
    """
    config_path_pref = get_preference("config_path")
    if config_path_pref:
        config_path = Path(config_path_pref)
        if config_path.exists():
            logger.info(f"Using config from preference: {config_path}")
            return str(config_path)
        logger.warning(f"Config path from preference doesn't exist: {config_path}")

    default_config = default_config_path()
    if default_config.exists():
        logger.info(f"Using default config location: {default_config}")
        return str(default_config)

    raise FileNotFoundError(
        "Configuration file not found. Set one up using one of these methods:\n\n"
        "1. Use the default location:\n"
        f"   mkdir -p {default_config.parent}\n"
        f"   cp /path/to/your/config.yml {default_config}\n\n"
        "2. Point to an existing config file:\n"
        "   keyvault config set-path /path/to/your/config.yml\n\n"
        "3. Skip the file entirely by exporting KEYVAULT_NAME and KEYVAULT_TOKEN\n"
    )


def _validate_keyvault_section(config: Dict[str, Any], config_path: str) -> None:
    section = config.get('keyvault')
    if not isinstance(section, dict):
        raise ConfigError(
            f"Missing 'keyvault' section in config at {config_path}\n"
            f"Required format:\n"
            f"keyvault:\n"
            f"  vault_name: my-vault"
        )

    if not section.get('vault_name'):
        raise ConfigError("Missing 'keyvault.vault_name' in config")

    if 'max_concurrency' in section:
        max_concurrency = section['max_concurrency']
        if isinstance(max_concurrency, bool) or not isinstance(max_concurrency, int) or max_concurrency < 1:
            raise ConfigError(
                f"'keyvault.max_concurrency' must be an integer >= 1, got {max_concurrency!r}"
            )

    if 'api_version' in section:
        section['api_version'] = str(section['api_version'])


def _validate_authentication_section(config: Dict[str, Any], config_path: str) -> None:
    auth = config.get('authentication')
    if not isinstance(auth, dict):
        raise ConfigError(
            f"Missing 'authentication' section in config at {config_path}\n"
            f"Required format:\n"
            f"authentication:\n"
            f"  type: token_file\n"
            f"  token_file: /path/to/token.json"
        )

    if 'type' not in auth:
        raise ConfigError("Missing 'authentication.type' in config")

    if auth['type'] not in SUPPORTED_AUTH_TYPES:
        raise ConfigError(
            f"Unsupported authentication type: {auth['type']}\n"
            f"Supported types: {', '.join(SUPPORTED_AUTH_TYPES)}"
        )

    if auth['type'] == 'bearer_token':
        if not auth.get('token'):
            raise ConfigError("Missing 'authentication.token' in config")
        return

    if not auth.get('token_file'):
        raise ConfigError(
            "Missing 'authentication.token_file' in config\n"
            "Please specify the path to a file holding the access token."
        )

    token_file = auth['token_file']
    if not os.path.exists(token_file):
        raise ConfigError(
            f"Token file not found at: {token_file}\n"
            f"Please ensure the file exists or update the path in {config_path}"
        )

    if not os.path.isfile(token_file):
        raise ConfigError(f"Token file path is not a file: {token_file}")


def load_config() -> Dict[str, Any]:
    """
    Load and validate configuration from YAML file.

    Returns:
        Dict containing configuration with keys:
        - keyvault: dict with vault_name and optional api_version, max_concurrency
        - authentication: dict with type and token or token_file

    Raises:
        FileNotFoundError: If no config file can be located
        ConfigError: If config file is invalid or the token file doesn't exist
    """
    config_path = _get_config_path()

    try:
        with open(config_path, 'r') as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse YAML config at {config_path}: {e}")
    except OSError as e:
        raise ConfigError(f"Failed to read config file at {config_path}: {e}")

    if not config:
        raise ConfigError(f"Config file at {config_path} is empty")

    if not isinstance(config, dict):
        raise ConfigError(f"Config file at {config_path} must contain a mapping")

    _validate_keyvault_section(config, config_path)
    _validate_authentication_section(config, config_path)

    logger.info(f"Configuration loaded successfully from {config_path}")
    logger.debug(f"Using vault: {config['keyvault']['vault_name']}")
    logger.debug(f"Using authentication type: {config['authentication']['type']}")

    return config


def load_credentials(config: Dict[str, Any]):
    """
    Build credentials from a validated config's authentication section.

    A token file holding a JSON object is read as a token response (its
    access_token is used); any other content is taken as the raw token.

    Raises:
        ConfigError: If the token file cannot be read or holds no token
    """
    auth = config['authentication']
    if auth['type'] == 'bearer_token':
        return RawToken(str(auth['token']))

    token_file = auth['token_file']
    try:
        with open(token_file, 'r') as f:
            content = f.read().strip()
    except OSError as e:
        raise ConfigError(f"Failed to read token file at {token_file}: {e}")

    if not content:
        raise ConfigError(f"Token file at {token_file} is empty")

    try:
        data = json.loads(content)
    except json.JSONDecodeError:
        return RawToken(content)

    if isinstance(data, dict):
        if not data.get('access_token'):
            raise ConfigError(f"Token file at {token_file} has no 'access_token'")
        return TokenResponse(str(data['access_token']))
    return RawToken(content)
