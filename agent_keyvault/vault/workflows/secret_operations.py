"""Synchronous workflows that build a Key Vault client from env and config."""
import asyncio
import logging
import os
from typing import Any, Dict, List, Optional, Union

from ..domains.config_loader import load_config, load_credentials
from ..domains.keyvault_client import KeyVaultClient
from ..domains.models import RawToken

logger = logging.getLogger(__name__)


def build_client(vault_name: Optional[str] = None, quiet: bool = False) -> KeyVaultClient:
    """
    Build a KeyVaultClient from environment variables and the config file.

    Priority order for each setting:
    1. Explicit vault_name argument
    2. KEYVAULT_NAME / KEYVAULT_TOKEN environment variables
    3. Config file

    The config file is only loaded when something is still missing, so
    exporting both environment variables is enough to run without one.

    Raises:
        FileNotFoundError: If the config file is needed but can't be found
        ConfigError: If the config file is needed but invalid
    """
    vault_name = vault_name or os.getenv("KEYVAULT_NAME")
    env_token = os.getenv("KEYVAULT_TOKEN")

    if vault_name and env_token:
        logger.debug(f"Using vault '{vault_name}' with token from KEYVAULT_TOKEN")
        return KeyVaultClient(vault_name, RawToken(env_token), quiet=quiet)

    config = load_config()
    section = config['keyvault']
    credentials = RawToken(env_token) if env_token else load_credentials(config)

    if not vault_name:
        vault_name = section['vault_name']
        logger.debug(f"Using vault_name from config: {vault_name}")

    return KeyVaultClient(
        vault_name,
        credentials,
        api_version=section.get('api_version', '7.0'),
        max_concurrency=section.get('max_concurrency', 10),
        quiet=quiet,
    )


def get_secret(name: str, version: Optional[str] = None, vault_name: Optional[str] = None,
               quiet: bool = False) -> Dict[str, Any]:
    """Fetch one secret record. Raises KeyVaultError on failure."""
    client = build_client(vault_name, quiet=quiet)
    return asyncio.run(client.get_secret(name, version))


def get_secrets(names: List[str], secrets_object: bool = False, vault_name: Optional[str] = None,
                quiet: bool = False) -> Union[List[Dict[str, Any]], Dict[str, Any]]:
    """
    Fetch several secrets concurrently.

    Returns:
        Records in request order, or {name: value} when secrets_object is True

    Raises:
        SecretsFetchError: If any of the secrets could not be fetched
    """
    client = build_client(vault_name, quiet=quiet)
    return asyncio.run(client.get_secrets(names, secrets_object=secrets_object))


def list_secrets(vault_name: Optional[str] = None, quiet: bool = False) -> Dict[str, Any]:
    client = build_client(vault_name, quiet=quiet)
    return asyncio.run(client.list_secrets())


def get_certificate(name: str, version: Optional[str] = None, vault_name: Optional[str] = None,
                    quiet: bool = False) -> Dict[str, Any]:
    client = build_client(vault_name, quiet=quiet)
    return asyncio.run(client.get_certificate(name, version))


def get_key(name: str, version: Optional[str] = None, vault_name: Optional[str] = None,
            quiet: bool = False) -> Dict[str, Any]:
    client = build_client(vault_name, quiet=quiet)
    return asyncio.run(client.get_key(name, version))
