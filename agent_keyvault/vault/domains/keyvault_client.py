"""Azure Key Vault REST client."""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional, Union

import httpx

from .errors import KeyVaultError, SecretsFetchError
from .models import Credentials, SecretOutcome, resolve_token

logger = logging.getLogger(__name__)

DEFAULT_API_VERSION = "7.0"
DEFAULT_MAX_CONCURRENCY = 10


def _error_message(response: httpx.Response) -> str:
    """Pull error.message out of a rejection body, or describe the status."""
    try:
        body = response.json()
    except ValueError:
        body = None

    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and isinstance(error.get("message"), str):
            return error["message"]

    return f"Key Vault returned status {response.status_code}"


async def fetch_json(http_client: httpx.AsyncClient, uri: str, token: str) -> Any:
    """
    GET a Key Vault resource with bearer authentication.

    Args:
        http_client: Client used to send the request
        uri: Full resource URI, including the api-version query
        token: Bearer token

    Returns:
        The parsed JSON body of a 200 response

    Raises:
        KeyVaultError: On a non-200 status (message taken from the body's
            error.message when present), on a transport failure, or when
            the URI cannot be built into a request (message of the
            underlying httpx error)
    """
    headers = {"Authorization": f"Bearer {token}"}

    try:
        response = await http_client.get(uri, headers=headers)
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        raise KeyVaultError(str(e)) from e

    if response.status_code != 200:
        raise KeyVaultError(_error_message(response), status_code=response.status_code)

    try:
        return response.json()
    except ValueError as e:
        raise KeyVaultError(f"Key Vault returned a body that is not JSON: {e}", status_code=200) from e


def secrets_by_name(records: List[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Reshape secret records into a {name: value} mapping.

    The name is the second to last '/' segment of each record's id. When two
    records share a name the later one wins.

    Raises:
        KeyVaultError: If a record id has fewer than two segments
    """
    secrets: Dict[str, Any] = {}
    for record in records:
        secret_id = str(record["id"])
        parts = secret_id.split("/")
        if len(parts) < 2:
            raise KeyVaultError(f"Secret id '{secret_id}' does not contain a name segment")

        name = parts[-2]
        if name in secrets:
            logger.warning(f"Secret '{name}' returned more than once, keeping value from {secret_id}")
        secrets[name] = record.get("value")
    return secrets


class KeyVaultClient:
    """Read-only client for certificates, keys and secrets in one vault."""

    def __init__(
        self,
        vault_name: str,
        credentials: Credentials,
        api_version: str = DEFAULT_API_VERSION,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
        quiet: bool = False,
    ):
        """
        Args:
            vault_name: Vault name, as in https://{vault_name}.vault.azure.net
            credentials: Bearer token string, or a token response exposing
                access_token (mapping or object)
            api_version: Key Vault REST API version sent with every request
            max_concurrency: Maximum requests in flight during get_secrets
            http_client: Client to send requests with; never closed by us
            timeout: Request timeout in seconds for clients we create
            quiet: If True, suppress warning logs for failed requests
        """
        if max_concurrency < 1:
            raise ValueError(f"max_concurrency must be at least 1, got {max_concurrency}")

        self.vault_name = vault_name
        self.base_uri = f"https://{vault_name}.vault.azure.net"
        self.api_version = api_version
        self.max_concurrency = max_concurrency
        self.quiet = quiet
        self._token = resolve_token(credentials)
        self._timeout = timeout
        self._http_client = http_client
        self._owns_http_client = False

    async def __aenter__(self) -> "KeyVaultClient":
        if self._http_client is None:
            self._http_client = self._new_http_client()
            self._owns_http_client = True
        return self

    async def __aexit__(self, *exc_info) -> None:
        if self._owns_http_client:
            await self._http_client.aclose()
            self._http_client = None
            self._owns_http_client = False

    def _new_http_client(self) -> httpx.AsyncClient:
        if self._timeout is None:
            return httpx.AsyncClient()
        return httpx.AsyncClient(timeout=self._timeout)

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[httpx.AsyncClient]:
        """Yield the shared client, or a client scoped to one operation."""
        if self._http_client is not None:
            yield self._http_client
            return

        async with self._new_http_client() as http_client:
            yield http_client

    def _resource_uri(self, resource_type: str, name: str, version: Optional[str] = None) -> str:
        path = f"{name}/{version}" if version is not None else name
        return f"{self.base_uri}/{resource_type}/{path}?api-version={self.api_version}"

    async def _get(self, uri: str) -> Any:
        logger.debug(f"GET {uri}")
        async with self._session() as http_client:
            try:
                return await fetch_json(http_client, uri, self._token)
            except KeyVaultError as e:
                if not self.quiet:
                    logger.warning(f"Key Vault request failed for {uri}: {e.message}")
                raise

    async def get_certificate(self, name: str, version: Optional[str] = None) -> Any:
        """Get a certificate; the latest version unless one is given."""
        return await self._get(self._resource_uri("certificates", name, version))

    async def get_key(self, name: str, version: Optional[str] = None) -> Any:
        """Get a key; the latest version unless one is given."""
        return await self._get(self._resource_uri("keys", name, version))

    async def get_secret(self, name: str, version: Optional[str] = None) -> Any:
        """Get a secret; the latest version unless one is given."""
        return await self._get(self._resource_uri("secrets", name, version))

    async def list_secrets(self) -> Any:
        """List the secrets in the vault. The listing is under the body's 'value'."""
        return await self._get(f"{self.base_uri}/secrets?api-version={self.api_version}")

    async def _fetch_outcome(
        self,
        http_client: httpx.AsyncClient,
        semaphore: asyncio.Semaphore,
        identifier: str,
    ) -> SecretOutcome:
        uri = self._resource_uri("secrets", identifier)
        async with semaphore:
            logger.debug(f"GET {uri}")
            try:
                record = await fetch_json(http_client, uri, self._token)
            except KeyVaultError as e:
                return SecretOutcome(identifier, error=e.message)

        if not isinstance(record, dict) or "id" not in record:
            return SecretOutcome(identifier, error=f"Response for '{identifier}' did not include an id")
        return SecretOutcome(identifier, record=record)

    async def get_secrets(
        self,
        names: List[str],
        secrets_object: bool = False,
    ) -> Union[List[Dict[str, Any]], Dict[str, Any]]:
        """
        Fetch several secrets concurrently.

        Every request is allowed to finish before the batch is judged, and
        the batch fails as a whole if any request failed.

        Args:
            names: Secret identifiers, 'name' or 'name/version'
            secrets_object: If True, return {secret name: secret value}
                instead of the list of records

        Returns:
            Secret records in the same order as names, or a name -> value
            mapping when secrets_object is True

        Raises:
            SecretsFetchError: If one or more secrets could not be fetched;
                per-identifier detail is on its outcomes/failures
        """
        if not names:
            return {} if secrets_object else []

        semaphore = asyncio.Semaphore(self.max_concurrency)
        async with self._session() as http_client:
            outcomes = list(await asyncio.gather(
                *(self._fetch_outcome(http_client, semaphore, name) for name in names)
            ))

        failures = [outcome for outcome in outcomes if not outcome.ok]
        if failures:
            if not self.quiet:
                for failure in failures:
                    logger.warning(f"Failed to fetch secret '{failure.identifier}': {failure.error}")
            raise SecretsFetchError(outcomes)

        records = [outcome.record for outcome in outcomes]
        logger.debug(f"Fetched {len(records)} secrets from {self.vault_name}")

        if secrets_object:
            return secrets_by_name(records)
        return records
