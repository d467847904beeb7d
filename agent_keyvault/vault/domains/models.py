"""Domain models for Key Vault access."""
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union


@dataclass(frozen=True)
class RawToken:
    """A bearer token held as a plain string."""
    token: str


@dataclass(frozen=True)
class TokenResponse:
    """An OAuth token response; only access_token is used."""
    access_token: str


Credentials = Union[RawToken, TokenResponse, str, Dict[str, Any], Any]


def resolve_token(credentials: Credentials) -> str:
    """
    Extract the bearer token from any supported credential form.

    Accepts a RawToken, a TokenResponse, a plain string, a mapping with an
    'access_token' key, or any object exposing an access_token attribute.

    Raises:
        ValueError: If no non-empty token can be extracted
    """
    if isinstance(credentials, RawToken):
        token = credentials.token
    elif isinstance(credentials, str):
        token = credentials
    elif isinstance(credentials, dict):
        token = credentials.get("access_token")
    else:
        token = getattr(credentials, "access_token", None)

    if not token or not isinstance(token, str):
        raise ValueError(
            "Credentials must be a bearer token string or carry a non-empty 'access_token'"
        )
    return token


@dataclass
class SecretOutcome:
    """Result of fetching one identifier in a batch."""
    identifier: str
    record: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None
