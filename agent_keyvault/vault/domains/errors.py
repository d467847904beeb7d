"""Exceptions raised by the Key Vault client."""
from typing import List, Optional

from .models import SecretOutcome


class KeyVaultError(Exception):
    """A Key Vault request failed (remote rejection or transport failure)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class SecretsFetchError(KeyVaultError):
    """
    One or more secrets in a batch could not be fetched.

    The message is always the same generic text. Per-identifier detail is
    kept on the exception for callers that need it.

    Attributes:
        outcomes: Every outcome of the batch, in request order
        failures: Only the failed outcomes, in request order
    """

    MESSAGE = "One or more secrets could not be fetched."

    def __init__(self, outcomes: List[SecretOutcome]):
        super().__init__(self.MESSAGE)
        self.outcomes = outcomes
        self.failures = [outcome for outcome in outcomes if not outcome.ok]
