#!/usr/bin/env python3
"""Fetch three database secrets in one batch and construct a PostgreSQL connection string."""

import sys

from agent_keyvault.vault.domains.errors import SecretsFetchError
from agent_keyvault.vault.workflows.secret_operations import get_secrets


def main():
    """Main function to fetch secrets and construct connection string."""
    try:
        secrets = get_secrets(["db-host", "db-user", "db-pass"], secrets_object=True, quiet=True)
    except SecretsFetchError as e:
        for failure in e.failures:
            print(f"Error fetching {failure.identifier}: {failure.error}", file=sys.stderr)
        sys.exit(1)

    connection_string = f"postgresql://{secrets['db-user']}:{secrets['db-pass']}@{secrets['db-host']}/postgres"
    print(connection_string)


if __name__ == "__main__":
    main()
