"""Input validation for CLI arguments."""
import re
import sys

# Key Vault object names: 1-127 alphanumerics and hyphens
NAME_PATTERN = r'^[0-9a-zA-Z-]{1,127}$'
VERSION_PATTERN = r'^[0-9a-zA-Z]+$'


def _fail(message: str) -> None:
    print(f"Error: {message}", file=sys.stderr)
    print("\nAllowed names: 1-127 letters, numbers and hyphens (-)", file=sys.stderr)
    print("Optionally followed by '/<version>' (letters and numbers)", file=sys.stderr)
    print("\nExamples of valid identifiers:", file=sys.stderr)
    print("  ✓ db-password", file=sys.stderr)
    print("  ✓ db-password/7d8e5b33c0b94ae58e5f02bd1a9c77d6", file=sys.stderr)
    print("\nExamples of invalid identifiers:", file=sys.stderr)
    print("  ✗ db_password (contains underscore)", file=sys.stderr)
    print("  ✗ db.password (contains dot)", file=sys.stderr)
    print("  ✗ db-password/ (empty version)", file=sys.stderr)
    sys.exit(2)


def validate_name(name: str) -> None:
    """
    Validate a certificate, key or secret name.

    Raises:
        SystemExit with code 2 if validation fails
    """
    if not name:
        _fail("Name cannot be empty")

    if not re.match(NAME_PATTERN, name):
        _fail(f"Invalid name '{name}'")


def validate_version(version: str) -> None:
    """
    Validate an object version.

    Raises:
        SystemExit with code 2 if validation fails
    """
    if not re.match(VERSION_PATTERN, version or ""):
        _fail(f"Invalid version '{version}'")


def validate_identifier(identifier: str) -> None:
    """
    Validate a secret identifier of the form 'name' or 'name/version'.

    Raises:
        SystemExit with code 2 if validation fails
    """
    name, sep, version = (identifier or "").partition("/")
    validate_name(name)
    if sep:
        validate_version(version)
