"""CLI entrypoint for agent-keyvault."""
import sys
import json
import argparse
import logging
from pathlib import Path

from .validators import validate_identifier, validate_name, validate_version

VERSION = "0.1.0"

# Configure logging to stderr
logging.basicConfig(
    level=logging.WARNING,
    format="%(message)s",
    stream=sys.stderr
)
logger = logging.getLogger(__name__)


def _print_json(data):
    print(json.dumps(data, indent=2, sort_keys=True))


def _validate_name_and_version(args):
    validate_name(args.name)
    if args.version is not None:
        validate_version(args.version)


def cmd_version(args):
    """Show version information."""
    print(f"agent-keyvault {VERSION}")


def cmd_config_set_path(args):
    """Set config file path preference."""
    from agent_keyvault.vault.domains.preferences import set_preference

    config_path = Path(args.path).resolve()

    if not config_path.exists():
        print(f"Error: Config file does not exist: {config_path}", file=sys.stderr)
        sys.exit(1)

    if not config_path.is_file():
        print(f"Error: Path is not a file: {config_path}", file=sys.stderr)
        sys.exit(1)

    set_preference("config_path", str(config_path))
    print(f"Config path set to: {config_path}")


def cmd_config_show(args):
    """Show current config file path and where it came from."""
    from agent_keyvault.vault.domains.config_loader import default_config_path
    from agent_keyvault.vault.domains.preferences import get_preference

    config_path_pref = get_preference("config_path")

    if config_path_pref:
        config_path = Path(config_path_pref)
        suffix = "" if config_path.exists() else " (file not found)"
        print(f"Config path: {config_path}")
        print(f"Source: preference{suffix}")
        return

    default_config = default_config_path()
    suffix = "" if default_config.exists() else " (file not found)"
    print(f"Config path: {default_config}")
    print(f"Source: default{suffix}")


def cmd_config_clear(args):
    """Clear config path preference."""
    from agent_keyvault.vault.domains.config_loader import default_config_path
    from agent_keyvault.vault.domains.preferences import clear_preference

    clear_preference("config_path")
    print(f"Config path preference cleared. Will use default: {default_config_path()}")


def cmd_secrets_get(args):
    """Get one secret value."""
    from agent_keyvault.vault.workflows.secret_operations import get_secret

    _validate_name_and_version(args)
    secret = get_secret(args.name, args.version, vault_name=args.vault, quiet=args.quiet)
    value = secret.get("value")

    if args.quiet:
        # Quiet mode: output only value, no formatting
        print(value)
    else:
        print(f"Secret '{args.name}': {value}")


def cmd_secrets_get_many(args):
    """Get several secrets concurrently and print them as JSON."""
    from agent_keyvault.vault.workflows.secret_operations import get_secrets

    for identifier in args.identifiers:
        validate_identifier(identifier)

    # Failed identifiers are reported by main() from the SecretsFetchError
    secrets = get_secrets(args.identifiers, secrets_object=args.as_object, vault_name=args.vault,
                          quiet=True)
    _print_json(secrets)


def cmd_secrets_list(args):
    """List secret ids in the vault."""
    from agent_keyvault.vault.workflows.secret_operations import list_secrets

    listing = list_secrets(vault_name=args.vault)
    for item in listing.get("value", []):
        print(item.get("id"))


def cmd_certificates_get(args):
    """Get a certificate and print it as JSON."""
    from agent_keyvault.vault.workflows.secret_operations import get_certificate

    _validate_name_and_version(args)
    _print_json(get_certificate(args.name, args.version, vault_name=args.vault))


def cmd_keys_get(args):
    """Get a key and print it as JSON."""
    from agent_keyvault.vault.workflows.secret_operations import get_key

    _validate_name_and_version(args)
    _print_json(get_key(args.name, args.version, vault_name=args.vault))


def _add_name_arguments(parser):
    parser.add_argument("name", help="Object name (format: [0-9a-zA-Z-]{1,127})")
    parser.add_argument(
        "--version",
        help="Object version (latest version if not provided)"
    )


def build_parser():
    parser = argparse.ArgumentParser(
        prog="keyvault",
        description="agent-keyvault CLI - read certificates, keys and secrets from Azure Key Vault",
        epilog="""
Exit codes:
  0 - Success
  1 - Runtime error (configuration, network, rejected request, etc.)
  2 - Usage error (invalid arguments, invalid name format, etc.)

Environment variables:
  KEYVAULT_NAME  - Vault name (overrides config file)
  KEYVAULT_TOKEN - Bearer token (overrides config file)

Configuration:
  Default location: ~/.config/agent-keyvault/config.yml
  Custom path: Set with 'keyvault config set-path <path>'
  View current: Run 'keyvault config show'
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--vault",
        help="Vault name (defaults to KEYVAULT_NAME or the config file)"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser(
        "version",
        help="Show version information",
        description="Display the current version of agent-keyvault"
    )

    # config
    config_parser = subparsers.add_parser(
        "config",
        help="Configuration management",
        description="Manage agent-keyvault configuration"
    )
    config_parser.set_defaults(print_group_help=config_parser.print_help)
    config_subparsers = config_parser.add_subparsers(dest="config_command")

    config_set_path_parser = config_subparsers.add_parser(
        "set-path",
        help="Set config file path",
        description="Store the absolute config file path in ~/.config/agent-keyvault/preferences.json"
    )
    config_set_path_parser.add_argument("path", help="Path to config file")

    config_subparsers.add_parser(
        "show",
        help="Show current config path",
        description="Display the current configuration file path and its source (preference or default)"
    )
    config_subparsers.add_parser(
        "clear",
        help="Clear config path preference",
        description="Remove the config path preference; the default location is used afterwards"
    )

    # secrets
    secrets_parser = subparsers.add_parser(
        "secrets",
        help="Secret operations",
        description="Read secrets from Azure Key Vault"
    )
    secrets_parser.set_defaults(print_group_help=secrets_parser.print_help)
    secrets_subparsers = secrets_parser.add_subparsers(dest="secrets_command")

    get_parser = secrets_subparsers.add_parser(
        "get",
        help="Get a secret value",
        description="Fetch one secret and print its value"
    )
    _add_name_arguments(get_parser)
    get_parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Output only the secret value (suppresses warnings and formatting, useful for scripts)"
    )

    get_many_parser = secrets_subparsers.add_parser(
        "get-many",
        help="Get several secrets at once",
        description="""
Fetch several secrets concurrently and print them as JSON.

The command fails if any secret could not be fetched; each failed
identifier is reported on stderr.
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    get_many_parser.add_argument(
        "identifiers",
        nargs="+",
        help="Secret identifiers, 'name' or 'name/version'"
    )
    get_many_parser.add_argument(
        "--as-object",
        action="store_true",
        help="Print a {name: value} object instead of the list of secret records"
    )

    secrets_subparsers.add_parser(
        "list",
        help="List secrets",
        description="Print the id of each secret in the vault"
    )

    # certificates
    certificates_parser = subparsers.add_parser(
        "certificates",
        help="Certificate operations",
        description="Read certificates from Azure Key Vault"
    )
    certificates_parser.set_defaults(print_group_help=certificates_parser.print_help)
    certificates_subparsers = certificates_parser.add_subparsers(dest="certificates_command")
    _add_name_arguments(certificates_subparsers.add_parser("get", help="Get a certificate"))

    # keys
    keys_parser = subparsers.add_parser(
        "keys",
        help="Key operations",
        description="Read keys from Azure Key Vault"
    )
    keys_parser.set_defaults(print_group_help=keys_parser.print_help)
    keys_subparsers = keys_parser.add_subparsers(dest="keys_command")
    _add_name_arguments(keys_subparsers.add_parser("get", help="Get a key"))

    return parser


def main(argv=None):
    """Main CLI entrypoint.

    Exit codes:
        0 - Success
        1 - Runtime errors (configuration, network, rejected request, etc.)
        2 - Usage errors (invalid arguments, invalid name format, etc.)
    """
    from agent_keyvault.vault.domains.errors import SecretsFetchError

    parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    if not args.command:
        parser.print_help()
        sys.exit(2)

    handlers = {
        ("version", None): cmd_version,
        ("config", "set-path"): cmd_config_set_path,
        ("config", "show"): cmd_config_show,
        ("config", "clear"): cmd_config_clear,
        ("secrets", "get"): cmd_secrets_get,
        ("secrets", "get-many"): cmd_secrets_get_many,
        ("secrets", "list"): cmd_secrets_list,
        ("certificates", "get"): cmd_certificates_get,
        ("keys", "get"): cmd_keys_get,
    }
    subcommand = getattr(args, f"{args.command}_command", None)
    handler = handlers.get((args.command, subcommand))

    if handler is None:
        getattr(args, "print_group_help", parser.print_help)()
        sys.exit(2)

    try:
        handler(args)
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        sys.exit(1)
    except SecretsFetchError as e:
        print(f"Error: {e}", file=sys.stderr)
        for failure in e.failures:
            print(f"  {failure.identifier}: {failure.error}", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
