"""Command line interface for KCIS tools."""

import logging
import os
import tomllib
from argparse import ArgumentParser, ArgumentTypeError, Namespace
from pathlib import Path
from sys import exit

from .session import (
    DEFAULT_API,
    DEFAULT_BASE_URL,
    DEFAULT_COOKIE_PATH,
    KCISSession,
    dump_result,
)
from .utils import mask_account

logger = logging.getLogger(__name__)

CONFIG_PATH = "~/.config/kcis-tools/config.toml"

# setting name -> (environment variable, default)
SETTINGS = {
    "account": ("KCIS_ACCOUNT", None),
    "base_url": ("KCIS_BASE_URL", DEFAULT_BASE_URL),
    "cookie_path": ("KCIS_COOKIE_PATH", DEFAULT_COOKIE_PATH),
    "timeout": ("KCIS_TIMEOUT", None),
}


def probe_cli():
    """Entry point for checking whether an account token is accepted."""
    args = parse_probe_arguments()
    config_logging(args)
    with make_session(args) as session:
        if args.verbose:
            session.print_cookies()
        authorized = session.check_authorized()
    if authorized:
        logger.info(f"Account {mask_account(session.account)} is logged in")
        exit(0)
    logger.error(f"Account {mask_account(session.account)} is not logged in")
    exit(1)


def get_cli():
    """Entry point for printing a portal page."""
    args = parse_get_arguments()
    config_logging(args)
    with make_session(args) as session:
        result = session.get_api(args.path)
        if args.verbose:
            session.print_cookies()
    dump_result(result)
    exit(0 if result else 1)


def post_cli():
    """Entry point for posting a form to a portal page."""
    args = parse_post_arguments()
    config_logging(args)
    fields = dict(args.fields) if args.fields else None
    with make_session(args) as session:
        result = session.post_api(args.path, fields, args.body, args.multipart)
        if args.verbose:
            session.print_cookies()
    dump_result(result)
    exit(0 if result else 1)


def download_cli():
    """Entry point for downloading a portal file."""
    args = parse_download_arguments()
    config_logging(args)
    output_path = Path(args.destination)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with make_session(args) as session:
        result = session.download(args.path, output_path)
    dump_result(result)
    exit(0 if result else 1)


def parse_probe_arguments() -> Namespace:
    """Parse command line arguments for kcis-probe."""
    parser = make_parser("Check whether the portal accepts an account token")
    return apply_settings(parser, parser.parse_args())


def parse_get_arguments() -> Namespace:
    """Parse command line arguments for kcis-get."""
    parser = make_parser("Print a page from the KCIS portal")
    parser.add_argument(
        "path",
        nargs="?",
        default=DEFAULT_API,
        help=f"Path relative to the base URL (default: {DEFAULT_API})",
    )
    return apply_settings(parser, parser.parse_args())


def parse_post_arguments() -> Namespace:
    """Parse command line arguments for kcis-post."""
    parser = make_parser("POST a form to the KCIS portal")
    parser.add_argument("path", help="Path relative to the base URL")
    payload = parser.add_mutually_exclusive_group()
    payload.add_argument(
        "-f",
        "--field",
        dest="fields",
        action="append",
        type=parse_field,
        metavar="KEY=VALUE",
        help="Form field, may be repeated",
    )
    payload.add_argument(
        "--body", help="Pre-formed urlencoded body to send verbatim"
    )
    parser.add_argument(
        "--multipart",
        action="store_true",
        help="Send the fields as multipart/form-data",
    )
    args = parser.parse_args()
    if args.multipart and args.body is not None:
        parser.error("--multipart cannot be combined with --body")
    return apply_settings(parser, args)


def parse_download_arguments() -> Namespace:
    """Parse command line arguments for kcis-download."""
    parser = make_parser("Download a file from the KCIS portal")
    parser.add_argument("path", help="Path relative to the base URL")
    parser.add_argument("destination", help="File to write, overwritten if present")
    return apply_settings(parser, parser.parse_args())


def parse_field(text: str) -> tuple[str, str]:
    key, sep, value = text.partition("=")
    if not sep or not key:
        raise ArgumentTypeError(f"expected KEY=VALUE, got {text!r}")
    return key, value


def apply_settings(parser: ArgumentParser, args: Namespace) -> Namespace:
    """Replace the setting options in args with validated, resolved values.

    Problems with the resolved configuration are reported through the parser.
    """
    try:
        settings = resolve_settings(args)
    except tomllib.TOMLDecodeError as e:
        parser.error(f"invalid config file {CONFIG_PATH}: {e}")
    if not settings["account"]:
        parser.error(
            "no account token: use --account, $KCIS_ACCOUNT or "
            f"'account' in {CONFIG_PATH}"
        )
    settings["account"] = str(settings["account"])
    timeout = settings["timeout"]
    if timeout is not None:
        try:
            settings["timeout"] = float(timeout)
        except (TypeError, ValueError):
            parser.error(f"invalid timeout {timeout!r}: expected seconds")
    vars(args).update(settings)
    return args


def make_session(args) -> KCISSession:
    """Create a session from settings already resolved by apply_settings."""
    return KCISSession(
        args.account,
        base_url=args.base_url,
        cookie_path=args.cookie_path,
        timeout=args.timeout,
    )


def resolve_settings(args) -> dict:
    """Resolve every setting using the resolution order from args."""
    config = load_config()
    return {
        name: resolve_setting(args, name, env_var, config, default)
        for name, (env_var, default) in SETTINGS.items()
    }


def resolve_setting(args, name: str, env_var: str, config: dict, default):
    """Resolve one setting.

    Resolution order: 1. command-line option 2. environment variable
    3. config file 4. built-in default
    """
    # 1. Command-line option
    value = getattr(args, name, None)
    if value is not None:
        return value

    # 2. Environment variable
    env_value = os.environ.get(env_var)
    if env_value:
        return env_value

    # 3. Config file
    if config.get(name) is not None:
        return config[name]

    # 4. Fallback
    return default


def load_config() -> dict:
    """Load the TOML config file, or an empty mapping if there is none."""
    config_path = os.path.expanduser(CONFIG_PATH)
    if not os.path.exists(config_path):
        return {}
    with open(config_path, "rb") as f:
        config = tomllib.load(f)
    logger.debug(f"Loaded config from {config_path}")
    return config


def make_parser(description: str) -> ArgumentParser:
    parser = ArgumentParser(description=description)
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable verbose output"
    )
    parser.add_argument(
        "-q", "--quiet", action="store_true", help="Suppress INFO and below messages"
    )
    parser.add_argument("--account", help="Account token sent as the DSAI cookie")
    parser.add_argument(
        "--base-url", help=f"Portal base URL (default: {DEFAULT_BASE_URL})"
    )
    parser.add_argument(
        "--cookie-path",
        help=f"Path scope of the DSAI cookie (default: {DEFAULT_COOKIE_PATH})",
    )
    parser.add_argument(
        "--timeout", type=float, help="Request timeout in seconds (default: none)"
    )
    return parser


def config_logging(args) -> None:
    """Configure logging based on command line arguments."""
    if args.quiet:
        log_level = logging.WARNING
    elif args.verbose:
        log_level = logging.DEBUG
    else:
        log_level = logging.INFO

    logging.basicConfig(
        level=log_level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


if __name__ == "__main__":
    probe_cli()
