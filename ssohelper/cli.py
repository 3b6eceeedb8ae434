"""
Command-line interface for sso-helper.
"""

import argparse
import logging
import os
import sys
import webbrowser

from .console import (
    DEFAULT_DESTINATION,
    DEFAULT_ISSUER,
    build_role_arn,
    get_console_url,
    get_role_credentials,
    parse_role_arn,
)
from .core import ShellHelper
from .exceptions import SsoHelperError, UserError

# Module logger
logger = logging.getLogger("ssohelper")

# Federation accepts 900-43200 seconds
MIN_DURATION_MINUTES = 15
MAX_DURATION_MINUTES = 720


def setup_logging(debug=False):
    """Configure logging for the CLI."""
    level = logging.DEBUG if debug else logging.WARNING
    logger.setLevel(level)
    if any(
        isinstance(h, logging.StreamHandler) and getattr(h, "stream", None) is sys.stderr
        for h in logger.handlers
    ):
        return
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    logger.addHandler(handler)


def duration_minutes(value):
    """argparse type for --duration."""
    try:
        minutes = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid duration '{value}': expected minutes")
    if not MIN_DURATION_MINUTES <= minutes <= MAX_DURATION_MINUTES:
        raise argparse.ArgumentTypeError(
            f"duration must be between {MIN_DURATION_MINUTES} and {MAX_DURATION_MINUTES} minutes"
        )
    return minutes


def _expand(path):
    return os.path.expanduser(path) if path else None


def cmd_install(args, helper):
    if helper.install(args.shell, _expand(args.path)):
        print("✓ Shell integration installed")
    else:
        print("ℹ Shell integration is already up to date")
    return 0


def cmd_uninstall(args, helper):
    if helper.uninstall(args.shell, _expand(args.path)):
        print("✓ Shell integration removed")
    else:
        print("ℹ Shell integration was not installed")
    return 0


def cmd_source(args, helper):
    helper.generate(args.shell, sys.stdout)
    return 0


def cmd_config_files(args, helper):
    for path in helper.config_files():
        print(path)
    return 0


def resolve_role_arn(args):
    """Work out which role to assume from --arn or --account/--role, if any."""
    if args.arn:
        _, _, arn = parse_role_arn(args.arn)
        return arn
    if args.account or args.role:
        if not (args.account and args.role):
            raise UserError("Please specify both --account and --role")
        return build_role_arn(args.account, args.role)
    return None


def cmd_console(args, helper):
    arn = resolve_role_arn(args)
    credentials = get_role_credentials(profile_name=args.profile, role_arn=arn)
    url = get_console_url(
        credentials,
        args.duration * 60,
        destination=args.destination,
        issuer=args.issuer,
        timeout=args.timeout,
    )

    if args.print:
        print(f"Please open the following URL in your browser:\n\n{url}\n")
        return 0

    browser = args.browser or os.environ.get("BROWSER")
    try:
        opener = webbrowser.get(browser) if browser else webbrowser
        opened = opener.open(url)
    except webbrowser.Error as e:
        raise UserError(f"Unable to open the console with {browser}: {e}", rc=1) from e
    if not opened:
        raise UserError(f"Unable to open {browser or 'default browser'}; rerun with --print", rc=1)
    return 0


def build_parser():
    parser = argparse.ArgumentParser(
        prog="sso-helper",
        description="Shell integration and AWS console login for temporary AWS credentials",
        epilog="Examples:\n"
        "  sso-helper install                           # Add the helper to your shell startup file\n"
        "  sso-helper install --shell zsh --path ~/.zshrc.local\n"
        "  sso-helper uninstall                         # Remove it again\n"
        "  eval \"$(sso-helper source)\"                  # Load it into the current shell only\n"
        "  sso-helper console --arn 123456789012:Admin  # Open the AWS console as a role",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    for name, func, help_text in (
        ("install", cmd_install, "Install or update the shell helper in your shell startup file"),
        ("uninstall", cmd_uninstall, "Remove the shell helper from your shell startup file"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("--shell", default="", help="Shell to configure (default: detect from $SHELL)")
        sub.add_argument("--path", default=None, help="File to edit instead of the shell's default")
        sub.set_defaults(func=func)

    sub = subparsers.add_parser("source", help="Print the shell helper for eval in the current shell")
    sub.add_argument("--shell", default="", help="Shell to generate for (default: detect from $SHELL)")
    sub.set_defaults(func=cmd_source)

    sub = subparsers.add_parser("config-files", help="List the files install/uninstall may edit")
    sub.set_defaults(func=cmd_config_files)

    sub = subparsers.add_parser("console", help="Open the AWS console using temporary credentials")
    sub.add_argument("--profile", default=None, help="AWS profile to get credentials from")
    sub.add_argument(
        "-a", "--arn", default=os.environ.get("AWS_SSO_ROLE_ARN"), help="ARN (or ACCOUNT:Role) of role to assume"
    )
    sub.add_argument(
        "-A", "--account", default=os.environ.get("AWS_SSO_ACCOUNTID"), help="AWS AccountID of role to assume"
    )
    sub.add_argument("-R", "--role", default=os.environ.get("AWS_SSO_ROLE"), help="Name of AWS Role to assume")
    sub.add_argument(
        "-d",
        "--duration",
        type=duration_minutes,
        default=os.environ.get("AWS_SSO_DURATION", "60"),
        help="AWS Session duration in minutes (default: 60, range: 15-720)",
    )
    sub.add_argument("-p", "--print", action="store_true", help="Print URL instead of opening it")
    sub.add_argument("--browser", default=None, help="Browser to open the URL with (default: system browser)")
    sub.add_argument("--destination", default=DEFAULT_DESTINATION, help="Console page to land on")
    sub.add_argument("--issuer", default=DEFAULT_ISSUER, help="Issuer URL shown when the session expires")
    sub.add_argument(
        "--timeout", type=float, default=30.0, help="Timeout in seconds for the federation request (default: 30)"
    )
    sub.set_defaults(func=cmd_console)

    return parser


def main(argv=None, helper=None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.debug)

    helper = helper or ShellHelper()
    try:
        return args.func(args, helper)
    except UserError as e:
        print(f"Error: {e}", file=sys.stderr)
        return e.rc
    except (SsoHelperError, OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
