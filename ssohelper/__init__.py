"""
sso-helper: shell integration and AWS console login for temporary AWS credentials.

Key features:
- Install, update and remove a managed helper block in shell startup files
- Print the helper for sourcing in the current shell
- Exchange temporary credentials for a one-time AWS console sign-in URL
"""

__version__ = "0.1.0"
__license__ = "MIT"

from .console import (
    Credentials,
    console_login_url,
    exchange_for_token,
    get_console_url,
    get_role_credentials,
    parse_role_arn,
    signin_token_url,
)
from .core import (
    ConfigBlockEditor,
    ShellHelper,
    default_shell_scripts,
    detect_shell,
    render_template,
    scan_block,
)
from .exceptions import (
    BadResponseError,
    CorruptedBlockError,
    CredentialsError,
    MissingBindingError,
    NetworkError,
    SsoHelperError,
    UnsupportedShellError,
)

__all__ = [
    # Managed config blocks
    "ConfigBlockEditor",
    "render_template",
    "scan_block",
    # Shell integration
    "ShellHelper",
    "default_shell_scripts",
    "detect_shell",
    # Console federation
    "Credentials",
    "signin_token_url",
    "exchange_for_token",
    "console_login_url",
    "get_console_url",
    "get_role_credentials",
    "parse_role_arn",
    # Errors
    "SsoHelperError",
    "MissingBindingError",
    "CorruptedBlockError",
    "UnsupportedShellError",
    "NetworkError",
    "BadResponseError",
    "CredentialsError",
]
