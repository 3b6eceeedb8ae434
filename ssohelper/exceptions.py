"""
Exception classes for sso-helper.
"""


class SsoHelperError(RuntimeError):
    """Base exception for sso-helper errors."""


class UserError(SsoHelperError):
    """Errors that should be shown to user without traceback."""

    def __init__(self, message, rc=2):
        super().__init__(message)
        self.rc = rc


class MissingBindingError(SsoHelperError):
    """A template references a placeholder that has no value."""

    def __init__(self, placeholder, template_name=None):
        self.placeholder = placeholder
        self.template_name = template_name
        where = f" in template '{template_name}'" if template_name else ""
        super().__init__(f"No value supplied for placeholder '{placeholder}'{where}")


class CorruptedBlockError(SsoHelperError):
    """The managed block markers in a file do not pair up."""

    def __init__(self, path, line, reason):
        self.path = path
        self.line = line
        self.reason = reason
        super().__init__(
            f"{path or '<input>'}:{line}: {reason}\n"
            f"  The sso-helper block markers appear to have been edited by hand.\n"
            f"  Fix or remove the block manually, then run the command again."
        )


class UnsupportedShellError(SsoHelperError):
    """The requested or detected shell has no bundled script."""

    def __init__(self, shell):
        self.shell = shell
        super().__init__(f"unsupported shell: {shell}")


class NetworkError(SsoHelperError):
    """The federation endpoint could not be reached or returned an HTTP error."""

    def __init__(self, url, cause):
        self.url = url
        self.cause = cause
        super().__init__(f"Unable to login to AWS via {url}: {cause}")


class BadResponseError(SsoHelperError):
    """The federation endpoint returned a body we cannot use."""

    def __init__(self, url, reason):
        self.url = url
        self.reason = reason
        super().__init__(f"Error parsing login response from {url}: {reason}")


class CredentialsError(SsoHelperError):
    """Temporary role credentials could not be obtained."""
