"""
AWS console federation: turn temporary credentials into a browser sign-in URL.
"""

import json
import logging
import re
from collections import namedtuple
from urllib.parse import quote, urlencode

import boto3
import requests
from botocore.exceptions import BotoCoreError, ClientError

from .exceptions import BadResponseError, CredentialsError, NetworkError

logger = logging.getLogger(__name__)

AWS_FEDERATED_URL = "https://signin.aws.amazon.com/federation"
DEFAULT_DESTINATION = "https://console.aws.amazon.com"
DEFAULT_ISSUER = "https://signin.aws.amazon.com"

ROLE_ARN_RE = re.compile(r"^arn:aws[a-zA-Z-]*:iam::(\d{12}):role/(?:[\w+=,.@/-]*/)?([\w+=,.@-]+)$")
SHORT_ROLE_RE = re.compile(r"^(\d{12}):([\w+=,.@-]+)$")


class Credentials(namedtuple("Credentials", ["access_key_id", "secret_access_key", "session_token"])):
    """Temporary AWS credentials for one role."""

    __slots__ = ()

    @classmethod
    def from_boto(cls, frozen):
        """Build from botocore ReadOnlyCredentials (access_key, secret_key, token)."""
        return cls(frozen.access_key, frozen.secret_key, frozen.token)

    @classmethod
    def from_sts(cls, response_credentials):
        """Build from the Credentials dict of an STS response."""
        return cls(
            response_credentials["AccessKeyId"],
            response_credentials["SecretAccessKey"],
            response_credentials["SessionToken"],
        )


def signin_token_url(credentials, session_duration):
    """
    Build the federation URL that asks for a sign-in token.

    Args:
        credentials: Credentials with all three fields set
        session_duration: Console session length in seconds, forwarded as-is

    Returns:
        str: getSigninToken URL
    """
    for field in Credentials._fields:
        if not getattr(credentials, field):
            raise ValueError(f"credentials are missing {field}")

    session = json.dumps(
        {
            "sessionId": credentials.access_key_id,
            "sessionKey": credentials.secret_access_key,
            "sessionToken": credentials.session_token,
        },
        separators=(",", ":"),
    )
    query = urlencode(
        [
            ("Action", "getSigninToken"),
            ("SessionDuration", int(session_duration)),
            ("Session", session),
        ]
    )
    return f"{AWS_FEDERATED_URL}?{query}"


def _redact(url):
    # getSigninToken URLs carry the secret key
    return url.split("?", 1)[0]


def exchange_for_token(url, timeout=None):
    """
    Exchange a getSigninToken URL for a sign-in token.

    Makes exactly one GET request, with no retry.

    Args:
        url: URL from signin_token_url()
        timeout: Optional requests timeout in seconds

    Returns:
        str: Sign-in token

    Raises:
        NetworkError: On transport failure or HTTP error status
        BadResponseError: If the body is not JSON or has no SigninToken string
    """
    endpoint = _redact(url)
    try:
        response = requests.get(url, timeout=timeout)
        response.raise_for_status()
    except requests.RequestException as e:
        raise NetworkError(endpoint, e) from e

    try:
        body = response.json()
    except ValueError as e:
        raise BadResponseError(endpoint, f"invalid JSON: {e}") from e

    if not isinstance(body, dict):
        raise BadResponseError(endpoint, "expected a JSON object")

    token = body.get("SigninToken")
    if not isinstance(token, str) or not token:
        raise BadResponseError(endpoint, "response has no SigninToken")

    logger.debug("got SigninToken from %s", endpoint)
    return token


def console_login_url(token, destination=DEFAULT_DESTINATION, issuer=DEFAULT_ISSUER):
    """
    Build the console login URL for a sign-in token.

    Values are percent-escaped, keeping ':' and '/' readable.
    """
    query = urlencode(
        [
            ("Action", "login"),
            ("Issuer", issuer),
            ("Destination", destination),
            ("SigninToken", token),
        ],
        safe=":/",
        quote_via=quote,
    )
    return f"{AWS_FEDERATED_URL}?{query}"


def get_console_url(
    credentials, session_duration, destination=DEFAULT_DESTINATION, issuer=DEFAULT_ISSUER, timeout=None
):
    """Run signin_token_url -> exchange_for_token -> console_login_url."""
    token = exchange_for_token(signin_token_url(credentials, session_duration), timeout=timeout)
    return console_login_url(token, destination, issuer)


def parse_role_arn(value):
    """
    Parse a role given as ACCOUNT:RoleName or as a full IAM role ARN.

    Examples:
        123456789012:Admin → ("123456789012", "Admin", "arn:aws:iam::123456789012:role/Admin")
        arn:aws:iam::123456789012:role/path/Admin → ("123456789012", "Admin", <same ARN>)

    Returns:
        tuple: (account_id, role_name, role_arn)

    Raises:
        ValueError: If the value matches neither form
    """
    value = value.strip()

    match = SHORT_ROLE_RE.match(value)
    if match:
        account_id, role = match.groups()
        return account_id, role, build_role_arn(account_id, role)

    match = ROLE_ARN_RE.match(value)
    if match:
        account_id, role = match.groups()
        return account_id, role, value

    raise ValueError(
        f"Invalid role '{value}': expected ACCOUNT:RoleName or arn:aws:iam::ACCOUNT:role/RoleName"
    )


def build_role_arn(account_id, role):
    """Build an IAM role ARN from an account id and role name."""
    if not re.fullmatch(r"\d{12}", str(account_id)):
        raise ValueError(f"Invalid AWS account id '{account_id}': expected 12 digits")
    return f"arn:aws:iam::{account_id}:role/{role}"


def get_role_credentials(profile_name=None, role_arn=None, session_name="sso-helper"):
    """
    Get temporary credentials usable with the federation endpoint.

    Args:
        profile_name: AWS profile for the boto3 session (None uses the default chain)
        role_arn: Role to assume with STS; if None the profile's own credentials are used
        session_name: RoleSessionName for AssumeRole

    Returns:
        Credentials

    Raises:
        CredentialsError: If no usable temporary credentials can be obtained
    """
    try:
        session = boto3.Session(profile_name=profile_name)

        if role_arn:
            logger.debug("assuming role %s", role_arn)
            response = session.client("sts").assume_role(
                RoleArn=role_arn, RoleSessionName=session_name
            )
            return Credentials.from_sts(response["Credentials"])

        creds = session.get_credentials()
        if creds is None:
            raise CredentialsError(
                f"No AWS credentials found for profile '{profile_name or 'default'}'"
            )
        frozen = creds.get_frozen_credentials()
    except ClientError as e:
        error_msg = e.response.get("Error", {}).get("Message", str(e))
        raise CredentialsError(f"Unable to get role credentials for {role_arn}: {error_msg}") from e
    except BotoCoreError as e:
        raise CredentialsError(f"AWS connection failed: {e}") from e

    if not frozen.token:
        raise CredentialsError(
            f"Profile '{profile_name or 'default'}' has long-term access keys.\n"
            f"  The console federation endpoint only accepts temporary credentials.\n"
            f"  Use --arn to assume a role, or a profile with SSO/role credentials."
        )
    return Credentials.from_boto(frozen)
