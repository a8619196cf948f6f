"""Session helpers for AWS.

This module centralizes creation of the boto3 session and the botocore client
configuration shared by every adapter, so retry behaviour is the same for the
catalog, messaging, storage and status clients.
"""

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ProfileNotFound

MAX_SDK_ATTEMPTS = 10


class AuthError(RuntimeError):
    """Raised when an AWS session cannot be created."""


def _format_auth_error(message: str, profile: str | None) -> str:
    """Return a user-friendly auth error message."""
    if profile:
        return (
            f"AWS profile '{profile}' could not be loaded: {message}\n"
            "Check ~/.aws/config or configure it with:\n"
            f"  $ aws configure --profile {profile}"
        )
    return f"AWS session could not be created: {message}"


def client_config() -> Config:
    """Return the botocore client configuration used by all adapters."""
    return Config(retries={"max_attempts": MAX_SDK_ATTEMPTS, "mode": "standard"})


def get_session(profile: str | None = None, region: str | None = None) -> boto3.Session:
    """
    Create and return a boto3 Session.

    If a profile is provided, it is resolved from the shared AWS config and
    credentials files; otherwise the default credential chain applies (which
    is what Lambda uses).
    """
    try:
        session = boto3.Session(profile_name=profile or None, region_name=region or None)
    except (ProfileNotFound, BotoCoreError) as exc:
        raise AuthError(_format_auth_error(str(exc), profile)) from exc
    if profile and profile not in session.available_profiles:
        raise AuthError(_format_auth_error("profile not found", profile))
    return session
