"""
Error classes for AuthGate.

Blocked and pending logins are not errors; they are returned as outcomes
by the authorization engine. The exceptions here cover caller mistakes,
collaborator failures and invariant violations.
"""

from typing import Optional


class AuthGateError(Exception):
    """Base AuthGate error."""

    def __init__(self, message: str, error_code: Optional[str] = None, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or "AUTHGATE_ERROR"
        self.details = details or {}


class InvalidIdentity(AuthGateError):
    """The external identity carries no usable e-mail address."""

    def __init__(self, message: str = "No usable email address supplied", details: Optional[dict] = None):
        super().__init__(message, "INVALID_IDENTITY", details)


class AccountCreationFailed(AuthGateError):
    """The account store rejected creation of a new account."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message, "ACCOUNT_CREATION_FAILED", details)


class TenantJoinFailed(AuthGateError):
    """Adding an account to the current tenant was rejected."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message, "TENANT_JOIN_FAILED", details)


class InvalidLogin(AuthGateError):
    """The decision loop finished without an outcome."""

    def __init__(self, message: str = "Invalid login attempted.", details: Optional[dict] = None):
        super().__init__(message, "INVALID_LOGIN", details)


class AccountStoreError(AuthGateError):
    """Account store operation failed."""

    def __init__(self, message: str, error_code: Optional[str] = None, details: Optional[dict] = None):
        super().__init__(message, error_code or "ACCOUNT_STORE_ERROR", details)


class SettingsStoreError(AuthGateError):
    """Settings store operation failed."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message, "SETTINGS_STORE_ERROR", details)


class TokenVaultError(AuthGateError):
    """Token encryption or decryption failed."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message, "TOKEN_VAULT_ERROR", details)


class GraphClientError(AuthGateError):
    """Transport-level failure talking to the identity graph."""

    def __init__(self, message: str, status: Optional[int] = None, details: Optional[dict] = None):
        super().__init__(message, "GRAPH_CLIENT_ERROR", details)
        self.status = status
