"""Authentication module for Collectives Sync."""

from .credentials import Credentials, CredentialError, CredentialProvider, StaticCredentialProvider
from .login_flow import LoginFlowV2, LoginFlowState, LoginFlowDenied, LoginFlowTimeout

__all__ = [
    "Credentials",
    "CredentialError",
    "CredentialProvider",
    "StaticCredentialProvider",
    "LoginFlowV2",
    "LoginFlowState",
    "LoginFlowDenied",
    "LoginFlowTimeout"
]
