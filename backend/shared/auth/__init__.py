"""Accounts, login sessions and password hashing shared by the broker and the HTTP API."""

from shared.auth.models import DEFAULT_ICON, Account, AccountView, AuthSession, ProfileView, Trophies
from shared.auth.password import BcryptHasher, PasswordHasher, SimpleHasher, get_hasher
from shared.auth.service import AuthService
from shared.auth.session_store import AuthSessionStore
from shared.auth.settings import AuthSettings
from shared.auth.store import AccountStore

__all__ = [
    "DEFAULT_ICON",
    "Account",
    "AccountStore",
    "AccountView",
    "AuthService",
    "AuthSession",
    "AuthSessionStore",
    "AuthSettings",
    "BcryptHasher",
    "PasswordHasher",
    "ProfileView",
    "SimpleHasher",
    "Trophies",
    "get_hasher",
]
