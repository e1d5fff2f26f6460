"""Account credentials: environment first, then the OS keyring."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Dict, Optional

import keyring
from keyring.errors import KeyringError, PasswordDeleteError

from .config import BotConfig
from .errors import ConfigurationError

LOGGER = logging.getLogger(__name__)

KEYRING_SERVICE = "QHSLab Claims Bot"


@dataclass(frozen=True)
class Credentials:
    email: str
    password: str

    def __repr__(self) -> str:
        return f"Credentials(email={self.email!r}, password='***')"


def retrieve_password(email: str) -> Optional[str]:
    if not email:
        return None
    try:
        return keyring.get_password(KEYRING_SERVICE, email)
    except KeyringError as exc:
        LOGGER.warning("Failed to retrieve password from keyring: %s", exc)
        return None


def store_password(email: str, password: str) -> bool:
    """Persist the password in the OS credential manager."""
    if not email or not password:
        return False
    try:
        if keyring.get_password(KEYRING_SERVICE, email) != password:
            keyring.set_password(KEYRING_SERVICE, email, password)
        return True
    except KeyringError as exc:
        LOGGER.warning("Failed to store password for %s: %s", email, exc)
        return False


def forget_password(email: str) -> None:
    if not email:
        return
    try:
        keyring.delete_password(KEYRING_SERVICE, email)
    except PasswordDeleteError:
        pass
    except KeyringError as exc:
        LOGGER.warning("Failed to remove password for %s: %s", email, exc)


def resolve_credentials(config: BotConfig, environ: Optional[Dict[str, str]] = None) -> Credentials:
    env = os.environ if environ is None else environ
    email = (config.email or env.get("QHSLAB_EMAIL") or "").strip()
    if not email:
        raise ConfigurationError("Missing QHSLAB_EMAIL (or 'email' in the config file)")
    password = env.get("QHSLAB_PASSWORD") or retrieve_password(email)
    if not password:
        raise ConfigurationError(
            f"No password for {email}: set QHSLAB_PASSWORD or run with --store-password"
        )
    return Credentials(email=email, password=password)
