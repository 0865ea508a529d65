"""
Registry authentication state.

Holds the per-client ``AuthSession`` (none, Basic, Bearer), parses
``WWW-Authenticate`` Bearer challenges, and looks up fallback credentials in
the Docker CLI config file.
"""
from __future__ import annotations

import base64
import binascii
import json
import logging
import re
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, Optional, Tuple

logger = logging.getLogger(__name__)

_PARAM_RE = re.compile(r'(\w+)="([^"]*)"')

__all__ = ["AuthKind", "AuthSession", "BearerChallenge", "parse_bearer_challenge", "DockerAuth"]


class AuthKind(str, Enum):
    NONE = "none"
    BASIC = "basic"
    BEARER = "bearer"


@dataclass(frozen=True)
class BearerChallenge:
    """Parameters of a ``WWW-Authenticate: Bearer ...`` header."""
    realm: str
    service: Optional[str] = None
    scope: Optional[str] = None

    @property
    def cache_key(self) -> str:
        return f"{self.service or ''}:{self.scope or ''}"


def parse_bearer_challenge(www_authenticate: str) -> Optional[BearerChallenge]:
    """
    Parse a Bearer challenge.

    Format: ``Bearer realm="...",service="...",scope="..."``

    Returns:
        BearerChallenge, or None if the header is not a Bearer challenge or
        has no realm
    """
    if not www_authenticate or not www_authenticate.lower().startswith("bearer"):
        return None

    params = {m.group(1).lower(): m.group(2) for m in _PARAM_RE.finditer(www_authenticate)}
    realm = params.get("realm")
    if not realm:
        return None
    return BearerChallenge(realm=realm, service=params.get("service"), scope=params.get("scope"))


class AuthSession:
    """
    Authentication state for one registry client.

    Starts as none or Basic. Moves to Bearer once a challenge is answered and
    never returns to Basic; the Basic credentials are kept so that a later
    challenge for a different scope can be exchanged for a new token.
    """

    def __init__(self):
        self.kind = AuthKind.NONE
        self._credentials: Optional[Tuple[str, str]] = None
        self._basic_header: Optional[str] = None
        self._token: Optional[str] = None
        # Token cache: {service:scope: (token, expiry_timestamp)}
        self._token_cache: Dict[str, Tuple[str, float]] = {}

    def use_basic(self, username: str, password: str) -> None:
        """Set Basic credentials (encoded once)."""
        self._credentials = (username, password)
        self._basic_header = "Basic " + base64.b64encode(f"{username}:{password}".encode()).decode()
        if self.kind is AuthKind.NONE:
            self.kind = AuthKind.BASIC

    def use_bearer(self, token: str, challenge: Optional[BearerChallenge] = None,
                   expires_in: Optional[float] = None) -> None:
        """Upgrade to a Bearer session, caching the token per service/scope."""
        self._token = token
        self.kind = AuthKind.BEARER
        if challenge is not None:
            ttl = expires_in if expires_in else 3600
            self._token_cache[challenge.cache_key] = (token, time.time() + ttl)

    def cached_token(self, challenge: BearerChallenge) -> Optional[str]:
        entry = self._token_cache.get(challenge.cache_key)
        if entry is None:
            return None
        token, expiry = entry
        if time.time() < expiry - 30:  # 30s buffer before expiry
            return token
        del self._token_cache[challenge.cache_key]
        return None

    @property
    def credentials(self) -> Optional[Tuple[str, str]]:
        return self._credentials

    @property
    def basic_header(self) -> Optional[str]:
        return self._basic_header

    @property
    def header(self) -> Optional[str]:
        """Current ``Authorization`` header value, if any."""
        if self.kind is AuthKind.BEARER:
            return f"Bearer {self._token}"
        if self.kind is AuthKind.BASIC:
            return self._basic_header
        return None


class DockerAuth:
    """Look up registry credentials in the Docker CLI config file."""

    def __init__(self, config_path: Optional[Path] = None):
        self.config_path = config_path or Path.home() / ".docker" / "config.json"
        self._config_cache: Optional[dict] = None
        self._config_mtime: Optional[float] = None

    def get_credentials(self, registry: str) -> Optional[Tuple[str, str]]:
        """
        Get credentials for registry from Docker config.

        Returns: (username, password) or None if not found
        """
        config = self._load_config()
        if not config:
            return None

        auths = config.get("auths", {})
        bare = registry.replace("https://", "").replace("http://", "")

        auth_entry = None
        for key in (registry, bare, f"https://{bare}", f"http://{bare}"):
            if key in auths:
                auth_entry = auths[key]
                break
        if auth_entry is None:
            return None

        if "auth" in auth_entry:
            try:
                decoded = base64.b64decode(auth_entry["auth"]).decode()
            except (binascii.Error, UnicodeDecodeError) as e:
                logger.debug(f"Ignoring undecodable auth entry for {bare}: {e}")
            else:
                if ":" in decoded:
                    username, password = decoded.split(":", 1)
                    return username, password

        if "username" in auth_entry and "password" in auth_entry:
            return auth_entry["username"], auth_entry["password"]

        return None

    def _load_config(self) -> Optional[dict]:
        """Load Docker config with caching and mtime checking."""
        if not self.config_path.exists():
            return None

        try:
            current_mtime = self.config_path.stat().st_mtime

            if (self._config_cache is not None and
                    self._config_mtime is not None and
                    current_mtime == self._config_mtime):
                return self._config_cache

            with open(self.config_path, 'r') as f:
                config = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.debug(f"Failed to read Docker config {self.config_path}: {e}")
            return None

        self._config_cache = config
        self._config_mtime = current_mtime
        return config
