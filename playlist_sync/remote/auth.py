"""
Identity providers for playlist-sync.

Every operation that needs to know "who is acting" receives an Identity
from an explicitly constructed provider; there is no module-level current
user.

Providers:
    LocalProfileProvider:
        Anonymous profile of this installation, created on first access
        and persisted in the local store. Never authenticated, so it can
        download but cannot rate or own remote records.

    FirebaseAuthProvider:
        Firebase Identity Toolkit over REST. Supports anonymous sign-up and
        email/password sign-in. Falls back to the local profile while no
        account is signed in.

Identity matrix:
                              authenticated  is_anonymous
    local profile             False          True
    Firebase anonymous        True           True
    Firebase email/password   True           False
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import aiohttp

from playlist_sync.core.config import RemoteConfig
from playlist_sync.core.exceptions import RemoteRejected, RemoteUnavailable
from playlist_sync.core.identifiers import new_display_name, new_user_id
from playlist_sync.core.local_store import LocalStore
from playlist_sync.core.logger import get_logger
from playlist_sync.core.models import UserProfile, now_iso


logger = get_logger(__name__)


@dataclass(frozen=True)
class Identity:
    """
    The acting party of an operation.

    Attributes:
        uid: Account id (remote) or installation profile id (local).
        display_name: Human label stored as the record creator.
        is_anonymous: True for guests, both local and remote.
        authenticated: True when backed by a remote account.
        id_token: Bearer token for remote requests, if any.
    """
    uid: str
    display_name: str = ""
    is_anonymous: bool = True
    authenticated: bool = False
    id_token: str | None = None

    @property
    def can_rate(self) -> bool:
        return self.authenticated and not self.is_anonymous


class IdentityProvider(ABC):
    """Source of the acting identity."""

    @abstractmethod
    async def current_identity(self) -> Identity:
        """The identity operations should act as. Never None."""

    @abstractmethod
    async def sign_in_anonymously(self) -> Identity:
        """Obtain an authenticated guest account if the provider can."""

    async def close(self) -> None:
        return None


class LocalProfileProvider(IdentityProvider):
    """
    Anonymous installation profile backed by the local store.

    The profile is created the first time it is needed and reused across
    sessions, so anonymous downloads stay attributable to this install.
    """

    def __init__(self, store: LocalStore) -> None:
        self._store = store

    async def profile(self) -> UserProfile:
        existing = self._store.get_profile()
        if existing is not None:
            return existing

        profile = UserProfile(
            id=new_user_id(),
            display_name=new_display_name(),
            created_at=now_iso(),
        )
        await self._store.save_profile(profile)
        logger.info(f"Created anonymous profile {profile.display_name}")
        return profile

    async def current_identity(self) -> Identity:
        profile = await self.profile()
        return Identity(
            uid=profile.id,
            display_name=profile.display_name,
            is_anonymous=True,
            authenticated=False,
        )

    async def sign_in_anonymously(self) -> Identity:
        # No remote account to create; the local profile is all there is
        return await self.current_identity()


class FirebaseAuthProvider(IdentityProvider):
    """
    Firebase Identity Toolkit client.

    Example:
        auth = FirebaseAuthProvider(config.remote, store)
        await auth.sign_in_with_password("me@example.com", "secret")
        identity = await auth.current_identity()
    """

    def __init__(
        self,
        config: RemoteConfig,
        store: LocalStore,
        session: aiohttp.ClientSession | None = None
    ) -> None:
        self._config = config
        self._local = LocalProfileProvider(store)
        self._session = session
        self._owns_session = session is None
        self._account: Identity | None = None

    @property
    def is_signed_in(self) -> bool:
        return self._account is not None

    async def current_identity(self) -> Identity:
        if self._account is not None:
            return self._account
        return await self._local.current_identity()

    async def sign_in_anonymously(self) -> Identity:
        if self._account is not None:
            return self._account

        data = await self._post("accounts:signUp", {"returnSecureToken": True})
        profile = await self._local.profile()
        self._account = Identity(
            uid=data["localId"],
            display_name=profile.display_name,
            is_anonymous=True,
            authenticated=True,
            id_token=data.get("idToken"),
        )
        logger.info(f"Signed in anonymously as {self._account.uid}")
        return self._account

    async def sign_in_with_password(self, email: str, password: str) -> Identity:
        data = await self._post(
            "accounts:signInWithPassword",
            {"email": email, "password": password, "returnSecureToken": True},
        )
        self._account = Identity(
            uid=data["localId"],
            display_name=data.get("displayName") or email.split("@")[0],
            is_anonymous=False,
            authenticated=True,
            id_token=data.get("idToken"),
        )
        logger.info(f"Signed in as {self._account.display_name}")
        return self._account

    def sign_out(self) -> None:
        self._account = None

    async def close(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    async def _post(self, endpoint: str, payload: dict[str, Any]) -> dict[str, Any]:
        """
        POST to an Identity Toolkit endpoint.

        Raises:
            RemoteUnavailable: Not configured, network failure, timeout, 5xx.
            RemoteRejected: 4xx (bad credentials, disabled provider...).
        """
        if not self._config.is_configured:
            raise RemoteUnavailable("Authentication is not configured")

        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._config.timeout)
            )

        url = f"{self._config.auth_url}/{endpoint}"
        try:
            async with self._session.post(
                url, params={"key": self._config.api_key}, json=payload
            ) as response:
                body = await response.json(content_type=None)
                if response.status >= 500:
                    raise RemoteUnavailable(
                        f"Authentication service error (HTTP {response.status})",
                        details={"endpoint": endpoint},
                        status=response.status
                    )
                if response.status >= 400:
                    reason = (body or {}).get("error", {}).get("message", "unknown")
                    raise RemoteRejected(
                        f"Sign-in rejected: {reason}",
                        details={"endpoint": endpoint, "reason": reason},
                        status=response.status
                    )
                return body or {}
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise RemoteUnavailable(
                f"Authentication service unreachable: {e}",
                details={"endpoint": endpoint}
            ) from e
