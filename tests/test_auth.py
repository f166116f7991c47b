# tests/test_auth.py
"""Test identity providers"""

import pytest

from playlist_sync.core.config import RemoteConfig
from playlist_sync.core.exceptions import RemoteRejected, RemoteUnavailable
from playlist_sync.remote.auth import FirebaseAuthProvider, Identity, LocalProfileProvider


CONFIG = RemoteConfig(project_id="power-hour-share", api_key="key-123")


class FakeResponse:
    def __init__(self, status, payload):
        self.status = status
        self._payload = payload

    async def json(self, content_type=None):
        return self._payload

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class FakeSession:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.posts = []

    def post(self, url, params=None, json=None):
        self.posts.append((url, params, json))
        return self.responses.pop(0)


class TestIdentity:
    """Test the identity matrix"""

    def test_can_rate(self):
        assert Identity("u", is_anonymous=False, authenticated=True).can_rate
        assert not Identity("u", is_anonymous=True, authenticated=True).can_rate
        assert not Identity("u").can_rate


class TestLocalProfileProvider:
    """Test the anonymous installation profile"""

    async def test_profile_is_created_once(self, store):
        provider = LocalProfileProvider(store)
        first = await provider.current_identity()
        second = await provider.current_identity()
        assert first == second
        assert first.uid.startswith("user_")
        assert first.is_anonymous and not first.authenticated
        assert store.get_profile().id == first.uid

    async def test_sign_in_anonymously_stays_local(self, store):
        provider = LocalProfileProvider(store)
        assert not (await provider.sign_in_anonymously()).authenticated


class TestFirebaseAuthProvider:
    """Test Identity Toolkit sign-in"""

    async def test_falls_back_to_local_profile(self, store):
        auth = FirebaseAuthProvider(CONFIG, store, session=FakeSession())
        identity = await auth.current_identity()
        assert not identity.authenticated
        assert not auth.is_signed_in

    async def test_anonymous_sign_up(self, store):
        session = FakeSession(FakeResponse(200, {"localId": "anon1", "idToken": "tok"}))
        auth = FirebaseAuthProvider(CONFIG, store, session=session)
        identity = await auth.sign_in_anonymously()
        assert identity.uid == "anon1"
        assert identity.authenticated and identity.is_anonymous
        assert session.posts[0][0].endswith("/accounts:signUp")
        assert session.posts[0][1] == {"key": "key-123"}
        # The account is reused afterwards
        assert await auth.sign_in_anonymously() == identity
        assert len(session.posts) == 1

    async def test_password_sign_in(self, store):
        session = FakeSession(FakeResponse(200, {"localId": "uid_alice", "idToken": "tok", "displayName": ""}))
        auth = FirebaseAuthProvider(CONFIG, store, session=session)
        identity = await auth.sign_in_with_password("alice@example.com", "secret")
        assert identity.can_rate
        assert identity.display_name == "alice"
        assert await auth.current_identity() == identity
        auth.sign_out()
        assert not (await auth.current_identity()).authenticated

    async def test_rejected_credentials(self, store):
        session = FakeSession(FakeResponse(400, {"error": {"message": "INVALID_PASSWORD"}}))
        auth = FirebaseAuthProvider(CONFIG, store, session=session)
        with pytest.raises(RemoteRejected, match="INVALID_PASSWORD"):
            await auth.sign_in_with_password("alice@example.com", "wrong")

    async def test_server_error(self, store):
        auth = FirebaseAuthProvider(CONFIG, store, session=FakeSession(FakeResponse(503, None)))
        with pytest.raises(RemoteUnavailable):
            await auth.sign_in_anonymously()

    async def test_not_configured(self, store):
        auth = FirebaseAuthProvider(RemoteConfig(), store, session=FakeSession())
        with pytest.raises(RemoteUnavailable):
            await auth.sign_in_anonymously()
