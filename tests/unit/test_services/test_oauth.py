"""Unit tests for the OAuth flow manager and its in-memory stores."""

from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs, urlparse

import pytest

from bankfeed.core.exceptions import (
    ExpiredState,
    InvalidOrExpiredState,
    InvalidState,
    OAuthConfigMissing,
    OAuthExchangeFailed,
    PendingConnectionNotFound,
)
from bankfeed.providers.monzo import MonzoClient, TokenSet
from bankfeed.services.oauth import OAuthFlowManager, OAuthStores

from fakes import FakeClock, FakeMonzo


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(start=10_000.0)


@pytest.fixture
def stores(test_settings, clock) -> OAuthStores:
    return OAuthStores.from_settings(test_settings, clock=clock)


@pytest.fixture
async def monzo_client(fake_monzo: FakeMonzo, test_settings):
    async with fake_monzo.http_client() as http:
        yield MonzoClient.from_settings(http, test_settings)


@pytest.fixture
def oauth(monzo_client, stores) -> OAuthFlowManager:
    return OAuthFlowManager(monzo_client, stores)


class TestGenerateAuthUrl:
    def test_url_carries_client_and_state(self, oauth: OAuthFlowManager, stores: OAuthStores):
        url = oauth.generate_auth_url(30)

        parsed = urlparse(url)
        query = parse_qs(parsed.query)
        assert parsed.netloc == "auth.monzo.com"
        assert query["client_id"] == ["oauth2client_00009"]
        assert query["response_type"] == ["code"]
        state = query["state"][0]
        assert len(state) == 64
        assert state in stores.states

    def test_state_remembers_sync_floor(self, oauth: OAuthFlowManager):
        url = oauth.generate_auth_url(30)
        state = parse_qs(urlparse(url).query)["state"][0]

        floor = oauth.validate_state(state)

        expected = datetime.now(timezone.utc) - timedelta(days=30)
        assert abs((floor - expected).total_seconds()) < 60

    def test_missing_client_id(self, stores, fake_monzo):
        client = MonzoClient(
            fake_monzo.http_client(), client_id=None, client_secret=None, redirect_uri=None
        )
        with pytest.raises(OAuthConfigMissing):
            OAuthFlowManager(client, stores).generate_auth_url()


class TestValidateState:
    def test_state_is_single_use(self, oauth: OAuthFlowManager):
        state = parse_qs(urlparse(oauth.generate_auth_url()).query)["state"][0]
        oauth.validate_state(state)

        with pytest.raises(InvalidState):
            oauth.validate_state(state)

    def test_unknown_state(self, oauth: OAuthFlowManager):
        with pytest.raises(InvalidOrExpiredState):
            oauth.validate_state("never-issued")

    def test_expired_state(self, oauth: OAuthFlowManager, clock: FakeClock, stores: OAuthStores):
        state = parse_qs(urlparse(oauth.generate_auth_url()).query)["state"][0]
        clock.advance(601)

        with pytest.raises(ExpiredState):
            oauth.validate_state(state)
        assert state not in stores.states


class TestAcceptCallback:
    @pytest.mark.asyncio
    async def test_parks_tokens(self, oauth: OAuthFlowManager):
        state = parse_qs(urlparse(oauth.generate_auth_url(7)).query)["state"][0]

        pending_id = await oauth.accept_callback("auth-code", state)

        pending = oauth.get_pending_connection(pending_id)
        assert pending.tokens.access_token == "access-2"
        assert pending.tokens.refresh_token == "refresh-2"

    @pytest.mark.asyncio
    async def test_exchange_failure(self, oauth: OAuthFlowManager, fake_monzo: FakeMonzo):
        fake_monzo.token_status = 400
        state = parse_qs(urlparse(oauth.generate_auth_url()).query)["state"][0]

        with pytest.raises(OAuthExchangeFailed):
            await oauth.accept_callback("bad-code", state)

    @pytest.mark.asyncio
    async def test_bad_state_skips_exchange(self, oauth: OAuthFlowManager, fake_monzo: FakeMonzo):
        with pytest.raises(InvalidState):
            await oauth.accept_callback("auth-code", "forged")
        assert "/oauth2/token" not in fake_monzo.paths()


class TestPendingConnections:
    def _tokens(self) -> TokenSet:
        return TokenSet(access_token="access-1", refresh_token="refresh-1", expires_in=3600)

    def test_lookup_does_not_consume(self, oauth: OAuthFlowManager):
        pending_id = oauth.store_pending_connection(self._tokens(), datetime.now(timezone.utc))

        oauth.get_pending_connection(pending_id)
        assert oauth.get_pending_connection(pending_id).tokens.access_token == "access-1"

    def test_unknown_id(self, oauth: OAuthFlowManager):
        with pytest.raises(PendingConnectionNotFound):
            oauth.get_pending_connection("missing")

    def test_expired_entry_removed(self, oauth: OAuthFlowManager, clock: FakeClock, stores: OAuthStores):
        pending_id = oauth.store_pending_connection(self._tokens(), datetime.now(timezone.utc))
        clock.advance(1801)

        with pytest.raises(PendingConnectionNotFound):
            oauth.get_pending_connection(pending_id)
        assert pending_id not in stores.pending

    @pytest.mark.asyncio
    async def test_sweep_revokes_abandoned_tokens(
        self, oauth: OAuthFlowManager, clock: FakeClock, stores: OAuthStores, fake_monzo: FakeMonzo
    ):
        oauth.store_pending_connection(self._tokens(), datetime.now(timezone.utc))
        clock.advance(1000)
        fresh_id = oauth.store_pending_connection(self._tokens(), datetime.now(timezone.utc))
        clock.advance(900)

        expired = await oauth.sweep()

        assert expired == 1
        assert len(stores.pending) == 1
        assert fresh_id in stores.pending
        assert fake_monzo.paths().count("/oauth2/logout") == 1
