"""Tests for bracketbot.identity - Riot account lookup over httpx.

The HTTP layer is replaced by httpx.MockTransport; sleeps are recorded
instead of slept.
"""

import httpx
import pytest

from bracketbot.errors import IdentityError
from bracketbot.identity import (
    IdentityClient,
    IdentityErrorKind,
    format_riot_id,
    is_configured_key,
    is_valid_riot_id,
    parse_riot_id,
)


def _client(handler, sleeps=None, **kwargs) -> IdentityClient:
    sleeps = sleeps if sleeps is not None else []
    return IdentityClient(
        kwargs.pop("api_key", "RGAPI-test"),
        transport=httpx.MockTransport(handler),
        sleep=sleeps.append,
        **kwargs,
    )


def _found(puuid="puuid-123"):
    return httpx.Response(200, json={"puuid": puuid, "gameName": "Player", "tagLine": "NA1"})


# ============================================================================
# Riot ID helpers
# ============================================================================

class TestRiotIdHelpers:
    def test_parse(self):
        assert parse_riot_id("Player#NA1") == ("Player", "NA1")
        assert parse_riot_id("no-tag") is None

    def test_parse_splits_on_last_hash(self):
        assert parse_riot_id("a#b#c") == ("a#b", "c")

    def test_format(self):
        assert format_riot_id("Player", "NA1") == "Player#NA1"

    @pytest.mark.parametrize(
        "riot_id,expected",
        [
            ("Player#NA1", True),
            ("Two Words#1234", True),
            ("abc#abc", True),
            ("ab#NA1", False),  # name too short
            ("x" * 17 + "#NA1", False),  # name too long
            ("Player#N1", False),  # tag too short
            ("Player#ABCDEF", False),  # tag too long
            ("Pl@yer#NA1", False),
            ("Player", False),
        ],
    )
    def test_validation(self, riot_id, expected):
        assert is_valid_riot_id(riot_id) is expected

    def test_placeholder_keys(self):
        assert not is_configured_key(None)
        assert not is_configured_key("")
        assert not is_configured_key("not-configured")
        assert not is_configured_key("your-riot-api-key-here")
        assert is_configured_key("RGAPI-real")


# ============================================================================
# verify
# ============================================================================

class TestVerify:
    def test_found_in_first_region(self):
        seen = []

        def handler(request):
            seen.append(request)
            return _found()

        account = _client(handler).verify("Player#NA1")

        assert account.puuid == "puuid-123"
        assert account.region == "americas"
        assert account.riot_id == "Player#NA1"
        assert seen[0].url.host == "americas.api.riotgames.com"
        assert seen[0].url.path == "/riot/account/v1/accounts/by-riot-id/Player/NA1"
        assert seen[0].headers["X-Riot-Token"] == "RGAPI-test"

    def test_falls_through_regions_on_404(self):
        hosts = []

        def handler(request):
            hosts.append(request.url.host.split(".")[0])
            if request.url.host.startswith("asia"):
                return _found("puuid-asia")
            return httpx.Response(404)

        account = _client(handler).verify("Player#NA1")
        assert hosts == ["americas", "europe", "asia"]
        assert account.region == "asia"
        assert account.puuid == "puuid-asia"

    def test_not_found_everywhere(self):
        with pytest.raises(IdentityError) as exc:
            _client(lambda r: httpx.Response(404)).verify("Player#NA1")
        assert exc.value.kind is IdentityErrorKind.NOT_FOUND

    def test_name_with_space_is_encoded(self):
        paths = []

        def handler(request):
            paths.append(request.url.raw_path)
            return _found()

        _client(handler).verify("Two Words#1234")
        assert b"Two%20Words" in paths[0]

    def test_malformed_checked_first(self):
        calls = []
        client = _client(lambda r: calls.append(r) or _found(), api_key=None)
        with pytest.raises(IdentityError) as exc:
            client.verify("bad")
        assert exc.value.kind is IdentityErrorKind.MALFORMED
        assert calls == []

    def test_not_configured(self):
        calls = []
        client = _client(lambda r: calls.append(r) or _found(), api_key="not-configured")
        with pytest.raises(IdentityError) as exc:
            client.verify("Player#NA1")
        assert exc.value.kind is IdentityErrorKind.NOT_CONFIGURED
        assert calls == []

    @pytest.mark.parametrize("status", [400, 401, 403, 500, 503])
    def test_upstream_errors(self, status):
        with pytest.raises(IdentityError) as exc:
            _client(lambda r: httpx.Response(status)).verify("Player#NA1")
        assert exc.value.kind is IdentityErrorKind.UPSTREAM
        assert exc.value.status_code == status
        assert exc.value.message

    def test_transport_failure(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(IdentityError) as exc:
            _client(handler).verify("Player#NA1")
        assert exc.value.kind is IdentityErrorKind.UPSTREAM


# ============================================================================
# Rate limiting
# ============================================================================

class TestRateLimit:
    def test_retry_after_header_honoured(self):
        responses = [httpx.Response(429, headers={"Retry-After": "2"}), _found()]
        sleeps = []

        account = _client(lambda r: responses.pop(0), sleeps=sleeps).verify("Player#NA1")

        assert account.puuid == "puuid-123"
        assert sleeps == [2.0]

    def test_exponential_backoff_without_header(self):
        responses = [httpx.Response(429), httpx.Response(429), _found()]
        sleeps = []

        _client(lambda r: responses.pop(0), sleeps=sleeps, retry_delay=1.0).verify("Player#NA1")

        assert sleeps == [1.0, 2.0]

    def test_gives_up_after_max_retries(self):
        calls = []
        sleeps = []

        def handler(request):
            calls.append(request)
            return httpx.Response(429)

        with pytest.raises(IdentityError) as exc:
            _client(handler, sleeps=sleeps, max_retries=3).verify("Player#NA1")

        assert exc.value.kind is IdentityErrorKind.RATE_LIMITED
        assert exc.value.status_code == 429
        assert len(calls) == 4
        assert len(sleeps) == 3

    def test_rate_limit_headers_remembered(self):
        def handler(request):
            return httpx.Response(
                200,
                json={"puuid": "p"},
                headers={"X-App-Rate-Limit": "20:1,100:120", "X-App-Rate-Limit-Count": "1:1,1:120"},
            )

        client = _client(handler)
        client.verify("Player#NA1")
        info = client.rate_limit_status("americas")
        assert info.app_rate_limit == "20:1,100:120"
        assert info.app_rate_limit_count == "1:1,1:120"
        assert client.rate_limit_status("asia") is None


# ============================================================================
# check_connection
# ============================================================================

class TestCheckConnection:
    def test_not_found_means_reachable(self):
        assert _client(lambda r: httpx.Response(404)).check_connection()

    def test_found_means_reachable(self):
        assert _client(lambda r: _found()).check_connection()

    def test_bad_key_is_unreachable(self):
        assert not _client(lambda r: httpx.Response(401)).check_connection()

    def test_unconfigured_is_unreachable(self):
        assert not _client(lambda r: _found(), api_key=None).check_connection()
