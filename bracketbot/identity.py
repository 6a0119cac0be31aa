"""
bracketbot/identity.py - Riot account verification

Looks up a Riot ID ("Name#TAG") against the Riot Account API, trying each
regional cluster in turn. Rate-limited responses (429) are retried with a
bounded backoff; everything else is classified into an IdentityError whose
message can be shown to the end user verbatim.

The API key comes from config ([identity] api_key) or RIOT_API_KEY.
"""

import logging
import re
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable
from urllib.parse import quote

import httpx

from .errors import IdentityError

logger = logging.getLogger(__name__)

# ============================================================================
# Constants
# ============================================================================

DEFAULT_BASE_URL = "https://{region}.api.riotgames.com"
DEFAULT_REGIONS = ("americas", "europe", "asia")
ACCOUNT_ENDPOINT = "/riot/account/v1/accounts/by-riot-id/{name}/{tag}"

PLACEHOLDER_KEYS = ("", "not-configured", "your-riot-api-key-here")

# Lookup used by check_connection(); expected to not exist
PROBE_RIOT_ID = "TestPlayer#1234"

_NAME_RE = re.compile(r"^[a-zA-Z0-9\s]{3,16}$")
_TAG_RE = re.compile(r"^[a-zA-Z0-9]{3,5}$")


class IdentityErrorKind(str, Enum):
    MALFORMED = "malformed"
    NOT_CONFIGURED = "not_configured"
    NOT_FOUND = "not_found"
    RATE_LIMITED = "rate_limited"
    UPSTREAM = "upstream"


_STATUS_MESSAGES = {
    400: "The request was rejected. Check the Riot ID format.",
    401: "The Riot API key is invalid or expired. Contact an administrator.",
    403: "The Riot API key does not have access to this endpoint.",
    404: "Player not found. Check the Riot ID.",
    429: "Too many requests to the Riot API. Please wait a moment and try again.",
    500: "The Riot API is having problems. Please try again later.",
    502: "The Riot API is having problems. Please try again later.",
    503: "The Riot API is having problems. Please try again later.",
}


def status_message(status: int) -> str:
    return _STATUS_MESSAGES.get(status, f"Unexpected error from the Riot API (status {status}).")


# ============================================================================
# Riot ID helpers
# ============================================================================

def parse_riot_id(riot_id: str) -> tuple[str, str] | None:
    """Split 'Name#TAG' into (name, tag). Splits on the last '#'."""
    match = re.match(r"^(.+)#(.+)$", riot_id)
    if not match:
        return None
    return match.group(1), match.group(2)


def format_riot_id(game_name: str, tag_line: str) -> str:
    return f"{game_name}#{tag_line}"


def is_valid_riot_id(riot_id: str) -> bool:
    parsed = parse_riot_id(riot_id)
    if parsed is None:
        return False
    name, tag = parsed
    return bool(_NAME_RE.match(name) and _TAG_RE.match(tag))


def is_configured_key(api_key: str | None) -> bool:
    return api_key is not None and api_key.strip() not in PLACEHOLDER_KEYS


# ============================================================================
# Data Types
# ============================================================================

@dataclass
class Account:
    """A verified Riot account."""

    puuid: str
    game_name: str
    tag_line: str
    region: str

    @property
    def riot_id(self) -> str:
        return format_riot_id(self.game_name, self.tag_line)


@dataclass
class RateLimitInfo:
    """Rate-limit headers from the last response of a region."""

    app_rate_limit: str | None = None
    app_rate_limit_count: str | None = None
    method_rate_limit: str | None = None
    method_rate_limit_count: str | None = None
    retry_after: str | None = None

    @classmethod
    def from_headers(cls, headers: httpx.Headers) -> "RateLimitInfo":
        return cls(
            app_rate_limit=headers.get("x-app-rate-limit"),
            app_rate_limit_count=headers.get("x-app-rate-limit-count"),
            method_rate_limit=headers.get("x-method-rate-limit"),
            method_rate_limit_count=headers.get("x-method-rate-limit-count"),
            retry_after=headers.get("retry-after"),
        )


# ============================================================================
# Client
# ============================================================================

class IdentityClient:
    """Blocking client for the Riot Account API.

    Args:
        api_key: Riot API key. Placeholder values count as not configured.
        regions: Regional clusters to search, in order.
        base_url: URL template with a ``{region}`` placeholder.
        timeout: Per-request timeout in seconds.
        max_retries: Retries after a 429 before giving up.
        retry_delay: Base wait in seconds when no Retry-After is sent;
            doubles on each retry.
        transport: Optional httpx transport (tests use MockTransport).
        sleep: Wait function, injectable for tests.
    """

    def __init__(
        self,
        api_key: str | None,
        regions: tuple[str, ...] | list[str] = DEFAULT_REGIONS,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 10.0,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.api_key = api_key
        self.regions = tuple(regions)
        self.base_url = base_url
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._sleep = sleep
        self._rate_limits: dict[str, RateLimitInfo] = {}
        self._http = httpx.Client(
            timeout=timeout,
            transport=transport,
            headers={"X-Riot-Token": api_key or "", "Content-Type": "application/json"},
        )

    @property
    def configured(self) -> bool:
        return is_configured_key(self.api_key)

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "IdentityClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def verify(self, riot_id: str) -> Account:
        """Resolve a Riot ID to an account.

        Raises:
            IdentityError: kind MALFORMED, NOT_CONFIGURED, NOT_FOUND,
                RATE_LIMITED or UPSTREAM
        """
        riot_id = riot_id.strip()
        if not is_valid_riot_id(riot_id):
            raise IdentityError(
                IdentityErrorKind.MALFORMED,
                "Riot ID format is invalid. Example: PlayerName#1234",
                400,
            )

        if not self.configured:
            raise IdentityError(
                IdentityErrorKind.NOT_CONFIGURED,
                "The Riot API key is not configured.",
                401,
            )

        name, tag = parse_riot_id(riot_id)
        endpoint = ACCOUNT_ENDPOINT.format(name=quote(name, safe=""), tag=quote(tag, safe=""))

        for region in self.regions:
            data = self._get(region, endpoint)
            if data is None:
                logger.debug(f"{riot_id} not found in {region}, trying next region")
                continue

            logger.info(f"Player {riot_id} found in region: {region}")
            return Account(
                puuid=data["puuid"],
                game_name=name,
                tag_line=tag,
                region=region,
            )

        raise IdentityError(
            IdentityErrorKind.NOT_FOUND,
            "Player not found. Searched every region but no matching account exists.",
            404,
        )

    def check_connection(self) -> bool:
        """True if the API answers a lookup (found or not found)."""
        try:
            self.verify(PROBE_RIOT_ID)
        except IdentityError as e:
            if e.kind is IdentityErrorKind.NOT_FOUND:
                return True
            logger.warning(f"Riot API connection check failed: {e}")
            return False
        return True

    def rate_limit_status(self, region: str) -> RateLimitInfo | None:
        return self._rate_limits.get(region)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _get(self, region: str, endpoint: str) -> dict[str, Any] | None:
        """GET ``endpoint`` in ``region``. Returns None on 404."""
        url = self.base_url.format(region=region) + endpoint
        attempt = 0

        while True:
            try:
                resp = self._http.get(url)
            except httpx.HTTPError as e:
                logger.warning(f"Riot API request to {region} failed: {e}")
                raise IdentityError(
                    IdentityErrorKind.UPSTREAM,
                    "Could not reach the Riot API. Please try again later.",
                ) from e

            self._rate_limits[region] = RateLimitInfo.from_headers(resp.headers)

            if resp.status_code == 429:
                if attempt >= self.max_retries:
                    raise IdentityError(
                        IdentityErrorKind.RATE_LIMITED, status_message(429), 429
                    )
                wait = self._retry_wait(resp, attempt)
                logger.info(f"Rate limited by Riot API ({region}). Waiting {wait:.1f}s...")
                self._sleep(wait)
                attempt += 1
                continue

            if resp.status_code == 404:
                return None

            if resp.is_success:
                return resp.json()

            logger.warning(f"Riot API {region} returned {resp.status_code}")
            raise IdentityError(
                IdentityErrorKind.UPSTREAM,
                status_message(resp.status_code),
                resp.status_code,
            )

    def _retry_wait(self, resp: httpx.Response, attempt: int) -> float:
        retry_after = resp.headers.get("retry-after")
        if retry_after:
            try:
                return float(retry_after)
            except ValueError:
                pass
        return self.retry_delay * (2 ** attempt)
