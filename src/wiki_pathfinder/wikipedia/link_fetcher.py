"""
Link fetchers: the only capability the search core needs from the outside
world is "give me the outgoing links of this title".

WikipediaLinkFetcher implements it on top of the MediaWiki action API and
hides pagination, bot login and error classification from the crawler.
"""
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import httpx

from wiki_pathfinder.config import Credentials, DEFAULT_API_URL, PathfinderConfig
from wiki_pathfinder.exceptions import ConfigError, FetchFailure
from wiki_pathfinder.models import FailureKind

logger = logging.getLogger(__name__)

# API error codes that mean "slow down" rather than "broken"
RATE_LIMIT_ERROR_CODES = frozenset({"maxlag", "ratelimited", "actionthrottledtext"})


class LinkFetcher(ABC):
    """
    Abstract source of outgoing links.
    """

    @abstractmethod
    async def fetch_links(self, title: str) -> List[str]:
        """
        Return every outgoing link title of `title`, in order and without duplicates.

        Raises:
            FetchFailure: with kind NOT_FOUND when the title doesn't exist,
                RATE_LIMITED or NETWORK_FAILURE for transient problems.
        """
        pass


def _parse_retry_after(response: httpx.Response) -> Optional[float]:
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return max(float(value), 0.0)
    except ValueError:
        return None


class WikipediaLinkFetcher(LinkFetcher):
    """
    Client for the MediaWiki API.

    Must be used as an async context manager (or closed explicitly) so the
    underlying httpx session, which also carries the login cookies, is released.
    """

    def __init__(
        self,
        api_url: str = DEFAULT_API_URL,
        timeout: float = 30.0,
        user_agent: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_url = api_url
        self.timeout = timeout
        self.user_agent = user_agent or PathfinderConfig().user_agent
        self._transport = transport
        self.client: Optional[httpx.AsyncClient] = None

    @classmethod
    def from_config(cls, config: PathfinderConfig) -> "WikipediaLinkFetcher":
        return cls(api_url=config.api_url, timeout=config.request_timeout, user_agent=config.user_agent)

    async def __aenter__(self):
        self.client = httpx.AsyncClient(
            headers={"User-Agent": self.user_agent, "Accept-Encoding": "gzip"},
            timeout=httpx.Timeout(self.timeout),
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self):
        """Close the session if not using context manager."""
        if self.client:
            await self.client.aclose()
            self.client = None

    async def _request(self, params: Dict[str, Any], data: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        """
        Make a single API request and classify every failure as a FetchFailure.
        Requests with a form body are sent as POST, everything else as GET.
        """
        if self.client is None:
            raise RuntimeError("Client not initialized. Use 'async with' context manager.")

        params = {"format": "json", "formatversion": "2", **params}
        logger.debug(f"Making API request: {params}")

        try:
            if data is None:
                response = await self.client.get(self.api_url, params=params)
            else:
                response = await self.client.post(self.api_url, params=params, data=data)
        except httpx.RequestError as e:
            raise FetchFailure(FailureKind.NETWORK_FAILURE, f"Request to {self.api_url} failed: {e}") from e

        if response.status_code == 429:
            raise FetchFailure(
                FailureKind.RATE_LIMITED,
                "Wikipedia API rate limit hit (HTTP 429)",
                retry_after=_parse_retry_after(response),
            )
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise FetchFailure(FailureKind.NETWORK_FAILURE, f"Wikipedia API returned HTTP {response.status_code}") from e

        try:
            payload = response.json()
        except ValueError as e:
            raise FetchFailure(FailureKind.NETWORK_FAILURE, "Wikipedia API returned a non-JSON response") from e

        error = payload.get("error")
        if error:
            code = error.get("code", "unknown")
            info = error.get("info", "")
            if code in RATE_LIMIT_ERROR_CODES:
                raise FetchFailure(
                    FailureKind.RATE_LIMITED,
                    f"Wikipedia API asked us to back off ({code}): {info}",
                    retry_after=_parse_retry_after(response),
                )
            raise FetchFailure(FailureKind.NETWORK_FAILURE, f"Wikipedia API error ({code}): {info}")

        return payload

    async def check_connection(self) -> str:
        """
        Make sure the API answers at all. Returns the site name.

        Raises:
            ConfigError: if the service can't be reached.
        """
        try:
            data = await self._request({"action": "query", "meta": "siteinfo", "siprop": "general"})
        except FetchFailure as e:
            raise ConfigError(f"Could not reach the API at {self.api_url}: {e.message}") from e
        sitename = data.get("query", {}).get("general", {}).get("sitename", self.api_url)
        logger.info(f"Connected to {sitename}")
        return sitename

    async def login(self, credentials: Credentials) -> None:
        """
        Log in with a bot account. The session cookie is kept by the client.

        Raises:
            ConfigError: when the service is unreachable or rejects the credentials.
        """
        try:
            token_data = await self._request({"action": "query", "meta": "tokens", "type": "login"})
            token = token_data["query"]["tokens"]["logintoken"]
            data = await self._request(
                {"action": "login"},
                data={
                    "lgname": credentials.username,
                    "lgpassword": credentials.password.get_secret_value(),
                    "lgtoken": token,
                },
            )
        except FetchFailure as e:
            raise ConfigError(f"Login as '{credentials.username}' failed: {e.message}") from e
        except KeyError as e:
            raise ConfigError(f"Login as '{credentials.username}' failed: no login token in response") from e

        result = data.get("login", {})
        if result.get("result") != "Success":
            reason = result.get("reason") or result.get("result", "unknown reason")
            raise ConfigError(f"Login as '{credentials.username}' failed: {reason}")

        logger.info(f"Logged in as '{result.get('lgusername', credentials.username)}'")

    async def fetch_links(self, title: str) -> List[str]:
        """Fetch all article-namespace links of a page, following continuation tokens."""
        base_params = {
            "action": "query",
            "prop": "links",
            "titles": title,
            "pllimit": "max",
            "plnamespace": "0",
            "redirects": "1",
        }
        # dict keeps first-seen order while dropping duplicates across batches
        links: Dict[str, None] = {}
        continue_token: Dict[str, Any] = {}

        while True:
            data = await self._request({**base_params, **continue_token})

            pages = data.get("query", {}).get("pages", [])
            if not pages:
                raise FetchFailure(FailureKind.NOT_FOUND, f"Page not found: {title}")

            for page in pages:
                if page.get("missing") or page.get("invalid"):
                    raise FetchFailure(FailureKind.NOT_FOUND, f"Page does not exist: {title}")
                for link in page.get("links", []):
                    links.setdefault(link["title"], None)

            if "continue" not in data:
                break
            continue_token = data["continue"]
            logger.debug(f"Continuing pagination for links of '{title}'...")

        logger.debug(f"Retrieved {len(links)} links for '{title}'")
        return list(links)

    async def search_titles(self, query: str, limit: int = 5) -> List[str]:
        """Full-text search over article titles, best match first."""
        data = await self._request({
            "action": "query",
            "list": "search",
            "srsearch": query,
            "srnamespace": "0",
            "srlimit": str(limit),
        })
        return [hit["title"] for hit in data.get("query", {}).get("search", [])]
