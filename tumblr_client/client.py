"""Tumblr API v2 client.

TumblrClient issues signed (OAuth 1.0a) or API-key-qualified requests for
single posts and drives the cursor-following pagination loop of the list
endpoints. User authentication is lazy: the interactive grant runs the first
time a call needs it, and a failed grant is retried on the next such call.

Expected protocol failures (non-success statuses, denied grants) are logged
and reported as empty results (None, False or []). Transport errors
propagate.
"""

import logging
from typing import Any, Callable
from urllib.parse import urljoin, urlsplit

import httpx

from .oauth.callback import DEFAULT_TIMEOUT
from .oauth.manager import ACCESS_TOKEN_URL, AUTHORIZE_URL, REQUEST_TOKEN_URL, CredentialManager
from .oauth.params import ParameterSet
from .platform import SystemOpener

logger = logging.getLogger(__name__)

API_BASE = "https://api.tumblr.com"

# Query flag asking for posts in the Neue Post Format
NPF_FLAG = "npf=true"


def _extract_response(data: Any) -> Any:
    """Return the "response" member of an API envelope, or None."""
    if isinstance(data, dict):
        return data.get("response")
    return None


def _extract_next_href(payload: Any) -> str | None:
    """Read response._links.next.href from a list payload.

    Anything malformed is treated as the last page.
    """
    try:
        href = payload["_links"]["next"]["href"]
    except (KeyError, TypeError):
        return None
    return href if isinstance(href, str) and href else None


class TumblrClient:
    """Async client for the Tumblr API.

    Usage:
        async with TumblrClient(key, secret) as client:
            posts = await client.get_posts("staff", limit=40)
            drafts = await client.get_drafts("myblog")   # triggers the grant
    """

    def __init__(
        self,
        consumer_key: str,
        consumer_secret: str,
        http_client: httpx.AsyncClient | None = None,
        *,
        api_base: str = API_BASE,
        auth: CredentialManager | None = None,
        request_token_url: str = REQUEST_TOKEN_URL,
        authorize_url: str = AUTHORIZE_URL,
        access_token_url: str = ACCESS_TOKEN_URL,
        callback_timeout: float = DEFAULT_TIMEOUT,
        opener: SystemOpener | None = None,
        on_status: Callable[[str], None] | None = None,
    ):
        """Initialize the client.

        Args:
            consumer_key: OAuth consumer key (used as the API key)
            consumer_secret: OAuth consumer secret
            http_client: Optional HTTP client; one is created and owned otherwise
            api_base: API root that relative pagination links resolve against
            auth: Optional pre-built CredentialManager to share
            request_token_url: Temporary credential endpoint
            authorize_url: Resource owner authorization page
            access_token_url: Token credential endpoint
            callback_timeout: Seconds to wait for the user's grant
            opener: Browser launch strategy
            on_status: Optional callback for progress messages
        """
        self.http_client = http_client or httpx.AsyncClient(timeout=30.0)
        self._owns_http_client = http_client is None
        self.api_base = api_base.rstrip("/")
        self.auth = auth or CredentialManager(
            consumer_key,
            consumer_secret,
            self.http_client,
            request_token_url=request_token_url,
            authorize_url=authorize_url,
            access_token_url=access_token_url,
            callback_timeout=callback_timeout,
            opener=opener,
            on_status=on_status,
        )

    @property
    def is_authenticated(self) -> bool:
        return self.auth.is_authenticated

    async def ensure_user_auth(self) -> bool:
        """Run the user grant unless it already succeeded.

        Returns:
            True if the client is authenticated as a user
        """
        if self.auth.is_authenticated:
            return True
        return await self.auth.authenticate_user()

    def _blog_url(self, blog: str, path: str) -> str:
        return f"{self.api_base}/v2/blog/{blog}{path}"

    def _with_api_key(self, url: str) -> str:
        """Append the api_key query parameter unless already present."""
        query = urlsplit(url).query
        if "api_key" in ParameterSet(query):
            return url
        separator = "&" if query else "?"
        return f"{url}{separator}api_key={self.auth.api_key}"

    async def _send(
        self,
        method: str,
        url: str,
        signed: bool,
        json_body: Any = None,
    ) -> httpx.Response:
        """Send a request, signing it when user auth is in use."""
        headers: dict[str, str] = {}
        if signed:
            headers["Authorization"] = self.auth.build_authorization_header(method, url)

        logger.debug(f"{method} {url}")
        return await self.http_client.request(method, url, headers=headers, json=json_body)

    async def get_post(
        self,
        blog: str,
        post_id: int | str,
        requires_user_auth: bool = False,
    ) -> dict[str, Any] | None:
        """Get a single post.

        Args:
            blog: Blog identifier (name or hostname)
            post_id: Post identifier
            requires_user_auth: Sign the request as the authenticated user

        Returns:
            The post resource, or None on failure
        """
        if requires_user_auth and not await self.ensure_user_auth():
            return None

        url = self._blog_url(blog, f"/posts/{post_id}")
        if not requires_user_auth:
            url = self._with_api_key(url)

        response = await self._send("GET", url, signed=requires_user_auth)
        if not response.is_success:
            logger.error(f"Request failed: HTTP {response.status_code}")
            return None

        try:
            post = _extract_response(response.json())
        except ValueError:
            logger.error("Request failed: response body is not JSON")
            return None

        logger.info(f"Retrieved post {post_id}")
        return post

    async def create_post(self, blog: str, post: dict[str, Any]) -> int | None:
        """Create a post as the authenticated user.

        Returns:
            Id of the new post, or None on failure
        """
        if not await self.ensure_user_auth():
            return None

        response = await self._send(
            "POST", self._blog_url(blog, "/posts"), signed=True, json_body=post
        )
        post_id = self._read_post_id(response, "Create")
        if post_id is not None:
            logger.info(f"Created post {post_id}")
        return post_id

    async def update_post(
        self,
        blog: str,
        post_id: int | str,
        post: dict[str, Any],
    ) -> int | None:
        """Update a post as the authenticated user.

        Returns:
            Id of the updated post, or None on failure
        """
        if not await self.ensure_user_auth():
            return None

        response = await self._send(
            "PUT", self._blog_url(blog, f"/posts/{post_id}"), signed=True, json_body=post
        )
        updated_id = self._read_post_id(response, "Update")
        if updated_id is not None:
            logger.info(f"Updated post {updated_id}")
        return updated_id

    async def delete_post(self, blog: str, post_id: int | str) -> bool:
        """Delete a post as the authenticated user.

        Returns:
            True if the post was deleted
        """
        if not await self.ensure_user_auth():
            return False

        response = await self._send(
            "DELETE", self._blog_url(blog, f"/post/delete?id={post_id}"), signed=True
        )
        if not response.is_success:
            logger.error(f"Delete failed: HTTP {response.status_code}")
            return False

        logger.info(f"Deleted post {post_id}")
        return True

    def _read_post_id(self, response: httpx.Response, action: str) -> int | None:
        """Read response.id from a create/update reply."""
        if not response.is_success:
            logger.error(f"{action} failed: HTTP {response.status_code}")
            return None

        try:
            return int(_extract_response(response.json())["id"])
        except (ValueError, KeyError, TypeError):
            logger.error(f"{action} failed: reply has no post id")
            return None

    async def get_posts(
        self,
        blog: str,
        requires_user_auth: bool = False,
        limit: int = 0,
    ) -> list[dict[str, Any]]:
        """Get the published posts of a blog."""
        logger.debug("Getting posts")
        return await self.list_posts(blog, "", requires_user_auth, limit)

    async def get_drafts(self, blog: str) -> list[dict[str, Any]]:
        """Get the draft posts of a blog."""
        logger.debug("Getting drafts")
        return await self.list_posts(blog, "/draft", True)

    async def get_queue(self, blog: str) -> list[dict[str, Any]]:
        """Get the queued posts of a blog."""
        logger.debug("Getting queue")
        return await self.list_posts(blog, "/queue", True)

    async def get_submissions(self, blog: str) -> list[dict[str, Any]]:
        """Get the submissions to a blog."""
        logger.debug("Getting submissions")
        return await self.list_posts(blog, "/submission", True)

    async def list_posts(
        self,
        blog: str,
        subpath: str,
        requires_user_auth: bool,
        limit: int = 0,
    ) -> list[dict[str, Any]]:
        """Fetch every page of a post list endpoint.

        Pages are requested one at a time, following response._links.next.
        The loop stops on the last page, on a non-success status, or once
        limit (when nonzero) items have been collected. The limit is checked
        after a whole page is merged, so the result may exceed it.

        Args:
            blog: Blog identifier
            subpath: Endpoint below /posts ("", "/draft", "/queue", "/submission")
            requires_user_auth: Sign requests as the authenticated user
            limit: Stop after at least this many items (0 for no cap)

        Returns:
            Posts in page order; whatever was collected before a failure
        """
        posts: list[dict[str, Any]] = []
        if requires_user_auth and not await self.ensure_user_auth():
            return posts

        url: str | None = self._blog_url(blog, f"/posts{subpath}?{NPF_FLAG}")
        if not requires_user_auth:
            url = self._with_api_key(url)

        while url is not None:
            response = await self._send("GET", url, signed=requires_user_auth)
            if not response.is_success:
                logger.error(f"Request failed: HTTP {response.status_code}")
                break

            try:
                payload = _extract_response(response.json())
            except ValueError:
                logger.warning(f"Stopping pagination: non-JSON page from {url}")
                break

            page = payload.get("posts") if isinstance(payload, dict) else None
            if isinstance(page, list):
                logger.debug(f"Received posts {len(posts)} to {len(posts) + len(page)}")
                posts.extend(page)

            url = self._next_page_url(payload, requires_user_auth)
            if limit and len(posts) >= limit:
                url = None

        return posts

    def _next_page_url(self, payload: Any, requires_user_auth: bool) -> str | None:
        """Resolve the next-page link against the API base."""
        href = _extract_next_href(payload)
        if href is None:
            return None

        url = urljoin(f"{self.api_base}/", href)
        return url if requires_user_auth else self._with_api_key(url)

    async def aclose(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_http_client:
            await self.http_client.aclose()

    async def __aenter__(self) -> "TumblrClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()
