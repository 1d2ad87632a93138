"""GraphQL executor for sending requests to the Shopify Admin API.

Handles HTTP communication and response parsing. GraphQL-level ``errors``
are left in the response for the caller to interpret.
"""

import json
import logging
from typing import Any, Mapping

import httpx
from .auth import Auth, TokenExchange, resolve_auth
from .config import ShopifySettings

logger = logging.getLogger(__name__)


class GraphQLError(Exception):
    """Exception raised for GraphQL errors."""

    def __init__(self, message: str, errors: list[dict[str, Any]]):
        self.message = message
        self.errors = errors
        super().__init__(message)


def raise_for_graphql_errors(response: dict[str, Any]) -> dict[str, Any]:
    """Return the 'data' portion of a response, raising if it carries errors.

    Raises:
        GraphQLError: If the response contains top-level errors
    """
    if response.get("errors"):
        errors = response["errors"]
        error_messages = "; ".join(e.get("message", str(e)) for e in errors)
        raise GraphQLError(f"GraphQL errors: {error_messages}", errors)
    return response.get("data") or {}


def build_endpoint(shop_subdomain: str, api_version: str) -> str:
    """Admin API GraphQL endpoint of a shop."""
    return f"https://{shop_subdomain}.myshopify.com/admin/api/{api_version}/graphql.json"


class GraphQLExecutor:
    """Executes GraphQL requests against an endpoint.

    Supports pluggable authentication via the Auth protocol.

    Examples:
        executor = GraphQLExecutor(url, auth=AccessTokenAuth(token))
        executor = GraphQLExecutor(url, auth=BasicAuth(key, password))

        async with GraphQLExecutor(url, auth=auth) as executor:
            response = await executor.execute("{ shop { name } }")
    """

    def __init__(
        self,
        url: str,
        auth: Auth,
        *,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the executor.

        Args:
            url: GraphQL endpoint URL
            auth: Authentication handler (implements Auth protocol)
            timeout: Request timeout in seconds
            transport: Optional httpx transport, mostly for tests
        """
        self.url = url
        self.timeout = timeout
        self._auth = auth
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "GraphQLExecutor":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
            try:
                # Token exchanging handlers only know their headers afterwards
                if isinstance(self._auth, TokenExchange):
                    await self._auth.exchange(client)
                client.headers.update(self._auth.get_headers())
            except BaseException:
                await client.aclose()
                raise
            self._client = client
        return self._client

    async def close(self):
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def execute(
        self,
        query: str,
        variables: Mapping[str, Any] | str | None = None,
    ) -> dict[str, Any]:
        """Execute a raw GraphQL request.

        Args:
            query: GraphQL query or mutation string
            variables: Variables as a mapping or a JSON object string

        Returns:
            The decoded JSON response, ``errors`` included

        Raises:
            httpx.HTTPStatusError: On a non-success HTTP status
            httpx.TransportError: On network failures
        """
        client = await self._get_client()

        payload: dict[str, Any] = {"query": query}
        if isinstance(variables, str):
            variables = json.loads(variables) if variables.strip() else None
        if variables is not None:
            payload["variables"] = dict(variables)

        response = await client.post(self.url, json=payload)
        response.raise_for_status()
        return response.json()


class ShopifyClient(GraphQLExecutor):
    """Executor bound to one shop, API version and authentication mode."""

    def __init__(
        self,
        settings: ShopifySettings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.settings = settings
        super().__init__(
            build_endpoint(settings.shop_subdomain, settings.api_version),
            resolve_auth(settings),
            timeout=settings.timeout,
            transport=transport,
        )
        logger.debug(
            f"Shopify client for {settings.shop_subdomain} "
            f"(api {settings.api_version}, auth {settings.authentication.value})"
        )
