"""Authentication handlers for the Shopify Admin API.

Each AuthenticationMode maps to one handler:

    apiKey       BasicAuth         HTTP basic pair (API key + password)
    accessToken  AccessTokenAuth   X-Shopify-Access-Token header
    oAuth2       OAuth2Auth        client credentials exchange, then the
                                   issued token in X-Shopify-Access-Token

Handlers implement the Auth protocol. Handlers that must talk to the shop
before they can produce headers also implement TokenExchange.
"""

import base64
import logging
from typing import Dict, Protocol, runtime_checkable

import httpx

from .config import CREDENTIALS_BY_MODE, AuthenticationMode, ShopifySettings
from .errors import AuthenticationError

logger = logging.getLogger(__name__)

ACCESS_TOKEN_HEADER = "X-Shopify-Access-Token"


@runtime_checkable
class Auth(Protocol):
    """Protocol for authentication handlers.

    Example:
        class MyCustomAuth:
            def __init__(self, token: str):
                self.token = token

            def get_headers(self) -> dict[str, str]:
                return {"Authorization": f"Bearer {self.token}"}
    """

    def get_headers(self) -> Dict[str, str]:
        """Return headers to include in requests."""
        ...


@runtime_checkable
class TokenExchange(Protocol):
    """Handlers that obtain their credentials over the network first."""

    async def exchange(self, client: httpx.AsyncClient) -> None:
        """Fetch a token if none is cached yet."""
        ...


class BasicAuth:
    """HTTP Basic authentication.

    Args:
        username: Username (the private app API key)
        password: Password

    Example:
        auth = BasicAuth("key", "secret")
    """

    def __init__(self, username: str, password: str):
        self.username = username
        self.password = password

    def get_headers(self) -> Dict[str, str]:
        credentials = f"{self.username}:{self.password}"
        encoded = base64.b64encode(credentials.encode()).decode()
        return {"Authorization": f"Basic {encoded}"}


class AccessTokenAuth:
    """Shopify access token sent in its own header.

    Example:
        auth = AccessTokenAuth("shpat_...")
    """

    def __init__(self, access_token: str, header_name: str = ACCESS_TOKEN_HEADER):
        self.access_token = access_token
        self.header_name = header_name

    def get_headers(self) -> Dict[str, str]:
        return {self.header_name: self.access_token}


class OAuth2Auth:
    """OAuth2 client credentials grant.

    The token is requested once from the shop's token endpoint and reused
    for the lifetime of the handler.

    Args:
        token_url: Token endpoint of the shop
        client_id: App client id
        client_secret: App client secret
        access_token: Already issued token, skips the exchange
    """

    def __init__(
        self,
        token_url: str,
        client_id: str,
        client_secret: str,
        access_token: str | None = None,
    ):
        self.token_url = token_url
        self.client_id = client_id
        self.client_secret = client_secret
        self.access_token = access_token

    async def exchange(self, client: httpx.AsyncClient) -> None:
        if self.access_token:
            return

        logger.info(f"Requesting OAuth2 access token from {self.token_url}")
        response = await client.post(
            self.token_url,
            data={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "grant_type": "client_credentials",
            },
        )
        response.raise_for_status()
        token = response.json().get("access_token")
        if not token:
            raise AuthenticationError(f"Token endpoint {self.token_url} returned no access_token")
        self.access_token = token

    def get_headers(self) -> Dict[str, str]:
        if not self.access_token:
            raise RuntimeError("OAuth2 token not exchanged yet. Await exchange() first.")
        return {ACCESS_TOKEN_HEADER: self.access_token}


def build_token_url(shop_subdomain: str) -> str:
    return f"https://{shop_subdomain}.myshopify.com/admin/oauth/access_token"


def resolve_auth(settings: ShopifySettings) -> Auth:
    """Create the handler matching the settings' authentication mode."""
    mode = settings.authentication
    credentials = settings.credentials
    expected = CREDENTIALS_BY_MODE[mode]
    if not isinstance(credentials, expected):
        raise TypeError(
            f"Authentication '{mode.value}' requires {expected.__name__}, "
            f"got {type(credentials).__name__}"
        )

    if mode is AuthenticationMode.API_KEY:
        return BasicAuth(credentials.api_key, credentials.password)

    if mode is AuthenticationMode.ACCESS_TOKEN:
        return AccessTokenAuth(credentials.access_token)

    return OAuth2Auth(
        build_token_url(credentials.shop_subdomain),
        credentials.client_id,
        credentials.client_secret,
        access_token=credentials.access_token,
    )
