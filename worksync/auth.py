"""
Authentication handling for Azure DevOps
Supports Personal Access Tokens, OAuth bearer tokens and tokens obtained
through Azure Managed Identity / DefaultAzureCredential
"""
import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from azure.core.credentials import AccessToken
from azure.identity import DefaultAzureCredential
from msrest.authentication import Authentication, BasicAuthentication, BasicTokenAuthentication

from .constants import AZURE_DEVOPS_RESOURCE_ID
from .errors import (
    AdoNotInitializedError,
    AuthenticationError,
    OrganizationNotConfiguredError,
    PatNotConfiguredError,
)
from .log_sanitizer import safe_log_error

logger = logging.getLogger(__name__)

# Managed identity tokens are refreshed this long before they expire
TOKEN_REFRESH_MARGIN_SECONDS = 300


class AuthMode:
    """How the token is presented to Azure DevOps."""

    PAT = "pat"
    BEARER = "bearer"

    ALL = (PAT, BEARER)


def construct_base_url(organization: str) -> str:
    """
    Derive the API base URL from an organization name or host.

    Organizations containing a dot are treated as a full host
    (e.g. ``contoso.visualstudio.com``); anything else is a
    dev.azure.com organization.
    """
    if '.' in organization:
        return f"https://{organization}"
    return f"https://dev.azure.com/{organization}"


@dataclass(frozen=True)
class AdoSession:
    """
    Credentials for one Azure DevOps organization.

    A session is passed explicitly to every AdoClient; nothing about the
    active organization or token is kept in module state.

    Example:
        session = AdoSession("contoso", pat, AuthMode.PAT)
        client = AdoClient(session)
        projects = await client.get_projects()
    """

    organization: str
    token: Optional[str] = field(default=None, repr=False)
    mode: str = AuthMode.PAT

    def __post_init__(self):
        if self.mode not in AuthMode.ALL:
            raise ValueError(f"Unknown auth mode: {self.mode}")

    @property
    def base_url(self) -> str:
        return construct_base_url(self.organization)

    def is_authenticated(self) -> bool:
        """True iff a token is present."""
        return bool(self.token)

    def credentials(self) -> Authentication:
        """
        Build msrest credentials for this session.

        PAT mode authenticates with HTTP Basic and an empty user name
        (``Basic base64(":" + pat)``); bearer mode sends ``Bearer {token}``.

        Raises:
            AdoNotInitializedError: If the session has no token
        """
        if not self.is_authenticated():
            raise AdoNotInitializedError()

        if self.mode == AuthMode.PAT:
            return BasicAuthentication('', self.token)
        return BasicTokenAuthentication({'access_token': self.token})

    def get_auth_info(self) -> dict:
        """Get information about this session without exposing the token."""
        return {
            "method": "Personal Access Token" if self.mode == AuthMode.PAT else "Bearer Token",
            "organization": self.organization,
            "base_url": self.base_url,
            "authenticated": self.is_authenticated()
        }

    @classmethod
    def from_settings(cls, settings, managed_token: Optional[str] = None) -> "AdoSession":
        """
        Build the session described by environment settings.

        Args:
            settings: Process settings
            managed_token: Entra ID token, required in managed_identity mode

        Raises:
            PatNotConfiguredError: If the configured auth mode has no token
            OrganizationNotConfiguredError: If no organization is set
            AdoNotInitializedError: If managed_identity mode has no token yet
        """
        if settings.ado_auth_mode == 'pat' and not settings.ado_pat:
            raise PatNotConfiguredError()
        if settings.ado_auth_mode == 'bearer' and not settings.ado_access_token:
            raise PatNotConfiguredError("ADO_ACCESS_TOKEN")
        if not settings.ado_organization:
            raise OrganizationNotConfiguredError()

        if settings.ado_auth_mode == 'managed_identity':
            if not managed_token:
                raise AdoNotInitializedError("Managed identity token has not been acquired")
            return cls(settings.ado_organization, managed_token, AuthMode.BEARER)
        if settings.ado_auth_mode == 'bearer':
            return cls(settings.ado_organization, settings.ado_access_token, AuthMode.BEARER)
        return cls(settings.ado_organization, settings.ado_pat, AuthMode.PAT)


class ManagedIdentityToken:
    """
    Entra ID access token for Azure DevOps, shared by every request.

    One credential is built per process and its token is reused until
    ``TOKEN_REFRESH_MARGIN_SECONDS`` before it expires.

    This works for:
    - Azure VMs, App Service and Container Apps with managed identity
    - Service principals configured through AZURE_CLIENT_ID/SECRET/TENANT_ID
    - Local development with Azure CLI login

    Example:
        token = ManagedIdentityToken()
        session = AdoSession("contoso", await token.get_token(), AuthMode.BEARER)
    """

    def __init__(self, credential=None, clock: Callable[[], float] = time.time):
        """
        Args:
            credential: Optional azure-identity credential (default: DefaultAzureCredential)
            clock: Source of the current epoch time
        """
        self._credential = credential
        self._clock = clock
        self._access_token: Optional[AccessToken] = None
        self._lock = asyncio.Lock()

    @property
    def credential(self):
        if self._credential is None:
            self._credential = DefaultAzureCredential()
        return self._credential

    def is_fresh(self) -> bool:
        """Whether the cached token outlives the refresh margin."""
        if self._access_token is None:
            return False
        return self._access_token.expires_on - self._clock() > TOKEN_REFRESH_MARGIN_SECONDS

    def _acquire(self) -> AccessToken:
        try:
            return self.credential.get_token(f"{AZURE_DEVOPS_RESOURCE_ID}/.default")
        except Exception as e:
            logger.error(safe_log_error(e, "Managed identity authentication failed"))
            raise AuthenticationError(
                message=f"Managed identity authentication failed: {e}",
                original_error=e
            )

    async def get_token(self) -> str:
        """
        Return a valid token, acquiring a new one off the event loop when needed.

        Raises:
            AuthenticationError: If no token could be acquired
        """
        async with self._lock:
            if not self.is_fresh():
                self._access_token = await asyncio.to_thread(self._acquire)
                logger.info("Acquired Azure DevOps token via managed identity")
            return self._access_token.token
