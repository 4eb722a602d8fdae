"""
Service Manager for the WorkSync backend
Owns the settings, the task store and the active Azure DevOps session
"""
import logging
from typing import Any, Dict, Optional

from .auth import AdoSession, ManagedIdentityToken
from .config import Settings
from .services.ado_service import AdoClient
from .services.task_service import TaskStore

logger = logging.getLogger(__name__)


class ServiceManager:
    """
    Application context shared by the HTTP API and the MCP tools

    Features:
    - One TaskStore per process
    - ADO session set at runtime (``/ado/initialize``) or taken from the
      environment on first use
    - One cached AdoClient, replaced when the active session changes
    - One managed identity credential whose token is reused until near expiry

    Example:
        manager = ServiceManager(Settings.from_env())

        # Raises PatNotConfiguredError / OrganizationNotConfiguredError
        # when neither a runtime session nor env credentials exist
        client = await manager.get_ado_client()
        projects = await client.get_projects()
    """

    def __init__(self, settings: Settings, store: Optional[TaskStore] = None, credential=None):
        """
        Initialize service manager

        Args:
            settings: Process settings
            store: Optional task store (default: one opened on settings.database_url)
            credential: Optional azure-identity credential for managed_identity mode
        """
        self.settings = settings
        self.store = store or TaskStore(settings.database_url)

        self._session: Optional[AdoSession] = None
        self._client: Optional[AdoClient] = None
        self._managed_token = ManagedIdentityToken(credential)
        self._default_user_id: Optional[int] = None

        # Statistics
        self._client_creation_count = 0
        self._cache_hit_count = 0

    @property
    def default_user_id(self) -> int:
        """Id of the user requests act as when no X-User-Id header is sent."""
        if self._default_user_id is None:
            user = self.store.get_or_create_user(
                self.settings.default_user_email,
                self.settings.default_user_name
            )
            self._default_user_id = user.id
        return self._default_user_id

    def configure_ado(self, session: AdoSession) -> None:
        """
        Make ``session`` the active ADO session

        Args:
            session: Session whose credentials passed a connection test
        """
        self._session = session
        logger.info(f"ADO session configured for organization: {session.organization}")

    async def current_session(self) -> AdoSession:
        """
        Get the active ADO session, falling back to environment credentials

        Returns:
            The runtime session if one was configured, otherwise a session
            built from ADO_* settings

        Raises:
            PatNotConfiguredError: If no token is configured
            OrganizationNotConfiguredError: If no organization is configured
            AuthenticationError: If a managed identity token can't be acquired
        """
        if self._session is not None:
            return self._session

        managed_token = None
        if self.settings.ado_auth_mode == 'managed_identity' and self.settings.ado_organization:
            managed_token = await self._managed_token.get_token()
        return AdoSession.from_settings(self.settings, managed_token=managed_token)

    async def get_ado_client(self) -> AdoClient:
        """
        Get the AdoClient for the active session

        Returns:
            The cached client, or a new one when the session (or its
            managed identity token) changed
        """
        session = await self.current_session()

        if self._client is not None and self._client.session == session:
            self._cache_hit_count += 1
            return self._client

        if self._client is not None:
            logger.info("ADO session changed, replacing cached client")
        self._client = AdoClient(session, timeout_seconds=self.settings.ado_timeout_seconds)
        self._client_creation_count += 1
        return self._client

    def create_ado_client(self, session: AdoSession) -> AdoClient:
        """Build an uncached client, e.g. to test credentials before adopting them."""
        return AdoClient(session, timeout_seconds=self.settings.ado_timeout_seconds)

    def ado_status(self) -> Dict[str, Any]:
        """Describe where ADO credentials come from, without exposing tokens."""
        if self._session is not None:
            return {'configured': True, 'source': 'runtime', **self._session.get_auth_info()}
        return {
            'configured': self.settings.ado_configured,
            'source': 'environment',
            'organization': self.settings.ado_organization,
        }

    def clear_ado_clients(self) -> None:
        """Drop the cached client; the active session is kept."""
        self._client = None

    def get_statistics(self) -> Dict[str, Any]:
        """
        Get service manager statistics

        Returns:
            Dictionary with usage statistics:
            - ado_clients: Number of cached client instances (0 or 1)
            - client_creations: Total clients created (including replaced)
            - cache_hits: Number of times the cached client was returned
            - cache_hit_rate_percent: Percentage of cache hits vs total requests
        """
        total_requests = self._client_creation_count + self._cache_hit_count
        cache_hit_rate = (
            (self._cache_hit_count / total_requests * 100)
            if total_requests > 0 else 0.0
        )

        return {
            "ado_clients": 0 if self._client is None else 1,
            "client_creations": self._client_creation_count,
            "cache_hits": self._cache_hit_count,
            "cache_hit_rate_percent": round(cache_hit_rate, 2),
        }

    def __repr__(self) -> str:
        """String representation for debugging"""
        organization = self._session.organization if self._session else self.settings.ado_organization
        return (
            f"ServiceManager(organization='{organization}', "
            f"auth_mode='{self.settings.ado_auth_mode}')"
        )
