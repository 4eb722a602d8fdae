"""
Unit tests for authentication and session construction
"""
import base64
from unittest.mock import Mock

import pytest
import requests
from azure.core.credentials import AccessToken

from worksync.auth import (
    TOKEN_REFRESH_MARGIN_SECONDS,
    AdoSession,
    AuthMode,
    ManagedIdentityToken,
    construct_base_url,
)
from worksync.config import Settings
from worksync.errors import (
    AdoNotInitializedError,
    AuthenticationError,
    OrganizationNotConfiguredError,
    PatNotConfiguredError,
)


def authorization_header(session: AdoSession) -> str:
    """Sign a dummy request with the session's credentials"""
    http = session.credentials().signed_session()
    prepared = http.prepare_request(requests.Request('GET', 'https://dev.azure.com/contoso/_apis/projects'))
    return prepared.headers['Authorization']


class TestConstructBaseUrl:
    """Test base URL derivation"""

    @pytest.mark.parametrize("organization,expected", [
        ("contoso", "https://dev.azure.com/contoso"),
        ("my-org", "https://dev.azure.com/my-org"),
        ("contoso.visualstudio.com", "https://contoso.visualstudio.com"),
        ("ado.internal.example.com", "https://ado.internal.example.com"),
    ])
    def test_base_url(self, organization, expected):
        """Test that dotted organizations are treated as hosts"""
        assert construct_base_url(organization) == expected
        assert AdoSession(organization, "token").base_url == expected


class TestAdoSession:
    """Test AdoSession"""

    def test_is_authenticated(self):
        """Test token presence"""
        assert AdoSession("contoso", "token").is_authenticated()
        assert not AdoSession("contoso").is_authenticated()
        assert not AdoSession("contoso", "").is_authenticated()

    def test_pat_header(self):
        """Test PAT mode sends Basic base64(':' + pat)"""
        header = authorization_header(AdoSession("contoso", "my-pat", AuthMode.PAT))
        assert header == "Basic " + base64.b64encode(b":my-pat").decode()

    def test_bearer_header(self):
        """Test bearer mode sends the token as is"""
        header = authorization_header(AdoSession("contoso", "eyJ0eXAi", AuthMode.BEARER))
        assert header == "Bearer eyJ0eXAi"

    def test_credentials_without_token(self):
        """Test that credentials require a token"""
        with pytest.raises(AdoNotInitializedError):
            AdoSession("contoso").credentials()

    def test_unknown_mode(self):
        """Test that modes are validated"""
        with pytest.raises(ValueError):
            AdoSession("contoso", "token", "kerberos")

    def test_token_not_in_repr(self):
        """Test that the token never shows up in repr or auth info"""
        session = AdoSession("contoso", "super-secret-token")
        assert "super-secret-token" not in repr(session)
        assert "super-secret-token" not in str(session.get_auth_info())

    def test_auth_info(self):
        """Test auth info"""
        info = AdoSession("contoso", "token", AuthMode.BEARER).get_auth_info()
        assert info == {
            "method": "Bearer Token",
            "organization": "contoso",
            "base_url": "https://dev.azure.com/contoso",
            "authenticated": True,
        }

    def test_sessions_are_hashable(self):
        """Test that equal sessions compare and hash equal"""
        assert AdoSession("contoso", "a") == AdoSession("contoso", "a")
        assert len({AdoSession("contoso", "a"), AdoSession("contoso", "a"), AdoSession("contoso", "b")}) == 2


class TestManagedIdentityToken:
    """Test managed identity token acquisition and reuse"""

    @pytest.mark.asyncio
    async def test_token_acquired(self):
        """Test that the credential is asked for an Azure DevOps token"""
        credential = Mock()
        credential.get_token.return_value = AccessToken("entra-token", 10_000)

        token = await ManagedIdentityToken(credential, clock=lambda: 0).get_token()

        credential.get_token.assert_called_once_with("499b84ac-1321-427f-aa17-267ca6975798/.default")
        assert token == "entra-token"

    @pytest.mark.asyncio
    async def test_token_cached_until_near_expiry(self):
        """Test the token is reused, then refreshed inside the margin"""
        now = [0.0]
        credential = Mock()
        credential.get_token.side_effect = [AccessToken("a", 1000), AccessToken("b", 5000)]
        cache = ManagedIdentityToken(credential, clock=lambda: now[0])

        assert await cache.get_token() == "a"
        now[0] = 1000 - TOKEN_REFRESH_MARGIN_SECONDS - 1
        assert await cache.get_token() == "a"
        now[0] = 1000 - TOKEN_REFRESH_MARGIN_SECONDS
        assert await cache.get_token() == "b"
        assert credential.get_token.call_count == 2

    @pytest.mark.asyncio
    async def test_failure_raises_authentication_error(self):
        """Test that credential failures are wrapped"""
        credential = Mock()
        credential.get_token.side_effect = RuntimeError("no identity available")

        with pytest.raises(AuthenticationError, match="Managed identity authentication failed"):
            await ManagedIdentityToken(credential).get_token()

    def test_not_fresh_before_first_token(self):
        assert ManagedIdentityToken(Mock()).is_fresh() is False


class TestFromSettings:
    """Test building sessions from environment settings"""

    def test_pat(self):
        """Test PAT settings"""
        session = AdoSession.from_settings(Settings(ado_organization="contoso", ado_pat="pat"))
        assert session == AdoSession("contoso", "pat", AuthMode.PAT)

    def test_bearer(self):
        """Test bearer settings"""
        settings = Settings(ado_organization="contoso", ado_access_token="tok", ado_auth_mode="bearer")
        assert AdoSession.from_settings(settings).mode == AuthMode.BEARER

    def test_missing_pat_checked_before_organization(self):
        """Test that a missing PAT is reported first"""
        with pytest.raises(PatNotConfiguredError):
            AdoSession.from_settings(Settings())

    def test_missing_organization(self):
        """Test organization check when a PAT is present"""
        with pytest.raises(OrganizationNotConfiguredError):
            AdoSession.from_settings(Settings(ado_pat="pat"))

    def test_missing_bearer_token(self):
        """Test bearer mode names ADO_ACCESS_TOKEN"""
        with pytest.raises(PatNotConfiguredError, match="ADO_ACCESS_TOKEN"):
            AdoSession.from_settings(Settings(ado_organization="contoso", ado_auth_mode="bearer"))

    def test_managed_identity_uses_acquired_token(self):
        """Test managed identity sessions are bearer sessions over the given token"""
        settings = Settings(ado_organization="contoso", ado_auth_mode="managed_identity")
        session = AdoSession.from_settings(settings, managed_token="entra")
        assert session == AdoSession("contoso", "entra", AuthMode.BEARER)

    def test_managed_identity_without_token(self):
        settings = Settings(ado_organization="contoso", ado_auth_mode="managed_identity")
        with pytest.raises(AdoNotInitializedError):
            AdoSession.from_settings(settings)
