"""
Runtime configuration for the WorkSync backend.

Settings are read once at process start from the environment; ``main()``
loads a ``.env`` file with python-dotenv before calling ``Settings.from_env``.
"""
import os
from dataclasses import dataclass, field
from typing import List, Mapping, Optional


PLACEHOLDER_TOKENS = {'your-pat-token-here', 'your-access-token-here', ''}

DEFAULT_CORS_ORIGINS = ['http://localhost:3000', 'http://localhost:5173']

# Backlog filters applied when a request names none
DEFAULT_BACKLOG_STATES = ['Started', 'Committed', 'Proposed', 'Active']
DEFAULT_BACKLOG_TYPES = ['Scenario', 'Deliverable', 'Task', 'Bug', 'Task Group']


def _split_list(value: Optional[str]) -> List[str]:
    """Split a comma-separated environment value, dropping blanks."""
    if not value:
        return []
    return [part.strip() for part in value.split(',') if part.strip()]


def _list_setting(env: Mapping[str, str], key: str, default: List[str]) -> List[str]:
    """An unset variable keeps ``default``; a set but blank one clears it."""
    if key not in env:
        return list(default)
    return _split_list(env[key])


def _clean_token(value: Optional[str]) -> Optional[str]:
    if value is None or value.strip() in PLACEHOLDER_TOKENS:
        return None
    return value.strip()


@dataclass
class Settings:
    """Process-wide settings, immutable after startup."""

    ado_organization: Optional[str] = None
    ado_pat: Optional[str] = None
    ado_access_token: Optional[str] = None
    ado_auth_mode: str = "pat"
    ado_timeout_seconds: float = 30.0
    ado_backlog_states: List[str] = field(default_factory=lambda: list(DEFAULT_BACKLOG_STATES))
    ado_backlog_types: List[str] = field(default_factory=lambda: list(DEFAULT_BACKLOG_TYPES))

    database_url: str = "sqlite:///./worksync.db"

    rate_limit_window_seconds: float = 15 * 60
    rate_limit_max_requests: int = 100
    cors_origins: List[str] = field(default_factory=lambda: list(DEFAULT_CORS_ORIGINS))

    host: str = "0.0.0.0"
    port: int = 3001
    log_level: str = "INFO"
    environment: str = "development"

    default_user_email: str = "demo@worksync.local"
    default_user_name: str = "Demo User"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Build settings from environment variables.

        Args:
            environ: Mapping to read from (default: os.environ)

        Returns:
            Settings instance

        Raises:
            ValueError: If a numeric variable or ADO_AUTH_MODE is malformed
        """
        env = os.environ if environ is None else environ

        auth_mode = env.get('ADO_AUTH_MODE', 'pat').strip().lower()
        if auth_mode not in ('pat', 'bearer', 'managed_identity'):
            raise ValueError(
                f"Invalid ADO_AUTH_MODE: '{auth_mode}'. "
                "Expected one of: pat, bearer, managed_identity"
            )

        cors_origins = _split_list(env.get('CORS_ORIGINS')) or list(DEFAULT_CORS_ORIGINS)

        return cls(
            ado_organization=(env.get('ADO_DEFAULT_ORGANIZATION') or '').strip() or None,
            ado_pat=_clean_token(env.get('ADO_PERSONAL_ACCESS_TOKEN')),
            ado_access_token=_clean_token(env.get('ADO_ACCESS_TOKEN')),
            ado_auth_mode=auth_mode,
            ado_timeout_seconds=float(env.get('ADO_TIMEOUT_SECONDS', 30)),
            ado_backlog_states=_list_setting(env, 'ADO_BACKLOG_STATES', DEFAULT_BACKLOG_STATES),
            ado_backlog_types=_list_setting(env, 'ADO_BACKLOG_TYPES', DEFAULT_BACKLOG_TYPES),
            database_url=env.get('DATABASE_URL', cls.database_url),
            rate_limit_window_seconds=int(env.get('RATE_LIMIT_WINDOW_MS', 15 * 60 * 1000)) / 1000,
            rate_limit_max_requests=int(env.get('RATE_LIMIT_MAX', 100)),
            cors_origins=cors_origins,
            host=env.get('HOST', cls.host),
            port=int(env.get('PORT', 3001)),
            log_level=env.get('LOG_LEVEL', 'INFO'),
            environment=env.get('WORKSYNC_ENV', 'development'),
            default_user_email=env.get('DEFAULT_USER_EMAIL', cls.default_user_email),
            default_user_name=env.get('DEFAULT_USER_NAME', cls.default_user_name),
        )

    @property
    def ado_configured(self) -> bool:
        """Whether the environment carries enough to talk to ADO."""
        if not self.ado_organization:
            return False
        if self.ado_auth_mode == 'pat':
            return bool(self.ado_pat)
        if self.ado_auth_mode == 'bearer':
            return bool(self.ado_access_token)
        return True
