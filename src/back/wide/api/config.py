"""Configuration for the wide API."""
import os
from dataclasses import dataclass, field
from pathlib import Path

from .sandbox import ExtensionPolicy


class ConfigValidationError(ValueError):
    """Raised when configuration values are unusable."""


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name, '').strip().lower()
    if not raw:
        return default
    return raw in {'1', 'true', 'yes', 'on'}


def _default_cors_origins() -> list[str]:
    """Get default CORS origins, supporting env override."""
    env_origins = os.environ.get('CORS_ORIGINS', '')
    if env_origins:
        return [o.strip() for o in env_origins.split(',') if o.strip()]
    return ['*']


def _default_shell_command() -> tuple[str, ...]:
    raw = os.environ.get('WIDE_SHELL', '/bin/bash')
    return tuple(raw.split())


@dataclass(frozen=True)
class APIConfig:
    """Central configuration for all API routers.

    Built once at startup and passed to every create_*_router() factory,
    the file dispatcher and the shell bridge. Nothing reads the environment
    after construction.
    """
    workspace_root: Path = field(
        default_factory=lambda: Path(os.environ.get('WIDE_WORKSPACE_ROOT', './project'))
    )
    config_path: Path = field(
        default_factory=lambda: Path(os.environ.get('WIDE_CONFIG', 'wide_config.json'))
    )
    cors_origins: list[str] = field(default_factory=_default_cors_origins)

    # Extension policy: files matching protected_extensions (server-side
    # scripts) are off limits unless allow_protected_edit is set.
    allow_protected_edit: bool = field(
        default_factory=lambda: _env_flag('WIDE_ALLOW_PROTECTED_EDIT')
    )
    protected_extensions: tuple[str, ...] = ('.php',)

    # Optional salted MD5 of the request key before registry lookup.
    use_key_hash: bool = field(default_factory=lambda: _env_flag('WIDE_USE_KEY_HASH'))
    key_salt: str = field(default_factory=lambda: os.environ.get('WIDE_KEY_SALT', ''))

    # Terminal
    shell_command: tuple[str, ...] = field(default_factory=_default_shell_command)
    shell_term: str = 'xterm-color'
    shell_max_sessions: int = field(
        default_factory=lambda: os.environ.get('WIDE_SHELL_MAX_SESSIONS', '20')
    )
    shell_read_size: int = 4096

    def __post_init__(self):
        # frozen: normalize through object.__setattr__
        object.__setattr__(self, 'workspace_root', Path(self.workspace_root))
        object.__setattr__(self, 'config_path', Path(self.config_path))
        object.__setattr__(self, 'shell_command', tuple(self.shell_command))
        object.__setattr__(
            self,
            'protected_extensions',
            tuple(ext.lower() for ext in self.protected_extensions),
        )

        try:
            max_sessions = int(self.shell_max_sessions)
        except (TypeError, ValueError):
            raise ConfigValidationError(
                f"Invalid shell_max_sessions={self.shell_max_sessions!r}: must be an integer"
            )
        if max_sessions < 1:
            raise ConfigValidationError('shell_max_sessions must be at least 1')
        object.__setattr__(self, 'shell_max_sessions', max_sessions)

        if not self.shell_command:
            raise ConfigValidationError('shell_command must not be empty')

    @property
    def extension_policy(self) -> ExtensionPolicy:
        """Policy applied to actions that touch individual files."""
        return ExtensionPolicy(
            protected=frozenset(self.protected_extensions),
            allow_protected=self.allow_protected_edit,
        )

    @property
    def lookup_salt(self) -> str | None:
        """Salt for request-key hashing, or None when keys are used as-is."""
        return self.key_salt if self.use_key_hash else None
