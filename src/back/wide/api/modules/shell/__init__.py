"""Shell module for the wide API.

Provides the terminal WebSocket: one shell process per connection, rooted
in the project folder.
"""
from .router import create_shell_router
from .service import PTYProcess, SessionLimitReached, ShellBridge, ShellSession

__all__ = [
    'create_shell_router',
    'PTYProcess',
    'SessionLimitReached',
    'ShellBridge',
    'ShellSession',
]
