"""FastAPI routers and utilities for the wide backend.

Example:
    # Simple usage with create_app()
    from wide.api import create_app
    app = create_app()

    # Custom configuration
    from pathlib import Path
    from wide.api import APIConfig, create_app
    config = APIConfig(
        workspace_root=Path('/srv/projects'),
        config_path=Path('/etc/wide/wide_config.json'),
    )
    app = create_app(config)

    # Compose routers manually
    from fastapi import FastAPI
    from wide.api import (
        APIConfig, ShellBridge, load_registry,
        create_file_router, create_shell_router,
    )
    config = APIConfig()
    registry = load_registry(config.config_path, config.workspace_root)
    app = FastAPI()
    app.include_router(create_file_router(config, registry))
    app.include_router(create_shell_router(config, registry, ShellBridge(config)), prefix='/ws')
"""

# Configuration
from .config import APIConfig, ConfigValidationError

# Projects and path policy
from .registry import ProjectDescriptor, ProjectRegistry, RegistryError, load_registry
from .sandbox import ExtensionPolicy, resolve_path

# Router factories
from .modules.files import create_file_router, FileActionDispatcher
from .modules.shell import create_shell_router, ShellBridge

# App factory
from .app import create_app

__all__ = [
    # Configuration
    'APIConfig',
    'ConfigValidationError',
    # Projects and path policy
    'ProjectDescriptor',
    'ProjectRegistry',
    'RegistryError',
    'load_registry',
    'ExtensionPolicy',
    'resolve_path',
    # Router factories
    'create_file_router',
    'create_shell_router',
    'FileActionDispatcher',
    'ShellBridge',
    # App factory
    'create_app',
]
