"""Pytest configuration for wide tests."""
import sys
from pathlib import Path

# Add src/back to path for src-layout imports
_PROJECT_ROOT = Path(__file__).parent.parent
_SRC_BACK = _PROJECT_ROOT / 'src' / 'back'
if str(_SRC_BACK) not in sys.path:
    sys.path.insert(0, str(_SRC_BACK))

import pytest

from wide.api.config import APIConfig
from wide.api.registry import ProjectRegistry

PROJECT_KEY = 'secret-key'


@pytest.fixture
def workspace_root(tmp_path):
    """Create a temporary workspace root for testing."""
    workspace = tmp_path / 'workspace'
    workspace.mkdir()
    return workspace


@pytest.fixture
def project_root(workspace_root):
    """Root folder of the 'Demo' project."""
    root = workspace_root / 'demo'
    root.mkdir()
    return root


@pytest.fixture
def registry_document():
    return {
        'projects': {
            PROJECT_KEY: {'name': 'Demo', 'folder': 'demo', 'owner': 'ada'},
            'no-folder': {'name': 'Broken'},
        }
    }


@pytest.fixture
def registry(workspace_root, project_root, registry_document):
    return ProjectRegistry.from_document(registry_document, workspace_root)


@pytest.fixture
def config(tmp_path, workspace_root):
    """Configuration with every environment-driven field pinned."""
    return APIConfig(
        workspace_root=workspace_root,
        config_path=tmp_path / 'wide_config.json',
        cors_origins=['*'],
        allow_protected_edit=False,
        use_key_hash=False,
        key_salt='',
        shell_command=('/bin/sh',),
        shell_max_sessions=20,
    )
