"""Integration tests for the terminal WebSocket with real pty processes."""
import os
import sys
import time

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from wide.api import APIConfig, ShellBridge, create_app

PROJECT_KEY = 'secret-key'

pytestmark = pytest.mark.skipif(
    sys.platform == 'win32' or not os.path.exists('/bin/sh'),
    reason='needs a POSIX shell',
)


def _make_client(workspace_root, registry, shell_command=('/bin/sh',), max_sessions=20):
    config = APIConfig(
        workspace_root=workspace_root,
        shell_command=shell_command,
        shell_max_sessions=max_sessions,
    )
    bridge = ShellBridge(config)
    return TestClient(create_app(config, registry, bridge)), bridge


def _read_until(ws, marker, limit=200):
    output = b''
    for _ in range(limit):
        output += ws.receive_bytes()
        if marker in output:
            return output
    raise AssertionError(f'{marker!r} not seen in {output!r}')


def _read_to_close(ws):
    output = b''
    with pytest.raises(WebSocketDisconnect) as exc_info:
        while True:
            output += ws.receive_bytes()
    return output, exc_info.value.code


def _process_gone(pid, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        try:
            os.kill(pid, 0)
        except ProcessLookupError:
            return True
        time.sleep(0.05)
    return False


class TestShellWebSocket:
    """Tests for /ws/shell."""

    def test_unknown_key_rejected(self, workspace_root, registry):
        client, bridge = _make_client(workspace_root, registry)
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect('/ws/shell?key=nope'):
                pass
        assert exc_info.value.code == 4003
        assert bridge.session_count == 0

    def test_project_without_folder_rejected(self, workspace_root, registry):
        client, _ = _make_client(workspace_root, registry)
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect('/ws/shell?key=no-folder'):
                pass
        assert exc_info.value.code == 4003

    def test_shell_starts_in_project_root(self, workspace_root, registry, project_root):
        client, _ = _make_client(workspace_root, registry, shell_command=('/bin/sh', '-c', 'pwd'))
        with client.websocket_connect(f'/ws/shell?key={PROJECT_KEY}') as ws:
            output, code = _read_to_close(ws)
        assert str(project_root).encode() in output
        assert code == 1000

    def test_shell_without_key_starts_in_workspace_root(self, workspace_root, registry):
        client, _ = _make_client(workspace_root, registry, shell_command=('/bin/sh', '-c', 'pwd'))
        with client.websocket_connect('/ws/shell') as ws:
            output, _ = _read_to_close(ws)
        assert str(workspace_root).encode() in output

    def test_shell_term(self, workspace_root, registry):
        client, _ = _make_client(
            workspace_root, registry, shell_command=('/bin/sh', '-c', 'echo "term=$TERM"'),
        )
        with client.websocket_connect(f'/ws/shell?key={PROJECT_KEY}') as ws:
            output, _ = _read_to_close(ws)
        assert b'term=xterm-color' in output

    def test_input_reaches_shell(self, workspace_root, registry):
        client, _ = _make_client(workspace_root, registry)
        with client.websocket_connect(f'/ws/shell?key={PROJECT_KEY}') as ws:
            ws.send_text('echo wide-$((40+2))\n')
            _read_until(ws, b'wide-42')
            ws.send_bytes(b'exit\n')
            _, code = _read_to_close(ws)
        assert code == 1000

    def test_connection_close_kills_shell(self, workspace_root, registry):
        client, bridge = _make_client(workspace_root, registry)
        with client.websocket_connect(f'/ws/shell?key={PROJECT_KEY}') as ws:
            ws.send_text('echo ready-$((1+1))\n')
            _read_until(ws, b'ready-2')
            (session,) = bridge.sessions.values()
            pid = session.process.pid

        assert _process_gone(pid)

    def test_session_limit(self, workspace_root, registry):
        client, bridge = _make_client(workspace_root, registry, max_sessions=1)
        with client.websocket_connect(f'/ws/shell?key={PROJECT_KEY}') as first:
            first.send_text('echo ready-$((1+1))\n')
            _read_until(first, b'ready-2')

            with client.websocket_connect(f'/ws/shell?key={PROJECT_KEY}') as second:
                with pytest.raises(WebSocketDisconnect) as exc_info:
                    second.receive_bytes()
            assert exc_info.value.code == 4004
            assert bridge.session_count == 1

    def test_spawn_failure(self, workspace_root, registry):
        client, bridge = _make_client(
            workspace_root, registry, shell_command=('/nonexistent/shell',),
        )
        with client.websocket_connect(f'/ws/shell?key={PROJECT_KEY}') as ws:
            message = ws.receive_text()
            with pytest.raises(WebSocketDisconnect) as exc_info:
                ws.receive_bytes()
        assert message.startswith('Shell failed to start')
        assert '/nonexistent/shell' in message
        assert exc_info.value.code == 1011
        assert bridge.session_count == 0
