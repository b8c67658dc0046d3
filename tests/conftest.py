"""Fixtures comunes: servidor TCP de loopback y limpieza de dobles."""

import socket
import threading
import time

import pytest

from tests.doubles.fake_client import FakeClient


class ScriptedServer:
    """Servidor TCP local; cada conexión aceptada se pasa a `handler(conn)`.

    Tras el handler espera a que el cliente cierre su extremo y lo cuenta en
    `peer_closed` (sirve para comprobar que no quedan sockets abiertos).
    """

    def __init__(self, handler):
        self.handler = handler
        self.connections = 0
        self.peer_closed = 0
        self.received = []
        self._stop = threading.Event()
        self._sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self._sock.bind(("127.0.0.1", 0))
        self._sock.listen(5)
        self._sock.settimeout(0.1)
        self.port = self._sock.getsockname()[1]
        self._thread = threading.Thread(target=self._serve, name="ScriptedServer", daemon=True)
        self._thread.start()

    def _serve(self):
        while not self._stop.is_set():
            try:
                conn, _ = self._sock.accept()
            except socket.timeout:
                continue
            except OSError:
                return
            self.connections += 1
            with conn:
                conn.settimeout(3)
                try:
                    self.handler(self, conn)
                    while conn.recv(1024):
                        pass
                    self.peer_closed += 1
                except OSError:
                    pass

    def read_request(self, conn):
        request = conn.recv(1024)
        self.received.append(request)
        return request

    def wait_for(self, predicate, timeout=3.0):
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if predicate():
                return True
            time.sleep(0.01)
        return predicate()

    def close(self):
        self._stop.set()
        self._thread.join(timeout=2)
        self._sock.close()


@pytest.fixture
def tcp_server():
    """Crea servidores de loopback a demanda: tcp_server(handler)."""
    servers = []

    def start(handler):
        server = ScriptedServer(handler)
        servers.append(server)
        return server

    yield start
    for server in servers:
        server.close()


@pytest.fixture
def closed_port():
    """Puerto local sin nadie escuchando (conexiones rechazadas)."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return port


@pytest.fixture(autouse=True)
def reset_fake_clients():
    FakeClient.instances.clear()
    yield
    FakeClient.instances.clear()
