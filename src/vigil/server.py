"""Local socket that lets processes register ephemeral services."""

import json
import logging
import socket
import socketserver
import threading
from typing import TYPE_CHECKING, Set, Tuple

if TYPE_CHECKING:
    from .coordinator import Coordinator

logger = logging.getLogger(__name__)

RECV_SIZE = 65536


class Session:
    """One client connection and the watcher keys it registered."""

    def __init__(self, request: socket.socket, address: Tuple[str, int]):
        self.request = request
        self.address = address
        self.owned_keys: Set[str] = set()

    def __repr__(self) -> str:
        return f"Session({self.address[0]}:{self.address[1]}, keys={sorted(self.owned_keys)})"


def _hang_up(request: socket.socket) -> None:
    try:
        request.shutdown(socket.SHUT_RDWR)
    except OSError:
        pass


class _RegistrationHandler(socketserver.BaseRequestHandler):
    server: "RegistrationServer"

    def handle(self):
        session = self.server.open_session(self.request, self.client_address)
        try:
            while True:
                try:
                    data = self.request.recv(RECV_SIZE)
                except OSError:
                    break
                if not data:
                    break
                self.server.receive_chunk(session, data)
        finally:
            self.server.close_session(session)


class RegistrationServer(socketserver.ThreadingTCPServer):
    """Threaded TCP server feeding JSON registration messages to a Coordinator.

    Every read is parsed as one complete JSON document; reads that do not
    parse are dropped. Nothing is ever written back to the client. When a
    client disconnects, every key it registered is removed.
    """

    allow_reuse_address = True
    block_on_close = True

    def __init__(self, coordinator: "Coordinator", host: str = "127.0.0.1", port: int = 1025):
        self.coordinator = coordinator
        self.sessions: Set[Session] = set()
        self._sessions_lock = threading.Lock()
        self._thread = None
        self._stopping = False
        super().__init__((host, port), _RegistrationHandler)

    def start(self) -> None:
        self._thread = threading.Thread(target=self.serve_forever, name="vigil-registration", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Stop accepting, hang up every client, and wait for their cleanup."""
        if self._thread is not None:
            self.shutdown()
            self._thread = None
        with self._sessions_lock:
            self._stopping = True
            active = list(self.sessions)
        for session in active:
            _hang_up(session.request)
        self.server_close()

    def open_session(self, request: socket.socket, address: Tuple[str, int]) -> Session:
        session = Session(request, address)
        with self._sessions_lock:
            self.sessions.add(session)
            stopping = self._stopping
        logger.info("client %s:%d connected", *address[:2])
        if stopping:
            # Accepted after stop() took its snapshot of sessions
            _hang_up(request)
        return session

    def receive_chunk(self, session: Session, data: bytes) -> None:
        try:
            message = json.loads(data)
        except ValueError:
            logger.debug("discarding unparseable chunk of %d bytes from %s", len(data), session.address[0])
            return
        try:
            session.owned_keys.update(self.coordinator.receive_registration(message))
        except Exception:
            logger.exception("failed to process registration from %s:%d", *session.address[:2])

    def close_session(self, session: Session) -> None:
        with self._sessions_lock:
            self.sessions.discard(session)
        logger.info("client %s:%d disconnected", *session.address[:2])
        for key in sorted(session.owned_keys):
            try:
                self.coordinator.remove_watcher(key)
            except Exception:
                logger.exception("failed to remove %s after disconnect", key)
        session.owned_keys.clear()
