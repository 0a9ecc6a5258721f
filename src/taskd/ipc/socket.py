"""Socket-pair messenger between a supervisor and one forked child."""

from __future__ import annotations

import logging
import os
import select
import socket

from taskd.ipc.messenger import MessengerError, Role

logger = logging.getLogger(__name__)

_OTHER_ROLE = {Role.PARENT: Role.CHILD, Role.CHILD: Role.PARENT}


class SocketMessenger:
    """AF_UNIX stream pair; each side of the fork owns one endpoint.

    The role is derived from the live pid compared with the pid that built the
    messenger, so nothing beyond the duplicated descriptors is shared.
    """

    def __init__(self, *, chunk_size: int = 4096) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be > 0.")
        self.chunk_size = chunk_size
        self._creator_pid = os.getpid()
        self._sockets: dict[Role, socket.socket] | None = None

    @property
    def role(self) -> Role:
        return Role.CHILD if os.getpid() != self._creator_pid else Role.PARENT

    @property
    def initialized(self) -> bool:
        return self._sockets is not None

    @property
    def released(self) -> bool:
        """True once both endpoints are closed in this process."""

        if self._sockets is None:
            return False
        return all(endpoint.fileno() == -1 for endpoint in self._sockets.values())

    def init(self) -> None:
        """Create the connected endpoint pair."""

        if self._sockets is not None:
            raise MessengerError("Messenger is already initialized.")
        try:
            parent_end, child_end = socket.socketpair(socket.AF_UNIX, socket.SOCK_STREAM)
        except OSError as error:
            raise MessengerError(f"socketpair() failed: {error}") from error
        self._sockets = {Role.PARENT: parent_end, Role.CHILD: child_end}

    def after_fork(self) -> None:
        """Close the endpoint the current role does not own."""

        self._require_sockets("after_fork")[_OTHER_ROLE[self.role]].close()

    def send(self, message: bytes) -> bool:
        """Close the other role's endpoint, then write on ours."""

        role = self.role
        sockets = self._require_sockets("send")
        sockets[_OTHER_ROLE[role]].close()
        try:
            sockets[role].sendall(message)
        except OSError as error:
            logger.debug("Messenger send failed for %s role: %s", role.value, error)
            return False
        return True

    def receive(self) -> bytes:
        """Return all bytes currently buffered for this role, or ``b""``."""

        endpoint = self._require_sockets("receive")[self.role]
        chunks: list[bytes] = []
        while True:
            try:
                chunk = endpoint.recv(self.chunk_size, socket.MSG_DONTWAIT)
            except BlockingIOError:
                break
            except OSError as error:
                raise MessengerError(f"recv() failed: {error}") from error
            if not chunk:
                break
            chunks.append(chunk)
        return b"".join(chunks)

    def has_message(self) -> bool:
        endpoint = self._require_sockets("has_message")[self.role]
        if endpoint.fileno() == -1:
            return False
        readable, _, _ = select.select([endpoint], [], [], 0)
        if not readable:
            return False
        # A closed peer makes the socket readable with nothing to read.
        try:
            peeked = endpoint.recv(1, socket.MSG_PEEK | socket.MSG_DONTWAIT)
        except BlockingIOError:
            return False
        return bool(peeked)

    def close(self) -> None:
        """Close only this role's endpoint."""

        if self._sockets is None:
            return
        self._sockets[self.role].close()

    def _require_sockets(self, operation: str) -> dict[Role, socket.socket]:
        if self._sockets is None:
            raise MessengerError(f"Cannot call {operation}() before init().")
        return self._sockets
