from __future__ import annotations

import os
import time

import allure
import pytest

from taskd.ipc import Messenger, MessengerError, Role, SocketMessenger

pytestmark = [
    allure.epic("IPC"),
    allure.feature("Socket Messenger"),
]


def _wait_for_message(messenger: SocketMessenger, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if messenger.has_message():
            return True
        time.sleep(0.01)
    return False


def _exit_code(pid: int) -> int:
    _, status = os.waitpid(pid, 0)
    return os.waitstatus_to_exitcode(status)


def test_socket_messenger_satisfies_protocol() -> None:
    assert isinstance(SocketMessenger(), Messenger)


def test_child_payload_is_received_by_parent_after_exit() -> None:
    payload = b'{"rows": 42}'
    messenger = SocketMessenger()
    messenger.init()

    pid = os.fork()
    if pid == 0:
        ok = False
        try:
            ok = messenger.role is Role.CHILD and messenger.send(payload)
        finally:
            os._exit(0 if ok else 1)

    assert _exit_code(pid) == 0
    assert messenger.role is Role.PARENT
    assert messenger.has_message()
    assert messenger.receive() == payload
    assert not messenger.has_message()
    assert messenger.receive() == b""
    messenger.close()


def test_parent_message_reaches_child() -> None:
    messenger = SocketMessenger()
    messenger.init()

    pid = os.fork()
    if pid == 0:
        ok = False
        try:
            ok = _wait_for_message(messenger) and messenger.receive() == b"go"
        finally:
            os._exit(0 if ok else 1)

    assert messenger.send(b"go") is True
    assert _exit_code(pid) == 0


def test_repeated_ping_ack_cycles_stay_separate() -> None:
    messenger = SocketMessenger()
    messenger.init()
    rounds = 3

    pid = os.fork()
    if pid == 0:
        ok = True
        try:
            for index in range(rounds):
                if not _wait_for_message(messenger):
                    ok = False
                    break
                if messenger.receive() != f"ping {index}".encode():
                    ok = False
                messenger.send(f"ack {index}".encode())
        finally:
            os._exit(0 if ok else 1)

    acks = []
    for index in range(rounds):
        messenger.send(f"ping {index}".encode())
        assert _wait_for_message(messenger)
        acks.append(messenger.receive())

    assert acks == [b"ack 0", b"ack 1", b"ack 2"]
    assert _exit_code(pid) == 0


def test_large_payload_is_read_in_chunks() -> None:
    payload = os.urandom(20_000)
    messenger = SocketMessenger(chunk_size=1024)
    messenger.init()

    pid = os.fork()
    if pid == 0:
        ok = False
        try:
            ok = messenger.send(payload)
        finally:
            os._exit(0 if ok else 1)

    assert _exit_code(pid) == 0
    received = b""
    while messenger.has_message():
        received += messenger.receive()
    assert received == payload


@pytest.mark.parametrize("operation", ["receive", "has_message"])
def test_operations_before_init_fail(operation: str) -> None:
    messenger = SocketMessenger()

    with pytest.raises(MessengerError, match="before init"):
        getattr(messenger, operation)()


def test_send_before_init_fails() -> None:
    with pytest.raises(MessengerError, match="before init"):
        SocketMessenger().send(b"x")


def test_double_init_is_rejected() -> None:
    messenger = SocketMessenger()
    messenger.init()

    with pytest.raises(MessengerError, match="already initialized"):
        messenger.init()
    messenger.close()


def test_has_message_is_false_after_own_endpoint_closed() -> None:
    messenger = SocketMessenger()
    messenger.init()
    messenger.close()

    assert messenger.has_message() is False
    messenger.close()


def test_chunk_size_must_be_positive() -> None:
    with pytest.raises(ValueError, match="chunk_size"):
        SocketMessenger(chunk_size=0)
