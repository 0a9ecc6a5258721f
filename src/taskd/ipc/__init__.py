"""Parent/child messaging across a fork."""

from taskd.ipc.messenger import Messenger, MessengerError, Role
from taskd.ipc.socket import SocketMessenger

__all__ = [
    "Messenger",
    "MessengerError",
    "Role",
    "SocketMessenger",
]
