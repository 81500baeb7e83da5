# chat_server/protocol.py
"""
Line protocol shared by the relay server and its clients.

Every protocol unit is one UTF-8 line terminated by '\n'. The server emits two
shapes (the roster refresh and private messages); the client emits the
nickname handshake, the terminate keyword and directed messages.
"""

from typing import Iterable, List, NamedTuple, Optional

ENCODING = "utf-8"

TERMINATE_KEYWORD = "chao"
DIRECTED_PREFIX = "@"
DIRECTED_SEPARATOR = ":"
ACTIVE_USERS_PREFIX = "Active Users: "
NICKNAME_IN_USE = "Nickname already in use. Disconnecting..."


class DirectedMessage(NamedTuple):
    recipient: str
    body: str


def encode_line(text: str) -> bytes:
    return (text + "\n").encode(ENCODING)


def decode_line(raw: bytes) -> Optional[str]:
    """
    Turns one raw line read from a stream into text.
    Returns None when `raw` is empty, which is how StreamReader signals EOF.
    """
    if not raw:
        return None
    text = raw.decode(ENCODING, errors="replace")
    if text.endswith("\n"):
        text = text[:-1]
    if text.endswith("\r"):
        text = text[:-1]
    return text


def is_terminate(text: str) -> bool:
    return text.lower() == TERMINATE_KEYWORD


def parse_directed(line: str) -> Optional[DirectedMessage]:
    """
    Splits '@<recipient>:<body>' on the first separator.
    The body is kept exactly as sent. Returns None for anything that is not a
    well-formed directed message.
    """
    if not line.startswith(DIRECTED_PREFIX):
        return None
    head, sep, body = line.partition(DIRECTED_SEPARATOR)
    if not sep:
        return None
    return DirectedMessage(recipient=head[len(DIRECTED_PREFIX):], body=body)


def format_directed(recipient: str, text: str) -> str:
    # "@bob: hello", the shape desktop clients send
    return f"{DIRECTED_PREFIX}{recipient}{DIRECTED_SEPARATOR} {text}"


def format_private(sender: str, body: str) -> str:
    return f"[{sender}(Private)]: {body}"


def format_active_users(nicknames: Iterable[str]) -> str:
    return ACTIVE_USERS_PREFIX + ", ".join(nicknames)


def parse_active_users(line: str) -> Optional[List[str]]:
    """Returns the roster carried by an 'Active Users: ' line, or None for any other line."""
    if not line.startswith(ACTIVE_USERS_PREFIX):
        return None
    names = line[len(ACTIVE_USERS_PREFIX):]
    if not names:
        return []
    return names.split(", ")
