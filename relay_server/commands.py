"""
Interpretation of client input lines.

A line is classified by its prefix only; there is no further grammar.
"""

from dataclasses import dataclass
from typing import Union

NICK = "/nick"
QUIT = "/quit"
ID = "/id"


@dataclass(frozen=True)
class Rename:
    nickname: str


@dataclass(frozen=True)
class MissingNickname:
    """A /nick command without a name."""


@dataclass(frozen=True)
class Quit:
    pass


@dataclass(frozen=True)
class IdentityQuery:
    pass


@dataclass(frozen=True)
class ChatMessage:
    text: str


Command = Union[Rename, MissingNickname, Quit, IdentityQuery, ChatMessage]


def interpret(line: str) -> Command:
    """
    Turn one raw input line into a command.

    Checked in order: /nick, /quit, /id, then plain chat.
    """
    if line == NICK or line.startswith(NICK + " "):
        _, _, nickname = line.partition(" ")
        if not nickname:
            return MissingNickname()
        return Rename(nickname)
    if line.startswith(QUIT):
        return Quit()
    if line.startswith(ID):
        return IdentityQuery()
    return ChatMessage(line)
