"""
Wire format for the relay.

Every message is one UTF-8 line. Private server replies carry the
``SYSTEM`` tag, broadcasts carry the sender's identifier and nickname.
"""

SYSTEM_TAG = "SYSTEM"
NICKNAME_PROMPT = f"{SYSTEM_TAG}:Please enter a nickname: "

JOINED = "joined the chat!"
LEFT = "left the chat!"


def system_line(text):
    """Private reply shown only to one client."""
    return f"{SYSTEM_TAG}:{text}"


def chat_line(identifier, nickname, text):
    return f"{identifier}:{nickname}: {text}"


def event_line(identifier, nickname, event):
    return f"{identifier}:{nickname} {event}"


def renamed(new_nickname):
    return f"renamed themselves to {new_nickname}"


def split_line(line):
    """Split a server line into its leading tag and the rest."""
    tag, sep, rest = line.partition(":")
    if not sep:
        return None, line
    return tag, rest


def encode_line(line):
    return line.encode() + b'\n'


def decode_line(data):
    """Decode one line read from the wire, dropping only the line terminator."""
    return data.decode(errors="replace").rstrip("\r\n")
