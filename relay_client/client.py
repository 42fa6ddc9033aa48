"""
Main client implementation
Handles the connection to the relay, nickname prompt, sending and receiving lines, echo suppression and shutdown
"""

import asyncio
import sys
import logging
import argparse
from typing import Optional, Tuple

from relay_server.protocol import decode_line, split_line

logger = logging.getLogger(__name__)

DEFAULT_PORT = 64882


def render_line(line: str, own_id: Optional[str]) -> Optional[str]:
    """
    Decide what to show for one line received from the server.

    Returns None for lines that originate from this client (echo suppression),
    otherwise the line without its leading tag.
    """
    tag, rest = split_line(line)
    if tag is None:
        return line
    if own_id is not None and tag == own_id:
        return None
    return rest


class Client():
    """
    Async client for the chat relay

    Features:
    - Reads its identifier and the nickname prompt on connect
    - Message sender and receiver functions
    - Suppresses broadcasts it sent itself
    - graceful shutdown of the client
    """
    def __init__(self, host: str, port: int) -> None:
        """
        Initialize client
        Args:
            host: ip of the server to connect to
            port: port of the server to connect to
        """
        self.host = host
        self.port = port
        self.identifier: Optional[str] = None
        self.writer: Optional[asyncio.StreamWriter] = None
        self.reader: Optional[asyncio.StreamReader] = None

    async def connect_to_server(self) -> Tuple[Optional[asyncio.StreamReader], Optional[asyncio.StreamWriter]]:
        """Handle the connection to the relay server"""
        try:
            reader, writer = await asyncio.open_connection(
                self.host,
                self.port
            )
            logger.info(f"Connected to {self.host}:{self.port}")
            return reader, writer
        except ConnectionRefusedError:
            logger.error(f"ERROR:Server at {self.host}:{self.port} refused connection")
            print("Is the server running?")
            print("Is the port correct?")
            return None, None
        except asyncio.TimeoutError:
            logger.error(f"ERROR: Connection to {self.host}:{self.port} timed out")
            return None, None
        except OSError as e:
            logger.error(f"ERROR: OS Error: {e}")
            return None, None

    async def read_greeting(self) -> Optional[str]:
        """Read the identifier line and the nickname prompt; returns the prompt text"""
        data = await self.reader.readline()
        if not data:
            return None
        self.identifier = decode_line(data)
        data = await self.reader.readline()
        if not data:
            return None
        _, prompt = split_line(decode_line(data))
        return prompt

    async def send_message(self, message: str) -> bool:
        """handle the sending of messages to server"""
        successful = False
        try:
            self.writer.write(message.encode() + b'\n')
            await self.writer.drain()
            successful = True
        except ConnectionResetError as e:
            logger.error(f"Connection reset: {e}")
        except BrokenPipeError as e:
            logger.error(f"Broken pipe: {e}")
        except ConnectionAbortedError as e:
            logger.error(f"Connection aborted: {e}")
        except OSError as e:
            logger.error(f"OS Error: {e}")
        return successful

    async def receive_message(self):
        """Handle the receiving of messages from the server"""
        try:
            while True:
                data = await self.reader.readline()
                if not data:
                    print("\rServer disconnected")
                    break
                shown = render_line(decode_line(data), self.identifier)
                if shown is not None:
                    print(f"\r{shown}")
        except (ConnectionResetError, ConnectionAbortedError, BrokenPipeError) as e:
            logger.error(f"Connection ERROR: {e}")
        except asyncio.CancelledError:
            logger.debug("Stopping receiver...")
            raise

    async def send_user_input(self):
        """Read user input and send to the server"""
        try:
            while True:
                message = await asyncio.get_running_loop().run_in_executor(
                    None, sys.stdin.readline
                )
                if not message:
                    message = "/quit"
                message = message.rstrip("\r\n")
                status = await self.send_message(message)
                if not status or message.startswith("/quit"):
                    print("You disconnected")
                    break
        except asyncio.CancelledError:
            logger.debug("Stopping sender...")
            raise

    async def run(self):
        """Main client loop"""
        self.reader, self.writer = await self.connect_to_server()

        if self.reader is None and self.writer is None:
            logger.error("Failed to connect to the server")
            return

        prompt = await self.read_greeting()
        if prompt is None:
            print("Server closed the connection")
            self.writer.close()
            return
        print(prompt, end="", flush=True)

        receiver_task = asyncio.create_task(self.receive_message())
        sender_task = asyncio.create_task(self.send_user_input())

        try:
            done, pending = await asyncio.wait(
                {receiver_task, sender_task},
                return_when=asyncio.FIRST_COMPLETED
            )

            for task in pending:
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        finally:
            if self.writer and not self.writer.is_closing():
                self.writer.close()
                try:
                    await self.writer.wait_closed()
                except (ConnectionError, OSError):
                    pass
            logger.info("Disconnected from server")


def main():
    parser = argparse.ArgumentParser(description="Chat Relay Client")
    parser.add_argument('--host', default='127.0.0.1', help='Server host')
    parser.add_argument('--port', type=int, default=DEFAULT_PORT, help='Server port')
    parser.add_argument('--debug', action='store_true', help='Enable debug logging')
    args = parser.parse_args()
    # setup logging
    level = logging.DEBUG if args.debug else logging.WARNING
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    client = Client(host=args.host, port=args.port)
    try:
        asyncio.run(client.run())
    except KeyboardInterrupt:
        logger.info("\nClient Stopped by user")


if __name__ == "__main__":
    main()
