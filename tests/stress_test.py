"""
Manual load test for the relay server.

Start a server first (relaychat-server --port 64882 --no-console), then run
    python tests/stress_test.py --clients 50 --duration 10 --rate 5
"""
import argparse
import asyncio
import time


class StressTestClient:
    def __init__(self, client_id: int, host: str, port: int):
        self.client_id = client_id
        self.host = host
        self.port = port
        self.reader = None
        self.writer = None
        self.identifier = None
        self.messages_sent = 0
        self.messages_received = 0
        self.echoes = 0
        self.errors = 0

    async def connect(self):
        """Connect to server and negotiate a nickname"""
        try:
            self.reader, self.writer = await asyncio.open_connection(
                self.host, self.port
            )
            self.identifier = (await self.reader.readline()).decode().strip()
            await self.reader.readline()
            self.writer.write(f"stress{self.client_id}\n".encode())
            await self.writer.drain()
            return True
        except Exception as e:
            print(f"Client {self.client_id}: Connection failed: {e}")
            self.errors += 1
            return False

    async def send_message(self, message: str):
        """Send a chat line"""
        try:
            self.writer.write(f"{message}\n".encode())
            await self.writer.drain()
            self.messages_sent += 1
            return True
        except Exception:
            self.errors += 1
            return False

    async def receive_loop(self):
        """Continuously receive messages"""
        try:
            while True:
                data = await self.reader.readline()
                if not data:
                    break
                tag = data.decode().split(":", 1)[0]
                if tag == self.identifier:
                    self.echoes += 1
                self.messages_received += 1
        except asyncio.CancelledError:
            pass
        except Exception:
            self.errors += 1

    async def send_loop(self, duration: float, rate: float):
        """Send messages at specified rate for duration"""
        end_time = time.time() + duration
        message_interval = 1.0 / rate

        while time.time() < end_time:
            await self.send_message(f"Message {self.messages_sent} from client {self.client_id}")
            await asyncio.sleep(message_interval)

    async def close(self):
        """Quit and close connection"""
        try:
            self.writer.write(b'/quit\n')
            await self.writer.drain()
            self.writer.close()
            await self.writer.wait_closed()
        except Exception:
            pass


async def run_stress_test(host, port, num_clients, duration, rate):
    clients = [StressTestClient(i, host, port) for i in range(num_clients)]
    results = await asyncio.gather(*(c.connect() for c in clients))
    connected = [c for c, ok in zip(clients, results) if ok]
    print(f"Connected {len(connected)}/{num_clients} clients")

    receivers = [asyncio.create_task(c.receive_loop()) for c in connected]
    start = time.time()
    await asyncio.gather(*(c.send_loop(duration, rate) for c in connected))
    await asyncio.sleep(1.0)
    elapsed = time.time() - start

    for c in connected:
        await c.close()
    for task in receivers:
        task.cancel()
    await asyncio.gather(*receivers, return_exceptions=True)

    sent = sum(c.messages_sent for c in connected)
    received = sum(c.messages_received for c in connected)
    expected = sent * (len(connected) - 1)
    print(f"Sent: {sent}  Received: {received}  Expected chat deliveries: {expected}")
    print(f"Echoes: {sum(c.echoes for c in connected)}  Errors: {sum(c.errors for c in connected)}")
    print(f"Throughput: {received / elapsed:.1f} lines/s over {elapsed:.1f}s")


def main():
    parser = argparse.ArgumentParser(description="Relay stress test")
    parser.add_argument('--host', default='127.0.0.1')
    parser.add_argument('--port', type=int, default=64882)
    parser.add_argument('--clients', type=int, default=20)
    parser.add_argument('--duration', type=float, default=5.0)
    parser.add_argument('--rate', type=float, default=5.0, help='Messages per second per client')
    args = parser.parse_args()
    asyncio.run(run_stress_test(args.host, args.port, args.clients, args.duration, args.rate))


if __name__ == "__main__":
    main()
