"""TCP throughput test: send or receive a stream of bytes and time it."""

from __future__ import annotations

import socket
import sys
import time
from dataclasses import dataclass
from typing import List, Optional

DEFAULT_TEST_BYTES = 4194304
BYTES_PER_MB = 1048576
MAX_MB = 64
DEFAULT_MSS = 1460
RECV_SIZE = 16384
CONNECT_TIMEOUT = 10.0

HELP_TEXT = (
    "Usage:\n\n"
    "  spdtest <mode> -target <ipaddr> <port> [send options]\n"
    "    or\n"
    "  spdtest <mode> -listen <port> [send options]\n\n"
    "Mode is either:\n"
    "  -receive      Do a receive test\n"
    "  -send         Do a send test\n\n"
    "Send options:\n"
    "  -mb <n>       Megabytes to send during a send test\n"
)

_BOTH_ENDS = "Specify -listen or -target, but not both"
_BOTH_DIRECTIONS = "Specify -send or -receive, but not both"


class UsageError(Exception):
    """The command line is not valid."""


@dataclass
class SpeedTestOptions:
    """What the command line asked for."""

    listening: bool
    sending: bool
    server: Optional[str] = None
    server_port: int = 0
    port: int = 0
    total_bytes: int = DEFAULT_TEST_BYTES


@dataclass
class SpeedTestResult:
    """Counters gathered during one test run."""

    bytes_sent: int = 0
    bytes_received: int = 0
    packets_received: int = 0
    elapsed: float = 0.0

    def report(self, mss: int = DEFAULT_MSS) -> str:
        """Render the summary printed at the end of a test."""
        lines = [
            f"Elapsed time: {self.elapsed:.3f}, Bytes sent: {self.bytes_sent}, "
            f"Received: {self.bytes_received}\n"
        ]
        if self.packets_received:
            avg = average_packet_size(self.bytes_received, self.packets_received)
            lines.append(f"Data packets received: {self.packets_received}, "
                         f"Avg packet size: {avg}\n")
            if self.packets_received > 20 and avg < mss:
                lines.append("Warning: average packet size was smaller than expected.\n")
        return "".join(lines)


def _atoi(text: str) -> int:
    text = text.strip()
    sign = 1
    if text and text[0] in "+-":
        sign = -1 if text[0] == "-" else 1
        text = text[1:]
    digits = ""
    for ch in text:
        if not ch.isdigit():
            break
        digits += ch
    return sign * int(digits) if digits else 0


def parse_args(argv: List[str]) -> SpeedTestOptions:
    """Parse the command line; raise UsageError when it is not valid."""
    listening: Optional[bool] = None
    sending: Optional[bool] = None
    server: Optional[str] = None
    server_port = 0
    port = 0
    total_bytes = DEFAULT_TEST_BYTES
    mb_set = False

    args = iter(argv)
    for arg in args:
        option = arg.lower()
        if option == "-help":
            raise UsageError("")
        if option == "-target":
            if listening is not None:
                raise UsageError(_BOTH_ENDS)
            server = next(args, None)
            if server is None:
                raise UsageError("Need to provide an IP address with the -target option")
            value = next(args, None)
            if value is None:
                raise UsageError("Need to provide a target port on the server")
            server_port = _atoi(value) & 0xFFFF
            listening = False
        elif option == "-listen":
            if listening is not None:
                raise UsageError(_BOTH_ENDS)
            value = next(args, None)
            if value is None:
                raise UsageError("Need to provide a port number with the -listen option")
            port = _atoi(value) & 0xFFFF
            if port == 0:
                raise UsageError("Use a non-zero port to listen on")
            listening = True
        elif option == "-send":
            if sending is not None:
                raise UsageError(_BOTH_DIRECTIONS)
            sending = True
        elif option == "-receive":
            if sending is not None:
                raise UsageError(_BOTH_DIRECTIONS)
            sending = False
        elif option == "-mb":
            value = next(args, None)
            if value is None:
                raise UsageError("Need to provide a number of megabytes with the -mb option")
            megabytes = _atoi(value)
            if not 1 <= megabytes <= MAX_MB:
                raise UsageError(f"The value for -mb needs to be between 1 and {MAX_MB}")
            total_bytes = megabytes * BYTES_PER_MB
            mb_set = True
        else:
            raise UsageError(f"Unknown option {arg}")

    if listening is None:
        raise UsageError("Must specify either -listen or -target")
    if sending is None:
        raise UsageError("Must specify either -send or -receive")
    if mb_set and not sending:
        raise UsageError("-mb only makes sense when sending.")
    if not sending:
        total_bytes = 0
    return SpeedTestOptions(listening, sending, server, server_port, port, total_bytes)


def make_pattern(size: int) -> bytes:
    """Printable filler data: the characters 32 to 126 repeated."""
    if size < 0:
        raise ValueError("size must not be negative")
    return bytes((j % 95) + 32 for j in range(size))


def average_packet_size(total_bytes: int, packets: int) -> int:
    """Average bytes per packet, rounded half up."""
    if packets <= 0:
        raise ValueError("packets must be positive")
    tenths = (total_bytes * 10) // packets
    return tenths // 10 + (1 if tenths % 10 >= 5 else 0)


def run_send(sock, total_bytes: int, chunk_size: int = DEFAULT_MSS) -> SpeedTestResult:
    """Send total_bytes in chunks of chunk_size, then shut down the write side."""
    if chunk_size < 1:
        raise ValueError("chunk_size must be at least 1")
    pattern = make_pattern(chunk_size)
    result = SpeedTestResult()
    start = time.monotonic()
    remaining = total_bytes
    try:
        while remaining > 0:
            length = min(chunk_size, remaining)
            sock.sendall(pattern[:length])
            remaining -= length
            result.bytes_sent += length
    finally:
        try:
            sock.shutdown(socket.SHUT_WR)
        except OSError:
            pass
        result.elapsed = time.monotonic() - start
    return result


def run_receive(sock, chunk_size: int = RECV_SIZE) -> SpeedTestResult:
    """Read and discard data until the peer closes its side."""
    if chunk_size < 1:
        raise ValueError("chunk_size must be at least 1")
    result = SpeedTestResult()
    start = time.monotonic()
    try:
        while True:
            data = sock.recv(chunk_size)
            if not data:
                break
            result.packets_received += 1
            result.bytes_received += len(data)
    finally:
        result.elapsed = time.monotonic() - start
    return result


def _mss(sock: socket.socket) -> int:
    option = getattr(socket, "TCP_MAXSEG", None)
    if option is None:
        return DEFAULT_MSS
    try:
        value = sock.getsockopt(socket.IPPROTO_TCP, option)
    except OSError:
        return DEFAULT_MSS
    return value if value > 0 else DEFAULT_MSS


def _connect(options: SpeedTestOptions) -> socket.socket:
    addr = socket.gethostbyname(options.server)
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        sock.bind(("", 0))
        print(f"Connecting to {addr}:{options.server_port} "
              f"on local port {sock.getsockname()[1]}\n")
        sock.settimeout(CONNECT_TIMEOUT)
        sock.connect((addr, options.server_port))
        sock.settimeout(None)
    except OSError:
        sock.close()
        raise
    return sock


def _accept(options: SpeedTestOptions) -> socket.socket:
    print(f"Waiting for a connection on port {options.port}. Press Ctrl-C to abort.\n")
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as listener:
        listener.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        listener.bind(("", options.port))
        listener.listen(1)
        sock, (host, port) = listener.accept()
    print(f"Connection received from {host}:{port}\n")
    return sock


def main(argv: Optional[List[str]] = None) -> int:
    """Run the test; return the exit status."""
    if argv is None:
        argv = sys.argv[1:]
    try:
        options = parse_args(argv)
    except UsageError as exc:
        if str(exc):
            print(f"{exc}\n")
        sys.stdout.write(HELP_TEXT)
        return 1

    try:
        sock = _accept(options) if options.listening else _connect(options)
    except socket.gaierror:
        print(f"Error resolving server: {options.server}")
        return 1
    except KeyboardInterrupt:
        print("\nCtrl-C detected - aborting")
        return 1
    except OSError as exc:
        print(f"Socket open failed: {exc}")
        return 1

    with sock:
        mss = _mss(sock)
        print(f"Maximum Segment Size: {mss}")
        if mss < DEFAULT_MSS:
            print("Warning: Remote MSS is smaller than our MSS")
        try:
            if options.sending:
                print(f"Send test: sending {options.total_bytes} bytes\n")
                result = run_send(sock, options.total_bytes, mss)
            else:
                print("Receive test: ends automatically when the server "
                      "closes the socket\n")
                result = run_receive(sock, RECV_SIZE)
        except KeyboardInterrupt:
            print("\nCtrl-C detected - aborting")
            return 1
        except OSError as exc:
            print(f"Error on socket: {exc}")
            return 1

    sys.stdout.write(result.report(DEFAULT_MSS))
    print()
    return 0


if __name__ == "__main__":
    sys.exit(main())