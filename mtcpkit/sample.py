"""A cut-down netcat: connect to or listen for one TCP connection and relay data."""

from __future__ import annotations

import socket
import sys
import threading
from dataclasses import dataclass
from typing import List, Optional

from mtcpkit.dns import parse_ipv4

RECV_BUFFER_SIZE = 1024
DEFAULT_LOCAL_PORT = 2048
CONNECT_TIMEOUT = 10.0

HELP_TEXT = (
    "\nUsage: sample -target <ipaddr> <port>\n"
    "   or: sample -listen <port>\n\n"
    "<ipaddr> is either a name or numerial IP address\n"
    "<port>   is the port on the server to connect to, or the port\n"
    "         you want to listen on for incoming connections if using -listen\n\n"
)


class UsageError(Exception):
    """The command line is not valid."""


@dataclass
class SampleOptions:
    """What the command line asked for."""

    listening: bool
    server: Optional[str] = None
    server_port: int = 0
    local_port: int = DEFAULT_LOCAL_PORT


def _atoi(text: str) -> int:
    text = text.strip()
    sign = 1
    if text[:1] in "+-" and text:
        sign = -1 if text[0] == "-" else 1
        text = text[1:]
    digits = ""
    for ch in text:
        if not ch.isdigit():
            break
        digits += ch
    return (sign * int(digits) if digits else 0) & 0xFFFF


def parse_args(argv: List[str]) -> SampleOptions:
    """Parse the command line; raise UsageError when it is not valid."""
    listening: Optional[bool] = None
    server: Optional[str] = None
    server_port = 0
    local_port = DEFAULT_LOCAL_PORT

    args = iter(argv)
    for arg in args:
        option = arg.lower()
        if option == "-help":
            raise UsageError("")
        if option == "-target":
            if listening is not None:
                raise UsageError("Specify -listen or -target, but not both")
            server = next(args, None)
            if server is None:
                raise UsageError("Need to provide a target server")
            port = next(args, None)
            if port is None:
                raise UsageError("Need to provide a target port")
            server_port = _atoi(port)
            listening = False
        elif option == "-listen":
            if listening is not None:
                raise UsageError("Specify -listen or -target, but not both")
            port = next(args, None)
            if port is None:
                raise UsageError("Need to specify a port to listen on")
            local_port = _atoi(port)
            if local_port == 0:
                raise UsageError("Use a non-zero port to listen on")
            listening = True
        else:
            raise UsageError(f"Unknown option {arg}")

    if listening is None:
        raise UsageError("Must specify either -listen or -target")
    return SampleOptions(listening, server, server_port, local_port)


def _resolve(name: str) -> str:
    numeric = parse_ipv4(name)
    if numeric is not None:
        return "%d.%d.%d.%d" % numeric
    return socket.gethostbyname(name)


def _open_client(options: SampleOptions) -> socket.socket:
    print("Resolving server address - press Ctrl-C to abort\n", file=sys.stderr)
    addr = _resolve(options.server)
    print(f"Server resolved to {addr} - connecting\n", file=sys.stderr)
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind(("", options.local_port))
        sock.settimeout(CONNECT_TIMEOUT)
        sock.connect((addr, options.server_port))
        sock.settimeout(None)
    except OSError:
        sock.close()
        raise
    print("Connected!\n", file=sys.stderr)
    return sock


def _open_server(options: SampleOptions) -> socket.socket:
    print(f"Waiting for a connection on port {options.local_port}. "
          "Press Ctrl-C to abort.\n", file=sys.stderr)
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as listener:
        listener.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        listener.bind(("", options.local_port))
        listener.listen(1)
        sock, (host, port) = listener.accept()
    print(f"Connection received from {host}:{port}\n", file=sys.stderr)
    return sock


def _relay(sock: socket.socket, stdin, stdout) -> bool:
    """Copy stdin to the socket and the socket to stdout until the peer closes."""

    def pump() -> None:
        read = getattr(stdin, "read1", stdin.read)
        while True:
            data = read(RECV_BUFFER_SIZE)
            if not data:
                break
            try:
                sock.sendall(data)
            except OSError:
                break

    threading.Thread(target=pump, daemon=True).start()
    while True:
        try:
            data = sock.recv(RECV_BUFFER_SIZE)
        except OSError:
            print("\nError reading from socket", file=sys.stderr)
            return False
        if not data:
            return True
        stdout.write(data)
        stdout.flush()


def main(argv: Optional[List[str]] = None) -> int:
    """Run the program; return the exit status."""
    if argv is None:
        argv = sys.argv[1:]
    try:
        options = parse_args(argv)
    except UsageError as exc:
        if str(exc):
            print(exc, file=sys.stderr)
        sys.stderr.write(HELP_TEXT)
        return 1

    try:
        if options.listening:
            sock = _open_server(options)
        else:
            try:
                sock = _open_client(options)
            except socket.gaierror:
                print("Error resolving server", file=sys.stderr)
                return 1
    except KeyboardInterrupt:
        print("\nCtrl-C detected", file=sys.stderr)
        return 1
    except OSError as exc:
        print(f"Socket open failed: {exc}", file=sys.stderr)
        return 1

    stdin = getattr(sys.stdin, "buffer", sys.stdin)
    stdout = getattr(sys.stdout, "buffer", sys.stdout)
    with sock:
        try:
            ok = _relay(sock, stdin, stdout)
        except KeyboardInterrupt:
            print("\nCtrl-C detected", file=sys.stderr)
            ok = True
    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(main())