"""DHCP client: obtains an address and records it in the configuration file."""

from __future__ import annotations

import contextlib
import os
import random
import re
import socket
import sys
import time
import uuid
from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Tuple

from mtcpkit.dhcppacket import (
    DHCP_REPLY_PORT,
    DHCP_REQUEST_PORT,
    DhcpReply,
    DhcpStatus,
    build_discover,
    build_request,
    parse_reply,
)
from mtcpkit.tokens import next_token, rtrim

IpAddr = Tuple[int, int, int, int]

PARM_PACKETINT = "PACKETINT"
PARM_HOSTNAME = "HOSTNAME"
PARM_IPADDR = "IPADDR"
PARM_GATEWAY = "GATEWAY"
PARM_NETMASK = "NETMASK"
PARM_NAMESERVER = "NAMESERVER"
PARM_NAMESERVER_PREFERRED = "NAMESERVER_PREFERRED"
PARM_MTU = "MTU"

LINE_BUFFER_LEN = 160
PARAMETER_LEN = 40
ETH_MTU_MIN = 576
ETH_MTU_MAX = 1500
TEMP_NAME = "mtcpcfg.tmp"
VERSION = "1.0"
ZERO_ADDR: IpAddr = (0, 0, 0, 0)

_REWRITTEN = {
    PARM_IPADDR, PARM_GATEWAY, PARM_NETMASK, PARM_NAMESERVER,
    "DHCPVER", "TIMESTAMP", "LEASE_TIME",
}

CHECK_CABLING = ("Check your cabling and packet driver settings, "
                 "including the hardware IRQ.")

USAGE = (
    "\n"
    "Dhcp [options]\n\n"
    "Options:\n"
    "  -help\n"
    "  -retries <n>   Retry n times before giving up\n"
    "  -timeout <n>   Set timeout for each attempt to n seconds\n\n"
)


class DhcpError(Exception):
    """Raised for bad command lines, bad configuration and file errors."""


@dataclass
class DhcpConfig:
    """The settings the client reads from the configuration file."""

    packet_int: int = 0
    hostname: Optional[str] = None
    mtu: Optional[int] = None
    preferred_nameserver: Optional[IpAddr] = None
    warnings: List[str] = field(default_factory=list)


@dataclass
class DhcpOptions:
    """Command line settings."""

    retries: int = 3
    timeout: int = 10
    show_help: bool = False


def _parse_hex(text: str) -> Optional[int]:
    match = re.match(r"\s*(?:0[xX])?([0-9a-fA-F]+)", text)
    return int(match.group(1), 16) if match else None


def _parse_int(text: str) -> Optional[int]:
    match = re.match(r"\s*([+-]?\d+)", text)
    return int(match.group(1)) if match else None


def _parse_addr(text: str) -> Optional[IpAddr]:
    match = re.match(r"\s*(\d+)\.(\d+)\.(\d+)\.(\d+)", text)
    if match is None:
        return None
    a, b, c, d = (int(part) & 0xFF for part in match.groups())
    return (a, b, c, d)


def _numbered_lines(lines) -> Iterator[Tuple[int, str]]:
    for number, line in enumerate(lines, start=1):
        if len(line.rstrip("\n")) >= LINE_BUFFER_LEN - 1:
            raise DhcpError(f"line {number} of the config file is too long")
        yield number, line


def read_config(path) -> DhcpConfig:
    """Read the settings the client needs from the configuration file."""
    try:
        handle = open(path, "r", encoding="latin-1")
    except OSError as exc:
        raise DhcpError(f"Not able to open the config file named '{path}'. "
                        "A config file is required.") from exc

    config = DhcpConfig()
    error_parm: Optional[str] = None
    with handle:
        for number, raw in _numbered_lines(handle):
            line, trailing = rtrim(raw.rstrip("\n"))
            if trailing:
                config.warnings.append(
                    f"trailing whitespace detected on line {number} of the config file")
            name, rest = next_token(line, PARAMETER_LEN)
            if not name:
                continue
            rest = rest or ""
            key = name.upper()
            if key == PARM_PACKETINT:
                value = _parse_hex(rest)
                if value is None:
                    error_parm = PARM_PACKETINT
                else:
                    config.packet_int = value & 0xFF
            elif key == PARM_HOSTNAME:
                words = rest.split()
                if not words:
                    error_parm = PARM_HOSTNAME
                else:
                    config.hostname = words[0]
            elif key == PARM_MTU:
                value = _parse_int(rest)
                if value is None or not ETH_MTU_MIN <= value <= ETH_MTU_MAX:
                    error_parm = PARM_MTU
                else:
                    config.mtu = value
            elif key == PARM_NAMESERVER_PREFERRED:
                addr = _parse_addr(rest)
                if addr is None:
                    error_parm = PARM_NAMESERVER_PREFERRED
                else:
                    config.preferred_nameserver = addr
            if error_parm is not None:
                break

    if config.packet_int == 0:
        error_parm = PARM_PACKETINT
    if error_parm is not None:
        raise DhcpError(f"'{error_parm}' is the wrong format or not set correctly.")
    return config


def _addr_line(name: str, addr: Optional[IpAddr]) -> str:
    a, b, c, d = addr or ZERO_ADDR
    return f"{name} {a}.{b}.{c}.{d}\n"


def rewrite_config(path, reply: DhcpReply,
                   preferred_nameserver: Optional[IpAddr] = None,
                   now: Optional[float] = None) -> IpAddr:
    """Replace the DHCP settings in the configuration file; return the name server written."""
    if now is None:
        now = time.time()
    try:
        with open(path, "r", encoding="latin-1") as src:
            lines = list(src)
    except OSError as exc:
        raise DhcpError(f"Error while opening config file: {exc}") from exc

    kept = []
    for _number, line in _numbered_lines(lines):
        name, _ = next_token(line, PARAMETER_LEN)
        if name.upper() in _REWRITTEN:
            continue
        kept.append(line if line.endswith("\n") else line + "\n")

    name_server = tuple(preferred_nameserver) if preferred_nameserver else (
        reply.name_server or ZERO_ADDR)
    stamp = int(now)
    text = [
        f"DHCPVER DHCP Client version {VERSION}\n",
        f"TIMESTAMP ( {stamp} ) {time.ctime(stamp)}\n",
        *kept,
        _addr_line(PARM_IPADDR, reply.your_ip),
        _addr_line(PARM_NETMASK, reply.subnet_mask),
        _addr_line(PARM_GATEWAY, reply.gateway),
        _addr_line(PARM_NAMESERVER, name_server),
        f"LEASE_TIME {reply.lease_time}\n",
    ]

    tmp_path = os.path.join(os.path.dirname(os.path.abspath(path)), TEMP_NAME)
    try:
        with open(tmp_path, "w", encoding="latin-1") as out:
            out.writelines(text)
        os.replace(tmp_path, path)
    except OSError as exc:
        with contextlib.suppress(OSError):
            os.remove(tmp_path)
        raise DhcpError(f"Error while writing to temp file: {exc}") from exc
    return name_server


def _atoi(text: str) -> int:
    value = _parse_int(text)
    return value if value is not None else 0


def parse_args(argv) -> DhcpOptions:
    """Parse the command line; raise DhcpError when it is not valid."""
    options = DhcpOptions()
    args = iter(argv)
    for arg in args:
        option = arg.lower()
        if option == "-retries":
            value = next(args, None)
            if value is None:
                raise DhcpError("Need to provide a number with the -retries option")
            options.retries = _atoi(value) & 0xFF
            if options.retries == 0:
                raise DhcpError("Bad number of retries specified")
        elif option == "-timeout":
            value = next(args, None)
            if value is None:
                raise DhcpError(
                    "Need to provide a number of seconds with the -timeout option")
            options.timeout = _atoi(value) & 0xFFFF
            if not 5 <= options.timeout <= 120:
                raise DhcpError("Bad timeout value specified - must be between 5 and 120")
        elif option == "-help":
            options.show_help = True
            return options
        else:
            raise DhcpError(f"Unknown option: {arg}")
    return options


class DhcpClient:
    """Runs the DISCOVER/OFFER/REQUEST/ACK conversation over a broadcast transport.

    The transport has ``send(payload)`` and ``receive(timeout)``, the latter
    returning the next datagram or None.
    """

    def __init__(self, mac, hostname: str, options: Optional[DhcpOptions] = None,
                 transport=None) -> None:
        self.mac = bytes(mac)
        self.hostname = hostname
        self.options = options or DhcpOptions()
        self.transport = transport
        self.clock = time.monotonic
        self.out = sys.stdout
        self.status = DhcpStatus.START
        self.transaction_id = 0
        self.offer: Optional[DhcpReply] = None
        self.lease: Optional[DhcpReply] = None
        self.packets_sent = 0
        self.send_errors = 0
        self.packets_received = 0

    def _say(self, text: str, end: str = "\n") -> None:
        self.out.write(text + end)
        self.out.flush()

    def _send(self, payload: bytes) -> None:
        self.packets_sent += 1
        try:
            self.transport.send(payload)
        except OSError:
            self.send_errors += 1

    def run(self) -> DhcpStatus:
        """Make up to the configured number of attempts; return the final status."""
        for attempt in range(1, self.options.retries + 1):
            status = self._attempt(attempt)
            if status in (DhcpStatus.ACK, DhcpStatus.USER_ABORT):
                break
        return self.status

    def _attempt(self, attempt: int) -> DhcpStatus:
        self.transaction_id = random.randrange(0x8000)
        self.offer = None
        self.status = DhcpStatus.START
        self._send(build_discover(self.mac, self.hostname, self.transaction_id))
        self._say(f"DHCP request sent, attempt {attempt}: ", end="")

        deadline = self.clock() + self.options.timeout
        try:
            while self.status in (DhcpStatus.START, DhcpStatus.OFFER):
                remaining = deadline - self.clock()
                if remaining <= 0:
                    self._say("Timeout")
                    self.status = DhcpStatus.TIMEOUT
                    break
                packet = self.transport.receive(remaining)
                if packet is None:
                    continue
                self.packets_received += 1
                self._handle(packet)
        except KeyboardInterrupt:
            self.status = DhcpStatus.USER_ABORT
            self._say("Aborting")
        return self.status

    def _handle(self, packet: bytes) -> None:
        reply = parse_reply(packet, self.transaction_id)
        if reply is None:
            return
        status = reply.status
        if status is DhcpStatus.DECLINED:
            self._say("Declined")
            self.status = status
            return
        if status is DhcpStatus.ACK:
            self._say("Acknowledged")
            self.status = status
            self.lease = self.offer or reply
            return
        if status is DhcpStatus.NACK:
            self._say("Negative - Rejected!")
            self.status = status
            return
        if status is DhcpStatus.OFFER:
            self._say("Offer received, ", end="")
            self.status = status
        self.offer = reply
        self._send(build_request(self.mac, self.hostname, self.transaction_id,
                                 reply.your_ip, reply.server_id or ZERO_ADDR))


class _BroadcastTransport:
    """UDP socket on the DHCP client port that broadcasts to the server port."""

    def __init__(self) -> None:
        self._sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            self._sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
            self._sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            self._sock.bind(("", DHCP_REPLY_PORT))
        except OSError:
            self._sock.close()
            raise

    def send(self, payload: bytes) -> None:
        self._sock.sendto(payload, ("255.255.255.255", DHCP_REQUEST_PORT))

    def receive(self, timeout: Optional[float]) -> Optional[bytes]:
        self._sock.settimeout(timeout)
        try:
            data, _ = self._sock.recvfrom(2048)
        except socket.timeout:
            return None
        return data

    def close(self) -> None:
        self._sock.close()

    def __enter__(self) -> "_BroadcastTransport":
        return self

    def __exit__(self, *args) -> None:
        self.close()


def main(argv=None) -> int:
    """Run the client; return the exit status."""
    if argv is None:
        argv = sys.argv[1:]
    print(f"DHCP Client version {VERSION}\n")

    try:
        options = parse_args(argv)
    except DhcpError as exc:
        print(exc, file=sys.stderr)
        sys.stderr.write(USAGE)
        return 1
    if options.show_help:
        print("Options and usage ...")
        sys.stdout.write(USAGE)
        return 1

    cfg_path = os.environ.get("MTCPCFG")
    if not cfg_path:
        print("Error: You need to set the MTCPCFG environment variable to a valid "
              "config file.\nThe syntax is: set MTCPCFG=filename.ext", file=sys.stderr)
        return 1
    try:
        config = read_config(cfg_path)
    except DhcpError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    for warning in config.warnings:
        print(f"Warning - {warning}.", file=sys.stderr)
    if config.warnings:
        print(file=sys.stderr)

    hostname = config.hostname or socket.gethostname().split(".")[0]
    mac = uuid.getnode().to_bytes(6, "big")

    try:
        transport = _BroadcastTransport()
    except OSError as exc:
        print(f"Could not setup DHCP reply handler: {exc}\n", file=sys.stderr)
        return 1

    with transport:
        print(f"Timeout per request: {options.timeout} seconds, "
              f"Retry attempts: {options.retries}\n"
              "Sending DHCP requests, Press Ctrl-C to abort.\n")
        try:
            time.sleep(1)
        except KeyboardInterrupt:
            return 1
        client = DhcpClient(mac, hostname, options, transport)
        status = client.run()

    if status is DhcpStatus.USER_ABORT:
        return 1

    if status is DhcpStatus.ACK and client.lease is not None:
        lease = client.lease
        try:
            name_server = rewrite_config(cfg_path, lease, config.preferred_nameserver)
        except DhcpError as exc:
            print(f"\n{exc}\nError: DHCP address was assigned but we had a problem "
                  "writing the config file.\nNo changes were made.", file=sys.stderr)
            return 1
        print("\nGood news everyone!\n")
        sys.stdout.write(_addr_line(PARM_IPADDR, lease.your_ip))
        sys.stdout.write(_addr_line(PARM_NETMASK, lease.subnet_mask))
        sys.stdout.write(_addr_line(PARM_GATEWAY, lease.gateway))
        sys.stdout.write(_addr_line(PARM_NAMESERVER, name_server))
        print(f"LEASE_TIME {lease.lease_time} seconds")
        print(f"\nSettings written to '{cfg_path}'")
        return 0

    if status is DhcpStatus.TIMEOUT:
        if client.send_errors == client.packets_sent:
            print("\nError: Your Ethernet card reported an error for every packet we sent.")
            print(CHECK_CABLING)
        elif client.packets_received == 0:
            print("\nError: Your DHCP server never responded and no packets were "
                  "seen on the wire.")
            print(CHECK_CABLING)
        else:
            print("\nError: Your DHCP server never responded, but your Ethernet card "
                  "is receiving\npackets.  Check your DHCP server, or increase the "
                  "timeout period.")
    else:
        print("\nError: Could not get a DHCP address")
    return 1


if __name__ == "__main__":
    sys.exit(main())