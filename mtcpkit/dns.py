"""A small UDP DNS resolver with a fixed-size name cache."""

from __future__ import annotations

import enum
import random
import re
import socket
import struct
import time
from dataclasses import dataclass, field
from typing import Callable, Optional, Tuple

IpAddr = Tuple[int, int, int, int]

MAX_NAME_LEN = 128
MAX_ENTRIES = 20
DNS_PORT = 53
MAX_POINTER_JUMPS = 64

TYPE_A = 1
TYPE_NS = 2
TYPE_CNAME = 5

_NUMERIC_RE = re.compile(r"^(\d+)\.(\d+)\.(\d+)\.(\d+)")


class DnsError(Exception):
    """Raised for DNS failures and malformed DNS packets."""


class NameTooLongError(DnsError):
    """The name to resolve does not fit in a query."""


class NoNameServerError(DnsError):
    """No name server is configured."""


class ResolveStatus(enum.IntEnum):
    """Outcome of a call to Resolver.resolve."""

    CACHED = 0
    SENT = 1
    BUSY = 2
    NOT_SENT = 3


def parse_ipv4(text: str) -> Optional[IpAddr]:
    """Return the address if text looks like a dotted numeric address, else None."""
    if not all(ch.isdigit() or ch == "." for ch in text):
        return None
    match = _NUMERIC_RE.match(text)
    if match is None:
        return None
    a, b, c, d = (int(part) & 0xFF for part in match.groups())
    return (a, b, c, d)


def encode_query(name: str, ident: int, recursion_desired: bool = True) -> bytes:
    """Build a DNS query packet asking for the A record of name."""
    flags_hi = 0x01 if recursion_desired else 0x00
    flags_lo = 0x80  # recursion available bit, as the queries have always sent it
    header = struct.pack(">HBBHHHH", ident & 0xFFFF, flags_hi, flags_lo, 1, 0, 0, 0)
    body = bytearray()
    for label in name.split("."):
        raw = label.encode("latin-1")
        body.append(len(raw) & 0xFF)
        body += raw
    body.append(0)
    body += b"\x00\x01\x00\x01"  # type A, class IN
    return header + bytes(body)


def decode_name(packet: bytes, offset: int) -> Tuple[str, int]:
    """Decode a possibly compressed name; return it and the offset just past it."""
    labels = []
    used = 0
    too_big = False
    resume: Optional[int] = None
    jumps = 0
    pos = offset
    try:
        while True:
            length = packet[pos]
            if length == 0:
                break
            pos += 1
            if length > 191:
                if resume is None:
                    resume = pos
                jumps += 1
                if jumps > MAX_POINTER_JUMPS:
                    raise DnsError("compression pointer loop in name")
                pos = ((length & 0x3F) << 8) + packet[pos]
                continue
            if used + length >= MAX_NAME_LEN:
                too_big = True
            else:
                label = packet[pos:pos + length]
                if len(label) < length:
                    raise DnsError("truncated name in packet")
                labels.append(label.decode("latin-1"))
                used += length + 1
            pos += length
    except IndexError as exc:
        raise DnsError("truncated name in packet") from exc
    end = (resume if resume is not None else pos) + 1
    return ("TOO_BIG" if too_big else ".".join(labels)), end


@dataclass
class _CacheEntry:
    name: str
    addr: IpAddr
    updated: float


class DnsCache:
    """Fixed-size name to address table; the oldest entry is replaced when full."""

    def __init__(self, max_entries: int = MAX_ENTRIES,
                 clock: Callable[[], float] = time.time) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.max_entries = max_entries
        self._clock = clock
        self._entries: list[_CacheEntry] = []

    def __len__(self) -> int:
        return len(self._entries)

    def _index(self, name: str) -> Optional[int]:
        return next((i for i, e in enumerate(self._entries) if e.name == name), None)

    def add_or_update(self, name: str, addr: IpAddr) -> None:
        """Store addr for name, replacing the oldest entry if the table is full."""
        addr = tuple(addr)
        index = self._index(name)
        if index is not None:
            entry = self._entries[index]
            entry.addr = addr
        elif len(self._entries) < self.max_entries:
            entry = _CacheEntry(name, addr, 0.0)
            self._entries.append(entry)
        else:
            entry = min(self._entries, key=lambda e: e.updated)
            entry.name = name
            entry.addr = addr
        entry.updated = self._clock()

    def find(self, name: str) -> Optional[IpAddr]:
        """Return the cached address for name, or None."""
        index = self._index(name)
        return None if index is None else self._entries[index].addr

    def format_table(self) -> str:
        """Render the table one entry per line."""
        return "".join(
            "%3d.%3d.%3d.%3d  %s\n" % (*e.addr, e.name) for e in self._entries
        )


@dataclass
class _PendingQuery:
    name: str
    ident: int
    start: float
    last_update: float
    name_server_ip: IpAddr
    name_server: str = ""
    prev_ns: str = ""
    prev_ns_ip: IpAddr = (0, 0, 0, 0)
    canonical: str = ""


@dataclass
class _Record:
    name: str
    rtype: int
    rclass: int
    ttl: int
    rdata_offset: int
    rdlength: int


def _unpack(fmt: str, packet: bytes, offset: int) -> tuple:
    try:
        return struct.unpack_from(fmt, packet, offset)
    except struct.error as exc:
        raise DnsError("truncated packet") from exc


class Resolver:
    """Drives one outstanding A-record lookup at a time and caches the results."""

    retry_threshold = 2.0
    timeout = 10.0

    def __init__(self, name_server: Optional[IpAddr],
                 send: Callable[[IpAddr, bytes], object],
                 clock: Callable[[], float] = time.monotonic) -> None:
        self.name_server = tuple(name_server) if name_server else None
        self._send = send
        self._clock = clock
        self.cache = DnsCache(MAX_ENTRIES, clock)
        self.recursion_desired = True
        self.last_query_rc = 0
        self._query_pending = False
        self._pending: Optional[_PendingQuery] = None

    def _has_name_server(self) -> bool:
        return self.name_server is not None and any(self.name_server)

    def is_query_pending(self) -> bool:
        """True while a query is outstanding."""
        return self._query_pending

    def resolve(self, name: str, send_request: bool = True
                ) -> Tuple[ResolveStatus, Optional[IpAddr]]:
        """Look name up; return the status and the address when it is known."""
        numeric = parse_ipv4(name)
        if numeric is not None:
            return ResolveStatus.CACHED, numeric
        if not self._has_name_server():
            raise NoNameServerError("no name server set")
        if len(name) >= MAX_NAME_LEN:
            raise NameTooLongError(f"name too long: {len(name)} characters")
        cached = self.cache.find(name)
        if cached is not None:
            return ResolveStatus.CACHED, cached
        if self._query_pending:
            return ResolveStatus.BUSY, None
        if not send_request:
            return ResolveStatus.NOT_SENT, None

        now = self._clock()
        self._query_pending = True
        self.last_query_rc = 0
        self._pending = _PendingQuery(
            name=name,
            ident=random.randrange(0x8000),
            start=now,
            last_update=now,
            name_server_ip=self.name_server,
        )
        self._send_request(self.name_server, name, self._pending.ident)
        return ResolveStatus.SENT, None

    def _send_request(self, resolver: IpAddr, name: str, ident: int) -> None:
        self._send(resolver, encode_query(name, ident, self.recursion_desired))

    def _records(self, packet: bytes, offset: int, count: int):
        for index in range(count):
            name, offset = decode_name(packet, offset)
            rtype, rclass, ttl, rdlength = _unpack(">HHIH", packet, offset)
            offset += 10
            yield index, _Record(name, rtype, rclass, ttl, offset, rdlength)
            offset += rdlength

    def handle_response(self, packet: bytes) -> None:
        """Process a response packet for the pending query."""
        ident, _flags_hi, flags_lo, qd, an, ns, ar = _unpack(">HBBHHHH", packet, 0)
        pending = self._pending
        if pending is None or ident != pending.ident:
            return

        offset = 12
        question_name = ""
        for _ in range(qd):
            question_name, offset = decode_name(packet, offset)
            _unpack(">HH", packet, offset)
            offset += 4

        ns_filled = False
        sections = ((1, an), (2, ns), (3, ar))
        for section, count in sections:
            records = list(self._records(packet, offset, count))
            if records:
                last = records[-1][1]
                offset = last.rdata_offset + last.rdlength
            for index, rec in records:
                if rec.rtype == TYPE_A:
                    addr = tuple(packet[rec.rdata_offset:rec.rdata_offset + 4])
                    if len(addr) < 4:
                        raise DnsError("truncated address record")
                    if section == 1:
                        if rec.name in (pending.name, pending.canonical):
                            self.cache.add_or_update(pending.name, addr)
                            self._query_pending = False
                            self.last_query_rc = 0
                        elif rec.name == pending.name_server:
                            pending.name_server_ip = addr
                            ns_filled = True
                    elif section == 3 and rec.name == pending.name_server:
                        pending.name_server_ip = addr
                        ns_filled = True
                elif rec.rtype == TYPE_NS:
                    server, _ = decode_name(packet, rec.rdata_offset)
                    if index == 0 and not ns_filled:
                        pending.prev_ns = pending.name_server
                        if pending.name_server_ip[0] != 0:
                            pending.prev_ns_ip = pending.name_server_ip
                        else:
                            pending.prev_ns_ip = self.name_server
                        pending.name_server = server
                        pending.name_server_ip = (0, 0, 0, 0)
                elif rec.rtype == TYPE_CNAME:
                    canonical, _ = decode_name(packet, rec.rdata_offset)
                    if question_name == pending.name:
                        pending.canonical = canonical

        rcode = flags_lo & 0x0F
        if rcode != 0:
            self._query_pending = False
            self.last_query_rc = rcode

        if self._query_pending:
            self._drive()

    def drive_pending_query(self) -> None:
        """Retry a stalled query, or give up on it after the overall timeout."""
        if not self._query_pending:
            return
        pending = self._pending
        now = self._clock()
        if now - pending.last_update < self.retry_threshold:
            return
        if now - pending.start > self.timeout:
            self._query_pending = False
            self.last_query_rc = -1
            return
        self._drive()

    def _drive(self) -> None:
        pending = self._pending
        pending.last_update = self._clock()
        pending.ident = (pending.ident + 1) & 0xFFFF
        if not pending.name_server:
            self._send_request(self.name_server, pending.name, pending.ident)
        elif pending.name_server_ip[0] == 0:
            self._send_request(pending.prev_ns_ip, pending.name_server, pending.ident)
        elif pending.canonical:
            self._send_request(pending.name_server_ip, pending.canonical, pending.ident)
        else:
            self._send_request(pending.name_server_ip, pending.name, pending.ident)


class UdpTransport:
    """A UDP socket bound to a local port, sending to DNS servers."""

    def __init__(self, port: int) -> None:
        if port == 0:
            raise DnsError("choose a local port other than 0")
        self.port = port
        self.server_port = DNS_PORT
        self._sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            self._sock.bind(("", port))
        except OSError:
            self._sock.close()
            raise

    def send(self, addr: IpAddr, payload: bytes) -> None:
        """Send payload to the server at addr."""
        host = "%d.%d.%d.%d" % tuple(addr)
        self._sock.sendto(payload, (host, self.server_port))

    def receive(self, timeout: Optional[float] = None) -> Optional[bytes]:
        """Return the next datagram, or None if none arrives in time."""
        self._sock.settimeout(timeout)
        try:
            data, _ = self._sock.recvfrom(4096)
        except socket.timeout:
            return None
        return data

    def close(self) -> None:
        """Release the socket."""
        self._sock.close()

    def __enter__(self) -> "UdpTransport":
        return self

    def __exit__(self, *args) -> None:
        self.close()