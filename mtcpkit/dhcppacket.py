"""Building DHCP client requests and reading the server's replies."""

from __future__ import annotations

import enum
import struct
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple, Union

IpAddr = Tuple[int, int, int, int]

DHCP_REQUEST_PORT = 67
DHCP_REPLY_PORT = 68

MAGIC_COOKIE = bytes((99, 130, 83, 99))
HEADER_LEN = 240

OPT_PAD = 0
OPT_SUBNET_MASK = 1
OPT_ROUTERS = 3
OPT_NAME_SERVERS = 6
OPT_HOSTNAME = 12
OPT_REQUESTED_IP = 50
OPT_LEASE_TIME = 51
OPT_MESSAGE_TYPE = 53
OPT_SERVER_ID = 54
OPT_PARAMETER_LIST = 55
OPT_END = 255

MSG_DISCOVER = 1
MSG_OFFER = 2
MSG_REQUEST = 3
MSG_DECLINE = 4
MSG_ACK = 5
MSG_NAK = 6

# op, htype, hlen, hops, xid, secs, flags, ciaddr, yiaddr, siaddr, giaddr,
# chaddr, sname, file, cookie
_HEADER = struct.Struct(">BBBBIHH4s4s4s4s16s64s128s4s")


class DhcpStatus(enum.Enum):
    """State of a DHCP conversation."""

    START = "start"
    OFFER = "offer"
    ACK = "ack"
    DECLINED = "declined"
    NACK = "nack"
    TIMEOUT = "timeout"
    USER_ABORT = "user_abort"


_STATUS_BY_TYPE = {
    MSG_OFFER: DhcpStatus.OFFER,
    MSG_DECLINE: DhcpStatus.DECLINED,
    MSG_ACK: DhcpStatus.ACK,
    MSG_NAK: DhcpStatus.NACK,
}


@dataclass
class DhcpReply:
    """The parts of a server reply that the client uses."""

    message_type: int
    your_ip: IpAddr
    subnet_mask: Optional[IpAddr] = None
    gateway: Optional[IpAddr] = None
    name_server: Optional[IpAddr] = None
    server_id: Optional[IpAddr] = None
    lease_time: int = 0

    @property
    def status(self) -> Optional[DhcpStatus]:
        """The conversation status this reply leads to, if any."""
        return _STATUS_BY_TYPE.get(self.message_type)


def _mac_bytes(mac: Union[bytes, Sequence[int]]) -> bytes:
    raw = bytes(mac)
    if len(raw) != 6:
        raise ValueError("a hardware address has 6 bytes")
    return raw


def _addr_bytes(addr: Sequence[int]) -> bytes:
    raw = bytes(addr)
    if len(raw) != 4:
        raise ValueError("an IP address has 4 bytes")
    return raw


def _hostname_option(hostname: str) -> bytes:
    raw = hostname.encode("ascii")
    if len(raw) > 255:
        raise ValueError("hostname is too long for a DHCP option")
    return bytes((OPT_HOSTNAME, len(raw))) + raw


def _packet(mac, transaction_id: int, options: bytes) -> bytes:
    header = _HEADER.pack(
        1, 1, 6, 0,
        transaction_id & 0xFFFFFFFF,
        0, 0,
        bytes(4), bytes(4), bytes(4), bytes(4),
        _mac_bytes(mac).ljust(16, b"\0"),
        bytes(64), bytes(128),
        MAGIC_COOKIE,
    )
    return header + options


def build_discover(mac, hostname: str, transaction_id: int) -> bytes:
    """Build a DHCPDISCOVER asking for subnet mask, routers and name servers."""
    options = (
        bytes((OPT_MESSAGE_TYPE, 1, MSG_DISCOVER))
        + bytes((OPT_PARAMETER_LIST, 3, OPT_SUBNET_MASK, OPT_ROUTERS, OPT_NAME_SERVERS))
        + _hostname_option(hostname)
        + bytes((OPT_END,))
    )
    return _packet(mac, transaction_id, options)


def build_request(mac, hostname: str, transaction_id: int,
                  your_ip: Sequence[int], server_id: Sequence[int]) -> bytes:
    """Build a DHCPREQUEST for the offered address from the offering server."""
    options = (
        bytes((OPT_MESSAGE_TYPE, 1, MSG_REQUEST))
        + bytes((OPT_REQUESTED_IP, 4)) + _addr_bytes(your_ip)
        + bytes((OPT_SERVER_ID, 4)) + _addr_bytes(server_id)
        + _hostname_option(hostname)
        + bytes((OPT_END,))
    )
    return _packet(mac, transaction_id, options)


def _first_addr(data: bytes) -> Optional[IpAddr]:
    if len(data) < 4:
        return None
    return tuple(data[:4])


def parse_reply(packet: bytes, transaction_id: int) -> Optional[DhcpReply]:
    """Parse a server reply; return None if it is not a valid reply to our request."""
    if len(packet) < HEADER_LEN + 3:
        return None
    fields = _HEADER.unpack_from(packet, 0)
    op, xid, yiaddr, cookie = fields[0], fields[4], fields[8], fields[14]
    if op != 2:
        return None
    if xid != transaction_id & 0xFFFFFFFF:
        return None
    if cookie != MAGIC_COOKIE:
        return None

    options = packet[HEADER_LEN:]
    if options[0] != OPT_MESSAGE_TYPE:
        return None

    reply = DhcpReply(message_type=options[2], your_ip=tuple(yiaddr))

    pos = 3
    while pos < len(options):
        code = options[pos]
        if code == OPT_END:
            break
        if code == OPT_PAD:
            pos += 1
            continue
        if pos + 1 >= len(options):
            break
        length = options[pos + 1]
        data = options[pos + 2:pos + 2 + length]
        if code == OPT_LEASE_TIME:
            if len(data) >= 4:
                reply.lease_time = struct.unpack_from(">I", data)[0]
            pos += 6
        elif code == OPT_SERVER_ID:
            reply.server_id = _first_addr(data) or reply.server_id
            pos += 6
        elif code == OPT_SUBNET_MASK:
            reply.subnet_mask = _first_addr(data) or reply.subnet_mask
            pos += 6
        elif code == OPT_ROUTERS:
            reply.gateway = _first_addr(data) or reply.gateway
            pos += 2 + length
        elif code == OPT_NAME_SERVERS:
            reply.name_server = _first_addr(data) or reply.name_server
            pos += 2 + length
        else:
            pos += 2 + length

    return reply