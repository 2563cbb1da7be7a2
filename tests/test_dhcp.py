import os
import struct

import pytest

from mtcpkit.dhcp import (
    DhcpClient,
    DhcpConfig,
    DhcpError,
    DhcpOptions,
    parse_args,
    read_config,
    rewrite_config,
)
from mtcpkit.dhcppacket import DhcpReply, DhcpStatus

MAC = bytes((0x02, 0x00, 0x00, 0x00, 0x00, 0x01))
OFFERED_IP = (192, 168, 1, 50)
MASK = (255, 255, 255, 0)
GATEWAY = (192, 168, 1, 1)
NAME_SERVER = (192, 168, 1, 2)
SERVER_ID = (192, 168, 1, 3)
LEASE = 86400


def write(tmp_path, text):
    path = tmp_path / "tcp.cfg"
    path.write_text(text)
    return path


def make_reply(msg_type, xid):
    header = struct.pack(
        ">BBBBIHH4s4s4s4s16s64s128s4s",
        2, 1, 6, 0, xid, 0, 0,
        bytes(4), bytes(OFFERED_IP), bytes(4), bytes(4),
        MAC.ljust(16, b"\0"), bytes(64), bytes(128),
        bytes((99, 130, 83, 99)),
    )
    options = (
        bytes((53, 1, msg_type))
        + bytes((1, 4)) + bytes(MASK)
        + bytes((3, 4)) + bytes(GATEWAY)
        + bytes((6, 4)) + bytes(NAME_SERVER)
        + bytes((51, 4)) + struct.pack(">I", LEASE)
        + bytes((54, 4)) + bytes(SERVER_ID)
        + bytes((255,))
    )
    return header + options


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class FakeTransport:
    def __init__(self, script, clock):
        self.script = list(script)
        self.sent = []
        self.clock = clock

    def send(self, payload):
        self.sent.append(payload)

    def receive(self, timeout):
        if self.script:
            msg_type, xid_delta = self.script.pop(0)
            xid = int.from_bytes(self.sent[-1][4:8], "big")
            return make_reply(msg_type, xid + xid_delta)
        self.clock.now += timeout
        return None


def make_client(script, retries=2):
    clock = FakeClock()
    transport = FakeTransport(script, clock)
    client = DhcpClient(MAC, "box", DhcpOptions(retries=retries, timeout=5), transport)
    client.clock = clock
    return client, transport


def test_read_config_basic(tmp_path):
    path = write(tmp_path, "PACKETINT 0x60\nHOSTNAME mybox\nMTU 1500\nIPADDR 10.0.0.5\n")
    config = read_config(path)
    assert config.packet_int == 0x60
    assert config.hostname == "mybox"
    assert config.mtu == 1500
    assert config.preferred_nameserver is None
    assert config.warnings == []


def test_read_config_keys_case_insensitive(tmp_path):
    path = write(tmp_path, "packetint 61\nnameserver_preferred 10.0.0.9\n")
    config = read_config(path)
    assert config.packet_int == 0x61
    assert config.preferred_nameserver == (10, 0, 0, 9)


def test_read_config_missing_packetint(tmp_path):
    path = write(tmp_path, "HOSTNAME mybox\n")
    with pytest.raises(DhcpError, match="PACKETINT"):
        read_config(path)


def test_read_config_bad_mtu(tmp_path):
    path = write(tmp_path, "PACKETINT 0x60\nMTU 100\n")
    with pytest.raises(DhcpError, match="MTU"):
        read_config(path)


def test_read_config_bad_preferred_nameserver(tmp_path):
    path = write(tmp_path, "PACKETINT 0x60\nNAMESERVER_PREFERRED nowhere\n")
    with pytest.raises(DhcpError, match="NAMESERVER_PREFERRED"):
        read_config(path)


def test_read_config_trailing_whitespace_warns(tmp_path):
    path = write(tmp_path, "PACKETINT 0x60\nHOSTNAME mybox   \n")
    config = read_config(path)
    assert len(config.warnings) == 1
    assert "line 2" in config.warnings[0]
    assert config.hostname == "mybox"


def test_read_config_missing_file(tmp_path):
    with pytest.raises(DhcpError):
        read_config(tmp_path / "absent.cfg")


def test_read_config_line_too_long(tmp_path):
    path = write(tmp_path, "PACKETINT 0x60\nHOSTNAME " + "x" * 300 + "\n")
    with pytest.raises(DhcpError, match="too long"):
        read_config(path)


def _reply():
    return DhcpReply(message_type=5, your_ip=OFFERED_IP, subnet_mask=MASK,
                     gateway=GATEWAY, name_server=NAME_SERVER, lease_time=LEASE)


def test_rewrite_config_replaces_dhcp_lines(tmp_path):
    path = write(tmp_path, "PACKETINT 0x60\nIPADDR 1.2.3.4\nLEASE_TIME 5\nHOSTNAME box\n")
    used = rewrite_config(path, _reply(), None, now=1000)
    lines = path.read_text().splitlines()
    assert lines[0].startswith("DHCPVER")
    assert lines[1].startswith("TIMESTAMP ( 1000 ) ")
    assert lines[2:] == [
        "PACKETINT 0x60",
        "HOSTNAME box",
        "IPADDR 192.168.1.50",
        "NETMASK 255.255.255.0",
        "GATEWAY 192.168.1.1",
        "NAMESERVER 192.168.1.2",
        "LEASE_TIME 86400",
    ]
    assert used == NAME_SERVER
    assert not os.path.exists(tmp_path / "mtcpcfg.tmp")


def test_rewrite_config_preferred_nameserver(tmp_path):
    path = write(tmp_path, "PACKETINT 0x60\n")
    used = rewrite_config(path, _reply(), (10, 0, 0, 9), now=1000)
    assert used == (10, 0, 0, 9)
    assert "NAMESERVER 10.0.0.9" in path.read_text().splitlines()


def test_rewrite_config_twice_keeps_single_entries(tmp_path):
    path = write(tmp_path, "PACKETINT 0x60\n")
    rewrite_config(path, _reply(), None, now=1000)
    rewrite_config(path, _reply(), None, now=2000)
    lines = path.read_text().splitlines()
    for key in ("IPADDR", "NETMASK", "GATEWAY", "NAMESERVER", "LEASE_TIME",
                "DHCPVER", "TIMESTAMP"):
        assert sum(1 for line in lines if line.split()[0] == key) == 1


def test_rewrite_config_missing_file(tmp_path):
    with pytest.raises(DhcpError):
        rewrite_config(tmp_path / "absent.cfg", _reply(), None, now=1000)


def test_parse_args_defaults():
    options = parse_args([])
    assert (options.retries, options.timeout, options.show_help) == (3, 10, False)


def test_parse_args_values():
    options = parse_args(["-retries", "5", "-TIMEOUT", "30"])
    assert options.retries == 5
    assert options.timeout == 30


def test_parse_args_help():
    assert parse_args(["-help", "-bogus"]).show_help is True


@pytest.mark.parametrize("argv", [
    ["-retries"],
    ["-retries", "0"],
    ["-timeout"],
    ["-timeout", "4"],
    ["-timeout", "121"],
    ["-bogus"],
])
def test_parse_args_errors(argv):
    with pytest.raises(DhcpError):
        parse_args(argv)


def test_client_offer_then_ack():
    client, transport = make_client([(2, 0), (5, 0)])
    status = client.run()
    assert status is DhcpStatus.ACK
    assert client.lease.your_ip == OFFERED_IP
    assert client.lease.gateway == GATEWAY
    assert client.lease.lease_time == LEASE
    assert len(transport.sent) == 2
    request = transport.sent[1]
    assert request[240:243] == bytes((53, 1, 3))
    assert bytes((50, 4)) + bytes(OFFERED_IP) in request
    assert bytes((54, 4)) + bytes(SERVER_ID) in request


def test_client_nak_every_attempt():
    client, transport = make_client([(2, 0), (6, 0), (2, 0), (6, 0)], retries=2)
    assert client.run() is DhcpStatus.NACK
    assert len(transport.sent) == 4
    assert client.lease is None


def test_client_declined():
    client, _ = make_client([(4, 0)], retries=1)
    assert client.run() is DhcpStatus.DECLINED


def test_client_timeout_without_replies():
    client, transport = make_client([], retries=3)
    assert client.run() is DhcpStatus.TIMEOUT
    assert len(transport.sent) == 3
    assert client.packets_received == 0
    assert client.packets_sent == 3


def test_client_ignores_wrong_transaction():
    client, _ = make_client([(2, 1), (5, 1)], retries=1)
    assert client.run() is DhcpStatus.TIMEOUT
    assert client.packets_received == 2
    assert client.lease is None


def test_client_second_attempt_succeeds():
    client, transport = make_client([(6, 0), (2, 0), (5, 0)], retries=2)
    assert client.run() is DhcpStatus.ACK
    assert transport.sent[1][240:243] == bytes((53, 1, 1))