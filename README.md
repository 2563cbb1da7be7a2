# mtcpkit

Small TCP/IP tools for Python 3.10 and later. The package uses only the
standard library.

- `mtcpkit.dns`: a UDP DNS resolver for A records with a small name cache.
  It follows referrals from one name server to the next.
- `mtcpkit.dhcppacket`: builds DHCPDISCOVER and DHCPREQUEST packets and
  parses server replies.
- `mtcpkit.dhcp`: a DHCP client that writes the lease it receives into a
  configuration file.
- `mtcpkit.ftpusers`: reads and checks FTP server user files, including
  sandboxes, upload directories and command permissions.
- `mtcpkit.spdtest`: a TCP throughput test that either sends or receives.
- `mtcpkit.sample`: a minimal netcat-style client and listener.
- `mtcpkit.termbuffer`, `mtcpkit.cursor` and `mtcpkit.screen`: a terminal
  screen model. It has a ring-buffer backscroll, scroll regions, origin mode
  and wrapping at the right margin.
- `mtcpkit.tokens`: helpers for configuration lines. They split tokens, trim
  trailing whitespace and produce hex dumps.

## Installation

```
pip install mtcpkit
```

To run the tests:

```
pip install "mtcpkit[test]"
pytest
```

## Commands

### mtcp-dhcp

```
mtcp-dhcp [-retries <n>] [-timeout <seconds>] [-help]
```

This command asks the network for an address. It reads the configuration
file named by the `MTCPCFG` environment variable. The file must set
`PACKETINT`. It may also set `HOSTNAME`, `MTU` (576 to 1500) and
`NAMESERVER_PREFERRED`. The command prints a warning for each line that has
trailing whitespace.

When the server acknowledges the lease, the command rewrites the file. The
lines `IPADDR`, `NETMASK`, `GATEWAY`, `NAMESERVER`, `LEASE_TIME`, `DHCPVER`
and `TIMESTAMP` are replaced, and every other line is kept. If
`NAMESERVER_PREFERRED` is set, it is written in place of the name server the
server offered.

`-timeout` takes a value from 5 to 120 seconds. By default the command waits
10 seconds and makes 3 attempts. Press Ctrl-C to abort.

The client binds UDP port 68 and broadcasts. On most systems this needs
administrator rights.

### mtcp-spdtest

```
mtcp-spdtest -send -target <host> <port> [-mb <n>]
mtcp-spdtest -receive -listen <port>
```

This command measures TCP throughput against another machine. Either end may
send or receive. `-mb` sets how many megabytes to send, from 1 to 64, and the
default is 4. It is accepted only with `-send`.

A receive test ends when the peer closes the connection. At the end the
command prints the elapsed time, the byte counts and the average read size.

### mtcp-sample

```
mtcp-sample -target <host> <port>
mtcp-sample -listen <port>
```

This command either connects to a server or waits for one incoming
connection. It then copies standard input to the socket, and data from the
socket to standard output, until the peer closes. A client binds local
port 2048.

## Library use

### DNS

```python
from mtcpkit.dns import Resolver, ResolveStatus, UdpTransport, parse_ipv4

parse_ipv4("10.0.0.1")                  # (10, 0, 0, 1); no lookup is needed

with UdpTransport(2053) as transport:
    resolver = Resolver((192, 168, 1, 1), transport.send)
    status, addr = resolver.resolve("example.com", True)
    while resolver.is_query_pending():
        packet = transport.receive(0.5)
        if packet is not None:
            resolver.handle_response(packet)
        resolver.drive_pending_query()
    status, addr = resolver.resolve("example.com", False)
```

`resolve` returns a `ResolveStatus` together with the address when the
address is known. The statuses are `CACHED`, `SENT`, `BUSY` and `NOT_SENT`.
The lookup is case-sensitive.

`resolve` raises `NameTooLongError` when the name is 128 characters or
longer. It raises `NoNameServerError` when no name server is set. Both are
subclasses of `DnsError`.

`drive_pending_query` sends the query again after 2 seconds without
activity. It gives up after 10 seconds and sets `last_query_rc` to -1.

The cache (`resolver.cache`, a `DnsCache`) holds 20 names. When it is full,
the oldest entry is replaced. `format_table()` lists the entries.

`encode_query` and `decode_name` are also available for working with raw
packets.

### DHCP packets

```python
from mtcpkit.dhcppacket import build_discover, build_request, parse_reply

mac = bytes.fromhex("020000000001")
discover = build_discover(mac, "myhost", 0x1234)
```

`parse_reply(packet, transaction_id)` returns a `DhcpReply` for a valid reply
with a matching transaction id, and `None` otherwise. The reply holds the
offered address, the subnet mask, the gateway, the name server, the server id
and the lease time. Its `status` property is a `DhcpStatus`.

`mtcpkit.dhcp` also provides these pieces:

- `read_config` and `rewrite_config`, which read and rewrite the
  configuration file.
- `parse_args`, which reads the command line.
- `DhcpClient`, which runs the conversation. Its transport needs
  `send(payload)` and `receive(timeout)`.

### FTP user files

Each line of a user file has this form:

```
name password sandbox uploaddir [permissions...]
```

Lines that are empty or start with `#` are skipped. Use `[NONE]` for no
sandbox and `[ANY]` for no upload restriction. A sandbox has the form
`/DRIVE_x/path`. The permissions are `ALL`, `DELE`, `MKD`, `RMD`, `RNFR`,
`STOR`, `APPE` and `STOU`.

```python
from mtcpkit.ftpusers import Permission, UserFile, parse_user_record

user = parse_user_record("guest password [NONE] [ANY] STOR")
user.allows(Permission.STOR)            # True

with UserFile("ftppass.txt") as users:
    problems = users.check()            # one message per bad line
    record = users.get_user("guest")    # case-insensitive; None if absent or bad
```

A bad record raises `MissingFieldError` or `PermissionTextError`. Both are
subclasses of `UserRecordError`.

`check` also checks that each sandbox and upload directory exists. Drive
letters are mapped through `UserFile.drive_roots`. On Windows this covers the
drives that are present. Elsewhere drive `C` maps to the filesystem root.

### Terminal screen

```python
from mtcpkit.screen import Screen

screen = Screen(25, 80, 4, True)
screen.add("Hello\r\nWorld")
screen.row_text(0)                      # "Hello" padded to 80 columns
screen.paint(10)                        # view 10 lines back in backscroll
screen.paint()                          # back to the live screen
```

`Screen` writes into a `TerminalBuffer`, which is the ring of
character/attribute cells. It also keeps a `console` byte image of what is
shown. Slow operations, such as scrolling, stop updating the image and set
`virtual_updated`, and `paint()` brings the two back in step.

The editing operations are `clear`, `ins_line`, `del_line`, `ins_chars`,
`del_chars` and `erase_chars`. `cprintf` writes text straight into the
console image. The cursor, scroll region and origin mode are handled by
`mtcpkit.cursor.Cursor`.

### Tokens

`next_token(text, max_len)` returns the first word and the rest of the line.
`rtrim(text)` returns the trimmed text and whether anything was removed.
`dump_bytes(data)` renders data as a hex dump.

## What this package does not do

- There is no FTP server. `mtcpkit.ftpusers` only reads and checks user files.
- There is no telnet client. The screen model does not parse ANSI or VT100
  escape sequences and does not draw on a real terminal. It keeps the screen
  contents in memory and counts bells in `Screen.bells`.
- The DNS resolver has no command of its own, uses UDP only and asks only for
  A records.
- Everything runs on the host's own network stack. There is no packet driver
  layer.