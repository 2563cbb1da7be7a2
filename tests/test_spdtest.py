import socket

import pytest

from mtcpkit.spdtest import (
    DEFAULT_TEST_BYTES,
    SpeedTestResult,
    UsageError,
    average_packet_size,
    make_pattern,
    main,
    parse_args,
    run_receive,
    run_send,
)


def test_parse_target_send_defaults():
    opts = parse_args(["-send", "-target", "host.example.com", "5001"])
    assert opts.listening is False
    assert opts.sending is True
    assert opts.server == "host.example.com"
    assert opts.server_port == 5001
    assert opts.total_bytes == DEFAULT_TEST_BYTES == 4194304


def test_parse_listen_receive_has_no_bytes_to_send():
    opts = parse_args(["-LISTEN", "2000", "-Receive"])
    assert opts.listening is True
    assert opts.port == 2000
    assert opts.sending is False
    assert opts.total_bytes == 0


def test_parse_mb_sets_total():
    opts = parse_args(["-send", "-listen", "2000", "-mb", "3"])
    assert opts.total_bytes == 3 * 1048576


@pytest.mark.parametrize(
    "argv, message",
    [
        (["-send"], "Must specify either -listen or -target"),
        (["-listen", "2000"], "Must specify either -send or -receive"),
        (["-listen", "2000", "-target", "h", "1", "-send"],
         "Specify -listen or -target, but not both"),
        (["-send", "-receive", "-listen", "1"], "Specify -send or -receive, but not both"),
        (["-listen", "0", "-send"], "Use a non-zero port to listen on"),
        (["-listen", "1", "-send", "-mb", "65"],
         "The value for -mb needs to be between 1 and 64"),
        (["-listen", "1", "-send", "-mb", "0"],
         "The value for -mb needs to be between 1 and 64"),
        (["-listen", "1", "-receive", "-mb", "2"], "-mb only makes sense when sending."),
        (["-target", "h"], "Need to provide a target port on the server"),
        (["-listen"], "Need to provide a port number with the -listen option"),
        (["-bogus"], "Unknown option -bogus"),
    ],
)
def test_parse_errors(argv, message):
    with pytest.raises(UsageError) as info:
        parse_args(argv)
    assert str(info.value) == message


def test_help_raises_usage():
    with pytest.raises(UsageError):
        parse_args(["-help"])


def test_make_pattern_cycles_printable():
    data = make_pattern(300)
    assert len(data) == 300
    assert data[0] == 32
    assert data[94] == ord("~")
    assert data[95:190] == data[0:95]
    assert all(32 <= b < 127 for b in data)


def test_make_pattern_negative():
    with pytest.raises(ValueError):
        make_pattern(-1)


def test_average_packet_size_exact_and_rounding():
    assert average_packet_size(1460 * 7, 7) == 1460
    assert average_packet_size(3, 2) == 2
    assert average_packet_size(4, 3) == 1


def test_average_packet_size_zero_packets():
    with pytest.raises(ValueError):
        average_packet_size(10, 0)


def test_send_then_receive_round_trip():
    a, b = socket.socketpair()
    with a, b:
        sent = run_send(a, 5000, 1460)
        got = run_receive(b, 100000)
    assert sent.bytes_sent == 5000
    assert got.bytes_received == 5000
    assert got.packets_received >= 1


def test_sent_data_is_pattern_chunks():
    a, b = socket.socketpair()
    with a, b:
        run_send(a, 250, 100)
        chunks = []
        while True:
            data = b.recv(4096)
            if not data:
                break
            chunks.append(data)
    payload = b"".join(chunks)
    pattern = make_pattern(100)
    assert payload == pattern + pattern + pattern[:50]


def test_run_send_rejects_bad_chunk():
    a, b = socket.socketpair()
    with a, b:
        with pytest.raises(ValueError):
            run_send(a, 10, 0)


def test_report_mentions_counters():
    result = SpeedTestResult(bytes_sent=10, bytes_received=3000, packets_received=2)
    text = result.report()
    assert "Bytes sent: 10" in text
    assert "Received: 3000" in text
    assert "Avg packet size: 1500" in text
    assert "Warning" not in text


def test_main_usage_error_returns_one(capsys):
    assert main(["-bogus"]) == 1
    assert "Unknown option -bogus" in capsys.readouterr().out