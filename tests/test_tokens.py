import pytest

from mtcpkit.tokens import dump_bytes, next_token, rtrim


def test_next_token_skips_leading_whitespace():
    token, rest = next_token("  USER pass", 10)
    assert token == "USER"
    assert rest == " pass"


def test_next_token_chains_through_words():
    words = []
    rest = "one two\tthree"
    while rest is not None:
        token, rest = next_token(rest, 20)
        words.append(token)
    assert words == ["one", "two", "three"]


def test_next_token_truncates_to_buffer_length():
    token, rest = next_token("abcdefghij rest", 4)
    assert token == "abc"
    assert rest == " rest"


def test_next_token_last_word_has_no_rest():
    token, rest = next_token("last   \n", 10)
    assert token == "last"
    assert rest is None


def test_next_token_empty_input():
    assert next_token("   ", 10) == ("", None)


def test_next_token_rejects_zero_length():
    with pytest.raises(ValueError):
        next_token("word", 0)


def test_rtrim_reports_removed_whitespace():
    assert rtrim("abc  \n") == ("abc", True)


def test_rtrim_unchanged_text():
    assert rtrim("abc") == ("abc", False)


def test_dump_bytes_empty():
    assert dump_bytes(b"") == ""


def test_dump_bytes_round_trips_hex():
    data = bytes(range(40))
    dump = dump_bytes(data)
    lines = dump.splitlines()
    assert len(lines) == 3
    recovered = bytearray()
    for line in lines:
        hex_part = line[6:6 + 47]
        recovered += bytes.fromhex(hex_part.replace(" ", ""))
    assert bytes(recovered) == data


def test_dump_bytes_shows_printable_text():
    dump = dump_bytes(b"Hi\x00")
    assert dump.rstrip("\n").endswith("Hi.")