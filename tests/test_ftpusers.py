import pytest

from mtcpkit.ftpusers import (
    FtpUser,
    MissingFieldError,
    Permission,
    PermissionTextError,
    UserFile,
    parse_user_record,
)


def test_parse_minimal_record():
    user = parse_user_record("alice password [NONE] [ANY]")
    assert user == FtpUser("alice", "password", "[NONE]", "[ANY]", Permission.NONE)


def test_parse_all_permissions():
    user = parse_user_record("bob password [NONE] [ANY] all")
    assert user.permissions == Permission.ALL
    assert user.allows(Permission.STOR | Permission.DELE)


def test_parse_individual_permissions():
    user = parse_user_record("bob password [NONE] [ANY] dele mkd")
    assert user.permissions == Permission.DELE | Permission.MKD
    assert not user.allows(Permission.STOR)


def test_parse_uppercases_paths():
    user = parse_user_record("carol password /drive_c/pub /in")
    assert user.sandbox == "/DRIVE_C/PUB"
    assert user.upload_dir == "/IN"


def test_email_password_marker_uppercased():
    user = parse_user_record("anonymous [email] [NONE] [ANY]")
    assert user.password == "[EMAIL]"


@pytest.mark.parametrize(
    "line",
    ["", "alice", "alice password", "alice password [NONE]"],
)
def test_missing_fields(line):
    with pytest.raises(MissingFieldError):
        parse_user_record(line)


def test_bad_permission_word():
    with pytest.raises(PermissionTextError):
        parse_user_record("alice password [NONE] [ANY] fly")


def _write(tmp_path, text):
    path = tmp_path / "users.txt"
    path.write_text(text)
    return path


def test_check_good_file(tmp_path):
    (tmp_path / "PUB" / "IN").mkdir(parents=True)
    path = _write(
        tmp_path,
        "# comment\n\nalice password /DRIVE_C/PUB/ /IN all\nbob password [NONE] [ANY]\n",
    )
    with UserFile(path) as users:
        users.drive_roots = {"C": str(tmp_path)}
        assert users.check() == []


def test_check_reports_problems(tmp_path):
    (tmp_path / "PUB").mkdir()
    path = _write(
        tmp_path,
        "a password /PUB [ANY]\n"
        "b password /DRIVE_Q/PUB [ANY]\n"
        "c password /DRIVE_C/MISSING [ANY]\n"
        "d password /DRIVE_C/PUB IN\n"
        "e password\n"
        "f password [NONE] [ANY] fly\n",
    )
    with UserFile(path) as users:
        users.drive_roots = {"C": str(tmp_path)}
        problems = users.check()
    assert problems == [
        "line 1: sandbox field should start with /DRIVE_x/",
        "line 2: bad drive letter in sandbox field",
        "line 3: sandbox is not a directory",
        "line 4: uploaddir needs to start with a '/'",
        "line 5: missing fields",
        "line 6: unrecognized permissions text",
    ]


def test_check_missing_upload_dir(tmp_path):
    (tmp_path / "PUB").mkdir()
    path = _write(tmp_path, "a password /DRIVE_C/PUB /NOPE\n")
    with UserFile(path) as users:
        users.drive_roots = {"C": str(tmp_path)}
        assert users.check() == ["line 1: incoming is not a directory"]


def test_get_user_case_insensitive(tmp_path):
    path = _write(tmp_path, "# users\nalice password [NONE] [ANY] stor\n")
    with UserFile(path) as users:
        user = users.get_user("ALICE")
        assert user.user_name == "alice"
        assert user.permissions == Permission.STOR
        assert users.get_user("nobody") is None


def test_get_user_bad_record_is_not_found(tmp_path):
    path = _write(tmp_path, "alice password [NONE] [ANY] fly\n")
    with UserFile(path) as users:
        assert users.get_user("alice") is None


def test_context_manager_closes(tmp_path):
    path = _write(tmp_path, "alice password [NONE] [ANY]\n")
    with UserFile(path) as users:
        assert not users.closed
    assert users.closed


def test_missing_file_raises(tmp_path):
    with pytest.raises(OSError):
        UserFile(tmp_path / "absent.txt")