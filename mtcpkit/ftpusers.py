"""FTP server user file: parsing, sanity checking and lookup of user records."""

from __future__ import annotations

import enum
import os
import string
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from mtcpkit.tokens import next_token

USERNAME_LEN = 11
USERPASS_LEN = 16
USR_MAX_PATH_LENGTH = 80
PERM_TOKEN_LEN = 10

NO_SANDBOX = "[NONE]"
ANY_UPLOAD_DIR = "[ANY]"
_DRIVE_PREFIX = "/DRIVE_"


class Permission(enum.Flag):
    """Filesystem-altering commands a user may issue."""

    NONE = 0
    DELE = enum.auto()
    MKD = enum.auto()
    RMD = enum.auto()
    RNFR = enum.auto()
    STOR = enum.auto()
    APPE = enum.auto()
    STOU = enum.auto()
    ALL = DELE | MKD | RMD | RNFR | STOR | APPE | STOU


class UserRecordError(ValueError):
    """A user record is malformed or fails its sanity check."""


class MissingFieldError(UserRecordError):
    """A required field of a user record is missing."""


class PermissionTextError(UserRecordError):
    """A permission word in a user record is not recognised."""


@dataclass
class FtpUser:
    """One user of the FTP server."""

    user_name: str
    password: str
    sandbox: str
    upload_dir: str
    permissions: Permission = field(default=Permission.NONE)

    def allows(self, permission: Permission) -> bool:
        """True if every command in permission is granted."""
        return (self.permissions & permission) == permission


def parse_user_record(line: str) -> FtpUser:
    """Parse one line of the user file into an FtpUser."""
    if not line:
        raise MissingFieldError("missing fields")

    user_name, rest = next_token(line, USERNAME_LEN)
    if rest is None or not user_name:
        raise MissingFieldError("missing fields")

    password, rest = next_token(rest, USERPASS_LEN)
    if rest is None or not password:
        raise MissingFieldError("missing fields")
    if password.upper() == "[EMAIL]":
        password = password.upper()

    sandbox, rest = next_token(rest, USR_MAX_PATH_LENGTH)
    if rest is None or not sandbox:
        raise MissingFieldError("missing fields")

    upload_dir, rest = next_token(rest, USR_MAX_PATH_LENGTH)
    if not upload_dir:
        raise MissingFieldError("missing fields")

    permissions = Permission.NONE
    while rest is not None:
        word, rest = next_token(rest, PERM_TOKEN_LEN)
        if not word:
            break
        word = word.upper()
        try:
            permissions |= Permission[word]
        except KeyError:
            raise PermissionTextError(f"unrecognized permission {word!r}") from None
        if word == "NONE":
            raise PermissionTextError("unrecognized permission 'NONE'")

    return FtpUser(user_name, password, sandbox.upper(), upload_dir.upper(), permissions)


def _default_drive_roots() -> Dict[str, str]:
    if os.name == "nt":
        return {
            letter: f"{letter}:\\"
            for letter in string.ascii_uppercase
            if os.path.isdir(f"{letter}:\\")
        }
    return {"C": os.sep}


def _has_drive_prefix(path: str) -> bool:
    return (
        len(path) >= 8
        and path.startswith(_DRIVE_PREFIX)
        and path[7].isalpha()
        and (len(path) == 8 or path[8] == "/")
    )


def _normalize_dir(path: str) -> str:
    if not path.startswith("/"):
        raise ValueError("path must be absolute")
    stack: List[str] = []
    for part in path.split("/"):
        if part in ("", "."):
            continue
        if part == "..":
            if not stack:
                raise ValueError("path goes above the root")
            stack.pop()
        else:
            stack.append(part)
    result = "/" + "/".join(stack)
    if len(result) >= USR_MAX_PATH_LENGTH:
        raise ValueError("path too long")
    return result


def _to_local(path: str, roots: Dict[str, str]) -> Optional[str]:
    if not _has_drive_prefix(path):
        return None
    root = roots.get(path[7].upper())
    if root is None:
        return None
    rest = path[8:].strip("/")
    return os.path.join(root, *rest.split("/")) if rest else root


def _sanity_check(user: FtpUser, roots: Dict[str, str]) -> None:
    has_sandbox = user.sandbox != NO_SANDBOX
    if has_sandbox:
        sandbox = user.sandbox
        if len(sandbox) > 9 and sandbox.endswith("/"):
            sandbox = sandbox[:-1]
        if not _has_drive_prefix(sandbox):
            raise UserRecordError("sandbox field should start with /DRIVE_x/")
        if sandbox[7].upper() not in roots:
            raise UserRecordError("bad drive letter in sandbox field")
        try:
            sandbox = _normalize_dir(sandbox)
        except ValueError:
            raise UserRecordError("sandbox path is not valid") from None
        if not _has_drive_prefix(sandbox):
            raise UserRecordError("sandbox path is not valid")
        local = _to_local(sandbox, roots)
        if local is None or not os.path.isdir(local):
            raise UserRecordError("sandbox is not a directory")
        user.sandbox = sandbox

    if user.upload_dir != ANY_UPLOAD_DIR:
        if not user.upload_dir.startswith("/"):
            raise UserRecordError("uploaddir needs to start with a '/'")
        try:
            upload_dir = _normalize_dir(user.upload_dir)
        except ValueError:
            raise UserRecordError("uploaddir field is not valid") from None
        user.upload_dir = upload_dir
        base = user.sandbox if has_sandbox else ""
        if len(base) + len(upload_dir) >= USR_MAX_PATH_LENGTH:
            raise UserRecordError("combined sandbox and incoming dirs too long")
        local = _to_local(base + upload_dir, roots)
        if local is None or not os.path.isdir(local):
            raise UserRecordError("incoming is not a directory")


def _records(lines):
    """Yield (line number, line) for lines that hold a user record."""
    for number, raw in enumerate(lines, start=1):
        line = raw.rstrip("\n")
        if not line or line.startswith("#"):
            continue
        name, _ = next_token(line, USERNAME_LEN)
        if not name:
            continue
        yield number, name, line


class UserFile:
    """The open user file; records are looked up by scanning it."""

    def __init__(self, path) -> None:
        self.path = path
        self.drive_roots: Dict[str, str] = _default_drive_roots()
        self._file = open(path, "r", encoding="latin-1")

    def _lines(self):
        self._file.seek(0)
        return self._file.readlines()

    def check(self) -> List[str]:
        """Parse and sanity check every record; return one message per problem."""
        problems = []
        for number, _name, line in _records(self._lines()):
            try:
                user = parse_user_record(line)
            except MissingFieldError:
                problems.append(f"line {number}: missing fields")
                continue
            except PermissionTextError:
                problems.append(f"line {number}: unrecognized permissions text")
                continue
            try:
                _sanity_check(user, self.drive_roots)
            except UserRecordError as exc:
                problems.append(f"line {number}: {exc}")
        return problems

    def get_user(self, name: str) -> Optional[FtpUser]:
        """Return the record for name (case-insensitive), or None if absent or bad."""
        target = name.lower()
        for _number, user_name, line in _records(self._lines()):
            if user_name.lower() == target:
                try:
                    return parse_user_record(line)
                except UserRecordError:
                    return None
        return None

    def close(self) -> None:
        """Close the underlying file."""
        self._file.close()

    @property
    def closed(self) -> bool:
        return self._file.closed

    def __enter__(self) -> "UserFile":
        return self

    def __exit__(self, *args) -> None:
        self.close()