"""Collision-free test data for Conduit users, articles and settings.

Every generated record embeds a uniqueness token so tests running in
parallel against the same Conduit instance never trip its username, email
or slug uniqueness constraints. Invalid variants break exactly one rule so a
record exercises a single validation path.
"""
from __future__ import annotations

import itertools
import os
import re
import secrets
import string
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List

USERNAME_MAX_LENGTH = 40
EMAIL_MAX_LENGTH = 254
EMAIL_LOCAL_MAX_LENGTH = 64
DOMAIN_LABEL_MAX_LENGTH = 63
TITLE_MAX_LENGTH = 120
DESCRIPTION_MAX_LENGTH = 255
BIO_MAX_LENGTH = 500
PASSWORD_MIN_LENGTH = 8

EMAIL_DOMAIN = "example.test"

EMAIL_PATTERN = re.compile(r"^[A-Za-z0-9._%+-]+@[A-Za-z0-9-]+(\.[A-Za-z0-9-]+)*\.[A-Za-z]{2,}$")
USERNAME_PATTERN = re.compile(r"^[a-z0-9_]+$")

_sequence = itertools.count(1)
TOKEN_SEPARATOR = "_"

_B36 = string.digits + string.ascii_lowercase


def _base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_B36[rem])
    return "".join(reversed(digits))


def uniqueness_token() -> str:
    """Return a token distinct from every other token issued in this run.

    Layout: millisecond timestamp, process id and a process-wide counter,
    all base 36, plus two random bytes, joined by TOKEN_SEPARATOR so fields
    of different widths can never run into each other. The counter makes
    tokens unique inside a process, the pid separates concurrent workers
    and the timestamp separates runs.
    """
    return TOKEN_SEPARATOR.join(
        (
            _base36(time.time_ns() // 1_000_000),
            _base36(os.getpid()),
            _base36(next(_sequence)),
            secrets.token_hex(2),
        )
    )


def slugify(text: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", text.lower())
    return slug.strip("-")


class Violation(str, Enum):
    """Single rule an invalid record breaks."""

    MALFORMED_EMAIL = "malformed_email"
    EMPTY_REQUIRED = "empty_required"
    OVER_LENGTH = "over_length"


@dataclass
class UserData:
    username: str
    email: str
    password: str
    token: str

    def as_payload(self) -> Dict[str, Dict[str, str]]:
        return {"user": {"username": self.username, "email": self.email, "password": self.password}}


@dataclass
class ArticleData:
    title: str
    description: str
    body: str
    tags: List[str]
    token: str

    @property
    def slug(self) -> str:
        return slugify(self.title)

    def as_payload(self) -> Dict[str, dict]:
        return {
            "article": {
                "title": self.title,
                "description": self.description,
                "body": self.body,
                "tagList": list(self.tags),
            }
        }


@dataclass
class SettingsUpdate:
    """Fields for the Conduit settings form; ``None`` leaves a field untouched."""

    token: str
    username: str | None = None
    email: str | None = None
    bio: str | None = None
    image: str | None = None
    password: str | None = None

    def changed_fields(self) -> Dict[str, str]:
        values = {
            "username": self.username,
            "email": self.email,
            "bio": self.bio,
            "image": self.image,
            "password": self.password,
        }
        return {name: value for name, value in values.items() if value is not None}


@dataclass
class InvalidRecord:
    """A record that is valid except for ``field_name``, which breaks ``violation``."""

    shape: str
    violation: Violation
    field_name: str
    values: Dict[str, object] = field(default_factory=dict)
    token: str = ""

    def as_payload(self) -> Dict[str, Dict[str, object]]:
        return {self.shape: dict(self.values)}


# ---- valid shapes -----------------------------------------------------------


def generate_password(length: int = 14) -> str:
    """Password with at least one upper, lower, digit and symbol."""
    length = max(length, PASSWORD_MIN_LENGTH)
    required = [
        secrets.choice(string.ascii_uppercase),
        secrets.choice(string.ascii_lowercase),
        secrets.choice(string.digits),
        secrets.choice("!@#$%^&*"),
    ]
    alphabet = string.ascii_letters + string.digits
    rest = [secrets.choice(alphabet) for _ in range(length - len(required))]
    chars = required + rest
    secrets.SystemRandom().shuffle(chars)
    return "".join(chars)


def generate_email(prefix: str = "qa", token: str | None = None) -> str:
    token = token or uniqueness_token()
    return f"{prefix}.{token}@{EMAIL_DOMAIN}"


def generate_user(prefix: str = "qa") -> UserData:
    token = uniqueness_token()
    username = f"{prefix}_{token}"[:USERNAME_MAX_LENGTH]
    return UserData(
        username=username,
        email=generate_email(prefix, token),
        password=generate_password(),
        token=token,
    )


def generate_article(title_seed: str = "Automation article", tags: List[str] | None = None) -> ArticleData:
    token = uniqueness_token()
    title = f"{title_seed} {token}"
    if len(title) > TITLE_MAX_LENGTH:
        title = f"{title_seed[:TITLE_MAX_LENGTH - len(token) - 1]} {token}"
    return ArticleData(
        title=title,
        description=f"Generated article {token}",
        body=f"Body of article {token}, created by automated UI tests.",
        tags=list(tags) if tags is not None else ["automation", f"run-{token}"],
        token=token,
    )


def generate_settings_update(**overrides: str) -> SettingsUpdate:
    """A fresh bio (and any explicitly given fields) for the settings form."""
    token = uniqueness_token()
    update = SettingsUpdate(token=token, bio=f"Bio updated by automation {token}")
    for name, value in overrides.items():
        if not hasattr(update, name) or name == "token":
            raise ValueError(f"Unknown settings field: {name}")
        setattr(update, name, value)
    return update


# ---- invalid shapes ---------------------------------------------------------

_MALFORMED_EMAIL_FORMS = (
    "{token}.example.test",
    "{token}@",
    "@{token}.example.test",
    "{token}@example",
    "{token} space@example.test",
    "{token}@@example.test",
)


def generate_invalid_email(token: str | None = None) -> str:
    """An email missing exactly one syntactic element."""
    token = token or uniqueness_token()
    form = secrets.choice(_MALFORMED_EMAIL_FORMS)
    return form.format(token=f"qa.{token}")


def _over_length(limit: int, token: str) -> str:
    value = f"qa_{token}_"
    return (value + "x" * limit)[: limit + 1]


def _over_length_email(token: str) -> str:
    """Well-formed address exactly one character over EMAIL_MAX_LENGTH.

    The local part and every domain label stay within their own limits; the
    extra length comes from additional subdomain labels.
    """
    local = f"qa.{token}"[:EMAIL_LOCAL_MAX_LENGTH]
    suffix = f".{EMAIL_DOMAIN}"
    filler_length = EMAIL_MAX_LENGTH + 1 - len(local) - 1 - len(suffix)
    chunk = "a" * (DOMAIN_LABEL_MAX_LENGTH - 1) + "."
    filler = (chunk * (filler_length // len(chunk) + 1))[:filler_length]
    if filler.endswith("."):
        filler = filler[:-1] + "a"
    return f"{local}@{filler}{suffix}"


def generate_invalid_user(violation: Violation, field_name: str | None = None) -> InvalidRecord:
    user = generate_user()
    values: Dict[str, object] = {"username": user.username, "email": user.email, "password": user.password}

    if violation is Violation.MALFORMED_EMAIL:
        field_name = "email"
        values["email"] = generate_invalid_email(user.token)
    elif violation is Violation.EMPTY_REQUIRED:
        field_name = field_name or "username"
        if field_name not in values:
            raise ValueError(f"Unknown user field: {field_name}")
        values[field_name] = ""
    elif violation is Violation.OVER_LENGTH:
        field_name = field_name or "username"
        if field_name == "username":
            values["username"] = _over_length(USERNAME_MAX_LENGTH, user.token)
        elif field_name == "email":
            values["email"] = _over_length_email(user.token)
        else:
            raise ValueError(f"No length limit for user field: {field_name}")
    else:
        raise ValueError(f"Unsupported violation: {violation}")

    return InvalidRecord(shape="user", violation=violation, field_name=field_name, values=values, token=user.token)


def generate_invalid_article(violation: Violation, field_name: str | None = None) -> InvalidRecord:
    article = generate_article()
    values: Dict[str, object] = {
        "title": article.title,
        "description": article.description,
        "body": article.body,
        "tagList": list(article.tags),
    }
    limits = {"title": TITLE_MAX_LENGTH, "description": DESCRIPTION_MAX_LENGTH}

    if violation is Violation.EMPTY_REQUIRED:
        field_name = field_name or "title"
        if field_name not in ("title", "description", "body"):
            raise ValueError(f"Not a required article field: {field_name}")
        values[field_name] = ""
    elif violation is Violation.OVER_LENGTH:
        field_name = field_name or "title"
        if field_name not in limits:
            raise ValueError(f"No length limit for article field: {field_name}")
        values[field_name] = _over_length(limits[field_name], article.token)
    else:
        raise ValueError(f"Articles cannot violate {violation.value}")

    return InvalidRecord(
        shape="article", violation=violation, field_name=field_name, values=values, token=article.token
    )


def is_valid_email(value: str) -> bool:
    local = value.partition("@")[0]
    return (
        len(value) <= EMAIL_MAX_LENGTH
        and len(local) <= EMAIL_LOCAL_MAX_LENGTH
        and bool(EMAIL_PATTERN.match(value))
    )


def is_valid_username(value: str) -> bool:
    return 0 < len(value) <= USERNAME_MAX_LENGTH and bool(USERNAME_PATTERN.match(value))
