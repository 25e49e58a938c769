"""
auth/cookies.py -- The single place cookies are parsed and serialized.

Why hand-rolled instead of Response.set_cookie() / Request.cookies:
  Starlette delegates to http.cookies, which quotes unusual values with
  backslash escapes instead of percent-encoding them, and its parser does not
  percent-decode. The cookie contract here is encodeURIComponent on write and
  decodeURIComponent on read, so both directions live in this module and are
  covered by round-trip tests (tests/test_cookies.py).

Auth cookie attributes (CookiePolicy):
  HttpOnly      -- JS cannot read the cookie (XSS mitigation).
  SameSite=Strict -- never sent on cross-site requests (CSRF mitigation).
  Secure        -- only in production; local dev runs over plain HTTP.
  Path=/        -- sent to every API route.
  Max-Age       -- whole seconds, equal to the token lifetime so cookie and
                   token expire together. Clearing re-sets with Max-Age=0.

Layer rule: stdlib only.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING
from urllib.parse import quote, unquote

if TYPE_CHECKING:
    from core.config import Settings

ACCESS_COOKIE = "accessToken"
REFRESH_COOKIE = "refreshToken"

# Characters encodeURIComponent leaves alone besides ALPHA / DIGIT / "-_.~".
_SAFE_CHARS = "!*'()"


def encode_value(value: str) -> str:
    return quote(value, safe=_SAFE_CHARS)


def decode_value(value: str) -> str:
    return unquote(value)


def parse_cookies(header: str | None) -> dict[str, str]:
    """Parse a Cookie request header into {name: decoded value}.

    Each pair is split on its first "=", so encoded or raw "=" inside a value
    survives. Fragments without a name or without a value are ignored. When a
    name repeats, the first occurrence wins (browsers send the most specific
    path first).
    """
    cookies: dict[str, str] = {}
    if not header:
        return cookies
    for fragment in header.split(";"):
        name, sep, value = fragment.strip().partition("=")
        name, value = name.strip(), value.strip()
        if not sep or not name or not value:
            continue
        cookies.setdefault(name, decode_value(value))
    return cookies


def serialize_cookie(
    name: str,
    value: str,
    *,
    http_only: bool = False,
    secure: bool = False,
    same_site: str | None = None,
    max_age: int | None = None,
    path: str | None = None,
) -> str:
    """Build a Set-Cookie header value. The value is percent-encoded.

    max_age=0 is emitted (it means "delete now"); only None omits it.
    """
    parts = [f"{name}={encode_value(value)}"]
    if http_only:
        parts.append("HttpOnly")
    if secure:
        parts.append("Secure")
    if same_site:
        parts.append(f"SameSite={same_site}")
    if max_age is not None:
        parts.append(f"Max-Age={max_age}")
    if path:
        parts.append(f"Path={path}")
    return "; ".join(parts)


def max_age_seconds(lifetime: timedelta) -> int:
    """Whole seconds of a lifetime, rounded down like Math.floor(ms / 1000)."""
    return int(lifetime.total_seconds())


@dataclass(frozen=True)
class CookiePolicy:
    """Attribute set applied to both auth cookies."""

    secure: bool = False
    same_site: str = "Strict"
    path: str = "/"

    @classmethod
    def from_settings(cls, settings: Settings) -> "CookiePolicy":
        return cls(secure=settings.secure_cookies)

    def issue(self, name: str, token: str, lifetime: timedelta) -> str:
        return serialize_cookie(
            name,
            token,
            http_only=True,
            secure=self.secure,
            same_site=self.same_site,
            max_age=max_age_seconds(lifetime),
            path=self.path,
        )

    def clear(self, name: str) -> str:
        return serialize_cookie(
            name,
            "",
            http_only=True,
            secure=self.secure,
            same_site=self.same_site,
            max_age=0,
            path=self.path,
        )
