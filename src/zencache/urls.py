"""URL helpers shared by the classifier, the store and the precache loader.

Every function here treats its input as untrusted: malformed URLs produce
``None`` instead of an exception, so callers can degrade to pass-through.
"""

from __future__ import annotations

from urllib.parse import urljoin, urlsplit, urlunsplit

HTTP_SCHEMES = frozenset({"http", "https"})
_DEFAULT_PORTS = {"http": 80, "https": 443}


def canonicalize(url: str) -> str | None:
    """Return the canonical absolute form of an http(s) URL, or ``None``.

    Lowercases scheme and host, drops default ports and the fragment, and
    turns an empty path into ``/``. The query string is kept verbatim.
    """
    try:
        parts = urlsplit(url)
        scheme = parts.scheme.lower()
        if scheme not in HTTP_SCHEMES:
            return None
        hostname = parts.hostname
        port = parts.port
    except ValueError:
        return None
    if not hostname:
        return None

    host = hostname.lower()
    if ":" in host:
        host = f"[{host}]"
    if port is not None and port != _DEFAULT_PORTS[scheme]:
        host = f"{host}:{port}"
    return urlunsplit((scheme, host, parts.path or "/", parts.query, ""))


def resolve(reference: str, base: str) -> str | None:
    """Resolve ``reference`` against ``base`` and canonicalize the result.

    An empty or non-http(s) base leaves relative references unresolvable
    (``None``); absolute references never need the base.
    """
    try:
        if urlsplit(reference).scheme:
            return canonicalize(reference)
        if canonicalize(base) is None:
            return None
        return canonicalize(urljoin(base, reference))
    except ValueError:
        return None


def origin_of(url: str) -> str | None:
    """Return ``scheme://host[:port]`` for a URL, or ``None`` if malformed."""
    canonical = canonicalize(url)
    if canonical is None:
        return None
    parts = urlsplit(canonical)
    return f"{parts.scheme}://{parts.netloc}"


def path_of(url: str) -> str:
    """Return the path component of an already-canonical URL."""
    return urlsplit(url).path
