"""URI construction shared by the request executor and the WebSocket session."""

from __future__ import annotations

from collections.abc import Mapping
from urllib.parse import urlencode, urljoin, urlsplit, urlunsplit


def join_path(base: str, path: str | None) -> str:
    """Append ``path`` below ``base``.

    Leading slashes of ``path`` are ignored so that the result always stays
    below ``base``; an absolute ``path`` replaces ``base``.
    """
    if not path:
        return base
    if urlsplit(path).scheme:
        return path
    return urljoin(base.rstrip("/") + "/", path.lstrip("/"))


def add_query_and_fragment(
    uri: str,
    query: Mapping[str, str] | None = None,
    fragment: str | None = None,
) -> str:
    """Append query parameters and a fragment to ``uri``.

    Raises:
        ValueError: If ``uri`` already has a query or fragment and another
            one is supplied.
    """
    parts = urlsplit(uri)
    query_string = parts.query
    if query:
        if parts.query:
            msg = f"URI already has a query: {uri}"
            raise ValueError(msg)
        query_string = urlencode(dict(query))
    fragment_value = parts.fragment
    if fragment:
        if parts.fragment:
            msg = f"URI already has a fragment: {uri}"
            raise ValueError(msg)
        fragment_value = fragment
    return urlunsplit((parts.scheme, parts.netloc, parts.path, query_string, fragment_value))


def build_uri(
    base: str,
    path: str | None = None,
    query: Mapping[str, str] | None = None,
    fragment: str | None = None,
) -> str:
    """Join ``path`` onto ``base`` and append query and fragment."""
    return add_query_and_fragment(join_path(base, path), query, fragment)


def to_websocket_uri(endpoint: str, query: Mapping[str, str] | None = None) -> str:
    """Handshake URI for an HTTP endpoint.

    ``http`` becomes ``ws``, anything else ``wss``. The path gets a
    trailing slash and the fragment is dropped.
    """
    parts = urlsplit(endpoint)
    scheme = "ws" if parts.scheme in ("http", "ws") else "wss"
    path = parts.path if parts.path.endswith("/") else parts.path + "/"
    query_string = urlencode(dict(query)) if query else parts.query
    return urlunsplit((scheme, parts.netloc, path, query_string, ""))
