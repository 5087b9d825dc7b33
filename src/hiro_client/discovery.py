"""Endpoint discovery for the HIRO client.

``GET <root>/api/version`` returns a map of API name to endpoint entry. The
map is fetched at most once per owning resolver (unless invalidated) and
can be shared between clients by binding a resolver to another one.
"""

from __future__ import annotations

import threading
from collections.abc import Mapping
from typing import TYPE_CHECKING

from pydantic import ValidationError

from .core.errors import ErrorFactory
from .core.uri_builder import join_path
from .errors import DiscoveryError, TransportError, UnknownApiError
from .models import VersionEntry, VersionResponse
from .telemetry import get_logger, trace_operation

if TYPE_CHECKING:
    import structlog

    from .core.http_executor import HTTPExecutor

VERSION_PATH = "api/version"


class EndpointResolver:
    """Maps logical API names to absolute endpoint URIs.

    Explicit overrides win and never trigger discovery. A resolver created
    with ``shared=`` holds no map of its own and delegates every lookup to
    the resolver it is bound to.
    """

    def __init__(
        self,
        root_url: str,
        http: HTTPExecutor | None = None,
        *,
        user_agent: str | None = None,
        overrides: Mapping[str, str] | None = None,
        shared: EndpointResolver | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        if shared is None and http is None:
            msg = "An HTTP executor is required unless the resolver is shared"
            raise ValueError(msg)
        self._root_url = root_url.rstrip("/")
        self._http = http
        self._user_agent = user_agent
        self._overrides = dict(overrides or {})
        self._shared = shared.owner if shared is not None else None
        self._logger = logger or get_logger().bind(component="discovery")
        self._lock = threading.Lock()
        self._versions: VersionResponse | None = None

    @property
    def root_url(self) -> str:
        return self._root_url

    @property
    def is_shared(self) -> bool:
        return self._shared is not None

    @property
    def owner(self) -> EndpointResolver:
        """The resolver that actually holds the endpoint map."""
        return self._shared if self._shared is not None else self

    def get_version_map(self, *, force: bool = False) -> VersionResponse:
        """Return the endpoint map, fetching it on first use.

        Args:
            force: Fetch again even if a map is cached.

        Raises:
            DiscoveryError: If the discovery call fails; nothing is cached.
        """
        if self._shared is not None:
            return self._shared.get_version_map(force=force)

        versions = self._versions
        if versions is not None and not force:
            return versions

        with self._lock:
            if self._versions is not None and not force:
                return self._versions
            versions = self._fetch()
            self._versions = versions
            return versions

    def invalidate(self) -> None:
        """Drop the cached map; the next lookup fetches again."""
        if self._shared is not None:
            self._shared.invalidate()
            return
        with self._lock:
            self._versions = None

    def version_entry(self, api_name: str) -> VersionEntry:
        """Discovery entry of ``api_name``.

        Raises:
            DiscoveryError: If discovery fails.
            UnknownApiError: If the map has no entry for ``api_name``.
        """
        entry = self.get_version_map().get(api_name)
        if entry is None:
            raise UnknownApiError(api_name)
        return entry

    def resolve(self, api_name: str) -> str:
        """Absolute endpoint URI of ``api_name`` without trailing slash."""
        override = self._overrides.get(api_name)
        if override:
            return join_path(self._root_url, override).rstrip("/")
        return join_path(self._root_url, self.version_entry(api_name).endpoint).rstrip("/")

    def _fetch(self) -> VersionResponse:
        http = self._http
        if http is None:
            raise DiscoveryError("No HTTP executor to fetch the endpoint map")
        url = f"{self._root_url}/{VERSION_PATH}"
        headers = {"Accept": "application/json"}
        if self._user_agent:
            headers["User-Agent"] = self._user_agent

        with trace_operation("discovery.fetch", attributes={"http.url": url}):
            try:
                response = http.execute("GET", url, headers=headers)
            except TransportError as e:
                self._logger.warning("Discovery failed", url=url, error=str(e))
                raise ErrorFactory.discovery_error(cause=e) from e

            if not response.is_success:
                self._logger.warning(
                    "Discovery rejected", url=url, status_code=response.status_code
                )
                raise ErrorFactory.discovery_error(response=response)

            try:
                versions = VersionResponse.model_validate(response.json())
            except (ValueError, ValidationError) as e:
                raise DiscoveryError(
                    "Discovery returned an unreadable document",
                    status_code=response.status_code,
                    cause=e,
                ) from e

        self._logger.debug("Discovery succeeded", url=url, apis=sorted(versions))
        return versions
