# Copyright 2025 Softwell S.r.l.
# Licensed under the Apache License, Version 2.0

"""GitLab CI backend: validate CI job tokens against a GitLab repository.

The client sends the project path as Basic username and the job token as
password. The backend asks GitLab for ``<url>/<project>.git`` using the
configured username and the token; a 200 means the token may read the
project.

Options:
    url       GitLab base URL (required).
    username  Username sent to GitLab (default ``gitlab-ci-token``).
    timeout   Request timeout (default ``1m``).
    insecure  Skip TLS certificate verification.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import httpx

from . import Backend, BackendRegistry
from ._http import make_client
from .upstream import DEFAULT_TIMEOUT, parse_url
from ..exceptions import BackendError
from ..options import option_bool, option_duration, option_required, parse_options

if TYPE_CHECKING:
    from ..request import HttpRequest

__all__ = ["DEFAULT_USERNAME", "GitlabCIBackend", "register"]

logger = logging.getLogger(__name__)

DEFAULT_USERNAME = "gitlab-ci-token"


class GitlabCIBackend(Backend):
    backend_name = "gitlabci"

    __slots__ = ("url", "username", "_client")

    def __init__(
        self,
        url: str,
        username: str = DEFAULT_USERNAME,
        timeout: float = DEFAULT_TIMEOUT,
        insecure: bool = False,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = parse_url(url)
        self.username = username
        self._client = make_client(timeout, insecure=insecure, transport=transport)

    @classmethod
    def from_options(cls, config: str) -> GitlabCIBackend:
        options = parse_options(config)
        return cls(
            option_required(options, "url"),
            username=options.get("username", DEFAULT_USERNAME),
            timeout=option_duration(options, "timeout", DEFAULT_TIMEOUT),
            insecure=option_bool(options, "insecure"),
        )

    def repository_url(self, project: str) -> httpx.URL | None:
        """Resolve a project path against the GitLab base URL.

        Returns None when the resolved URL leaves the GitLab server
        (scheme, host or port differ), e.g. for ``//other.host/x``.
        """
        if not project.endswith(".git"):
            project += ".git"
        url = self.url.join(project)
        if (url.scheme, url.host, url.port) != (self.url.scheme, self.url.host, self.url.port):
            return None
        return url

    async def authenticate(self, request: HttpRequest) -> bool:
        credentials = request.basic_auth()
        if credentials is None:
            return False
        project, token = credentials
        try:
            repo = self.repository_url(project)
        except httpx.InvalidURL:
            return False
        if repo is None:
            logger.warning("gitlabci project path %r resolves outside %s", project, self.url)
            return False

        try:
            response = await self._client.get(repo, auth=(self.username, token))
        except httpx.HTTPError as exc:
            raise BackendError(self.backend_name, f"request to {repo} failed: {exc}") from exc

        if response.is_redirect:
            raise BackendError(self.backend_name, "follow redirects disabled")
        return response.status_code == 200

    async def aclose(self) -> None:
        await self._client.aclose()


def register(registry: BackendRegistry) -> None:
    registry.register(GitlabCIBackend.backend_name, GitlabCIBackend.from_options)
