from __future__ import annotations

from typing import List, Protocol

from ..domain.models import RawCommit, RepoIdentifier, SourceSpec


class CommitSource(Protocol):
    """Port used by the collector to read commits from one backend.

    Implementations raise the ``SourceError`` family (``TransportError``,
    ``AuthorizationError``, ``NotFoundError``, ``ParseError``) and never leak
    transport-specific exceptions.
    """

    spec: SourceSpec

    def fetch_commits(self, repo: RepoIdentifier, since: int) -> List[RawCommit]:
        ...


class RepoDiscovery(Protocol):
    """Port used by the resolver to enumerate repositories."""

    spec: SourceSpec

    def list_org_repos(self, org: str) -> List[RepoIdentifier]:
        ...

    def list_project_repos(self, org: str, project: str) -> List[RepoIdentifier]:
        ...
