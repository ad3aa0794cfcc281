from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Dict, Iterator, List, Optional

from ... import config
from ...domain.models import RawCommit, RepoIdentifier, SourceSpec, SourceType
from ...domain.time_utils import api_datetime_to_millis, millis_to_iso
from ...errors import ConfigurationError, NotFoundError, ParseError, TransportError
from ..http.api_client import ApiClient, as_object

logger = logging.getLogger(__name__)

PER_PAGE = 100


def build_source_spec(
    token: str,
    base_url: str = config.GITHUB_API_URL,
    concurrency: Optional[int] = None,
) -> SourceSpec:
    return SourceSpec(
        source_type=SourceType.GITHUB,
        url=base_url,
        token=token,
        repo_term="repo",
        org_term="organization",
        org_flag_name="orgs",
        min_path_length=2,
        max_path_length=2,
        concurrency=concurrency or config.API_CONCURRENCY,
    )


@dataclass(frozen=True)
class GitHubSource:
    """Commits and org repositories from the GitHub REST API.

    Uses page-number pagination and server-side ``since`` filtering.
    """

    spec: SourceSpec
    client: ApiClient

    @classmethod
    def from_spec(cls, spec: SourceSpec, verify=True) -> "GitHubSource":
        client = ApiClient(
            base_url=spec.url,
            headers={
                "Accept": "application/vnd.github+json",
                "Authorization": f"Bearer {spec.token}",
            },
            verify=verify,
        )
        return cls(spec=spec, client=client)

    def _paginated(self, path: str, params: Optional[Dict[str, Any]] = None) -> Iterator[Any]:
        page = 1
        while True:
            merged = {**(params or {}), "per_page": PER_PAGE, "page": page}
            data = self.client.get_json(path, params=merged)
            if not isinstance(data, list):
                raise ParseError(f"Expected a list from {path}, got {type(data).__name__}")
            if not data:
                return

            yield from data
            logger.debug("%s page %d: %d items", path, page, len(data))

            if len(data) < PER_PAGE:
                return
            page += 1

    def list_org_repos(self, org: str) -> List[RepoIdentifier]:
        path = f"/orgs/{org}/repos"
        try:
            items = list(self._paginated(path, {"type": "all"}))
        except NotFoundError:
            # Not an organization; personal accounts live under /users.
            path = f"/users/{org}/repos"
            items = list(self._paginated(path, {"type": "owner"}))

        repos = []
        for item in items:
            item = as_object(item, path)
            name = item.get("name")
            if not name or not isinstance(name, str):
                logger.warning("Skipping a repository without a name in %s", path)
                continue
            owner = as_object(item.get("owner") or {}, path).get("login") or org
            repos.append(RepoIdentifier.create(self.spec, owner, name))
        return repos

    def list_project_repos(self, org: str, project: str) -> List[RepoIdentifier]:
        raise ConfigurationError("GitHub does not have projects")

    def fetch_commits(self, repo: RepoIdentifier, since: int) -> List[RawCommit]:
        path = f"/repos/{repo.owner}/{repo.name}/commits"
        commits: List[RawCommit] = []
        try:
            for item in self._paginated(path, {"since": millis_to_iso(since)}):
                commits.append(self._to_raw_commit(item))
        except TransportError as exc:
            if exc.status_code == 409:
                logger.info("%s is empty", repo.full_name)
                return []
            raise

        logger.info("%s: fetched %d commits", repo.full_name, len(commits))
        return commits

    @staticmethod
    def _to_raw_commit(item: Any) -> RawCommit:
        item = as_object(item, "commit list")
        sha = item.get("sha")
        commit = as_object(item.get("commit") or {}, f"commit {sha}")
        author = as_object(commit.get("author") or {}, f"author of commit {sha}")
        date = author.get("date")
        if not date:
            raise ParseError(f"Commit {sha} has no author date")
        try:
            timestamp = api_datetime_to_millis(date)
        except ValueError as exc:
            raise ParseError(f"Commit {sha} has an invalid date '{date}'") from exc
        return RawCommit(name=author.get("name") or "", email=author.get("email"), timestamp=timestamp)
