from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from ... import config
from ...domain.models import RawCommit, RepoIdentifier, SourceSpec, SourceType
from ...domain.time_utils import api_datetime_to_millis, millis_to_iso
from ...errors import AuthorizationError, ParseError
from ..http.api_client import ApiClient, as_object

logger = logging.getLogger(__name__)

API_VERSION = "7.0"
PROJECTS_PAGE_SIZE = 100
COMMITS_PAGE_SIZE = 1000
CONTINUATION_HEADER = "x-ms-continuationtoken"


def build_source_spec(
    token: str,
    base_url: str = config.AZURE_DEVOPS_URL,
    concurrency: Optional[int] = None,
) -> SourceSpec:
    # Azure DevOps PATs use basic auth with an empty username.
    return SourceSpec(
        source_type=SourceType.AZURE_REPOS,
        url=base_url,
        token=f":{token}",
        repo_term="repo",
        org_term="organization",
        org_flag_name="orgs",
        min_path_length=3,
        max_path_length=3,
        concurrency=concurrency or config.API_CONCURRENCY,
    )


def _segment(value: str) -> str:
    return quote(value, safe="")


def _values(data: Dict[str, Any], path: str) -> List[Any]:
    values = data.get("value") or []
    if not isinstance(values, list):
        raise ParseError(f"Expected a 'value' list from {path}, got {type(values).__name__}")
    return values


@dataclass(frozen=True)
class AzureDevOpsSource:
    """Azure Repos organizations, projects and commits.

    Project listing pages with a continuation token returned in a response
    header; commit listing pages with ``$skip``/``$top``.
    """

    spec: SourceSpec
    client: ApiClient

    @classmethod
    def from_spec(cls, spec: SourceSpec, verify=True) -> "AzureDevOpsSource":
        username, _, password = spec.token.partition(":")
        client = ApiClient(
            base_url=spec.url,
            auth=(username, password),
            headers={"Accept": "application/json"},
            verify=verify,
        )
        return cls(spec=spec, client=client)

    def _get(self, path: str, params: Dict[str, Any]):
        resp = self.client.get(path, params={**params, "api-version": API_VERSION})
        # A rejected PAT is answered with a sign-in page instead of a 401.
        if resp.status_code == 203:
            raise AuthorizationError(f"GET {resp.url} redirected to sign-in; check the token", status_code=203)
        try:
            data = resp.json()
        except ValueError as exc:
            raise ParseError(f"Invalid JSON from {resp.url}: {exc}") from exc
        if not isinstance(data, dict):
            raise ParseError(f"Expected an object from {path}, got {type(data).__name__}")
        return resp, data

    def list_projects(self, org: str) -> List[str]:
        projects: List[str] = []
        token: Optional[str] = None
        while True:
            params: Dict[str, Any] = {"$top": PROJECTS_PAGE_SIZE}
            if token:
                params["continuationToken"] = token
            path = f"/{_segment(org)}/_apis/projects"
            resp, data = self._get(path, params)

            for item in _values(data, path):
                name = as_object(item, path).get("name")
                if not name or not isinstance(name, str):
                    logger.warning("Skipping a project without a name in %s", path)
                    continue
                projects.append(name)
            token = resp.headers.get(CONTINUATION_HEADER)
            if not token:
                return projects

    def list_org_repos(self, org: str) -> List[RepoIdentifier]:
        repos: List[RepoIdentifier] = []
        for project in self.list_projects(org):
            repos.extend(self.list_project_repos(org, project))
        return repos

    def list_project_repos(self, org: str, project: str) -> List[RepoIdentifier]:
        path = f"/{_segment(org)}/{_segment(project)}/_apis/git/repositories"
        _, data = self._get(path, {})
        repos = []
        for item in _values(data, path):
            item = as_object(item, path)
            name = item.get("name")
            if not name or not isinstance(name, str):
                logger.warning("Skipping a repository without a name in %s", path)
                continue
            if item.get("isDisabled"):
                logger.info("Skipping disabled repo %s/%s/%s", org, project, name)
                continue
            repos.append(RepoIdentifier.create(self.spec, org, name, project))
        return repos

    def fetch_commits(self, repo: RepoIdentifier, since: int) -> List[RawCommit]:
        path = (
            f"/{_segment(repo.owner)}/{_segment(repo.project or '')}"
            f"/_apis/git/repositories/{_segment(repo.name)}/commits"
        )
        commits: List[RawCommit] = []
        skip = 0
        while True:
            _, data = self._get(
                path,
                {
                    "searchCriteria.fromDate": millis_to_iso(since),
                    "searchCriteria.$top": COMMITS_PAGE_SIZE,
                    "searchCriteria.$skip": skip,
                },
            )
            values = _values(data, path)
            for item in values:
                commits.append(self._to_raw_commit(item))

            if len(values) < COMMITS_PAGE_SIZE:
                break
            skip += len(values)

        logger.info("%s: fetched %d commits", repo.full_name, len(commits))
        return commits

    @staticmethod
    def _to_raw_commit(item: Any) -> RawCommit:
        item = as_object(item, "commit list")
        commit_id = item.get("commitId")
        author = as_object(item.get("author") or {}, f"author of commit {commit_id}")
        date = author.get("date")
        if not date:
            raise ParseError(f"Commit {commit_id} has no author date")
        try:
            timestamp = api_datetime_to_millis(date)
        except ValueError as exc:
            raise ParseError(f"Commit {commit_id} has an invalid date '{date}'") from exc
        return RawCommit(name=author.get("name") or "", email=author.get("email"), timestamp=timestamp)
