from __future__ import annotations

from dataclasses import dataclass
import logging
import re
from typing import Any, Dict, Iterator, List, Optional, Tuple

from ... import config
from ...domain.models import RawCommit, RepoIdentifier, SourceSpec, SourceType
from ...domain.time_utils import api_datetime_to_millis
from ...errors import ConfigurationError, ParseError
from ..http.api_client import ApiClient, as_object

logger = logging.getLogger(__name__)

PAGE_LEN = 100

# git's "Name <email>" form; the address is the last bracketed part.
AUTHOR_RE = re.compile(r"^(.*?)\s*<([^<>]*)>\s*$")


def build_source_spec(
    username: str,
    token: str,
    base_url: str = config.BITBUCKET_API_URL,
    concurrency: Optional[int] = None,
) -> SourceSpec:
    return SourceSpec(
        source_type=SourceType.BITBUCKET,
        url=base_url,
        token=f"{username}:{token}",
        repo_term="repo",
        org_term="workspace",
        org_flag_name="workspaces",
        min_path_length=2,
        max_path_length=2,
        concurrency=concurrency or config.API_CONCURRENCY,
    )


def parse_author(author: Dict[str, Any]) -> Tuple[str, Optional[str]]:
    """Split Bitbucket's ``author.raw`` ("Name <email>") into name and email."""
    raw = author.get("raw") or ""
    raw = raw.strip() if isinstance(raw, str) else ""
    match = AUTHOR_RE.match(raw)
    if match:
        name, email = match.group(1).strip(), match.group(2).strip()
    else:
        name, email = raw, ""
    if not name:
        user = as_object(author.get("user") or {}, "commit author")
        name = user.get("display_name") or ""
    return name, (email or None)


@dataclass(frozen=True)
class BitbucketSource:
    """Bitbucket Cloud workspaces and commits.

    The commits endpoint has no date filter, so pages are followed through
    their ``next`` links and filtered here.
    """

    spec: SourceSpec
    client: ApiClient

    @classmethod
    def from_spec(cls, spec: SourceSpec, verify=True) -> "BitbucketSource":
        username, _, password = spec.token.partition(":")
        client = ApiClient(base_url=spec.url, auth=(username, password), verify=verify)
        return cls(spec=spec, client=client)

    def _paginated(self, path: str) -> Iterator[Dict[str, Any]]:
        url: Optional[str] = path
        params: Optional[Dict[str, Any]] = {"pagelen": PAGE_LEN}
        page = 1
        while url:
            data = self.client.get_json(url, params=params)
            if not isinstance(data, dict):
                raise ParseError(f"Expected an object from {url}, got {type(data).__name__}")

            values = data.get("values") or []
            if not isinstance(values, list):
                raise ParseError(f"Expected a 'values' list from {url}, got {type(values).__name__}")
            for item in values:
                yield as_object(item, url)
            logger.debug("%s page %d: %d items", path, page, len(values))

            # The next link already carries every query parameter.
            url = data.get("next")
            params = None
            page += 1

    def list_org_repos(self, org: str) -> List[RepoIdentifier]:
        path = f"/repositories/{org}"
        repos = []
        for item in self._paginated(path):
            slug = item.get("slug")
            if not slug or not isinstance(slug, str):
                logger.warning("Skipping a repository without a slug in %s", path)
                continue
            workspace = as_object(item.get("workspace") or {}, path).get("slug") or org
            repos.append(RepoIdentifier.create(self.spec, workspace, slug))
        return repos

    def list_project_repos(self, org: str, project: str) -> List[RepoIdentifier]:
        raise ConfigurationError("Bitbucket projects are not supported; use --workspaces or --repos")

    def fetch_commits(self, repo: RepoIdentifier, since: int) -> List[RawCommit]:
        commits: List[RawCommit] = []
        seen = 0
        for item in self._paginated(f"/repositories/{repo.owner}/{repo.name}/commits"):
            seen += 1
            date = item.get("date")
            if not date:
                raise ParseError(f"Commit {item.get('hash')} in {repo.full_name} has no date")
            try:
                timestamp = api_datetime_to_millis(date)
            except ValueError as exc:
                raise ParseError(f"Commit {item.get('hash')} has an invalid date '{date}'") from exc

            if timestamp < since:
                continue

            name, email = parse_author(as_object(item.get("author") or {}, f"commit {item.get('hash')}"))
            commits.append(RawCommit(name=name, email=email, timestamp=timestamp))

        logger.info("%s: %d of %d commits since cutoff", repo.full_name, len(commits), seen)
        return commits
