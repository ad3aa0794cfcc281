from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, Iterable, List, Optional, Set, Tuple

from ..errors import ConfigurationError, SourceError
from .identity import IdentityKey


class SourceType(str, Enum):
    GITHUB = "github"
    BITBUCKET = "bitbucket"
    AZURE_REPOS = "azure_repos"
    LOCAL = "local"


@dataclass(frozen=True)
class SourceSpec:
    """Read-only description of one backend for a single run."""

    source_type: SourceType
    url: str
    token: str = ""

    repo_term: str = "repo"
    org_term: str = "organization"
    org_flag_name: str = "orgs"

    min_path_length: int = 2
    max_path_length: int = 2

    concurrency: int = 8
    case_sensitive: bool = False

    def __post_init__(self) -> None:
        if self.min_path_length < 1 or self.max_path_length < self.min_path_length:
            raise ConfigurationError(
                f"Invalid path length bounds {self.min_path_length}..{self.max_path_length}"
            )
        if self.concurrency < 1:
            raise ConfigurationError("concurrency must be at least 1")

    @property
    def supports_projects(self) -> bool:
        return self.max_path_length >= 3

    def normalize_name(self, value: str) -> str:
        value = value.strip()
        return value if self.case_sensitive else value.lower()


@dataclass(frozen=True)
class RepoIdentifier:
    owner: str
    project: Optional[str]
    name: str
    spec: Optional[SourceSpec] = field(default=None, compare=False, repr=False)

    @classmethod
    def create(
        cls, spec: SourceSpec, owner: str, name: str, project: Optional[str] = None
    ) -> "RepoIdentifier":
        return cls(
            owner=spec.normalize_name(owner),
            project=spec.normalize_name(project) if project else None,
            name=spec.normalize_name(name),
            spec=spec,
        )

    @classmethod
    def parse(cls, path: str, spec: SourceSpec) -> "RepoIdentifier":
        """Parse ``org/repo`` or ``org/project/repo`` according to the spec's path bounds."""
        segments = [s.strip() for s in path.strip().strip("/").split("/")]
        if any(not s for s in segments) or not (
            spec.min_path_length <= len(segments) <= spec.max_path_length
        ):
            if spec.min_path_length == spec.max_path_length:
                expected = f"{spec.min_path_length}"
            else:
                expected = f"{spec.min_path_length} to {spec.max_path_length}"
            raise ConfigurationError(
                f"Invalid {spec.repo_term} path '{path}': expected {expected} '/'-separated segments"
            )

        if len(segments) == 3:
            owner, project, name = segments
        elif len(segments) == 2:
            owner, name = segments
            project = None
        else:
            raise ConfigurationError(f"Unsupported {spec.repo_term} path '{path}'")
        return cls.create(spec, owner, name, project)

    @property
    def full_name(self) -> str:
        parts = [self.owner, self.project, self.name]
        return "/".join(p for p in parts if p)

    @property
    def sort_key(self) -> Tuple[str, str, str]:
        return (self.owner, self.project or "", self.name)

    def __str__(self) -> str:
        return self.full_name


def split_csv(value: Optional[str]) -> FrozenSet[str]:
    if not value:
        return frozenset()
    return frozenset(item.strip() for item in value.split(",") if item.strip())


@dataclass(frozen=True)
class InclusionRules:
    orgs: FrozenSet[str] = frozenset()
    projects: FrozenSet[str] = frozenset()
    repos: FrozenSet[str] = frozenset()
    skip_projects: FrozenSet[str] = frozenset()
    skip_repos: FrozenSet[str] = frozenset()
    repo_file: Optional[str] = None

    @classmethod
    def from_options(
        cls,
        *,
        orgs: Optional[str] = None,
        projects: Optional[str] = None,
        repos: Optional[str] = None,
        skip_projects: Optional[str] = None,
        skip_repos: Optional[str] = None,
        repo_file: Optional[str] = None,
    ) -> "InclusionRules":
        return cls(
            orgs=split_csv(orgs),
            projects=split_csv(projects),
            repos=split_csv(repos),
            skip_projects=split_csv(skip_projects),
            skip_repos=split_csv(skip_repos),
            repo_file=repo_file or None,
        )

    @property
    def is_empty(self) -> bool:
        return not (self.orgs or self.projects or self.repos or self.repo_file)


@dataclass(frozen=True)
class RawCommit:
    name: str
    email: Optional[str]
    timestamp: int  # milliseconds since the Unix epoch


@dataclass(frozen=True)
class Failure:
    target: str
    kind: str
    message: str
    fatal: bool = False

    @classmethod
    def from_error(cls, target: str, exc: SourceError) -> "Failure":
        return cls(target=target, kind=exc.kind, message=exc.message)


@dataclass(frozen=True)
class CollectionResult:
    repo: RepoIdentifier
    commits: Tuple[RawCommit, ...] = ()
    failure: Optional[Failure] = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    @classmethod
    def success(cls, repo: RepoIdentifier, commits: Iterable[RawCommit]) -> "CollectionResult":
        return cls(repo=repo, commits=tuple(commits))

    @classmethod
    def failed(cls, repo: RepoIdentifier, exc: SourceError) -> "CollectionResult":
        return cls(repo=repo, failure=Failure.from_error(repo.full_name, exc))


@dataclass
class ContributorDetail:
    key: IdentityKey
    name: str
    email: Optional[str]
    last_commit: int
    repos: Set[str] = field(default_factory=set)


@dataclass
class AggregateReport:
    contributor_count: int
    contributors: Dict[IdentityKey, ContributorDetail]
    repo_contributor_counts: Dict[str, int]
    failures: List[Failure]
    repos_scanned: int
    since: Optional[int] = None
    source_type: Optional[SourceType] = None

    @property
    def complete(self) -> bool:
        return not self.failures

    def sorted_contributors(self) -> List[ContributorDetail]:
        return sorted(self.contributors.values(), key=lambda c: (c.key.basis, c.key.value))
