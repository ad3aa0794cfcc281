from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, List, Optional, Set, Tuple

from ..errors import ConfigurationError, SourceError
from ..ports.source_port import RepoDiscovery
from .models import Failure, InclusionRules, RepoIdentifier, SourceSpec

logger = logging.getLogger(__name__)

ProjectRef = Tuple[Optional[str], str]


def read_repo_file(path: str) -> List[str]:
    """Read one repository path per line, skipping blanks and ``#`` comments."""
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigurationError(f"Could not read repo file '{path}': {exc}") from exc

    entries: List[str] = []
    for line in text.splitlines():
        line = line.strip()
        if line and not line.startswith("#"):
            entries.append(line)
    return entries


def parse_project_ref(value: str, spec: SourceSpec) -> ProjectRef:
    segments = [s.strip() for s in value.strip().strip("/").split("/")]
    if len(segments) == 1 and segments[0]:
        return None, spec.normalize_name(segments[0])
    if len(segments) == 2 and all(segments):
        return spec.normalize_name(segments[0]), spec.normalize_name(segments[1])
    raise ConfigurationError(f"Invalid project '{value}': expected 'project' or 'org/project'")


def apply_exclusions(
    repos: Iterable[RepoIdentifier],
    skip_projects: Iterable[ProjectRef],
    skip_repos: Iterable[RepoIdentifier],
) -> Set[RepoIdentifier]:
    """Drop repos whose project or identity is excluded. Exclusion always wins."""
    skipped_repos = set(skip_repos)
    qualified = {ref for ref in skip_projects if ref[0] is not None}
    bare = {name for org, name in skip_projects if org is None}

    kept: Set[RepoIdentifier] = set()
    for repo in repos:
        if repo.project is not None:
            if repo.project in bare or (repo.owner, repo.project) in qualified:
                continue
        if repo in skipped_repos:
            continue
        kept.add(repo)
    return kept


class RepoResolver:
    """Turns include/exclude rules into the final list of repositories to scan."""

    def __init__(self, spec: SourceSpec, discovery: RepoDiscovery) -> None:
        self.spec = spec
        self.discovery = discovery
        self.discovery_failures: List[Failure] = []

    def resolve(self, rules: InclusionRules) -> List[RepoIdentifier]:
        if rules.is_empty:
            raise ConfigurationError(
                f"At least one of --{self.spec.org_flag_name}, --projects, --repos, "
                "or --repo-file is required"
            )

        # Validate everything up front so a bad option fails before any I/O.
        projects = self._parse_projects(rules.projects, rules.orgs)
        skip_projects = self._parse_projects(rules.skip_projects, None)
        explicit = [RepoIdentifier.parse(path, self.spec) for path in sorted(rules.repos)]
        if rules.repo_file:
            explicit.extend(RepoIdentifier.parse(p, self.spec) for p in read_repo_file(rules.repo_file))
        skip_repos = [RepoIdentifier.parse(path, self.spec) for path in sorted(rules.skip_repos)]

        self.discovery_failures = []
        candidates: Set[RepoIdentifier] = set()

        for org in sorted(self.spec.normalize_name(o) for o in rules.orgs):
            candidates.update(self._discover(org, None))

        for org, project in sorted(projects):
            candidates.update(self._discover(org, project))

        candidates.update(explicit)

        kept = apply_exclusions(candidates, skip_projects, skip_repos)
        resolved = sorted(kept, key=lambda r: r.sort_key)

        logger.info(
            "Resolved %d %ss to scan (%d excluded)",
            len(resolved),
            self.spec.repo_term,
            len(candidates) - len(kept),
        )
        return resolved

    def _parse_projects(
        self, values: Iterable[str], orgs: Optional[Iterable[str]]
    ) -> Set[ProjectRef]:
        values = list(values)
        if not values:
            return set()
        if not self.spec.supports_projects:
            raise ConfigurationError(
                f"Projects are not supported for {self.spec.source_type.value}"
            )

        refs = {parse_project_ref(v, self.spec) for v in values}
        if orgs is None:
            return refs

        # Bare project names apply to every included org.
        resolved: Set[ProjectRef] = set()
        org_names = {self.spec.normalize_name(o) for o in orgs}
        for org, project in refs:
            if org is not None:
                resolved.add((org, project))
            elif not org_names:
                raise ConfigurationError(
                    f"Project '{project}' must be given as {self.spec.org_term}/project "
                    f"when no --{self.spec.org_flag_name} are specified"
                )
            else:
                resolved.update((o, project) for o in org_names)
        return resolved

    def _discover(self, org: str, project: Optional[str]) -> List[RepoIdentifier]:
        target = f"{org}/{project}" if project else org
        try:
            if project is None:
                repos = self.discovery.list_org_repos(org)
            else:
                repos = self.discovery.list_project_repos(org, project)
        except SourceError as exc:
            logger.warning("Could not list %ss for %s: %s", self.spec.repo_term, target, exc.message)
            self.discovery_failures.append(Failure.from_error(target, exc))
            return []

        logger.info("Found %d %ss in %s", len(repos), self.spec.repo_term, target)
        return repos
