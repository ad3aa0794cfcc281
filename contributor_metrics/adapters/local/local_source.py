from __future__ import annotations

from dataclasses import dataclass
import logging
import os
import subprocess
from typing import List, Optional

from ... import config
from ...domain.models import RawCommit, RepoIdentifier, SourceSpec, SourceType
from ...errors import ConfigurationError, NotFoundError, ParseError, TransportError

logger = logging.getLogger(__name__)

GIT_COMMAND = "git"
COMMIT_MARKER = "--commit--"
GIT_LOG_FORMAT = f"--format={COMMIT_MARKER}%nauthor:%an%nemail:%ae%ndate:%at%n"
LINES_PER_COMMIT = 5  # marker, author, email, date, blank


def build_source_spec(root: str = ".", concurrency: Optional[int] = None) -> SourceSpec:
    return SourceSpec(
        source_type=SourceType.LOCAL,
        url=os.path.abspath(root),
        repo_term="repo",
        org_term="directory",
        org_flag_name="directories",
        min_path_length=2,
        max_path_length=2,
        concurrency=concurrency or config.LOCAL_CONCURRENCY,
        case_sensitive=True,
    )


def git_log_args(since: int) -> List[str]:
    # git log takes unix seconds
    return [GIT_COMMAND, "log", "--all", "--date=raw", GIT_LOG_FORMAT, "--since", str(since // 1000)]


def _field(line: str, label: str) -> str:
    key, sep, value = line.partition(":")
    if not sep or key.strip() != label:
        raise ParseError(f"Expected '{label}:' line, got {line!r}")
    return value


def seconds_to_millis(raw: str) -> int:
    try:
        seconds = int(raw.strip())
    except ValueError as exc:
        raise ParseError(f"Invalid commit timestamp {raw!r}") from exc
    return seconds * 1000


def parse_git_log(output: str) -> List[RawCommit]:
    """Parse the fixed five-line records produced by ``git_log_args``."""
    lines = output.split("\n")
    logger.debug("Got %d lines of git log output", len(lines))

    # 5 lines per commit plus the final newline
    if (len(lines) - 1) % LINES_PER_COMMIT != 0:
        raise ParseError(
            f"Got unexpected number of lines in the git log output ({len(lines)})"
        )

    commits: List[RawCommit] = []
    for start in range(0, len(lines) - 1, LINES_PER_COMMIT):
        marker = lines[start].strip()
        if marker != COMMIT_MARKER:
            logger.error("Found unexpected line (expecting '%s'): %s", COMMIT_MARKER, marker)

        author_line, email_line, date_line = lines[start + 1 : start + 4]
        email = _field(email_line, "email").strip()
        commits.append(
            RawCommit(
                name=_field(author_line, "author"),
                email=email or None,
                timestamp=seconds_to_millis(_field(date_line, "date")),
            )
        )
    return commits


def _is_repo_dir(path: str) -> bool:
    return os.path.exists(os.path.join(path, ".git"))


@dataclass(frozen=True)
class LocalGitSource:
    """Commits from repositories on disk at ``<root>/<owner>/<name>``."""

    spec: SourceSpec
    timeout: float = config.GIT_TIMEOUT_SECONDS

    @classmethod
    def from_spec(cls, spec: SourceSpec, timeout: Optional[float] = None) -> "LocalGitSource":
        return cls(spec=spec, timeout=timeout or config.GIT_TIMEOUT_SECONDS)

    def repo_path(self, repo: RepoIdentifier) -> str:
        return os.path.join(self.spec.url, repo.owner, repo.name)

    def list_org_repos(self, org: str) -> List[RepoIdentifier]:
        org_path = os.path.join(self.spec.url, org)
        if not os.path.isdir(org_path):
            raise NotFoundError(f"Directory {org_path} does not exist")

        repos = []
        for entry in sorted(os.scandir(org_path), key=lambda e: e.name):
            if entry.is_dir() and _is_repo_dir(entry.path):
                repos.append(RepoIdentifier.create(self.spec, org, entry.name))
        return repos

    def list_project_repos(self, org: str, project: str) -> List[RepoIdentifier]:
        raise ConfigurationError("Local repositories do not have projects")

    def fetch_commits(self, repo: RepoIdentifier, since: int) -> List[RawCommit]:
        repo_path = self.repo_path(repo)
        if not os.path.isdir(repo_path):
            raise NotFoundError(f"Directory {repo_path} does not exist")

        logger.debug("Running git log command on directory %s", repo_path)
        try:
            git = subprocess.run(
                git_log_args(since),
                cwd=repo_path,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as exc:
            raise TransportError(f"git log timed out after {self.timeout}s in {repo_path}") from exc
        except OSError as exc:
            raise TransportError(f"Could not run {GIT_COMMAND} in {repo_path}: {exc}") from exc

        logger.debug("git log exit code: %s", git.returncode)
        if git.returncode != 0:
            stderr = (git.stderr or "").strip()
            logger.debug(stderr)
            raise TransportError(
                f"git log exited with code {git.returncode} in {repo_path}: {stderr}",
                status_code=git.returncode,
            )

        commits = parse_git_log(git.stdout)
        logger.info("%s: found %d commits", repo.full_name, len(commits))
        return commits
