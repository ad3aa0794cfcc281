from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
import logging
from typing import Iterable, List, Optional

from ..errors import ParseError, SourceError
from ..ports.source_port import CommitSource
from .models import CollectionResult, RepoIdentifier

logger = logging.getLogger(__name__)


class CommitCollector:
    """Fetch commits for many repositories on a bounded worker pool.

    Pages of one repository are fetched sequentially by the source; only
    repositories run in parallel. Per-repository errors become failed
    results and never stop the other workers.
    """

    def __init__(self, source: CommitSource, concurrency: Optional[int] = None) -> None:
        self.source = source
        self.concurrency = concurrency or source.spec.concurrency

    def collect(self, repos: Iterable[RepoIdentifier], since: int) -> List[CollectionResult]:
        repos = list(repos)
        if not repos:
            logger.info("No repositories to scan")
            return []

        workers = max(1, min(self.concurrency, len(repos)))
        logger.info("Collecting commits from %d repositories with %d workers", len(repos), workers)

        with ThreadPoolExecutor(max_workers=workers) as executor:
            results = list(executor.map(lambda repo: self._collect_one(repo, since), repos))

        failed = sum(1 for r in results if not r.ok)
        logger.info("Collection finished | %d succeeded, %d failed", len(results) - failed, failed)
        return results

    def _collect_one(self, repo: RepoIdentifier, since: int) -> CollectionResult:
        try:
            commits = self.source.fetch_commits(repo, since)
        except ParseError as exc:
            logger.error(
                "Unexpected output while reading %s; the backend returned data in an unknown format: %s",
                repo.full_name,
                exc.message,
            )
            return CollectionResult.failed(repo, exc)
        except SourceError as exc:
            logger.warning("Skipping %s (%s): %s", repo.full_name, exc.kind, exc.message)
            return CollectionResult.failed(repo, exc)

        logger.debug("%s: %d commits since cutoff", repo.full_name, len(commits))
        return CollectionResult.success(repo, commits)
