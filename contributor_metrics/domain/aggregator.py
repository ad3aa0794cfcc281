from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Set

from .identity import IdentityKey
from .models import AggregateReport, CollectionResult, ContributorDetail, Failure, RawCommit, SourceType


def _prefer(current: ContributorDetail, commit: RawCommit) -> bool:
    """True when ``commit`` should provide the display name/email.

    Latest commit wins; ties go to the smallest (name, email) so the result
    does not depend on folding order.
    """
    if commit.timestamp != current.last_commit:
        return commit.timestamp > current.last_commit
    return (commit.name, commit.email or "") < (current.name, current.email or "")


class ContributorAggregator:
    def aggregate(
        self,
        results: Iterable[CollectionResult],
        *,
        extra_failures: Iterable[Failure] = (),
        since: Optional[int] = None,
        source_type: Optional[SourceType] = None,
    ) -> AggregateReport:
        contributors: Dict[IdentityKey, ContributorDetail] = {}
        repo_counts: Dict[str, int] = {}
        failures: List[Failure] = list(extra_failures)
        scanned = 0

        for result in results:
            if not result.ok:
                failures.append(result.failure)
                continue

            scanned += 1
            repo_name = result.repo.full_name
            repo_keys: Set[IdentityKey] = set()

            for commit in result.commits:
                key = IdentityKey.from_commit(commit.name, commit.email)
                repo_keys.add(key)

                detail = contributors.get(key)
                if detail is None:
                    contributors[key] = ContributorDetail(
                        key=key,
                        name=commit.name,
                        email=commit.email,
                        last_commit=commit.timestamp,
                        repos={repo_name},
                    )
                    continue

                detail.repos.add(repo_name)
                if _prefer(detail, commit):
                    detail.name = commit.name
                    detail.email = commit.email
                    detail.last_commit = commit.timestamp

            repo_counts[repo_name] = len(repo_keys)

        failures.sort(key=lambda f: (f.target, f.kind, f.message))

        return AggregateReport(
            contributor_count=len(contributors),
            contributors=contributors,
            repo_contributor_counts=repo_counts,
            failures=failures,
            repos_scanned=scanned,
            since=since,
            source_type=source_type,
        )
