from __future__ import annotations

import logging
from typing import Optional, Union

from ..adapters.azure.azure_source import AzureDevOpsSource
from ..adapters.bitbucket.bitbucket_source import BitbucketSource
from ..adapters.github.github_source import GitHubSource
from ..adapters.local.local_source import LocalGitSource
from ..domain.aggregator import ContributorAggregator
from ..domain.collector import CommitCollector
from ..domain.models import AggregateReport, InclusionRules, SourceSpec, SourceType
from ..domain.resolver import RepoResolver
from ..domain.time_utils import millis_to_iso
from ..ports.source_port import CommitSource, RepoDiscovery

logger = logging.getLogger(__name__)


def build_source(spec: SourceSpec, verify: Union[bool, str] = True):
    """Pick the backend implementation for a spec."""
    if spec.source_type == SourceType.GITHUB:
        return GitHubSource.from_spec(spec, verify=verify)
    if spec.source_type == SourceType.BITBUCKET:
        return BitbucketSource.from_spec(spec, verify=verify)
    if spec.source_type == SourceType.AZURE_REPOS:
        return AzureDevOpsSource.from_spec(spec, verify=verify)
    if spec.source_type == SourceType.LOCAL:
        return LocalGitSource.from_spec(spec)
    raise ValueError(f"Unsupported source type {spec.source_type}")


class Runner:
    """
    Orchestrates repo resolution, commit collection and aggregation
    """

    def __init__(
        self,
        spec: SourceSpec,
        source: CommitSource,
        discovery: Optional[RepoDiscovery] = None,
        concurrency: Optional[int] = None,
    ) -> None:
        self.spec = spec
        self.source = source
        self.discovery = discovery or source
        self.concurrency = concurrency

    def execute(self, rules: InclusionRules, since: int) -> AggregateReport:
        logger.info(
            "Counting active contributors for %s since %s",
            self.spec.source_type.value,
            millis_to_iso(since),
        )

        resolver = RepoResolver(self.spec, self.discovery)
        repos = resolver.resolve(rules)

        collector = CommitCollector(self.source, self.concurrency)
        results = collector.collect(repos, since)

        report = ContributorAggregator().aggregate(
            results,
            extra_failures=resolver.discovery_failures,
            since=since,
            source_type=self.spec.source_type,
        )

        logger.info(
            "Found %d unique contributors across %d repos (%d failures)",
            report.contributor_count,
            report.repos_scanned,
            len(report.failures),
        )
        return report
