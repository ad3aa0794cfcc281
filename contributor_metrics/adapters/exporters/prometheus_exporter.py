from prometheus_client import CollectorRegistry, Gauge, write_to_textfile

from ...domain.models import AggregateReport


class ContributorMetricsExporter:
    def __init__(self, registry=None):
        self.registry = registry or CollectorRegistry()

        self.active_contributors = Gauge(
            "active_contributors",
            "Number of distinct active contributors across all scanned repos",
            registry=self.registry,
        )

        self.repo_active_contributors = Gauge(
            "repo_active_contributors",
            "Number of distinct active contributors per repo",
            ["repo"],
            registry=self.registry,
        )

        self.repos_scanned = Gauge(
            "active_contributors_repos_scanned",
            "Repos scanned successfully",
            registry=self.registry,
        )

        self.repos_failed = Gauge(
            "active_contributors_repos_failed",
            "Repos or orgs that could not be scanned",
            registry=self.registry,
        )

        self.cutoff_timestamp = Gauge(
            "active_contributors_since_timestamp_seconds",
            "Start of the counting window (unix timestamp)",
            registry=self.registry,
        )

    def update(self, report: AggregateReport):
        """
        Update gauges from an aggregate report
        """
        self.active_contributors.set(report.contributor_count)
        for repo, count in report.repo_contributor_counts.items():
            self.repo_active_contributors.labels(repo=repo).set(count)
        self.repos_scanned.set(report.repos_scanned)
        self.repos_failed.set(len(report.failures))
        if report.since is not None:
            self.cutoff_timestamp.set(report.since / 1000)

    def write(self, path: str):
        """
        Write the registry in the Prometheus text format (node_exporter textfile collector)
        """
        write_to_textfile(path, self.registry)
