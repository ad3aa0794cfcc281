import pytest

from conftest import FakeSource, commit
from contributor_metrics.app.runner import Runner, build_source
from contributor_metrics.adapters.azure import azure_source
from contributor_metrics.adapters.azure.azure_source import AzureDevOpsSource
from contributor_metrics.adapters.bitbucket import bitbucket_source
from contributor_metrics.adapters.bitbucket.bitbucket_source import BitbucketSource
from contributor_metrics.adapters.local import local_source
from contributor_metrics.adapters.local.local_source import LocalGitSource
from contributor_metrics.domain.models import InclusionRules
from contributor_metrics.errors import ConfigurationError, NotFoundError


def test_two_repo_scenario_counts_two_contributors(two_segment_spec):
    source = FakeSource(
        two_segment_spec,
        commits={
            "o/repo1": [commit("Alice", "alice@x.com"), commit("Alice", "alice@x.com")],
            "o/repo2": [commit("Alice", "ALICE@X.COM"), commit("Bob", None)],
        },
    )

    report = Runner(two_segment_spec, source).execute(
        InclusionRules.from_options(repos="o/repo1,o/repo2"), since=0
    )

    assert report.contributor_count == 2
    assert report.repo_contributor_counts == {"o/repo1": 1, "o/repo2": 2}
    assert report.complete
    assert report.since == 0


def test_cutoff_is_applied_and_failures_are_surfaced(two_segment_spec):
    source = FakeSource(
        two_segment_spec,
        orgs={"o": ["o/live", "o/gone"]},
        commits={"o/live": [commit("Old", "old@x.com", timestamp=10), commit("New", "new@x.com", timestamp=1000)]},
        errors={"o/gone": NotFoundError("repo deleted")},
        discovery_errors={"lost": NotFoundError("org missing")},
    )

    report = Runner(two_segment_spec, source).execute(InclusionRules.from_options(orgs="o,lost"), since=500)

    assert report.contributor_count == 1
    assert [(f.target, f.kind) for f in report.failures] == [("lost", "not_found"), ("o/gone", "not_found")]
    assert not report.complete


def test_configuration_errors_stop_before_any_fetch(two_segment_spec):
    source = FakeSource(two_segment_spec)
    with pytest.raises(ConfigurationError):
        Runner(two_segment_spec, source).execute(InclusionRules.from_options(repos="o/r/extra"), since=0)
    assert source.fetched == []


def test_build_source_picks_backend_by_type(tmp_path):
    assert isinstance(build_source(local_source.build_source_spec(str(tmp_path))), LocalGitSource)
    assert isinstance(build_source(bitbucket_source.build_source_spec("u", "p")), BitbucketSource)

    azure = build_source(azure_source.build_source_spec("pat"), verify="/etc/ca.pem")
    assert isinstance(azure, AzureDevOpsSource)
    assert azure.client.auth == ("", "pat")
    assert azure.client.verify == "/etc/ca.pem"
