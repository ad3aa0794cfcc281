import json

import pytest
import requests
from requests.structures import CaseInsensitiveDict

from contributor_metrics.adapters.http import api_client
from contributor_metrics.domain.models import RawCommit, RepoIdentifier, SourceSpec, SourceType
from contributor_metrics.errors import NotFoundError


def make_response(status=200, payload=None, headers=None, url="https://api.example.test/x", text=None):
    resp = requests.Response()
    resp.status_code = status
    resp.headers = CaseInsensitiveDict(headers or {})
    resp.url = url
    if text is not None:
        resp._content = text.encode("utf-8")
    else:
        resp._content = json.dumps(payload if payload is not None else {}).encode("utf-8")
    return resp


class FakeSession:
    """Stands in for requests.Session; serves queued responses in order."""

    def __init__(self, responses=None):
        self.responses = list(responses or [])
        self.calls = []

    def queue(self, *responses):
        self.responses.extend(responses)

    def request(self, method, url, **kwargs):
        self.calls.append({"method": method, "url": url, **kwargs})
        if not self.responses:
            raise AssertionError(f"Unexpected request {method} {url}")
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


class FakeSource:
    """In-memory CommitSource + RepoDiscovery."""

    def __init__(self, spec, commits=None, errors=None, orgs=None, projects=None, discovery_errors=None):
        self.spec = spec
        self.commits = commits or {}
        self.errors = errors or {}
        self.orgs = orgs or {}
        self.projects = projects or {}
        self.discovery_errors = discovery_errors or {}
        self.fetched = []

    def fetch_commits(self, repo, since):
        self.fetched.append(repo.full_name)
        if repo.full_name in self.errors:
            raise self.errors[repo.full_name]
        return [c for c in self.commits.get(repo.full_name, []) if c.timestamp >= since]

    def list_org_repos(self, org):
        if org in self.discovery_errors:
            raise self.discovery_errors[org]
        if org not in self.orgs:
            raise NotFoundError(f"No such org {org}")
        return [RepoIdentifier.parse(p, self.spec) for p in self.orgs[org]]

    def list_project_repos(self, org, project):
        key = f"{org}/{project}"
        if key in self.discovery_errors:
            raise self.discovery_errors[key]
        return [RepoIdentifier.parse(p, self.spec) for p in self.projects.get(key, [])]


def commit(name, email=None, timestamp=1_700_000_000_000):
    return RawCommit(name=name, email=email, timestamp=timestamp)


@pytest.fixture
def two_segment_spec():
    return SourceSpec(
        source_type=SourceType.GITHUB,
        url="https://api.example.test",
        token="t0ken",
        min_path_length=2,
        max_path_length=2,
        concurrency=4,
    )


@pytest.fixture
def three_segment_spec():
    return SourceSpec(
        source_type=SourceType.AZURE_REPOS,
        url="https://dev.example.test",
        token=":t0ken",
        org_flag_name="orgs",
        min_path_length=3,
        max_path_length=3,
        concurrency=4,
    )


@pytest.fixture(autouse=True)
def no_sleep(monkeypatch):
    monkeypatch.setattr(api_client.time, "sleep", lambda seconds: None)
