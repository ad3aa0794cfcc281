import pytest

from conftest import FakeSession, make_response
from contributor_metrics.adapters.azure import azure_source
from contributor_metrics.adapters.azure.azure_source import AzureDevOpsSource
from contributor_metrics.adapters.bitbucket import bitbucket_source
from contributor_metrics.adapters.bitbucket.bitbucket_source import BitbucketSource, parse_author
from contributor_metrics.adapters.github import github_source
from contributor_metrics.adapters.github.github_source import GitHubSource
from contributor_metrics.adapters.http.api_client import ApiClient
from contributor_metrics.domain.collector import CommitCollector
from contributor_metrics.domain.identity import IdentityKey
from contributor_metrics.domain.models import RawCommit, RepoIdentifier
from contributor_metrics.errors import AuthorizationError, NotFoundError, ParseError

SINCE = 1_700_000_000_000  # 2023-11-14T22:13:20Z


def fake_client(spec, session, **kwargs):
    return ApiClient(base_url=spec.url, max_retries=2, backoff_seconds=0, session=session, **kwargs)


def gh_commit(name, email, date, sha="abc"):
    return {"sha": sha, "commit": {"author": {"name": name, "email": email, "date": date}}}


# ---------------------------------------------------------------- GitHub


@pytest.fixture
def github():
    spec = github_source.build_source_spec("t0ken", base_url="https://api.example.test")
    session = FakeSession()
    return GitHubSource(spec=spec, client=fake_client(spec, session)), session


def test_github_paginates_by_page_number_with_since_filter(github, monkeypatch):
    source, session = github
    monkeypatch.setattr(github_source, "PER_PAGE", 2)
    session.queue(
        make_response(200, [gh_commit("Ann", "ann@x.com", "2024-01-02T00:00:00Z"), gh_commit("Bob", None, "2024-01-03T00:00:00Z")]),
        make_response(200, [gh_commit("Cy", "cy@x.com", "2024-01-04T00:00:00Z")]),
    )

    commits = source.fetch_commits(RepoIdentifier.parse("acme/web", source.spec), SINCE)

    assert [c.name for c in commits] == ["Ann", "Bob", "Cy"]
    assert commits[0] == RawCommit("Ann", "ann@x.com", 1704153600000)
    assert [c["params"]["page"] for c in session.calls] == [1, 2]
    assert session.calls[0]["params"]["since"] == "2023-11-14T22:13:20Z"
    assert session.calls[0]["url"] == "https://api.example.test/repos/acme/web/commits"


def test_github_empty_repository_has_no_commits(github):
    source, session = github
    session.queue(make_response(409, {"message": "Git Repository is empty."}))
    assert source.fetch_commits(RepoIdentifier.parse("acme/empty", source.spec), SINCE) == []


def test_github_missing_repo_raises_not_found(github):
    source, session = github
    session.queue(make_response(404, {"message": "Not Found"}))
    with pytest.raises(NotFoundError):
        source.fetch_commits(RepoIdentifier.parse("acme/gone", source.spec), SINCE)


def test_github_org_listing_falls_back_to_user_repos(github):
    source, session = github
    session.queue(
        make_response(404, {"message": "Not Found"}),
        make_response(200, [{"name": "Dotfiles", "owner": {"login": "Someone"}}]),
    )

    repos = source.list_org_repos("someone")

    assert [r.full_name for r in repos] == ["someone/dotfiles"]
    assert session.calls[1]["url"].endswith("/users/someone/repos")


def test_github_repos_without_a_name_are_skipped(github):
    source, session = github
    session.queue(make_response(200, [{"owner": {"login": "acme"}}, {"name": "api"}]))

    assert [r.full_name for r in source.list_org_repos("acme")] == ["acme/api"]


@pytest.mark.parametrize("page", [["oops"], [{"sha": "1", "commit": "oops"}], [{"sha": "1", "commit": {"author": {"date": 7}}}]])
def test_github_malformed_commit_items_are_parse_errors(github, page):
    source, session = github
    session.queue(make_response(200, page))
    with pytest.raises(ParseError):
        source.fetch_commits(RepoIdentifier.parse("acme/api", source.spec), SINCE)


def test_malformed_commit_page_fails_only_that_repo(github):
    source, session = github
    session.queue(make_response(200, ["oops"]))

    results = CommitCollector(source, concurrency=1).collect([RepoIdentifier.parse("acme/api", source.spec)], since=SINCE)

    assert [(r.repo.full_name, r.failure.kind) for r in results] == [("acme/api", "parse")]


def test_github_sends_bearer_token():
    spec = github_source.build_source_spec("t0ken", base_url="https://api.example.test")
    source = GitHubSource.from_spec(spec)
    assert source.client.headers["Authorization"] == "Bearer t0ken"


# ---------------------------------------------------------------- Bitbucket


@pytest.fixture
def bitbucket():
    spec = bitbucket_source.build_source_spec("me", "app-pass", base_url="https://bb.example.test/2.0")
    session = FakeSession()
    return BitbucketSource(spec=spec, client=fake_client(spec, session, auth=("me", "app-pass"))), session


def test_bitbucket_follows_next_links_and_filters_client_side(bitbucket):
    source, session = bitbucket
    session.queue(
        make_response(
            200,
            {
                "values": [
                    {"hash": "1", "date": "2024-02-01T10:00:00+00:00", "author": {"raw": "Ann <ann@x.com>"}},
                    {"hash": "2", "date": "2020-01-01T10:00:00+00:00", "author": {"raw": "Old <old@x.com>"}},
                ],
                "next": "https://bb.example.test/2.0/repositories/ws/repo/commits?page=abc",
            },
        ),
        make_response(
            200,
            {"values": [{"hash": "3", "date": "2024-03-01T10:00:00+00:00", "author": {"raw": "bot", "user": {"display_name": "Build Bot"}}}]},
        ),
    )

    commits = source.fetch_commits(RepoIdentifier.parse("ws/repo", source.spec), SINCE)

    assert [(c.name, c.email) for c in commits] == [("Ann", "ann@x.com"), ("bot", None)]
    assert session.calls[0]["params"] == {"pagelen": 100}
    assert session.calls[1]["url"] == "https://bb.example.test/2.0/repositories/ws/repo/commits?page=abc"
    assert session.calls[1]["params"] is None
    assert session.calls[0]["auth"] == ("me", "app-pass")


def test_bitbucket_author_parsing():
    assert parse_author({"raw": "Jane Doe <Jane@Example.com>"}) == ("Jane Doe", "Jane@Example.com")
    assert parse_author({"raw": "", "user": {"display_name": "Jane"}}) == ("Jane", None)
    assert parse_author({}) == ("", None)
    assert parse_author({"raw": "Doe, John <john@x.com>", "user": {"display_name": "DN"}}) == ("Doe, John", "john@x.com")
    assert parse_author({"raw": "J@ne <jane@x.com>"}) == ("J@ne", "jane@x.com")
    assert parse_author({"raw": "<ci@x.com>", "user": {"display_name": "CI"}}) == ("CI", "ci@x.com")


def test_bitbucket_comma_names_stay_distinct_contributors():
    doe = IdentityKey.from_commit(*parse_author({"raw": "Doe, John <john@x.com>"}))
    roe = IdentityKey.from_commit(*parse_author({"raw": "Roe, Jane <jane@y.com>"}))
    assert doe != roe
    assert doe.value == "john@x.com"


def test_bitbucket_lists_workspace_repos(bitbucket):
    source, session = bitbucket
    session.queue(make_response(200, {"values": [{"slug": "api", "workspace": {"slug": "ws"}}, {"slug": "web"}]}))
    assert [r.full_name for r in source.list_org_repos("ws")] == ["ws/api", "ws/web"]


def test_bitbucket_skips_repos_without_a_slug(bitbucket):
    source, session = bitbucket
    session.queue(make_response(200, {"values": [{"name": "no slug"}, {"slug": "api"}]}))
    assert [r.full_name for r in source.list_org_repos("ws")] == ["ws/api"]


@pytest.mark.parametrize("values", [["oops"], {"hash": "1"}, [{"hash": "1", "date": "2024-02-01T10:00:00Z", "author": "Ann"}]])
def test_bitbucket_malformed_commit_pages_are_parse_errors(bitbucket, values):
    source, session = bitbucket
    session.queue(make_response(200, {"values": values}))
    with pytest.raises(ParseError):
        source.fetch_commits(RepoIdentifier.parse("ws/repo", source.spec), SINCE)


# ---------------------------------------------------------------- Azure DevOps


@pytest.fixture
def azure():
    spec = azure_source.build_source_spec("pat", base_url="https://dev.example.test")
    session = FakeSession()
    return AzureDevOpsSource(spec=spec, client=fake_client(spec, session, auth=("", "pat"))), session


def test_azure_projects_page_with_continuation_token(azure):
    source, session = azure
    session.queue(
        make_response(200, {"value": [{"name": "One"}]}, headers={"x-ms-continuationtoken": "tok"}),
        make_response(200, {"value": [{"name": "Two"}]}),
        make_response(200, {"value": [{"name": "repo-a"}, {"name": "old", "isDisabled": True}]}),
        make_response(200, {"value": [{"name": "repo-b"}]}),
    )

    repos = source.list_org_repos("org")

    assert [r.full_name for r in repos] == ["org/one/repo-a", "org/two/repo-b"]
    assert "continuationToken" not in session.calls[0]["params"]
    assert session.calls[1]["params"]["continuationToken"] == "tok"
    assert session.calls[2]["url"] == "https://dev.example.test/org/One/_apis/git/repositories"


def test_azure_commits_page_with_skip(azure, monkeypatch):
    source, session = azure
    monkeypatch.setattr(azure_source, "COMMITS_PAGE_SIZE", 1)
    author = lambda name, date: {"commitId": name, "author": {"name": name, "email": f"{name}@x.com", "date": date}}
    session.queue(
        make_response(200, {"value": [author("ann", "2024-01-01T00:00:00Z")]}),
        make_response(200, {"value": []}),
    )

    commits = source.fetch_commits(RepoIdentifier.parse("org/proj/repo", source.spec), SINCE)

    assert commits == [RawCommit("ann", "ann@x.com", 1704067200000)]
    assert [c["params"]["searchCriteria.$skip"] for c in session.calls] == [0, 1]
    assert session.calls[0]["params"]["searchCriteria.fromDate"] == "2023-11-14T22:13:20Z"
    assert session.calls[0]["params"]["api-version"] == "7.0"
    assert session.calls[0]["url"] == "https://dev.example.test/org/proj/_apis/git/repositories/repo/commits"


def test_azure_sign_in_redirect_is_an_authorization_error(azure):
    source, session = azure
    session.queue(make_response(203, text="<html>sign in</html>"))
    with pytest.raises(AuthorizationError):
        source.fetch_commits(RepoIdentifier.parse("org/proj/repo", source.spec), SINCE)


def test_azure_entries_without_a_name_are_skipped(azure):
    source, session = azure
    session.queue(
        make_response(200, {"value": [{"id": "1"}, {"name": "One"}]}),
        make_response(200, {"value": [{"id": "2"}, {"name": "repo-a"}]}),
    )

    assert [r.full_name for r in source.list_org_repos("org")] == ["org/one/repo-a"]
    assert len(session.calls) == 2


def test_azure_malformed_commit_items_are_parse_errors(azure):
    source, session = azure
    session.queue(make_response(200, {"value": [{"commitId": "c1", "author": "ann"}]}))
    with pytest.raises(ParseError):
        source.fetch_commits(RepoIdentifier.parse("org/proj/repo", source.spec), SINCE)
