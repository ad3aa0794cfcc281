import argparse
import logging
import sys

from .. import config
from ..adapters.azure import azure_source
from ..adapters.bitbucket import bitbucket_source
from ..adapters.exporters.prometheus_exporter import ContributorMetricsExporter
from ..adapters.exporters.report_writer import OUTPUT_FORMATS, SORT_KEYS, render_report, write_report
from ..adapters.github import github_source
from ..adapters.local import local_source
from ..domain.models import InclusionRules
from ..domain.time_utils import resolve_cutoff
from ..errors import ConfigurationError
from .runner import Runner, build_source

logger = logging.getLogger("contributor_metrics")


def configure_logging(level):
    logging.basicConfig(format="[%(levelname)s] %(message)s", level=level.upper(), stream=sys.stderr)


def _add_common_arguments(parser):
    parser.add_argument("--repos", help="Comma separated list of repo paths to include")
    parser.add_argument("--skip-repos", help="Comma separated list of repo paths to exclude; always wins over includes")
    parser.add_argument("--repo-file", help="File with one repo path per line, merged into --repos")

    window = parser.add_argument_group("time window")
    window.add_argument("--days", type=int, default=config.DAYS, help=f"Trailing window in days (default {config.DAYS})")
    window.add_argument("--months", type=int, help="Trailing window in calendar months (overrides --days)")
    window.add_argument("--since", help="Absolute start date, YYYY-MM-DD (overrides --days and --months)")

    out = parser.add_argument_group("output")
    out.add_argument("-o", "--output", choices=OUTPUT_FORMATS, default="summary")
    out.add_argument("--file", help="Write the report to this file instead of stdout")
    out.add_argument("--sort", choices=SORT_KEYS, default="repo", help="Order of the per-repo table")
    out.add_argument("--prometheus-file", help="Also write gauges in the Prometheus text format")

    parser.add_argument("--ca-cert", default=config.CA_BUNDLE, help="CA bundle for TLS verification")
    parser.add_argument("--concurrency", type=int, default=config.CONCURRENCY, help="Repos fetched in parallel")
    parser.add_argument("--log-level", default=config.LOG_LEVEL, help="DEBUG, INFO, WARNING or ERROR")


def build_parser():
    parser = argparse.ArgumentParser(
        prog="contributor-metrics",
        description="Count active contributors across GitHub, Bitbucket, Azure DevOps or local repos",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    gh = sub.add_parser("github", help="Count active contributors for GitHub repos")
    gh.add_argument("-t", "--token", default=config.GITHUB_TOKEN, help="GitHub token (or GITHUB_TOKEN)")
    gh.add_argument("--orgs", help="Comma separated list of organizations or users")
    gh.add_argument("--url", default=config.GITHUB_API_URL, help="API base URL")
    _add_common_arguments(gh)

    bb = sub.add_parser("bitbucket", help="Count active contributors for Bitbucket repos")
    bb.add_argument("-u", "--username", default=config.BITBUCKET_USERNAME, help="Bitbucket username (or BITBUCKET_USERNAME)")
    bb.add_argument("-t", "--token", default=config.BITBUCKET_TOKEN, help="Bitbucket app password (or BITBUCKET_TOKEN)")
    bb.add_argument("--workspaces", dest="orgs", help="Comma separated list of workspaces")
    bb.add_argument("--url", default=config.BITBUCKET_API_URL, help="API base URL")
    _add_common_arguments(bb)

    az = sub.add_parser("azuredevops", help="Count active contributors for Azure DevOps repos")
    az.add_argument("-t", "--token", default=config.AZURE_DEVOPS_TOKEN, help="Personal access token (or AZURE_DEVOPS_TOKEN)")
    az.add_argument("--orgs", help="Comma separated list of organizations")
    az.add_argument("--projects", help="Comma separated list of projects, as org/project or project")
    az.add_argument("--skip-projects", help="Comma separated list of projects to exclude")
    az.add_argument("--url", default=config.AZURE_DEVOPS_URL, help="Base URL")
    _add_common_arguments(az)

    local = sub.add_parser("local", help="Count active contributors for repos on disk")
    local.add_argument("--directory", default=".", help="Root directory holding <dir>/<repo> checkouts")
    local.add_argument("--directories", dest="orgs", help="Comma separated list of directories whose git repos are scanned")
    _add_common_arguments(local)

    return parser


def build_spec(args):
    if args.command == "github":
        token = config.require_token(args.token, "GITHUB_TOKEN", "--token")
        return github_source.build_source_spec(token, args.url, args.concurrency)
    if args.command == "bitbucket":
        username = config.require_token(args.username, "BITBUCKET_USERNAME", "--username")
        token = config.require_token(args.token, "BITBUCKET_TOKEN", "--token")
        return bitbucket_source.build_source_spec(username, token, args.url, args.concurrency)
    if args.command == "azuredevops":
        token = config.require_token(args.token, "AZURE_DEVOPS_TOKEN", "--token")
        return azure_source.build_source_spec(token, args.url, args.concurrency)
    return local_source.build_source_spec(args.directory, args.concurrency)


def main(argv=None):
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)

    try:
        spec = build_spec(args)
        rules = InclusionRules.from_options(
            orgs=args.orgs,
            projects=getattr(args, "projects", None),
            repos=args.repos,
            skip_projects=getattr(args, "skip_projects", None),
            skip_repos=args.skip_repos,
            repo_file=args.repo_file,
        )
        since = resolve_cutoff(days=args.days, months=args.months, since=args.since)

        source = build_source(spec, verify=args.ca_cert or True)
        report = Runner(spec, source, concurrency=args.concurrency).execute(rules, since)
    except ConfigurationError as exc:
        logger.error(str(exc))
        return 2

    if args.file:
        write_report(report, args.file, args.output, args.sort)
        logger.info("Report written to %s", args.file)
    else:
        sys.stdout.write(render_report(report, args.output, args.sort))

    if args.prometheus_file:
        exporter = ContributorMetricsExporter()
        exporter.update(report)
        exporter.write(args.prometheus_file)
        logger.info("Prometheus metrics written to %s", args.prometheus_file)

    return 0 if report.complete else 1


if __name__ == "__main__":
    sys.exit(main())
