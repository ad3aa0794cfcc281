from .domain.identity import IdentityKey
from .domain.models import (
    AggregateReport,
    CollectionResult,
    Failure,
    InclusionRules,
    RawCommit,
    RepoIdentifier,
    SourceSpec,
    SourceType,
)
from .domain.resolver import RepoResolver, apply_exclusions
from .domain.collector import CommitCollector
from .domain.aggregator import ContributorAggregator
from .domain.time_utils import resolve_cutoff
from .app.runner import Runner, build_source
from .errors import (
    AuthorizationError,
    ConfigurationError,
    ContributorMetricsError,
    NotFoundError,
    ParseError,
    SourceError,
    TransportError,
)

__all__ = [
    "IdentityKey",
    "AggregateReport",
    "CollectionResult",
    "Failure",
    "InclusionRules",
    "RawCommit",
    "RepoIdentifier",
    "SourceSpec",
    "SourceType",
    "RepoResolver",
    "apply_exclusions",
    "CommitCollector",
    "ContributorAggregator",
    "resolve_cutoff",
    "Runner",
    "build_source",
    "AuthorizationError",
    "ConfigurationError",
    "ContributorMetricsError",
    "NotFoundError",
    "ParseError",
    "SourceError",
    "TransportError",
]
