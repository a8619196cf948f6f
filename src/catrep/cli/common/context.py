"""Application context management for the CLI."""

from dataclasses import dataclass, field

from catrep.cli.common.exits import die
from catrep.core.auth import AuthError
from catrep.core.config import ReplicationConfig
from catrep.core.context import ReplicationContext, build_context


@dataclass
class AppContext:
    """CLI context holding the effective configuration and a lazily built replication context."""

    profile: str | None
    config: ReplicationConfig
    _replication: ReplicationContext | None = field(default=None, repr=False)

    def replication(self) -> ReplicationContext:
        """Return the boto3-backed replication context, building it on first use."""
        if self._replication is None:
            try:
                self._replication = build_context(self.config, profile=self.profile)
            except AuthError as exc:
                die(str(exc), code=1)
        return self._replication


def build_app_context(profile: str | None, region: str | None = None) -> AppContext:
    """Build the CLI context from the environment plus command-line overrides.

    Args:
        profile: Optional AWS profile name to use for authentication.
        region: Optional region overriding the `region` environment variable.

    Returns:
        AppContext: Context with the effective configuration.
    """
    config = ReplicationConfig.from_env().with_overrides(region=region)
    return AppContext(profile=profile, config=config)
