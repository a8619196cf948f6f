"""Runtime configuration for the replication stages.

Configuration is read from plain environment variables, once per invocation.
Variable names match the deployed stacks (`source_glue_catalog_id`,
`ddb_name_table_import_status`, ...). Malformed numeric or boolean values fall
back to the default rather than failing the invocation.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import Mapping

DEFAULT_REGION = "us-east-1"
DEFAULT_PARTITION_THRESHOLD = 10
DEFAULT_PREFIX_SEPARATOR = "|"


def _get(env: Mapping[str, str], name: str, default: str = "") -> str:
    value = env.get(name)
    return default if value is None else value.strip()


def _get_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None:
        return default
    try:
        return max(int(raw), 0)
    except ValueError:
        return default


def _get_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class ReplicationConfig:
    """
    Plain values consumed by the engine.

    Empty catalog ids mean "the caller's own catalog". An empty
    `large_table_import_queue_url` makes the import stage reconcile large
    tables inline instead of forwarding them to a dedicated queue.
    """

    region: str = DEFAULT_REGION
    source_catalog_id: str = ""
    target_catalog_id: str = ""
    database_prefixes: str = ""
    prefix_separator: str = DEFAULT_PREFIX_SEPARATOR
    partition_threshold: int = DEFAULT_PARTITION_THRESHOLD
    skip_archive: bool = True
    export_topic_arn: str = ""
    large_table_queue_url: str = ""
    large_table_import_queue_url: str = ""
    dead_letter_queue_url: str = ""
    bucket_name: str = ""
    planner_status_table: str = "ddb_name_gdc_replication_planner"
    db_export_status_table: str = "ddb_name_db_export_status"
    table_export_status_table: str = "ddb_name_table_export_status"
    db_import_status_table: str = "ddb_name_db_import_status"
    table_import_status_table: str = "ddb_name_table_import_status"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> ReplicationConfig:
        """Build a configuration from environment variables."""
        env = os.environ if environ is None else environ
        defaults = cls()
        return cls(
            region=_get(env, "region", DEFAULT_REGION) or DEFAULT_REGION,
            source_catalog_id=_get(env, "source_glue_catalog_id"),
            target_catalog_id=_get(env, "target_glue_catalog_id"),
            database_prefixes=_get(env, "database_prefix_list"),
            prefix_separator=env.get("separator") or DEFAULT_PREFIX_SEPARATOR,
            partition_threshold=_get_int(
                env, "partition_threshold", DEFAULT_PARTITION_THRESHOLD
            ),
            skip_archive=_get_bool(env, "skip_archive", True),
            export_topic_arn=_get(env, "sns_topic_arn_export_dbs_tables")
            or _get(env, "sns_topic_arn_gdc_replication_planner"),
            large_table_queue_url=_get(env, "sqs_queue_url_large_tables"),
            large_table_import_queue_url=_get(env, "sqs_queue_url_large_tables_import"),
            dead_letter_queue_url=_get(env, "dlq_url_sqs"),
            bucket_name=_get(env, "s3_bucket_name"),
            planner_status_table=_get(
                env, "ddb_name_gdc_replication_planner", defaults.planner_status_table
            ),
            db_export_status_table=_get(
                env, "ddb_name_db_export_status", defaults.db_export_status_table
            ),
            table_export_status_table=_get(
                env, "ddb_name_table_export_status", defaults.table_export_status_table
            ),
            db_import_status_table=_get(
                env, "ddb_name_db_import_status", defaults.db_import_status_table
            ),
            table_import_status_table=_get(
                env, "ddb_name_table_import_status", defaults.table_import_status_table
            ),
            log_level=(_get(env, "log_level", "INFO") or "INFO").upper(),
        )

    def with_overrides(self, **overrides) -> ReplicationConfig:
        """Return a copy with non-None overrides applied (used by the CLI)."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    def as_dict(self) -> dict[str, object]:
        return dict(self.__dict__)
