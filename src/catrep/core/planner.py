"""Export planning: fan out one message per source database.

The planner is the top of the pipeline. One planning pass gets a fresh
export batch id; every message it publishes (and everything downstream of
those messages) carries that id so a database can be correlated with its
tables across asynchronous hops.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable, Sequence

from catrep.core.messaging import MessageType, message_attributes, publish_message
from catrep.core.models import Database
from catrep.core.status import database_export_record, write_status

if TYPE_CHECKING:
    from catrep.core.context import ReplicationContext

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlanResult:
    """Counts for one planning pass."""

    total_found: int
    total_published: int
    export_batch_id: str
    selected: int = 0


def tokenize_prefixes(raw: str | None, separator: str = "|") -> list[str]:
    """Split a separator-delimited prefix list, dropping empty tokens."""
    if not raw:
        return []
    return [token.strip() for token in raw.split(separator or "|") if token.strip()]


def filter_databases(
    databases: Iterable[Database], prefixes: Sequence[str]
) -> list[Database]:
    """Keep databases whose name starts with any prefix (case-insensitive).

    An empty prefix list keeps everything.
    """
    databases = list(databases)
    if not prefixes:
        return databases
    wanted = tuple(p.lower() for p in prefixes)
    return [db for db in databases if db.name.lower().startswith(wanted)]


def plan_export(
    ctx: ReplicationContext,
    prefixes: Sequence[str] | None = None,
) -> PlanResult:
    """
    Enumerate source databases and publish one `database` message for each.

    A failed publish is recorded as a not-exported status record and does not
    stop the remaining databases from being published.

    Args:
        ctx: Replication context.
        prefixes: Name prefixes to export; defaults to the configured list.

    Returns:
        PlanResult with the number of databases found and published.
    """
    config = ctx.config
    if prefixes is None:
        prefixes = tokenize_prefixes(config.database_prefixes, config.prefix_separator)

    run_id = ctx.new_run_id()
    batch_id = str(run_id)
    source = config.source_catalog_id

    databases = list(ctx.catalog.iter_databases(source))
    selected = filter_databases(databases, prefixes)
    logger.info(
        "Catalog '%s' has %d databases, %d selected for export (prefixes: %s). Batch id: %s",
        source,
        len(databases),
        len(selected),
        list(prefixes) or "all",
        batch_id,
    )

    attributes = message_attributes(
        MessageType.DATABASE, source_catalog_id=source, export_batch_id=batch_id
    )
    published = 0
    for db in selected:
        body = db.to_json()
        message_id = publish_message(
            ctx.messaging,
            config.export_topic_arn,
            body,
            attributes,
            entity=f"database '{db.name}'",
        )
        if message_id:
            published += 1
        write_status(
            ctx.status,
            config.planner_status_table,
            database_export_record(
                db.name,
                schema=body,
                message_id=message_id,
                source_catalog_id=source,
                run_id=run_id,
                batch_id=batch_id,
            ),
        )

    logger.info(
        "Database export statistics: found = %d, published = %d.",
        len(databases),
        published,
    )
    return PlanResult(
        total_found=len(databases),
        total_published=published,
        export_batch_id=batch_id,
        selected=len(selected),
    )
