"""AWS Lambda entry points, one per pipeline stage.

Each handler reads configuration from the environment, builds a context of
boto3-backed adapters and runs one stage over the trigger's event. Any
exception a stage raises propagates to the Lambda runtime so the trigger
redelivers the batch.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Mapping

from catrep.core.config import ReplicationConfig
from catrep.core.context import ReplicationContext, build_context
from catrep.core.exporter import handle_export_event
from catrep.core.importer import (
    handle_dead_letter_event,
    handle_import_event,
    handle_large_table_import_event,
)
from catrep.core.offload import handle_large_table_export_event
from catrep.core.planner import plan_export

logger = logging.getLogger(__name__)

Stage = Callable[[ReplicationContext, Mapping[str, Any]], list]

# Event-driven stages by the name the CLI's `invoke` command uses.
STAGES: dict[str, Stage] = {
    "export": handle_export_event,
    "large-table-export": handle_large_table_export_event,
    "import": handle_import_event,
    "large-table-import": handle_large_table_import_event,
    "dead-letter": handle_dead_letter_event,
}


def configure_logging(level: str) -> None:
    """Apply the configured level; add a handler only when none is installed."""
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    root.setLevel(level.upper())


def _build() -> ReplicationContext:
    config = ReplicationConfig.from_env()
    configure_logging(config.log_level)
    return build_context(config)


def run_stage(name: str, ctx: ReplicationContext, event: Mapping[str, Any]) -> dict[str, Any]:
    """Run one event-driven stage and summarize what it processed."""
    results = STAGES[name](ctx, event)
    logger.info("Stage '%s' processed %d entities.", name, len(results))
    return {"stage": name, "processed": len(results)}


def planner_handler(event: Mapping[str, Any], context: Any = None) -> dict[str, Any]:
    """Scheduled trigger: publish one message per source database."""
    result = plan_export(_build())
    return {
        "total_found": result.total_found,
        "total_published": result.total_published,
        "export_batch_id": result.export_batch_id,
    }


def export_handler(event: Mapping[str, Any], context: Any = None) -> dict[str, Any]:
    return run_stage("export", _build(), event)


def large_table_export_handler(event: Mapping[str, Any], context: Any = None) -> dict[str, Any]:
    return run_stage("large-table-export", _build(), event)


def import_handler(event: Mapping[str, Any], context: Any = None) -> dict[str, Any]:
    return run_stage("import", _build(), event)


def large_table_import_handler(event: Mapping[str, Any], context: Any = None) -> dict[str, Any]:
    return run_stage("large-table-import", _build(), event)


def dead_letter_handler(event: Mapping[str, Any], context: Any = None) -> dict[str, Any]:
    return run_stage("dead-letter", _build(), event)
