"""Explicit collaborator bundle passed to every replication stage."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable

from catrep.core.catalog import CatalogAdapter
from catrep.core.config import ReplicationConfig
from catrep.core.messaging import MessagingAdapter
from catrep.core.offload import ObjectStoreAdapter
from catrep.core.status import StatusStoreAdapter


@dataclass
class ReplicationContext:
    """
    Everything a stage needs for one invocation.

    Stages never build clients themselves; they receive them here so the same
    code runs against AWS in Lambda and against in-memory fakes in tests.
    `clock` returns epoch seconds and drives run ids, blob keys and
    replication timestamps.
    """

    config: ReplicationConfig
    catalog: CatalogAdapter
    messaging: MessagingAdapter
    objects: ObjectStoreAdapter
    status: StatusStoreAdapter
    clock: Callable[[], float] = field(default=time.time)

    def now_ms(self) -> int:
        return int(self.clock() * 1000)

    def new_run_id(self) -> int:
        """Time-based id shared by all status records of one invocation."""
        return self.now_ms()


def build_context(config: ReplicationConfig, profile: str | None = None) -> ReplicationContext:
    """Create a context backed by boto3 clients for the configured region."""
    from catrep.core.adapters.dynamodb import DynamoStatusStore
    from catrep.core.adapters.glue import GlueCatalogAdapter
    from catrep.core.adapters.messaging import AwsMessagingAdapter
    from catrep.core.adapters.s3 import S3ObjectStore
    from catrep.core.auth import client_config, get_session

    session = get_session(profile=profile, region=config.region)
    cfg = client_config()
    return ReplicationContext(
        config=config,
        catalog=GlueCatalogAdapter(session.client("glue", config=cfg)),
        messaging=AwsMessagingAdapter(
            sns=session.client("sns", config=cfg),
            sqs=session.client("sqs", config=cfg),
        ),
        objects=S3ObjectStore(session.client("s3", config=cfg)),
        status=DynamoStatusStore(session.client("dynamodb", config=cfg)),
    )
