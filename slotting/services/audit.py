"""Audit trail of executed moves.

Every entry is logged and the most recent ones are kept in process. When a
DynamoDB resource is given it is also written to the RepartitionLog table;
with an S3 client and an audit bucket a JSON copy lands under
repartition-logs/<location>/. Sink failures are logged and never reach the
caller.
"""

from __future__ import annotations

import json
import logging
import uuid
from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from botocore.exceptions import BotoCoreError, ClientError

from slotting.config import SlottingSettings
from slotting.models.slotting import Move, utc_now

logger = logging.getLogger(__name__)

# Entries kept in process; the DynamoDB and S3 sinks hold the full history.
MAX_IN_PROCESS_ENTRIES = 1000

MESSAGE_FORMAT = "Auto-repartition: Moved %d units of product %s from level %d to level %d. Reason: %s"


@dataclass
class AuditEntry:
    entry_id: str
    location_id: str
    product_id: str
    from_level: int
    to_level: int
    quantity: int
    reason: str
    message: str
    timestamp: str = field(default_factory=utc_now)
    details: Optional[dict] = None

    def to_dict(self) -> dict:
        return asdict(self)


class RepartitionAuditLog:
    """Append-only, best-effort log of executed moves."""

    def __init__(
        self,
        settings: Optional[SlottingSettings] = None,
        dynamodb_resource: Optional[Any] = None,
        s3_client: Optional[Any] = None,
        max_entries: int = MAX_IN_PROCESS_ENTRIES,
    ):
        self.settings = settings or SlottingSettings()
        self.s3 = s3_client
        self.log_table = None
        if dynamodb_resource is not None:
            self.log_table = dynamodb_resource.Table(self.settings.table_name("RepartitionLog"))
        self._entries: deque[AuditEntry] = deque(maxlen=max_entries)

    def record(self, move: Move, details: Optional[dict] = None) -> AuditEntry:
        message = MESSAGE_FORMAT % (move.quantity, move.product_id, move.from_level, move.to_level, move.reason)
        entry = AuditEntry(
            entry_id=str(uuid.uuid4()),
            location_id=move.location_id,
            product_id=move.product_id,
            from_level=move.from_level,
            to_level=move.to_level,
            quantity=move.quantity,
            reason=move.reason,
            message=message,
            details=details,
        )
        self._entries.append(entry)
        logger.info(message)

        if self.log_table is not None:
            try:
                item = entry.to_dict()
                item["details"] = json.dumps(details or {})
                self.log_table.put_item(Item=item)
            except (ClientError, BotoCoreError) as e:
                logger.warning("Repartition log write failed: %s", e)

        if self.s3 is not None and self.settings.audit_bucket:
            try:
                self._write_s3(entry)
            except (ClientError, BotoCoreError) as e:
                logger.warning("S3 audit log failed: %s", e)

        return entry

    def _write_s3(self, entry: AuditEntry) -> None:
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S")
        key = f"repartition-logs/{entry.location_id}/{timestamp}-{entry.entry_id}.json"
        self.s3.put_object(
            Bucket=self.settings.audit_bucket,
            Key=key,
            Body=json.dumps(entry.to_dict(), default=str),
        )

    def entries(self, location_id: Optional[str] = None, product_id: Optional[str] = None) -> list[AuditEntry]:
        """Recorded entries, optionally filtered."""
        result = self._entries
        if location_id:
            result = [e for e in result if e.location_id == location_id]
        if product_id:
            result = [e for e in result if e.product_id == product_id]
        return list(result)
