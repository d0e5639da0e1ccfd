"""Repartition audit log tests."""

import json
import logging
from unittest.mock import MagicMock

from botocore.exceptions import ClientError

from slotting.config import SlottingSettings
from slotting.models.slotting import Move
from slotting.services.audit import RepartitionAuditLog


def _move() -> Move:
    return Move("LOC1", "P1", 1, 2, 5, "Over threshold - redistributing load")


def _client_error() -> ClientError:
    return ClientError({"Error": {"Code": "InternalServerError", "Message": "boom"}}, "PutItem")


class TestInProcess:
    """Entries are always kept and logged."""

    def test_record(self, caplog):
        audit = RepartitionAuditLog()
        with caplog.at_level(logging.INFO, logger="slotting.services.audit"):
            entry = audit.record(_move())
        assert entry.message == (
            "Auto-repartition: Moved 5 units of product P1 from level 1 to level 2. "
            "Reason: Over threshold - redistributing load"
        )
        assert entry.message in caplog.text
        assert audit.entries() == [entry]

    def test_filter(self):
        audit = RepartitionAuditLog()
        audit.record(_move())
        audit.record(Move("LOC2", "P2", 2, 3, 1, "x"))
        assert len(audit.entries(location_id="LOC2")) == 1
        assert len(audit.entries(product_id="P1")) == 1
        assert audit.entries(location_id="LOC2", product_id="P1") == []

    def test_oldest_entries_dropped(self):
        audit = RepartitionAuditLog(max_entries=2)
        for quantity in (1, 2, 3):
            audit.record(Move("LOC1", "P1", 1, 2, quantity, "x"))
        assert [e.quantity for e in audit.entries()] == [2, 3]


class TestSinks:
    """DynamoDB and S3 copies."""

    def test_dynamodb_put(self):
        resource = MagicMock()
        audit = RepartitionAuditLog(SlottingSettings(table_prefix="dev-"), dynamodb_resource=resource)
        audit.record(_move(), details={"source_after": 4})
        resource.Table.assert_called_with("dev-RepartitionLog")
        item = resource.Table.return_value.put_item.call_args.kwargs["Item"]
        assert item["location_id"] == "LOC1"
        assert json.loads(item["details"]) == {"source_after": 4}

    def test_s3_copy(self):
        s3 = MagicMock()
        audit = RepartitionAuditLog(SlottingSettings(audit_bucket="audit"), s3_client=s3)
        audit.record(_move())
        kwargs = s3.put_object.call_args.kwargs
        assert kwargs["Bucket"] == "audit"
        assert kwargs["Key"].startswith("repartition-logs/LOC1/")
        assert json.loads(kwargs["Body"])["product_id"] == "P1"

    def test_s3_needs_bucket(self):
        s3 = MagicMock()
        RepartitionAuditLog(SlottingSettings(), s3_client=s3).record(_move())
        s3.put_object.assert_not_called()

    def test_sink_failures_are_swallowed(self):
        resource = MagicMock()
        resource.Table.return_value.put_item.side_effect = _client_error()
        s3 = MagicMock()
        s3.put_object.side_effect = _client_error()
        audit = RepartitionAuditLog(SlottingSettings(audit_bucket="audit"), resource, s3)

        entry = audit.record(_move())

        assert audit.entries() == [entry]
