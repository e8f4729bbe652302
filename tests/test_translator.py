"""Tests for record <-> domain mapping and environment identity."""

from datetime import datetime, timezone

import pytest

from deploy_lifecycle.services.deployment import DeploymentStatus, DeploymentUpdate, EnvironmentId
from deploy_lifecycle.services.deployment.translator import from_record, merge_update, to_record


class TestEnvironmentId:
    def test_composite_keys(self, environment_id):
        assert environment_id.account_id_cluster() == "123456789012/prod-cluster"
        assert environment_id.account_id_cluster_environment_name() == "123456789012/prod-cluster/web"

    def test_parse_composite(self, environment_id):
        parsed = EnvironmentId.from_account_id_cluster_environment_name("123456789012/prod-cluster/web")
        assert parsed == environment_id

    @pytest.mark.parametrize("composite", ["a/b", "a/b/c/d", ""])
    def test_parse_rejects_malformed(self, composite):
        with pytest.raises(ValueError):
            EnvironmentId.from_account_id_cluster_environment_name(composite)

    def test_rejects_delimiter_in_part(self):
        with pytest.raises(ValueError):
            EnvironmentId(account_id="1", cluster="a/b", environment_name="web")

    def test_rejects_empty_part(self):
        with pytest.raises(ValueError):
            EnvironmentId(account_id="1", cluster="c", environment_name="")


class TestTranslator:
    def test_to_record(self, make_deployment):
        record = to_record(make_deployment(desired_task_count=3))
        assert record.status == "Pending"
        assert record.cluster_name == "prod-cluster"
        assert record.account_id_cluster_environment_name == "123456789012/prod-cluster/web"
        assert record.record_version == 0
        assert record.desired_task_count == 3

    def test_from_record_makes_naive_timestamps_utc(self, make_deployment):
        record = to_record(make_deployment())
        record.created_at = datetime(2024, 5, 1, 12, 0)
        record.last_updated_at = datetime(2024, 5, 1, 12, 5)

        deployment = from_record(record)

        assert deployment.created_at.tzinfo is timezone.utc
        assert deployment.environment_id.cluster == "prod-cluster"
        assert deployment.status is DeploymentStatus.PENDING
        assert deployment.cluster_identifier == "prod-cluster"

    def test_merge_copies_only_changed_fields(self, make_deployment):
        record = to_record(make_deployment(desired_task_count=2, status_reason="created"))
        record.record_version = 4
        now = datetime(2024, 5, 1, tzinfo=timezone.utc)

        values = merge_update(
            DeploymentUpdate(deployment_id="dep-1", record_version=4, status=DeploymentStatus.IN_PROGRESS),
            record, now=now,
        )

        assert values == {"status": "InProgress", "record_version": 5, "last_updated_at": now}

    def test_merge_without_changes_still_bumps_version(self, make_deployment):
        record = to_record(make_deployment())
        values = merge_update(DeploymentUpdate(deployment_id="dep-1", record_version=0), record)
        assert set(values) == {"record_version", "last_updated_at"}
        assert values["record_version"] == 1
