"""
Tests for kubeconfig credential stores.
"""

import stat
from unittest.mock import Mock

import pytest
import yaml
from botocore.exceptions import ClientError

from infraflow.config import Settings
from infraflow.credentials import (
    AwsCliKubeconfigStore, KubeconfigFileStore, make_store,
)
from infraflow.errors import LocalSyncError
from infraflow.models import DeploymentTarget
from infraflow.runner import CommandResult

TARGET = DeploymentTarget("demo-eks-cluster", "us-west-2")

OTHER_CONFIG = {
    "apiVersion": "v1",
    "kind": "Config",
    "clusters": [{"name": "kind-dev", "cluster": {"server": "https://127.0.0.1:6443"}}],
    "contexts": [{"name": "kind-dev", "context": {"cluster": "kind-dev", "user": "kind-dev"}}],
    "users": [{"name": "kind-dev", "user": {"token": "abc"}}],
    "current-context": "kind-dev",
}


def eks_factory():
    eks = Mock()
    eks.describe_cluster.return_value = {"cluster": {
        "name": "demo-eks-cluster",
        "endpoint": "https://ABC.gr7.us-west-2.eks.amazonaws.com",
        "certificateAuthority": {"data": "Q0EtREFUQQ=="},
    }}
    return Mock(return_value=eks), eks


def read(path):
    with open(path) as f:
        return yaml.safe_load(f)


def names(config, section):
    return [entry["name"] for entry in config[section]]


class TestKubeconfigFileStore:

    def test_upsert_uses_cluster_name_and_region(self, tmp_path):
        factory, eks = eks_factory()
        store = KubeconfigFileStore(tmp_path / "config", client_factory=factory)

        artifact = store.upsert(TARGET)

        factory.assert_called_once_with("eks", region_name="us-west-2")
        eks.describe_cluster.assert_called_once_with(name="demo-eks-cluster")
        assert artifact.context == "demo-eks-cluster"
        assert artifact.endpoint == "https://ABC.gr7.us-west-2.eks.amazonaws.com"

        config = read(tmp_path / "config")
        assert config["current-context"] == "demo-eks-cluster"
        assert config["clusters"][0]["cluster"]["certificate-authority-data"] == "Q0EtREFUQQ=="
        exec_args = config["users"][0]["user"]["exec"]["args"]
        assert exec_args[:2] == ["--region", "us-west-2"]
        assert "demo-eks-cluster" in exec_args
        assert stat.S_IMODE((tmp_path / "config").stat().st_mode) == 0o600

    def test_upsert_is_idempotent_and_keeps_other_entries(self, tmp_path):
        path = tmp_path / "config"
        path.write_text(yaml.safe_dump(OTHER_CONFIG))
        factory, _ = eks_factory()
        store = KubeconfigFileStore(path, client_factory=factory)

        store.upsert(TARGET)
        store.upsert(TARGET)

        config = read(path)
        assert names(config, "contexts") == ["kind-dev", "demo-eks-cluster"]
        assert names(config, "clusters") == ["kind-dev", "demo-eks-cluster"]
        assert names(config, "users") == ["kind-dev", "demo-eks-cluster"]

    def test_describe_failure_raises_sync_error(self, tmp_path):
        factory, eks = eks_factory()
        eks.describe_cluster.side_effect = ClientError(
            {"Error": {"Code": "ResourceNotFoundException", "Message": "No cluster found"}},
            "DescribeCluster",
        )
        store = KubeconfigFileStore(tmp_path / "config", client_factory=factory)

        with pytest.raises(LocalSyncError, match="demo-eks-cluster"):
            store.upsert(TARGET)
        assert not (tmp_path / "config").exists()

    def test_remove_is_idempotent(self, tmp_path):
        path = tmp_path / "config"
        path.write_text(yaml.safe_dump(OTHER_CONFIG))
        factory, _ = eks_factory()
        store = KubeconfigFileStore(path, client_factory=factory)
        store.upsert(TARGET)

        assert store.remove("demo-eks-cluster") is True
        assert store.remove("demo-eks-cluster") is False

        config = read(path)
        assert "demo-eks-cluster" not in str(config)
        assert names(config, "contexts") == ["kind-dev"]
        assert config["current-context"] == ""
        assert not store.exists("demo-eks-cluster")
        assert store.exists("kind-dev")

    def test_remove_missing_file(self, tmp_path):
        store = KubeconfigFileStore(tmp_path / "absent")

        assert store.remove("demo-eks-cluster") is False
        assert not (tmp_path / "absent").exists()

    def test_remove_follows_context_references(self, tmp_path):
        path = tmp_path / "config"
        path.write_text(yaml.safe_dump({
            "clusters": [
                {"name": "arn:aws:eks:us-west-2:1:cluster/demo-eks-cluster", "cluster": {}},
                {"name": "shared", "cluster": {}},
            ],
            "contexts": [
                {"name": "demo-eks-cluster", "context": {
                    "cluster": "arn:aws:eks:us-west-2:1:cluster/demo-eks-cluster", "user": "shared"}},
                {"name": "other", "context": {"cluster": "shared", "user": "shared"}},
            ],
            "users": [{"name": "shared", "user": {}}],
        }))
        store = KubeconfigFileStore(path)

        assert store.remove("demo-eks-cluster") is True

        config = read(path)
        assert names(config, "clusters") == ["shared"]
        assert names(config, "users") == ["shared"]  # still used by "other"
        assert names(config, "contexts") == ["other"]


class TestAwsCliKubeconfigStore:

    def test_update_kubeconfig_arguments(self, tmp_path):
        calls = []

        def runner(command):
            calls.append(command)
            return CommandResult(command, 0, "Added new context demo-eks-cluster")

        store = AwsCliKubeconfigStore(tmp_path / "config", runner=runner)
        artifact = store.upsert(TARGET)

        command = calls[0]
        assert command[:3] == ["aws", "eks", "update-kubeconfig"]
        assert command[command.index("--region") + 1] == "us-west-2"
        assert command[command.index("--name") + 1] == "demo-eks-cluster"
        assert command[command.index("--alias") + 1] == "demo-eks-cluster"
        assert artifact.context == "demo-eks-cluster"

    def test_update_kubeconfig_failure(self, tmp_path):
        store = AwsCliKubeconfigStore(
            tmp_path / "config",
            runner=lambda command: CommandResult(command, 255, "Unable to locate credentials"),
        )

        with pytest.raises(LocalSyncError) as exc_info:
            store.upsert(TARGET)
        assert exc_info.value.output == "Unable to locate credentials"


def test_make_store_selects_backend(tmp_path):
    file_settings = Settings(working_dir=tmp_path, kubeconfig=tmp_path / "config")
    cli_settings = Settings(working_dir=tmp_path, kubeconfig=tmp_path / "config",
                            credential_backend="aws-cli")

    assert type(make_store(file_settings)) is KubeconfigFileStore
    assert isinstance(make_store(cli_settings), AwsCliKubeconfigStore)
