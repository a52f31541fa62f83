from unittest.mock import Mock

import pytest
import yaml

from infraflow.config import Settings
from infraflow.credentials import KubeconfigFileStore
from infraflow.errors import LocalSyncError
from infraflow.events import EventTypes, read_events
from infraflow.models import DeploymentTarget, LocalCredentialArtifact
from infraflow.runner import CommandResult
from infraflow.state import read_outputs_json, write_outputs_json
from infraflow.sync import Synchronizer

TARGET = DeploymentTarget("demo-eks-cluster", "us-west-2")


class FakeKubectl:

    def __init__(self, returncode=0):
        self.returncode = returncode
        self.contexts = []

    def __call__(self, settings, context=None):
        self.contexts.append(context)
        return self

    def get_nodes(self):
        return CommandResult(["kubectl", "get", "nodes"], self.returncode, "ip-10-0-1-12   Ready")


@pytest.fixture
def settings(tmp_path):
    return Settings(working_dir=tmp_path, kubeconfig=tmp_path / "kubeconfig")


def test_sync_apply_updates_credentials_then_checks_connectivity(settings):
    store = Mock()
    store.upsert.return_value = LocalCredentialArtifact(
        name="demo-eks-cluster", kubeconfig=settings.kubeconfig,
        context="demo-eks-cluster", cluster="demo-eks-cluster", user="demo-eks-cluster",
    )
    kubectl = FakeKubectl()

    artifact = Synchronizer(settings, store=store, kubectl_factory=kubectl).sync_apply(TARGET)

    store.upsert.assert_called_once_with(TARGET)
    upserted = store.upsert.call_args[0][0]
    assert (upserted.cluster_name, upserted.region) == ("demo-eks-cluster", "us-west-2")
    assert kubectl.contexts == ["demo-eks-cluster"]
    assert artifact.context == "demo-eks-cluster"
    done = read_events(settings.home)[-1]
    assert done["type"] == EventTypes.SYNC_DONE
    assert done["data"]["connected"] is True


def test_failed_connectivity_is_not_fatal(settings):
    store = Mock()
    store.upsert.return_value = LocalCredentialArtifact(
        "demo-eks-cluster", settings.kubeconfig, "demo-eks-cluster", "demo-eks-cluster", "demo-eks-cluster",
    )

    Synchronizer(settings, store=store, kubectl_factory=FakeKubectl(returncode=1)).sync_apply(TARGET)

    assert read_events(settings.home)[-1]["data"]["connected"] is False


def test_sync_apply_propagates_store_errors(settings):
    store = Mock()
    store.upsert.side_effect = LocalSyncError("describe failed")

    with pytest.raises(LocalSyncError):
        Synchronizer(settings, store=store, kubectl_factory=FakeKubectl()).sync_apply(TARGET)


def test_cleanup_leaves_no_entry_and_is_idempotent(settings):
    eks = Mock()
    eks.describe_cluster.return_value = {"cluster": {
        "endpoint": "https://example", "certificateAuthority": {"data": "Q0E="},
    }}
    store = KubeconfigFileStore(settings.kubeconfig, client_factory=Mock(return_value=eks))
    store.upsert(TARGET)
    write_outputs_json(settings.home, {"cluster_name": "demo-eks-cluster"})
    synchronizer = Synchronizer(settings, store=store, kubectl_factory=FakeKubectl())

    assert synchronizer.sync_cleanup("demo-eks-cluster") is True
    assert synchronizer.sync_cleanup("demo-eks-cluster") is False

    with open(settings.kubeconfig) as f:
        assert "demo-eks-cluster" not in str(yaml.safe_load(f))
    assert read_outputs_json(settings.home) is None


def test_cleanup_never_raises(settings):
    store = Mock()
    store.remove.side_effect = LocalSyncError("not a kubeconfig mapping")

    assert Synchronizer(settings, store=store).sync_cleanup("demo-eks-cluster") is False

    types = [e["type"] for e in read_events(settings.home)]
    assert types == [EventTypes.SYNC_WARNING, EventTypes.DESYNC_DONE]
