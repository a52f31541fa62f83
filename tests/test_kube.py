"""
Tests for the kubectl wrapper against a scripted kubectl binary.
"""

import pytest

from infraflow.config import Settings
from infraflow.kube import Kubectl, KubectlError


@pytest.fixture
def settings(tmp_path):
    return Settings(working_dir=tmp_path, kubeconfig=tmp_path / "kubeconfig")


def test_list_names_ignores_stderr_warnings(settings, fake_tool):
    settings.kubectl_bin = fake_tool("kubectl", (
        'echo "Warning: networking.k8s.io/v1beta1 Ingress is deprecated" >&2\n'
        'echo "ingress.networking.k8s.io/demo-apps"\n'
    ))

    assert Kubectl(settings, context="demo-eks-cluster").list_names("ingress", "demo") == ["demo-apps"]


def test_list_names_empty_namespace(settings, fake_tool):
    settings.kubectl_bin = fake_tool("kubectl", 'echo "No resources found in demo namespace." >&2\n')

    assert Kubectl(settings).list_names("ingress", "demo") == []


def test_list_names_failure_keeps_stderr(settings, fake_tool):
    settings.kubectl_bin = fake_tool("kubectl", (
        'echo "error: context \\"demo-eks-cluster\\" does not exist" >&2\n'
        'exit 1\n'
    ))

    with pytest.raises(KubectlError) as exc_info:
        Kubectl(settings, context="demo-eks-cluster").list_names("ingress", "demo")

    assert "does not exist" in exc_info.value.result.combined


def test_passes_kubeconfig_and_context(settings, fake_tool, tmp_path):
    args_file = tmp_path / "args"
    settings.kubectl_bin = fake_tool("kubectl", f'echo "$@" > {args_file}\n')

    Kubectl(settings, context="demo-eks-cluster").list_names("ingress", "demo")

    assert args_file.read_text().split() == [
        "--kubeconfig", str(settings.kubeconfig), "--context", "demo-eks-cluster",
        "get", "ingress", "-n", "demo", "-o", "name",
    ]
