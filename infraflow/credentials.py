"""
Local credential stores for cluster access.

Entries are keyed by target name: the context, cluster and user written
for a target all carry its name, so they can be removed cleanly after
the target is destroyed.
"""

import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Dict, List

import boto3
import yaml
from botocore.exceptions import BotoCoreError, ClientError

from .config import Settings
from .errors import LocalSyncError
from .models import DeploymentTarget, LocalCredentialArtifact
from .runner import run_command

logger = logging.getLogger(__name__)


class LocalCredentialStore(ABC):
    """Keeps local cluster credentials in step with remote targets."""

    @abstractmethod
    def upsert(self, target: DeploymentTarget) -> LocalCredentialArtifact:
        """Create or refresh credentials for ``target``."""

    @abstractmethod
    def remove(self, name: str) -> bool:
        """Remove credentials for ``name``; False if nothing was there."""

    @abstractmethod
    def exists(self, name: str) -> bool:
        """Whether credentials for ``name`` are present."""


def _empty_kubeconfig() -> Dict[str, Any]:
    return {
        "apiVersion": "v1",
        "kind": "Config",
        "preferences": {},
        "clusters": [],
        "contexts": [],
        "users": [],
        "current-context": "",
    }


def _upsert_named(entries: List[Dict[str, Any]], name: str, body_key: str, body: Dict[str, Any]) -> None:
    for entry in entries:
        if entry.get("name") == name:
            entry[body_key] = body
            return
    entries.append({"name": name, body_key: body})


class KubeconfigFileStore(LocalCredentialStore):
    """
    Writes EKS credentials straight into a kubeconfig file.

    Cluster endpoint and CA data come from the EKS API; the user entry
    execs ``aws eks get-token`` so no long-lived token is stored.
    """

    def __init__(self, path: Path, client_factory: Callable = boto3.client, aws_bin: str = "aws"):
        self.path = Path(path)
        self.client_factory = client_factory
        self.aws_bin = aws_bin

    def load(self) -> Dict[str, Any]:
        if not self.path.exists():
            return _empty_kubeconfig()
        with open(self.path, "r") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise LocalSyncError(f"{self.path} is not a kubeconfig mapping")
        config = _empty_kubeconfig()
        config.update(data)
        for section in ("clusters", "contexts", "users"):
            config[section] = config.get(section) or []
        return config

    def save(self, config: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".kubeconfig-")
        try:
            with os.fdopen(fd, "w") as f:
                yaml.safe_dump(config, f, default_flow_style=False, sort_keys=False)
            os.chmod(tmp_path, 0o600)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def describe_cluster(self, target: DeploymentTarget) -> Dict[str, Any]:
        """
        Fetch endpoint and CA data for the target cluster.

        Raises:
            LocalSyncError: If the EKS API call fails
        """
        try:
            eks = self.client_factory("eks", region_name=target.region)
            return eks.describe_cluster(name=target.cluster_name)["cluster"]
        except (ClientError, BotoCoreError) as e:
            raise LocalSyncError(f"Failed to describe cluster {target.cluster_name}: {e}") from e

    def upsert(self, target: DeploymentTarget) -> LocalCredentialArtifact:
        cluster = self.describe_cluster(target)
        name = target.name
        endpoint = cluster["endpoint"]

        config = self.load()
        _upsert_named(config["clusters"], name, "cluster", {
            "server": endpoint,
            "certificate-authority-data": cluster["certificateAuthority"]["data"],
        })
        _upsert_named(config["users"], name, "user", {
            "exec": {
                "apiVersion": "client.authentication.k8s.io/v1beta1",
                "command": self.aws_bin,
                "args": [
                    "--region", target.region,
                    "eks", "get-token",
                    "--cluster-name", target.cluster_name,
                    "--output", "json",
                ],
            },
        })
        _upsert_named(config["contexts"], name, "context", {"cluster": name, "user": name})
        config["current-context"] = name
        self.save(config)

        logger.info("Updated context %s in %s", name, self.path)
        return LocalCredentialArtifact(
            name=name, kubeconfig=self.path, context=name, cluster=name, user=name, endpoint=endpoint,
        )

    def exists(self, name: str) -> bool:
        try:
            config = self.load()
        except (LocalSyncError, yaml.YAMLError, OSError):
            return False
        return any(entry.get("name") == name for entry in config["contexts"])

    def remove(self, name: str) -> bool:
        """
        Drop the context ``name`` and the cluster/user entries it uses.

        Entries still referenced by another context are kept. A missing
        file or entry is not an error.
        """
        if not self.path.exists():
            return False
        config = self.load()

        context = next((c for c in config["contexts"] if c.get("name") == name), None)
        clusters = {name}
        users = {name}
        if context:
            body = context.get("context") or {}
            clusters.add(body.get("cluster"))
            users.add(body.get("user"))

        remaining_contexts = [c for c in config["contexts"] if c.get("name") != name]
        still_used_clusters = {(c.get("context") or {}).get("cluster") for c in remaining_contexts}
        still_used_users = {(c.get("context") or {}).get("user") for c in remaining_contexts}

        new_clusters = [
            c for c in config["clusters"]
            if c.get("name") not in clusters or c.get("name") in still_used_clusters
        ]
        new_users = [
            u for u in config["users"]
            if u.get("name") not in users or u.get("name") in still_used_users
        ]

        removed = (
            len(remaining_contexts) != len(config["contexts"])
            or len(new_clusters) != len(config["clusters"])
            or len(new_users) != len(config["users"])
        )
        if config.get("current-context") == name:
            config["current-context"] = ""
            removed = True
        if not removed:
            return False

        config["contexts"] = remaining_contexts
        config["clusters"] = new_clusters
        config["users"] = new_users
        self.save(config)
        logger.info("Removed %s from %s", name, self.path)
        return True


class AwsCliKubeconfigStore(KubeconfigFileStore):
    """Delegates writing to ``aws eks update-kubeconfig``."""

    def __init__(self, path: Path, aws_bin: str = "aws", runner: Callable = run_command):
        super().__init__(path, aws_bin=aws_bin)
        self.runner = runner

    def upsert(self, target: DeploymentTarget) -> LocalCredentialArtifact:
        name = target.name
        result = self.runner([
            self.aws_bin, "eks", "update-kubeconfig",
            "--region", target.region,
            "--name", target.cluster_name,
            "--alias", name,
            "--user-alias", name,
            "--kubeconfig", str(self.path),
        ])
        if not result.ok:
            raise LocalSyncError(f"aws eks update-kubeconfig failed for {name}", result.output)

        cluster = name
        try:
            for entry in self.load()["contexts"]:
                if entry.get("name") == name:
                    cluster = (entry.get("context") or {}).get("cluster", name)
        except (LocalSyncError, yaml.YAMLError) as e:
            raise LocalSyncError(f"Cannot read {self.path} after update: {e}") from e

        return LocalCredentialArtifact(
            name=name, kubeconfig=self.path, context=name, cluster=cluster, user=name,
        )


def make_store(settings: Settings) -> LocalCredentialStore:
    """Build the credential store selected by ``settings.credential_backend``."""
    if settings.credential_backend == "aws-cli":
        return AwsCliKubeconfigStore(settings.kubeconfig, aws_bin=settings.aws_bin)
    return KubeconfigFileStore(settings.kubeconfig, aws_bin=settings.aws_bin)
