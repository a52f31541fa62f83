"""
Data models for workflow targets and artifacts.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional


@dataclass(frozen=True)
class DeploymentTarget:
    """A logical environment, read from the engine's outputs after apply."""
    cluster_name: str
    region: Optional[str] = None
    endpoint: Optional[str] = None

    @property
    def name(self) -> str:
        return self.cluster_name


@dataclass
class ChangeSet:
    """Summary of a saved terraform plan."""
    adds: int = 0
    changes: int = 0
    destroys: int = 0
    plan_file: Optional[Path] = None
    output: str = ""

    @property
    def has_changes(self) -> bool:
        return bool(self.adds or self.changes or self.destroys)

    def summary(self) -> str:
        return f"{self.adds} to add, {self.changes} to change, {self.destroys} to destroy"


@dataclass(frozen=True)
class DanglingResource:
    """A controller-owned object the engine does not track."""
    kind: str  # "ingress", "service", ...
    name: str
    namespace: str

    @property
    def ref(self) -> str:
        return f"{self.namespace}/{self.kind}/{self.name}"


@dataclass
class LocalCredentialArtifact:
    """Kubeconfig entries written for a target."""
    name: str
    kubeconfig: Path
    context: str
    cluster: str
    user: str
    endpoint: Optional[str] = None
