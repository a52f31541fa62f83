"""
kubectl wrapper scoped to one kubeconfig and context.
"""

import logging
from pathlib import Path
from typing import List, Optional

from .config import Settings
from .runner import CommandResult, run_command

logger = logging.getLogger(__name__)


class KubectlError(Exception):
    """A kubectl invocation failed."""

    def __init__(self, message: str, result: CommandResult):
        super().__init__(message)
        self.result = result


class Kubectl:
    """Runs kubectl against a fixed kubeconfig and (optionally) context."""

    def __init__(self, settings: Settings, context: Optional[str] = None):
        self.settings = settings
        self.context = context

    def _base(self) -> List[str]:
        command = [self.settings.kubectl_bin, "--kubeconfig", str(self.settings.kubeconfig)]
        if self.context:
            command += ["--context", self.context]
        return command

    def _log_file(self) -> Optional[Path]:
        home = self.settings.home
        home.mkdir(parents=True, exist_ok=True)
        return home / "kubectl.log"

    def run(self, *args: str, merge_stderr: bool = True) -> CommandResult:
        return run_command(self._base() + list(args), log_file=self._log_file(), merge_stderr=merge_stderr)

    def list_names(self, kind: str, namespace: str) -> List[str]:
        """
        List object names of ``kind`` in ``namespace``.

        Raises:
            KubectlError: If kubectl fails (e.g. cluster unreachable)
        """
        result = self.run("get", kind, "-n", namespace, "-o", "name", merge_stderr=False)
        if not result.ok:
            raise KubectlError(f"Failed to list {kind} in namespace {namespace}", result)

        names = []
        for line in result.output.splitlines():
            line = line.strip()
            if not line:
                continue
            names.append(line.split("/", 1)[-1])
        return names

    def delete(self, kind: str, name: str, namespace: str) -> None:
        """
        Delete one object. An already-absent object is not an error.

        Raises:
            KubectlError: If deletion fails for any other reason
        """
        result = self.run("delete", kind, name, "-n", namespace, "--ignore-not-found", "--wait=false")
        if not result.ok:
            raise KubectlError(f"Failed to delete {kind} {namespace}/{name}", result)

    def get_nodes(self) -> CommandResult:
        return self.run("get", "nodes")
