"""
Settings for the orchestrator.

Values are layered: built-in defaults, then ``infraflow.yaml`` in the
working directory, then ``INFRAFLOW_*`` environment variables. The CLI
applies its own options on top.
"""

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml

CONFIG_FILE_NAME = "infraflow.yaml"
ENV_PREFIX = "INFRAFLOW_"

CREDENTIAL_BACKENDS = ("file", "aws-cli")


def _default_kubeconfig() -> Path:
    kubeconfig = os.environ.get("KUBECONFIG")
    if kubeconfig:
        return Path(kubeconfig.split(os.pathsep)[0]).expanduser()
    return Path.home() / ".kube" / "config"


@dataclass
class Settings:
    working_dir: Path = field(default_factory=Path.cwd)
    home: Optional[Path] = None

    terraform_bin: str = "terraform"
    kubectl_bin: str = "kubectl"
    aws_bin: str = "aws"

    cluster_name_output: str = "cluster_name"
    region_output: str = "region"
    endpoint_output: str = "cluster_endpoint"
    default_cluster_name: str = "demo-eks-cluster"
    default_region: str = "us-west-2"

    reap_namespaces: List[str] = field(default_factory=lambda: ["demo"])
    reap_kinds: List[str] = field(default_factory=lambda: ["ingress"])
    reap_timeout: float = 300.0
    reap_poll_interval: float = 10.0
    reap_check_load_balancers: bool = True

    kubeconfig: Path = field(default_factory=_default_kubeconfig)
    credential_backend: str = "file"

    def __post_init__(self):
        self.working_dir = Path(self.working_dir).expanduser().resolve()
        self.kubeconfig = Path(self.kubeconfig).expanduser()
        if self.home is None:
            self.home = self.working_dir / ".infraflow"
        self.home = Path(self.home).expanduser().resolve()
        if self.credential_backend not in CREDENTIAL_BACKENDS:
            raise ValueError(
                f"Invalid credential backend: {self.credential_backend}. "
                f"Expected one of {', '.join(CREDENTIAL_BACKENDS)}"
            )
        if self.reap_timeout < 0 or self.reap_poll_interval <= 0:
            raise ValueError("reap_timeout must be >= 0 and reap_poll_interval > 0")

    @classmethod
    def load(cls, working_dir: Optional[Path] = None,
             environ: Optional[Mapping[str, str]] = None,
             **overrides: Any) -> "Settings":
        """
        Build settings from the config file, environment and overrides.

        Args:
            working_dir: Terraform root; defaults to the current directory
            environ: Environment mapping; defaults to ``os.environ``
            overrides: Explicit values, e.g. from CLI options (None is ignored)

        Returns:
            Settings instance

        Raises:
            ValueError: If a value cannot be converted or is out of range
        """
        environ = os.environ if environ is None else environ
        working_dir = Path(working_dir or environ.get(f"{ENV_PREFIX}WORKDIR") or Path.cwd())

        values: Dict[str, Any] = {}
        values.update(_read_config_file(working_dir / CONFIG_FILE_NAME))
        values.update(_read_environ(environ))
        values.update({k: v for k, v in overrides.items() if v is not None})
        values["working_dir"] = working_dir

        known = {f.name: f for f in fields(cls)}
        unknown = sorted(set(values) - set(known))
        if unknown:
            raise ValueError(f"Unknown settings: {', '.join(unknown)}")

        return cls(**{name: _coerce(known[name].type, value) for name, value in values.items()})


def _read_config_file(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    with open(path, "r") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path} must contain a mapping")
    return {str(k).replace("-", "_"): v for k, v in data.items()}


def _read_environ(environ: Mapping[str, str]) -> Dict[str, Any]:
    values = {}
    for key, value in environ.items():
        if not key.startswith(ENV_PREFIX) or key == f"{ENV_PREFIX}WORKDIR":
            continue
        values[key[len(ENV_PREFIX):].lower()] = value
    return values


def _coerce(annotation: Any, value: Any) -> Any:
    type_name = getattr(annotation, "__name__", None) or str(annotation)
    if value is None:
        return None
    if "List" in str(annotation) or type_name == "list":
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return [str(item) for item in value]
    if annotation is bool or type_name == "bool":
        if isinstance(value, str):
            return value.strip().lower() in ("1", "true", "yes", "on")
        return bool(value)
    if annotation is float or type_name == "float":
        return float(value)
    if "Path" in str(annotation):
        return Path(value)
    return value
