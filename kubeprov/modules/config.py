"""Provisioning configuration.

Configuration is loaded with the following precedence:
1. Explicitly passed parameters (CLI options)
2. Environment variables
3. Configuration file
4. Default values
"""
import ipaddress
import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Union

import yaml
from jsonschema import ValidationError as SchemaError
from jsonschema import validate
from pydantic import BaseModel, Field, ValidationError, field_validator

from kubeprov.config import Config

logger = logging.getLogger("kubeprov.config")

# Default configuration paths
DEFAULT_CONFIG_PATHS = [
    Path("/etc/kubeprov/config.yaml"),
    Path("~/.config/kubeprov/config.yaml"),
    Path("kubeprov.yaml"),
]

# Environment variable -> config key
ENV_OVERRIDES = {
    "KUBEPROV_K8S_VERSION": "kubernetes_version",
    "KUBEPROV_POD_CIDR": "pod_network_cidr",
    "KUBEPROV_CNI_PLUGIN": "cni_plugin",
    "KUBEPROV_LOG_DIR": "log_dir",
    "KUBEPROV_JOIN_COMMAND": "join_command",
}

CONFIG_SCHEMA = {
    "type": "object",
    "properties": {
        "kubernetes_version": {"type": "string"},
        "pod_network_cidr": {"type": "string"},
        "service_cidr": {"type": "string"},
        "cni_plugin": {"type": "string", "enum": ["calico", "flannel"]},
        "advertise_address": {"type": ["string", "null"]},
        "join_command": {"type": ["string", "null"]},
        "log_dir": {"type": "string"},
        "host_root": {"type": "string"},
        "kube_home": {"type": "string"},
        "verify_wait_seconds": {"type": "integer", "minimum": 0},
        "ready_timeout_seconds": {"type": "integer", "minimum": 1},
        "require_root": {"type": "boolean"},
        "prerequisite_packages": {"type": "array", "items": {"type": "string"}},
        "time_sync_packages": {"type": "array", "items": {"type": "string"}},
        "mirrors": {"type": "object"},
    },
    "additionalProperties": True,
}


class ConfigError(ValueError):
    """Invalid provisioning configuration."""


class MirrorConfig(BaseModel):
    """Package repository and registry mirrors."""
    enabled: bool = Field(default=True, description="Rewrite package mirrors before installing")
    base_repo_url: str = Field(
        default="https://mirrors.aliyun.com/repo/Centos-7.repo",
        description="Replacement for CentOS-Base.repo"
    )
    docker_repo_url: str = Field(
        default="https://mirrors.aliyun.com/docker-ce/linux/centos/docker-ce.repo",
        description="Repository providing containerd.io"
    )
    kubernetes_repo_url: str = Field(
        default="https://mirrors.aliyun.com/kubernetes/yum/repos/kubernetes-el7-x86_64/",
        description="Base URL of the Kubernetes yum repository"
    )
    kubernetes_gpg_keys: List[str] = Field(
        default_factory=lambda: [
            "https://mirrors.aliyun.com/kubernetes/yum/doc/yum-key.gpg",
            "https://mirrors.aliyun.com/kubernetes/yum/doc/rpm-package-key.gpg",
        ]
    )
    registry_mirror: str = Field(
        default="https://registry.cn-hangzhou.aliyuncs.com",
        description="Replaces registry-1.docker.io in the containerd config"
    )
    image_repository: str = Field(
        default="registry.cn-hangzhou.aliyuncs.com/google_containers",
        description="kubeadm imageRepository"
    )


class ProvisionConfig(BaseModel):
    """Settings closed over by the provisioning step bodies."""
    kubernetes_version: str = Field(default="1.24.0", description="kubelet/kubeadm/kubectl version")
    pod_network_cidr: str = Field(default="192.168.0.0/16", description="Pod network range")
    service_cidr: str = Field(default="10.96.0.0/12", description="Service network range")
    cni_plugin: Literal["calico", "flannel"] = Field(default="calico")
    advertise_address: Optional[str] = Field(default=None, description="API server address (auto-detected)")
    cri_socket: str = "unix:///run/containerd/containerd.sock"
    join_command: Optional[str] = Field(default=None, description="kubeadm join command for worker nodes")

    calico_manifest_url: str = "https://docs.projectcalico.org/manifests/calico.yaml"
    flannel_manifest_url: str = (
        "https://raw.githubusercontent.com/coreos/flannel/master/Documentation/kube-flannel.yml"
    )

    prerequisite_packages: List[str] = Field(
        default_factory=lambda: [
            "curl", "wget", "yum-utils", "device-mapper-persistent-data", "lvm2",
        ]
    )
    time_sync_packages: List[str] = Field(default_factory=lambda: ["chrony"])

    log_dir: str = Field(default_factory=lambda: Config.LOG_DIR)
    host_root: str = Field(default="/", description="Filesystem root the steps operate on")
    kube_home: str = Field(default="~", description="Home directory receiving .kube/config")
    kubeadm_config_path: str = "/tmp/kubeadm-config.yaml"
    manifest_dir: str = "/tmp"
    verify_wait_seconds: int = Field(default=30, ge=0)
    ready_timeout_seconds: int = Field(default=300, ge=1)
    command_timeout: int = Field(default_factory=lambda: Config.COMMAND_TIMEOUT)
    require_root: bool = True

    mirrors: MirrorConfig = Field(default_factory=MirrorConfig)

    @field_validator("pod_network_cidr", "service_cidr")
    @classmethod
    def check_cidr(cls, v: str) -> str:
        try:
            ipaddress.ip_network(v, strict=False)
        except ValueError as e:
            raise ValueError(f"invalid network range {v!r}: {e}")
        return v

    @field_validator("kubernetes_version")
    @classmethod
    def check_version(cls, v: str) -> str:
        v = v.strip().lstrip("v")
        if not re.match(r"^\d+\.\d+\.\d+$", v):
            raise ValueError(f"expected a version like 1.24.0, got {v!r}")
        return v

    @field_validator("advertise_address")
    @classmethod
    def check_address(cls, v: Optional[str]) -> Optional[str]:
        if v:
            ipaddress.ip_address(v)
        return v

    @property
    def manifest_url(self) -> str:
        return self.calico_manifest_url if self.cni_plugin == "calico" else self.flannel_manifest_url

    @property
    def kube_dir(self) -> str:
        return str(Path(os.path.expanduser(self.kube_home)) / ".kube")

    @classmethod
    def load(
        cls,
        config_path: Optional[Union[str, Path]] = None,
        **overrides: Any,
    ) -> "ProvisionConfig":
        """Load configuration from file, environment variables and overrides.

        Overrides whose value is None are ignored so unset CLI options fall
        through to the file and the defaults.

        Raises:
            ConfigError: If the file or the merged values are invalid
        """
        config_path = config_path or Config.CONFIG_PATH or None
        data: Dict[str, Any] = {}

        if config_path:
            path = Path(config_path).expanduser().absolute()
            if not path.exists():
                raise ConfigError(f"Configuration file not found: {path}")
            data = cls._load_config_file(path)
        else:
            for path in DEFAULT_CONFIG_PATHS:
                path = path.expanduser().absolute()
                if path.exists():
                    data = cls._load_config_file(path)
                    break

        validate_raw_config(data)
        data = merge_dicts(data, env_overrides())
        data = merge_dicts(data, {k: v for k, v in overrides.items() if v is not None})

        try:
            return cls(**data)
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration: {e}") from e

    @classmethod
    def _load_config_file(cls, path: Path) -> Dict[str, Any]:
        """Load configuration from a YAML file."""
        try:
            with open(path, 'r') as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Failed to load config from {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"Invalid config format in {path}: expected mapping, got {type(data).__name__}")
        logger.debug(f"Loaded config from {path}")
        return data

    def save(self, path: Union[str, Path]) -> None:
        """Save configuration to a file."""
        path = Path(path).expanduser().absolute()
        path.parent.mkdir(parents=True, exist_ok=True)

        config_dict = self.model_dump(exclude_none=True, exclude={"join_command"})

        with open(path, 'w') as f:
            yaml.safe_dump(config_dict, f, default_flow_style=False, sort_keys=False)


def validate_raw_config(data: Dict[str, Any]) -> None:
    """Check raw YAML data against :data:`CONFIG_SCHEMA`."""
    try:
        validate(instance=data, schema=CONFIG_SCHEMA)
    except SchemaError as e:
        location = ".".join(str(p) for p in e.absolute_path) or "<root>"
        raise ConfigError(f"Schema validation error at {location}: {e.message}") from e


def env_overrides() -> Dict[str, Any]:
    return {key: os.environ[var] for var, key in ENV_OVERRIDES.items() if os.environ.get(var)}


def merge_dicts(base: Dict[Any, Any], override: Dict[Any, Any]) -> Dict[Any, Any]:
    """Recursively merge two dictionaries."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = merge_dicts(result[key], value)
        else:
            result[key] = value
    return result
