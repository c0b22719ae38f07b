"""Cluster health checks run after provisioning."""
import logging
import time
from collections import Counter
from typing import Callable, Dict

from kubernetes import client, config

logger = logging.getLogger("kubeprov.verification")

CONTROL_PLANE_LABELS = (
    'node-role.kubernetes.io/control-plane',
    'node-role.kubernetes.io/master',
)


def core_api(kubeconfig: str) -> client.CoreV1Api:
    """Build a CoreV1Api bound to ``kubeconfig`` without touching global client state."""
    api_client = config.new_client_from_config(config_file=kubeconfig)
    return client.CoreV1Api(api_client=api_client)


def _is_ready(node) -> bool:
    for condition in node.status.conditions or []:
        if condition.type == 'Ready':
            return condition.status == 'True'
    return False


def control_plane_ready(api: client.CoreV1Api) -> bool:
    """True when at least one control-plane node reports Ready and none report otherwise."""
    nodes = [
        n for n in api.list_node().items
        if any(label in (n.metadata.labels or {}) for label in CONTROL_PLANE_LABELS)
    ]
    return bool(nodes) and all(_is_ready(n) for n in nodes)


def pod_phase_counts(api: client.CoreV1Api) -> Dict[str, int]:
    pods = api.list_pod_for_all_namespaces().items
    return dict(Counter(p.status.phase for p in pods))


def wait_for_control_plane_ready(
    api: client.CoreV1Api,
    timeout: int = 300,
    interval: int = 5,
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    """Poll the API server until the control plane is Ready.

    Returns:
        bool: True if the control plane became ready, False on timeout
    """
    logger.info("Waiting for control plane to be ready...")
    deadline = time.time() + timeout

    while True:
        try:
            if control_plane_ready(api):
                logger.info("Control plane is ready")
                return True
        except Exception as e:
            logger.debug("Control plane not ready yet: %s", str(e))

        if time.time() >= deadline:
            break
        sleep(interval)

    logger.error("Timed out waiting for control plane to be ready")
    return False
