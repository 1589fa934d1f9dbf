"""Cluster topology as seen from inside the running deployment.

On App Engine there is nothing to discover, so the reporter answers from
configuration alone. Under Kubernetes it asks ``kubectl`` three separate
questions (pods, nodes, service IP). Each question has its own timeout and its
own failure path, so a missing RBAC permission on nodes still leaves pods and
the service IP intact.
"""

import logging
import subprocess
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Tuple

logger = logging.getLogger(__name__)

UNKNOWN = 'unknown'
NOT_AVAILABLE = 'N/A'
PENDING = 'Pending'
RUNNING = 'Running'

POD_FIELDS = '{range .items[*]}{.metadata.name}{"\\t"}{.status.podIP}{"\\t"}{.spec.nodeName}{"\\t"}{.status.phase}{"\\n"}{end}'
NODE_FIELDS = '{range .items[*]}{.metadata.name}{"\\t"}{.status.addresses[?(@.type=="InternalIP")].address}{"\\n"}{end}'
SERVICE_IP_FIELD = '{.status.loadBalancer.ingress[0].ip}'

GAE_WARNING = (
    "App Engine routes traffic through a managed load balancer, so individual "
    "instance IPs, pods and nodes are not exposed to the application."
)


@dataclass(frozen=True)
class CommandResult:
    argv: Tuple[str, ...]
    returncode: Optional[int] = None
    stdout: str = ''
    stderr: str = ''
    error: Optional[str] = None

    @property
    def ok(self):
        return self.error is None and self.returncode == 0

    def describe_failure(self):
        if self.error:
            return self.error
        return f"exit code {self.returncode}: {self.stderr.strip() or 'no output'}"


def run_command(argv, timeout):
    """Run ``argv`` and capture its output; never raises."""
    argv = tuple(argv)
    try:
        completed = subprocess.run(argv, capture_output=True, encoding='utf-8', errors='replace',
                                   timeout=timeout, check=False)
    except subprocess.TimeoutExpired:
        return CommandResult(argv, error=f"timed out after {timeout:g}s")
    except OSError as e:
        return CommandResult(argv, error=str(e))
    return CommandResult(argv, completed.returncode, completed.stdout or '', completed.stderr or '')


@dataclass(frozen=True)
class Pod:
    name: str
    pod_ip: str
    node_name: str
    status: str

    def to_dict(self, node_ip=None):
        data = {
            'name': self.name,
            'podIP': self.pod_ip,
            'nodeName': self.node_name,
            'status': self.status,
        }
        if node_ip is not None:
            data['nodeIP'] = node_ip
        return data


@dataclass(frozen=True)
class Node:
    name: str
    internal_ip: str

    def to_dict(self):
        return {'name': self.name, 'internalIP': self.internal_ip}


def _fields(line, count):
    parts = line.split('\t')
    parts += [''] * (count - len(parts))
    return [part.strip() for part in parts[:count]]


def parse_pods(text):
    pods = []
    for line in text.splitlines():
        if not line.strip():
            continue
        name, pod_ip, node_name, phase = _fields(line, 4)
        pods.append(Pod(name or UNKNOWN, pod_ip or NOT_AVAILABLE, node_name or UNKNOWN, phase or UNKNOWN))
    return pods


def parse_nodes(text):
    nodes = []
    for line in text.splitlines():
        if not line.strip():
            continue
        name, internal_ip = _fields(line, 2)
        nodes.append(Node(name or UNKNOWN, internal_ip or NOT_AVAILABLE))
    return nodes


def join_node_ips(pods, nodes):
    ips = {node.name: node.internal_ip for node in nodes}
    return [pod.to_dict(node_ip=ips.get(pod.node_name, NOT_AVAILABLE)) for pod in pods]


def summarize(pods, nodes):
    return {
        'totalPods': len(pods),
        'readyPods': sum(1 for pod in pods if pod.status == RUNNING),
        'totalNodes': len(nodes),
    }


def _utcnow():
    return datetime.now(timezone.utc)


class ClusterTopologyReporter:

    def __init__(self, config, runner=run_command, clock=_utcnow):
        self.config = config
        self.runner = runner
        self.clock = clock

    def _kubectl(self, *args):
        return self.runner((self.config.kubectl,) + args, self.config.command_timeout)

    def fetch_pods(self):
        try:
            result = self._kubectl('get', 'pods', '-l', self.config.label_selector,
                                   '-n', self.config.namespace, '-o', f'jsonpath={POD_FIELDS}')
            if not result.ok:
                logger.warning("Could not list pods: %s", result.describe_failure())
                return []
            return parse_pods(result.stdout)
        except Exception as e:
            logger.warning("Could not list pods: %s", e)
            return []

    def fetch_nodes(self):
        try:
            result = self._kubectl('get', 'nodes', '-o', f'jsonpath={NODE_FIELDS}')
            if not result.ok:
                logger.warning("Could not list nodes: %s", result.describe_failure())
                return []
            return parse_nodes(result.stdout)
        except Exception as e:
            logger.warning("Could not list nodes: %s", e)
            return []

    def fetch_external_ip(self):
        try:
            result = self._kubectl('get', 'service', self.config.service_name,
                                   '-n', self.config.namespace, '-o', f'jsonpath={SERVICE_IP_FIELD}')
            if not result.ok:
                logger.warning("Could not read service %s: %s", self.config.service_name, result.describe_failure())
                return PENDING
            return result.stdout.strip() or PENDING
        except Exception as e:
            logger.warning("Could not read service %s: %s", self.config.service_name, e)
            return PENDING

    def report(self):
        if not self.config.orchestrated:
            return self.serverless_snapshot()
        return self.orchestrated_snapshot()

    def serverless_snapshot(self):
        config = self.config
        console_url = f"https://console.cloud.google.com/appengine?serviceId={config.gae_service}"
        if config.gcp_project:
            console_url += f"&project={config.gcp_project}"
        return {
            'platform': 'GAE',
            'deployment': {
                'type': 'App Engine',
                'region': config.gae_region,
                'versionId': config.gae_version,
                'serviceId': config.gae_service,
            },
            'warning': GAE_WARNING,
            'consoleUrl': console_url,
            'timestamp': self.clock().isoformat(),
        }

    def orchestrated_snapshot(self):
        with ThreadPoolExecutor(max_workers=3, thread_name_prefix='kubectl') as pool:
            pods_future = pool.submit(self.fetch_pods)
            nodes_future = pool.submit(self.fetch_nodes)
            ip_future = pool.submit(self.fetch_external_ip)
            pods, nodes, external_ip = pods_future.result(), nodes_future.result(), ip_future.result()

        logger.info("Cluster status: %d pods, %d nodes, external IP %s", len(pods), len(nodes), external_ip)
        return {
            'platform': 'GKE',
            'cluster': {
                'name': self.config.cluster_name,
                'namespace': self.config.namespace,
                'zone': self.config.zone,
            },
            'service': {
                'name': self.config.service_name,
                'externalIP': external_ip,
                'port': self.config.service_port,
            },
            'pods': join_node_ips(pods, nodes),
            'nodes': [node.to_dict() for node in nodes],
            'summary': summarize(pods, nodes),
            'timestamp': self.clock().isoformat(),
        }
