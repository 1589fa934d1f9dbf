"""Read-only view of the running process and its host, backed by psutil."""

import logging
import platform
import socket
import sys
import time
from dataclasses import dataclass

import psutil

logger = logging.getLogger(__name__)

CPUINFO_PATH = '/proc/cpuinfo'


@dataclass(frozen=True)
class InstanceIdentity:
    hostname: str
    ip_address: str
    pod_name: str
    namespace: str

    @property
    def instance_id(self):
        return f"{self.hostname}-{self.ip_address}"

    def to_dict(self):
        return {
            'hostname': self.hostname,
            'ipAddress': self.ip_address,
            'instanceId': self.instance_id,
            'podName': self.pod_name,
            'namespace': self.namespace,
        }


class RuntimeIntrospection:
    """Every accessor degrades to a zero value instead of raising."""

    def __init__(self, process=None):
        self._process = process

    @property
    def process(self):
        if self._process is None:
            self._process = psutil.Process()
        return self._process

    def hostname(self):
        return socket.gethostname()

    def process_uptime(self):
        try:
            return max(time.time() - self.process.create_time(), 0.0)
        except (psutil.Error, OSError):
            return 0.0

    def memory(self):
        try:
            mem = self.process.memory_info()
        except (psutil.Error, OSError):
            return {'heapUsed': 0, 'heapTotal': 0, 'rss': 0, 'external': 0}
        # CPython has no separate heap; resident and virtual size stand in for it.
        return {
            'heapUsed': mem.rss,
            'heapTotal': mem.vms,
            'rss': mem.rss,
            'external': getattr(mem, 'shared', 0),
        }

    def cpu_count(self):
        return psutil.cpu_count() or 0

    def cpu_model(self):
        model = None
        try:
            with open(CPUINFO_PATH) as cpuinfo:
                for line in cpuinfo:
                    if line.startswith('model name'):
                        model = line.split(':', 1)[1].strip()
                        break
        except OSError:
            pass
        # platform.processor() is often just the architecture, so it is only a fallback.
        return model or platform.processor() or 'unknown'

    def system_uptime(self):
        try:
            return max(int(time.time() - psutil.boot_time()), 0)
        except (psutil.Error, OSError):
            return 0

    def load_average(self):
        try:
            return [round(value, 2) for value in psutil.getloadavg()]
        except (AttributeError, OSError):
            return [0.0, 0.0, 0.0]

    def os_platform(self):
        return sys.platform

    def arch(self):
        return platform.machine() or 'unknown'

    def python_version(self):
        return platform.python_version()

    def first_ipv4_address(self):
        try:
            interfaces = psutil.net_if_addrs()
        except (psutil.Error, OSError):
            return None
        for addresses in interfaces.values():
            for address in addresses:
                if address.family == socket.AF_INET and not address.address.startswith('127.'):
                    return address.address
        return None


def resolve_instance_identity(config, introspection):
    hostname = introspection.hostname()
    ip_address = introspection.first_ipv4_address() or 'localhost'
    identity = InstanceIdentity(
        hostname=hostname,
        ip_address=ip_address,
        pod_name=config.pod_name or hostname,
        namespace=config.namespace,
    )
    logger.info("Resolved instance identity %s", identity.instance_id)
    return identity
