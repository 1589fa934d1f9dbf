"""
Shared pytest fixtures: a fake host, a scripted kubectl and a Flask client.
"""
import pytest

from gcp_compare.config import AppConfig
from gcp_compare.server_app import create_app
from gcp_compare.topology import CommandResult


class FakeIntrospection:
    """Stable stand-in for RuntimeIntrospection so snapshots are deterministic."""

    def __init__(self, hostname='web-1', ip_address='10.0.0.5'):
        self._hostname = hostname
        self._ip_address = ip_address

    def hostname(self):
        return self._hostname

    def first_ipv4_address(self):
        return self._ip_address

    def process_uptime(self):
        return 42.5

    def memory(self):
        return {'heapUsed': 2048, 'heapTotal': 4096, 'rss': 2048, 'external': 512}

    def cpu_count(self):
        return 4

    def cpu_model(self):
        return 'Test CPU'

    def system_uptime(self):
        return 3600

    def load_average(self):
        return [0.1, 0.2, 0.3]

    def os_platform(self):
        return 'linux'

    def arch(self):
        return 'x86_64'

    def python_version(self):
        return '3.12.0'


class FakeClock:
    def __init__(self, now=100.0):
        self.now = now

    def __call__(self):
        return self.now


class ScriptedRunner:
    """Answers kubectl calls by resource type ('pods', 'nodes', 'service')."""

    def __init__(self, **responses):
        self.responses = responses
        self.calls = []

    def __call__(self, argv, timeout):
        argv = tuple(argv)
        self.calls.append((argv, timeout))
        response = self.responses.get(argv[2])
        if response is None:
            return CommandResult(argv, returncode=1, stderr='error: forbidden')
        if isinstance(response, str):
            return CommandResult(argv, returncode=0, stdout=response)
        return response


@pytest.fixture
def introspection():
    return FakeIntrospection()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def serverless_config():
    return AppConfig.from_env({'PLATFORM': 'GAE', 'DEPLOYMENT_TYPE': 'app-engine'})


@pytest.fixture
def orchestrated_config():
    return AppConfig.from_env({
        'PLATFORM': 'GKE',
        'DEPLOYMENT_TYPE': 'kubernetes',
        'KUBERNETES_SERVICE_HOST': '10.96.0.1',
        'POD_NAMESPACE': 'demo',
        'CLUSTER_NAME': 'compare-cluster',
        'GCP_ZONE': 'europe-west1-b',
    })


@pytest.fixture
def app(serverless_config, introspection):
    return create_app(serverless_config, introspection=introspection, runner=ScriptedRunner())


@pytest.fixture
def client(app):
    return app.test_client()
