"""
Tests for instance identity and psutil-backed introspection.
"""
import socket
from collections import namedtuple
from unittest.mock import Mock, patch

import psutil

from gcp_compare.config import AppConfig
from gcp_compare.introspection import InstanceIdentity, RuntimeIntrospection, resolve_instance_identity

from conftest import FakeIntrospection

Address = namedtuple('Address', 'family address')


class TestInstanceIdentity:

    def test_instance_id(self):
        identity = InstanceIdentity('web-1', '10.0.0.5', 'web-1', 'default')
        assert identity.instance_id == 'web-1-10.0.0.5'
        assert identity.to_dict()['instanceId'] == 'web-1-10.0.0.5'

    def test_defaults_pod_name_to_hostname(self):
        identity = resolve_instance_identity(AppConfig.from_env({}), FakeIntrospection())
        assert identity.pod_name == 'web-1'
        assert identity.namespace == 'default'

    def test_pod_name_from_config(self):
        config = AppConfig.from_env({'POD_NAME': 'web-7f9c', 'POD_NAMESPACE': 'demo'})
        identity = resolve_instance_identity(config, FakeIntrospection())
        assert identity.pod_name == 'web-7f9c'
        assert identity.namespace == 'demo'

    def test_localhost_without_network(self):
        identity = resolve_instance_identity(AppConfig.from_env({}), FakeIntrospection(ip_address=None))
        assert identity.ip_address == 'localhost'
        assert identity.instance_id == 'web-1-localhost'


class TestRuntimeIntrospection:

    def test_first_non_loopback_ipv4(self):
        interfaces = {
            'lo': [Address(socket.AF_INET, '127.0.0.1')],
            'eth0': [Address(socket.AF_INET6, 'fe80::1'), Address(socket.AF_INET, '10.8.0.4')],
        }
        with patch('gcp_compare.introspection.psutil.net_if_addrs', return_value=interfaces):
            assert RuntimeIntrospection().first_ipv4_address() == '10.8.0.4'

    def test_only_loopback(self):
        with patch('gcp_compare.introspection.psutil.net_if_addrs',
                   return_value={'lo': [Address(socket.AF_INET, '127.0.0.1')]}):
            assert RuntimeIntrospection().first_ipv4_address() is None

    def test_memory_from_process(self):
        process = Mock()
        process.memory_info.return_value = Mock(rss=100, vms=400, shared=20)

        assert RuntimeIntrospection(process).memory() == {'heapUsed': 100, 'heapTotal': 400, 'rss': 100, 'external': 20}

    def test_memory_degrades_on_psutil_error(self):
        process = Mock()
        process.memory_info.side_effect = psutil.AccessDenied()

        assert RuntimeIntrospection(process).memory()['rss'] == 0

    def test_process_uptime_degrades(self):
        process = Mock()
        process.create_time.side_effect = psutil.NoSuchProcess(1)

        assert RuntimeIntrospection(process).process_uptime() == 0.0

    def test_live_values_have_expected_types(self):
        introspection = RuntimeIntrospection()

        assert introspection.cpu_count() >= 1
        assert introspection.process_uptime() >= 0
        assert len(introspection.load_average()) == 3
        assert isinstance(introspection.cpu_model(), str)

    def test_cpu_model_prefers_cpuinfo(self, tmp_path, monkeypatch):
        cpuinfo = tmp_path / 'cpuinfo'
        cpuinfo.write_text("processor\t: 0\nvendor_id\t: GenuineIntel\n"
                           "model name\t: Intel(R) Xeon(R) CPU @ 2.20GHz\n")
        monkeypatch.setattr('gcp_compare.introspection.CPUINFO_PATH', str(cpuinfo))

        with patch('gcp_compare.introspection.platform.processor', return_value='x86_64') as processor:
            assert RuntimeIntrospection().cpu_model() == 'Intel(R) Xeon(R) CPU @ 2.20GHz'
        processor.assert_not_called()

    def test_cpu_model_falls_back_to_platform(self, tmp_path, monkeypatch):
        monkeypatch.setattr('gcp_compare.introspection.CPUINFO_PATH', str(tmp_path / 'missing'))

        with patch('gcp_compare.introspection.platform.processor', return_value='arm'):
            assert RuntimeIntrospection().cpu_model() == 'arm'

    def test_cpu_model_without_model_name_line(self, tmp_path, monkeypatch):
        cpuinfo = tmp_path / 'cpuinfo'
        cpuinfo.write_text("processor\t: 0\nBogoMIPS\t: 50.00\n")
        monkeypatch.setattr('gcp_compare.introspection.CPUINFO_PATH', str(cpuinfo))

        with patch('gcp_compare.introspection.platform.processor', return_value=''):
            assert RuntimeIntrospection().cpu_model() == 'unknown'
