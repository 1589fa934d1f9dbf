import logging
import os
from dataclasses import dataclass
from typing import Optional

APP_NAME = 'GCP Compare Project'
APP_VERSION = '1.0.0'

# Kubernetes injects this into every pod; App Engine never sets it.
ORCHESTRATOR_MARKER = 'KUBERNETES_SERVICE_HOST'

LOG_FORMAT = '[%(asctime)s] %(levelname)s %(name)s: %(message)s'


def _int_env(environ, name, default):
    raw = environ.get(name)
    if raw in (None, ''):
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


@dataclass(frozen=True)
class AppConfig:
    """Everything the service reads from its environment, captured once at startup."""

    name: str = APP_NAME
    version: str = APP_VERSION
    platform: str = 'unknown'
    environment: str = 'development'
    deployment: str = 'unknown'
    host: str = '0.0.0.0'
    port: int = 8080
    log_level: str = 'INFO'

    # Instance identity
    pod_name: Optional[str] = None
    namespace: str = 'default'

    # Orchestrated (GKE) deployment
    orchestrated: bool = False
    cluster_name: str = 'gke-cluster'
    zone: str = 'us-central1-a'
    kubectl: str = 'kubectl'
    label_selector: str = 'app=gcp-compare-app'
    service_name: str = 'gcp-compare-service'
    service_port: int = 80
    command_timeout: float = 5.0

    # Serverless (GAE) deployment
    gae_region: str = 'us-central1'
    gae_version: str = 'unknown'
    gae_service: str = 'default'
    gcp_project: Optional[str] = None

    @classmethod
    def from_env(cls, environ=None):
        env = os.environ if environ is None else environ
        return cls(
            platform=env.get('PLATFORM', 'unknown'),
            environment=env.get('NODE_ENV') or env.get('APP_ENV') or 'development',
            deployment=env.get('DEPLOYMENT_TYPE', 'unknown'),
            host=env.get('HOST', '0.0.0.0'),
            port=_int_env(env, 'PORT', 8080),
            log_level=env.get('LOG_LEVEL', 'INFO').upper(),
            pod_name=env.get('POD_NAME') or None,
            namespace=env.get('POD_NAMESPACE') or 'default',
            orchestrated=bool(env.get(ORCHESTRATOR_MARKER)),
            cluster_name=env.get('CLUSTER_NAME', 'gke-cluster'),
            zone=env.get('GCP_ZONE', 'us-central1-a'),
            kubectl=env.get('KUBECTL_PATH', 'kubectl'),
            label_selector=env.get('APP_LABEL_SELECTOR', 'app=gcp-compare-app'),
            service_name=env.get('SERVICE_NAME', 'gcp-compare-service'),
            service_port=_int_env(env, 'SERVICE_PORT', 80),
            command_timeout=float(_int_env(env, 'KUBECTL_TIMEOUT', 5)),
            gae_region=env.get('GAE_REGION', 'us-central1'),
            gae_version=env.get('GAE_VERSION', 'unknown'),
            gae_service=env.get('GAE_SERVICE', 'default'),
            gcp_project=env.get('GOOGLE_CLOUD_PROJECT') or None,
        )

    @property
    def app_info(self):
        return {
            'name': self.name,
            'version': self.version,
            'platform': self.platform,
            'environment': self.environment,
            'deployment': self.deployment,
        }


def configure_logging(level='INFO'):
    logging.basicConfig(level=getattr(logging, str(level).upper(), logging.INFO), format=LOG_FORMAT)
