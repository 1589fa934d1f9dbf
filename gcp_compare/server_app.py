from datetime import datetime, timezone
import logging
import signal
import threading
import time

from flask import Blueprint, Flask, Response, current_app, g, jsonify, request
from markupsafe import escape
from werkzeug.exceptions import HTTPException
from werkzeug.serving import make_server

from gcp_compare.comparison import comparison
from gcp_compare.config import AppConfig, configure_logging
from gcp_compare.introspection import RuntimeIntrospection, resolve_instance_identity
from gcp_compare.telemetry import TelemetryCollector
from gcp_compare.topology import ClusterTopologyReporter, run_command

logger = logging.getLogger(__name__)

PROMETHEUS_CONTENT_TYPE = 'text/plain; version=0.0.4; charset=utf-8'

INDEX_PAGE = """<!DOCTYPE html>
<html>
<head><title>{name}</title></head>
<body>
  <h1>{name}</h1>
  <p>Comparing Google Kubernetes Engine (GKE) vs Google App Engine (GAE)</p>
  <p><strong>Platform:</strong> {platform} &middot; <strong>Environment:</strong> {environment}
     &middot; <strong>Deployment:</strong> {deployment}</p>
  <p><strong>Served by:</strong> {hostname}</p>
  <ul>
    <li><a href="/health">/health</a></li>
    <li><a href="/metrics">/metrics</a></li>
    <li><a href="/api/info">/api/info</a></li>
    <li><a href="/api/instance">/api/instance</a></li>
    <li><a href="/api/comparison">/api/comparison</a></li>
    <li><a href="/api/metrics">/api/metrics</a></li>
    <li><a href="/api/cluster-status">/api/cluster-status</a></li>
  </ul>
</body>
</html>
"""

server_bp = Blueprint('server_bp', __name__)


def _timestamp():
    return datetime.now(timezone.utc).isoformat()


def _state():
    return current_app.extensions['gcp_compare']


# --- Main endpoint ---
# Shows which instance answered, the same way every replica does.
@server_bp.route('/')
def index():
    state = _state()
    config = state['config']
    return INDEX_PAGE.format(
        name=escape(config.name),
        platform=escape(config.platform),
        environment=escape(config.environment),
        deployment=escape(config.deployment),
        hostname=escape(state['identity'].hostname),
    )


# --- Health endpoint ---
# Liveness for load balancers and the orchestrator; also counted separately.
@server_bp.route('/health')
def health():
    state = _state()
    state['telemetry'].record_health_check()
    return jsonify({
        'status': 'healthy',
        'timestamp': _timestamp(),
        'uptime': state['introspection'].process_uptime(),
    })


# --- Metrics endpoint ---
# Prometheus scrapes this one; the JSON flavour lives under /api/metrics.
@server_bp.route('/metrics')
def metrics():
    text = _state()['telemetry'].snapshot_prometheus_text()
    return Response(text, content_type=PROMETHEUS_CONTENT_TYPE)


# --- Info endpoint ---
# Static application facts plus live uptime, memory and CPU count.
@server_bp.route('/api/info')
def api_info():
    state = _state()
    introspection = state['introspection']
    return jsonify({
        **state['config'].app_info,
        'hostname': state['identity'].hostname,
        'timestamp': _timestamp(),
        'uptime': introspection.process_uptime(),
        'memory': introspection.memory(),
        'cpus': introspection.cpu_count(),
    })


# --- Instance endpoint ---
# Which replica answered, and the counters it has collected so far.
@server_bp.route('/api/instance')
def api_instance():
    state = _state()
    snapshot = state['telemetry'].snapshot_json()
    instance = state['identity'].to_dict()
    instance['platform'] = state['config'].platform
    return jsonify({
        'instance': instance,
        'metrics': {
            'requestsHandled': snapshot['requestsHandled'],
            'errorsHandled': snapshot['errorsHandled'],
            'healthChecks': snapshot['healthChecks'],
            'avgResponseTime': snapshot['avgResponseTime'],
            'uptime': snapshot['uptime'],
        },
        'timestamp': _timestamp(),
    })


# --- Comparison endpoint ---
# Side-by-side GAE and GKE notes for the dashboard.
@server_bp.route('/api/comparison')
def api_comparison():
    return jsonify(comparison())


# --- Runtime metrics endpoint ---
# JSON flavour of /metrics, with host and runtime details.
@server_bp.route('/api/metrics')
def api_metrics():
    state = _state()
    introspection = state['introspection']
    snapshot = state['telemetry'].snapshot_json()
    process_uptime = introspection.process_uptime()
    return jsonify({
        'instance': state['identity'].to_dict(),
        'memory': snapshot['memory'],
        'cpu': {
            'cores': introspection.cpu_count(),
            'model': introspection.cpu_model(),
        },
        'system': {
            'uptime': introspection.system_uptime(),
            'loadAverage': introspection.load_average(),
            'platform': introspection.os_platform(),
            'arch': introspection.arch(),
        },
        'runtime': {
            'python': introspection.python_version(),
            'uptime': process_uptime,
        },
        'uptime': process_uptime,
        'loadDistribution': snapshot['loadDistribution'],
        'totalRequests': snapshot['totalRequests'],
        'timestamp': _timestamp(),
    })


# --- Cluster status endpoint ---
# Pods, nodes and service IP under GKE; a static description under GAE.
@server_bp.route('/api/cluster-status')
def api_cluster_status():
    try:
        return jsonify(_state()['topology'].report())
    except Exception as e:
        logger.exception("Failed to build cluster status")
        return jsonify({'error': 'Failed to fetch cluster status', 'message': str(e)}), 500


def create_app(config=None, introspection=None, runner=None):
    config = config or AppConfig.from_env()
    introspection = introspection or RuntimeIntrospection()

    # Create a Flask web application
    app = Flask(__name__)
    identity = resolve_instance_identity(config, introspection)
    collector = TelemetryCollector(
        introspection,
        app_labels={'platform': config.platform, 'deployment': config.deployment},
    )
    app.extensions['gcp_compare'] = {
        'config': config,
        'introspection': introspection,
        'identity': identity,
        'telemetry': collector,
        'topology': ClusterTopologyReporter(config, runner=runner or run_command),
    }
    app.register_blueprint(server_bp)

    @app.before_request
    def start_timer():
        g.request_started = time.perf_counter()

    @app.after_request
    def capture_status(response):
        g.response_status = response.status_code
        return response

    @app.teardown_request
    def record_completion(exc):
        started = g.pop('request_started', None)
        if started is None:
            return
        status = g.pop('response_status', 500)
        duration_ms = (time.perf_counter() - started) * 1000.0
        collector.record_request_completion(identity.instance_id, status, duration_ms)

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({'error': 'Not Found', 'path': request.path}), 404

    @app.errorhandler(Exception)
    def internal_error(error):
        if isinstance(error, HTTPException):
            return jsonify({'error': error.name, 'path': request.path}), error.code
        logger.exception("Unhandled error while serving %s", request.path)
        return jsonify({'error': 'Internal Server Error', 'message': str(error)}), 500

    return app


def make_sigterm_handler(server):
    """Stop ``server`` when the orchestrator asks the pod to terminate.

    ``shutdown()`` blocks until ``serve_forever()`` returns, and the signal
    handler runs on the serving thread, so it is called from a helper thread.
    """
    def handle_sigterm(signum, frame):
        logger.info("SIGTERM signal received: closing HTTP server")
        stopper = threading.Thread(target=server.shutdown, name='shutdown', daemon=True)
        stopper.start()
        return stopper

    return handle_sigterm


def main():
    config = AppConfig.from_env()
    configure_logging(config.log_level)
    app = create_app(config)
    # Listen on all available network interfaces unless HOST says otherwise
    server = make_server(config.host, config.port, app, threaded=True)
    signal.signal(signal.SIGTERM, make_sigterm_handler(server))

    logger.info("Server started on port %s", config.port)
    logger.info("Platform: %s", config.platform)
    logger.info("Environment: %s", config.environment)
    logger.info("Deployment: %s", config.deployment)
    try:
        server.serve_forever()
    finally:
        server.server_close()
    logger.info("HTTP server closed")
    return 0


if __name__ == '__main__':
    raise SystemExit(main())
