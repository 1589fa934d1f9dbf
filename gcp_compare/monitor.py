# monitor.py - Poll a running instance and log what the dashboard would show

import argparse
import logging
import time

import requests

from gcp_compare.config import configure_logging

logger = logging.getLogger(__name__)

HEALTHY = 'HEALTHY'
UNHEALTHY = 'UNHEALTHY'
DOWN = 'DOWN'

ENDPOINTS = {
    'health': '/health',
    'instance': '/api/instance',
    'metrics': '/api/metrics',
    'cluster': '/api/cluster-status',
}


def format_bytes(num_bytes):
    if not num_bytes:
        return '0 Bytes'
    sizes = ['Bytes', 'KB', 'MB', 'GB']
    value, i = float(num_bytes), 0
    while value >= 1024 and i < len(sizes) - 1:
        value /= 1024
        i += 1
    return f"{round(value, 2):g} {sizes[i]}"


def format_time(seconds):
    if seconds < 60:
        return f"{round(seconds)}s"
    if seconds < 3600:
        return f"{round(seconds / 60)}m"
    if seconds < 86400:
        return f"{round(seconds / 3600)}h"
    return f"{round(seconds / 86400)}d"


def load_percentages(distribution, total):
    return {
        instance_id: round(count / total * 100, 1) if total > 0 else 0.0
        for instance_id, count in distribution.items()
    }


class InstanceMonitor:
    def __init__(self, base_url, session=None, timeout=2):
        self.base_url = base_url.rstrip('/')
        self.session = session or requests.Session()
        self.timeout = timeout
        self.health = HEALTHY

    def _get(self, name):
        response = self.session.get(self.base_url + ENDPOINTS[name], timeout=self.timeout)
        response.raise_for_status()
        return response.json()

    def _set_health(self, health):
        if health == self.health:
            return
        if self.health == DOWN:
            logger.info(f"INSTANCE RECOVERED (was down): {self.base_url}")
        if health == DOWN:
            logger.error(f"INSTANCE DOWN: Cannot connect to {self.base_url}")
        elif health == UNHEALTHY:
            logger.warning(f"INSTANCE UNHEALTHY: {self.base_url} did not report healthy")
        self.health = health

    def poll_once(self):
        try:
            health = self._get('health')
            instance = self._get('instance')
            metrics = self._get('metrics')
        except requests.exceptions.RequestException as e:
            self._set_health(DOWN)
            logger.debug("Poll of %s failed: %s", self.base_url, e)
            return {'health': DOWN}

        self._set_health(HEALTHY if health.get('status') == 'healthy' else UNHEALTHY)

        # Cluster status is best-effort; an instance without it is still up.
        try:
            cluster = self._get('cluster')
        except requests.exceptions.RequestException as e:
            logger.warning(f"Cluster status unavailable from {self.base_url}: {e}")
            cluster = {}

        stats = instance.get('metrics', {})
        summary = {
            'health': self.health,
            'instanceId': instance.get('instance', {}).get('instanceId', 'unknown'),
            'requests': stats.get('requestsHandled', 0),
            'errors': stats.get('errorsHandled', 0),
            'avgResponseTime': stats.get('avgResponseTime', 0),
            'rss': format_bytes(metrics.get('memory', {}).get('rss', 0)),
            'uptime': format_time(metrics.get('uptime', 0)),
            'platform': cluster.get('platform', 'unknown'),
            'cluster': cluster.get('summary'),
            'load': load_percentages(metrics.get('loadDistribution', {}), metrics.get('totalRequests', 0)),
        }

        logger.info(
            f"Monitor status: {summary['instanceId']} [{summary['health']}] "
            f"requests={summary['requests']} errors={summary['errors']} "
            f"avg={summary['avgResponseTime']}ms rss={summary['rss']} uptime={summary['uptime']} "
            f"platform={summary['platform']}"
        )
        if summary['cluster']:
            logger.info(
                "Cluster: %(readyPods)s/%(totalPods)s pods running on %(totalNodes)s nodes", summary['cluster']
            )
        for instance_id, percent in summary['load'].items():
            logger.info(f"  {instance_id}: {percent}% of requests")
        return summary

    def run(self, interval=5, iterations=None):
        logger.info(f"Starting instance monitor for {self.base_url}...")
        count = 0
        while iterations is None or count < iterations:
            self.poll_once()
            count += 1
            if iterations is None or count < iterations:
                # Wait before checking again
                time.sleep(interval)


def main(argv=None):
    parser = argparse.ArgumentParser(description="Poll a gcp-compare instance and log its status.")
    parser.add_argument('--url', default='http://localhost:8080', help="Base URL of the instance")
    parser.add_argument('--interval', type=float, default=5.0, help="Seconds between polls")
    parser.add_argument('--timeout', type=float, default=2.0, help="Per-request timeout in seconds")
    parser.add_argument('--once', action='store_true', help="Poll a single time and exit")
    parser.add_argument('--log-level', default='INFO')
    args = parser.parse_args(argv)

    configure_logging(args.log_level)
    monitor = InstanceMonitor(args.url, timeout=args.timeout)
    try:
        monitor.run(interval=args.interval, iterations=1 if args.once else None)
    except KeyboardInterrupt:
        logger.info("Monitor stopped.")
    return 0 if monitor.health == HEALTHY else 1


if __name__ == '__main__':
    raise SystemExit(main())
