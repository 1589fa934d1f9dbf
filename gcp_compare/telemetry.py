import logging
import threading
import time

logger = logging.getLogger(__name__)


def _escape_label(value):
    return str(value).replace('\\', '\\\\').replace('"', '\\"').replace('\n', '\\n')


class TelemetryCollector:
    """Per-process request counters behind a single lock.

    Only ``record_request_completion`` and ``record_health_check`` write; the
    snapshot methods copy what they need while holding the lock and format
    outside of it.
    """

    def __init__(self, introspection, clock=time.monotonic, app_labels=None):
        self.introspection = introspection
        self._clock = clock
        self._labels = dict(app_labels or {})
        self._lock = threading.Lock()

        self._request_count = 0
        self._error_count = 0
        self._health_check_count = 0
        self._total_response_time_ms = 0.0
        self._per_instance = {}
        self._start_time = clock()

    def record_request_completion(self, instance_id, status_code, duration_ms):
        try:
            is_error = int(status_code) >= 400
            duration_ms = max(float(duration_ms), 0.0)
            with self._lock:
                self._request_count += 1
                self._total_response_time_ms += duration_ms
                if is_error:
                    self._error_count += 1
                self._per_instance[instance_id] = self._per_instance.get(instance_id, 0) + 1
        except Exception:
            # Runs after the response went out; nothing useful to do with a failure.
            logger.debug("Dropped request telemetry for %s", instance_id, exc_info=True)

    def record_health_check(self):
        with self._lock:
            self._health_check_count += 1

    def _counters(self):
        with self._lock:
            return {
                'requests': self._request_count,
                'errors': self._error_count,
                'health_checks': self._health_check_count,
                'total_ms': self._total_response_time_ms,
                'per_instance': dict(self._per_instance),
            }

    @staticmethod
    def _average(counters):
        if not counters['requests']:
            return 0.0
        return counters['total_ms'] / counters['requests']

    def average_response_time(self):
        return self._average(self._counters())

    def uptime(self):
        return max(self._clock() - self._start_time, 0.0)

    def _process_uptime(self):
        try:
            return self.introspection.process_uptime()
        except Exception:
            logger.debug("Process uptime unavailable", exc_info=True)
            return 0.0

    def _memory(self):
        try:
            return self.introspection.memory()
        except Exception:
            logger.debug("Memory figures unavailable", exc_info=True)
            return {'heapUsed': 0, 'heapTotal': 0, 'rss': 0, 'external': 0}

    def snapshot_json(self):
        counters = self._counters()
        return {
            'requestsHandled': counters['requests'],
            'errorsHandled': counters['errors'],
            'healthChecks': counters['health_checks'],
            'avgResponseTime': round(self._average(counters), 2),
            'uptime': round(self._process_uptime(), 2),
            'memory': self._memory(),
            'loadDistribution': counters['per_instance'],
            'totalRequests': counters['requests'],
        }

    def snapshot_prometheus_text(self):
        counters = self._counters()
        memory = self._memory()
        process_uptime = self._process_uptime()
        try:
            cores = self.introspection.cpu_count()
        except Exception:
            cores = 0

        labels = ','.join(f'{key}="{_escape_label(value)}"' for key, value in self._labels.items())
        metrics = [
            ('app_info', 'gauge', 'Application information', f'{{{labels}}}' if labels else '', '1'),
            ('app_requests_total', 'counter', 'Total number of HTTP requests handled', '', str(counters['requests'])),
            ('app_errors_total', 'counter', 'Total number of HTTP responses with status >= 400', '', str(counters['errors'])),
            ('app_response_time_ms', 'gauge', 'Average response time in milliseconds', '', f"{self._average(counters):.2f}"),
            ('app_uptime_seconds', 'gauge', 'Seconds since the telemetry collector started', '', f"{self.uptime():.2f}"),
            ('process_uptime_seconds', 'gauge', 'Seconds since the process started', '', f"{process_uptime:.2f}"),
            ('memory_heap_used_bytes', 'gauge', 'Heap memory in use, in bytes', '', str(int(memory.get('heapUsed', 0)))),
            ('memory_heap_total_bytes', 'gauge', 'Total heap memory, in bytes', '', str(int(memory.get('heapTotal', 0)))),
            ('memory_rss_bytes', 'gauge', 'Resident set size, in bytes', '', str(int(memory.get('rss', 0)))),
            ('cpu_cores', 'gauge', 'Number of CPU cores', '', str(int(cores or 0))),
            ('health_checks_total', 'counter', 'Total number of health checks served', '', str(counters['health_checks'])),
        ]

        lines = []
        for name, kind, help_text, label_text, value in metrics:
            lines.append(f'# HELP {name} {help_text}')
            lines.append(f'# TYPE {name} {kind}')
            lines.append(f'{name}{label_text} {value}')
        return '\n'.join(lines) + '\n'
