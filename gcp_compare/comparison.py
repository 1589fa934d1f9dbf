# Static content served by /api/comparison.
import copy

COMPARISON = {
    'Google App Engine': {
        'description': 'Fully managed serverless platform',
        'best_for': ['Web applications', 'APIs', 'Mobile backends'],
        'scaling': 'Automatic (managed)',
        'cost_model': 'Pay-per-request + instance hours',
        'management': 'Minimal (serverless)',
        'deployment': 'gcloud app deploy',
        'latency': 'Fast (optimized)',
        'compliance': ['HIPAA', 'PCI-DSS', 'SOC 2'],
    },
    'Google Kubernetes Engine': {
        'description': 'Managed Kubernetes container orchestration',
        'best_for': ['Complex applications', 'Microservices', 'Custom configurations'],
        'scaling': 'Flexible (manual/autoscaling)',
        'cost_model': 'Pay-per-node + storage',
        'management': 'More control required',
        'deployment': 'kubectl apply',
        'latency': 'Variable (depends on config)',
        'compliance': ['HIPAA', 'PCI-DSS', 'SOC 2'],
    },
}


def comparison():
    return {'comparison': copy.deepcopy(COMPARISON)}
