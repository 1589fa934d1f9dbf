"""GKE vs GAE demo service: instance metadata, request telemetry and cluster topology."""

__version__ = '1.0.0'
