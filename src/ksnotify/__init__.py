# src/ksnotify/__init__.py
"""Post Kubernetes manifest diffs from CI as pull/merge request comments."""

__version__ = "0.3.0"
