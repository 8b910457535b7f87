"""Tipsy: one-shot chaos injection and rollback for Kubernetes workloads."""

__version__ = "0.1.0"
