"""
Kubernetes manifest builders.

Namespace, Deployment/Service and in-cluster database manifests are built as
plain dictionaries and rendered to YAML; nothing here talks to a cluster.
"""
