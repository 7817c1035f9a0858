"""
Infrastructure provisioning definitions.

Contains Kubernetes manifest builders (namespace, workloads, in-cluster
database), KEDA autoscaling trigger composition, and the AWS Lambda
function module with its IAM wiring.
"""

__version__ = "0.1.0"
