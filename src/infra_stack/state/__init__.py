"""Deployment state tracking for created AWS resources."""
