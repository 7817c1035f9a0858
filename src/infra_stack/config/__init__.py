"""
Configuration management for infra-stack.

Contains Pydantic settings for the process environment and the stack file
models that describe what gets provisioned.
"""
