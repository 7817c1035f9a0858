"""
AWS resources for the serverless function module.

Contains boto3 client management, request builders for Lambda/IAM and the
deployer that applies them.
"""
