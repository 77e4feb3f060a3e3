"""End-to-end verification harness for S3 + SNS + SQS claim-check stacks."""

__version__ = "0.1.0"
