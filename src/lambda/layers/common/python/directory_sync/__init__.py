"""Common layer for the user pool export/import workflow Lambdas."""

__version__ = "1.0.0"
