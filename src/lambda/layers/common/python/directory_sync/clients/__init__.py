"""AWS client helpers."""

from .aws import client_config

__all__ = ["client_config"]
