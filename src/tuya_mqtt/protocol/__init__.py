"""Tuya local protocol clients."""

from .tinytuya_client import TinyTuyaClient

__all__ = ["TinyTuyaClient"]
