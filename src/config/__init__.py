"""
Configuration module for the NAP registry.
"""
from .settings import (
    NapRegistryConfig,
    get_config,
    load_config,
    reload_config
)

__all__ = [
    'NapRegistryConfig',
    'get_config',
    'load_config',
    'reload_config'
]
