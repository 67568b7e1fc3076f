"""
Utilities Package
Configuration loading and logging setup
"""

from .config import get_contract_address, get_rpc_url, load_config
from .logging_setup import configure_logging

__all__ = [
    'configure_logging',
    'get_contract_address',
    'get_rpc_url',
    'load_config'
]
