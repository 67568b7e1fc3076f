"""
Greeter Package
Read and update the Greeter contract's greeting and expose view state
"""

from .abi import greeter_contract_ref, load_greeter_abi
from .core import GreeterCore, validate_greeting
from .state import GreeterState, ReadState, WriteState

__all__ = [
    'GreeterCore',
    'GreeterState',
    'ReadState',
    'WriteState',
    'greeter_contract_ref',
    'load_greeter_abi',
    'validate_greeting'
]
