"""
Contract Binding
Binds a contract address and ABI to the Chain Client
"""

from typing import Any, Dict, List, Optional, Sequence

from web3 import Web3
from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError, EncodingError
from loguru import logger

from .chain_client import ChainClient
from .exceptions import DecodeError, EncodeError
from .models import ContractRef, ReadResult


def function_signature(entry: Dict) -> str:
    """Canonical signature, e.g. setGreet(string)"""
    input_types = [inp['type'] for inp in entry.get('inputs', [])]
    return f"{entry['name']}({','.join(input_types)})"


def function_selector(entry: Dict) -> bytes:
    """First 4 bytes of keccak256 of the canonical signature"""
    return Web3.keccak(text=function_signature(entry))[:4]


class ContractBinding:
    """
    Typed read/write access to one contract.

    Pure with respect to local state: every read goes to the node.
    """

    def __init__(self, chain_client: ChainClient, contract: ContractRef):
        """
        Initialize Contract Binding

        Args:
            chain_client: Chain Client to route calls through
            contract: Address and interface descriptor
        """
        self.chain_client = chain_client
        self.contract = contract

        self.functions: Dict[str, Dict] = {
            entry['name']: entry
            for entry in contract.abi
            if entry.get('type') == 'function'
        }

        logger.info(
            f"Contract bound at {contract.address} "
            f"(abi v{contract.version}, {len(self.functions)} functions)"
        )

    def _function(self, method: str) -> Dict:
        entry = self.functions.get(method)
        if entry is None:
            raise EncodeError(f"Function {method} not found in ABI", {'method': method})
        return entry

    def encode_call(self, method: str, args: Sequence[Any]) -> bytes:
        """
        ABI-encode a function call

        Args:
            method: Function name
            args: Positional arguments

        Returns:
            Selector followed by encoded arguments
        """
        entry = self._function(method)
        input_types = [inp['type'] for inp in entry.get('inputs', [])]

        if len(args) != len(input_types):
            raise EncodeError(
                f"{function_signature(entry)} takes {len(input_types)} arguments, got {len(args)}",
                {'method': method, 'args': list(args)}
            )

        try:
            encoded_args = encode(input_types, list(args)) if input_types else b''
        except (EncodingError, TypeError, ValueError, OverflowError) as e:
            raise EncodeError(
                f"Cannot encode arguments for {function_signature(entry)}: {e}",
                {'method': method, 'args': list(args)}
            ) from e

        return function_selector(entry) + encoded_args

    def decode_result(self, method: str, data: bytes) -> Any:
        """
        ABI-decode a function result

        Args:
            method: Function name
            data: Raw return data

        Returns:
            Single value, tuple of values, or None when the function returns nothing
        """
        entry = self._function(method)
        output_types: List[str] = [out['type'] for out in entry.get('outputs', [])]

        if not output_types:
            return None

        try:
            decoded = decode(output_types, data)
        except (DecodingError, TypeError, ValueError, OverflowError) as e:
            raise DecodeError(
                f"Return data of {method} does not match {output_types}: {e}",
                {'method': method, 'data': Web3.to_hex(data)}
            ) from e

        if len(decoded) == 1:
            return decoded[0]
        return decoded

    async def read(self, method: str, args: Optional[Sequence[Any]] = None) -> ReadResult:
        """
        Call a view function at the current head block

        Args:
            method: Function name
            args: Function arguments (default: [])

        Returns:
            Decoded value with the block height it was read at
        """
        calldata = self.encode_call(method, args or [])

        # Pin the call to one block so value and height agree
        block_number = await self.chain_client.block_number()
        data = await self.chain_client.call(self.contract.address, calldata, block_number)

        value = self.decode_result(method, data)
        logger.debug(f"Read {method} at block {block_number}: {value!r}")

        return ReadResult(value=value, block_number=block_number)

    async def write(self, method: str, args: Sequence[Any], account: Optional[str]) -> str:
        """
        Submit a state-changing call

        Args:
            method: Function name
            args: Function arguments
            account: Sending account

        Returns:
            Transaction hash
        """
        calldata = self.encode_call(method, args)
        return await self.chain_client.submit(self.contract.address, calldata, account)
