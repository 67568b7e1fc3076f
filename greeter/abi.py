"""
Greeter Interface Descriptor
ABI for the Greeter contract, from compiled artifacts when available
"""

import json
import os
from typing import Dict, List, Optional

from web3 import Web3
from loguru import logger

from blockchain.exceptions import ConfigError
from blockchain.models import ContractRef

GREETER_ABI_VERSION = "1"

DEFAULT_ARTIFACT_PATH = "artifacts/contracts/Greeter.sol/Greeter.json"

READ_METHOD = "greet"
WRITE_METHOD = "setGreet"


def get_minimal_greeter_abi() -> List[Dict]:
    """
    Minimal ABI for the Greeter contract
    Used when compiled artifacts are not available
    """
    return [
        {
            "inputs": [],
            "name": READ_METHOD,
            "outputs": [{"name": "", "type": "string"}],
            "stateMutability": "view",
            "type": "function"
        },
        {
            "inputs": [{"name": "_greeting", "type": "string"}],
            "name": WRITE_METHOD,
            "outputs": [],
            "stateMutability": "nonpayable",
            "type": "function"
        }
    ]


def load_greeter_abi(artifact_path: Optional[str] = DEFAULT_ARTIFACT_PATH) -> List[Dict]:
    """
    Load the Greeter ABI from a Hardhat/Foundry artifact, or fall back to the minimal ABI

    Args:
        artifact_path: Path to the compiled artifact JSON

    Returns:
        ABI as a list of dicts
    """
    if artifact_path and os.path.exists(artifact_path):
        with open(artifact_path, 'r') as f:
            artifact = json.load(f)

        abi = artifact['abi'] if isinstance(artifact, dict) else artifact
        logger.info(f"Greeter ABI loaded from {artifact_path}")
    else:
        abi = get_minimal_greeter_abi()
        logger.debug("Greeter artifact not found - using minimal ABI")

    names = {entry.get('name') for entry in abi if entry.get('type') == 'function'}
    missing = {READ_METHOD, WRITE_METHOD} - names
    if missing:
        raise ConfigError(f"Greeter ABI is missing functions: {', '.join(sorted(missing))}")

    return abi


def greeter_contract_ref(
    address: str,
    artifact_path: Optional[str] = DEFAULT_ARTIFACT_PATH
) -> ContractRef:
    """
    Build the ContractRef for a deployed Greeter

    Args:
        address: Deployed contract address
        artifact_path: Optional compiled artifact to read the ABI from
    """
    if not address or not Web3.is_address(address):
        raise ConfigError(f"Invalid Greeter contract address: {address!r}")

    return ContractRef(
        address=Web3.to_checksum_address(address),
        abi=load_greeter_abi(artifact_path),
        version=GREETER_ABI_VERSION
    )
