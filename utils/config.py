"""
Configuration
JSON settings plus deployment values from the environment
"""

import json
import os
from typing import Dict

from loguru import logger
from dotenv import load_dotenv

from blockchain.exceptions import ConfigError

load_dotenv()

DEFAULT_CONFIG_PATH = "config/greeter_config.json"

REQUIRED_SECTIONS = ('network', 'contract', 'tracker')


def load_config(config_path: str = DEFAULT_CONFIG_PATH) -> Dict:
    """
    Load the JSON configuration

    Args:
        config_path: Path to the config file

    Returns:
        Configuration dict
    """
    try:
        with open(config_path, 'r') as f:
            config = json.load(f)
    except FileNotFoundError as e:
        raise ConfigError(f"Config file not found: {config_path}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"Config file {config_path} is not valid JSON: {e}") from e

    missing = [section for section in REQUIRED_SECTIONS if section not in config]
    if missing:
        raise ConfigError(f"Config is missing sections: {', '.join(missing)}")

    logger.debug(f"Configuration loaded from {config_path}")
    return config


def get_rpc_url(config: Dict) -> str:
    """RPC endpoint from the environment, falling back to the configured default"""
    network = config['network']
    rpc_url = os.getenv(network.get('rpc_url_env', 'RPC_URL')) or network.get('default_rpc_url')

    if not rpc_url:
        raise ConfigError("No RPC URL configured")
    return rpc_url


def get_contract_address(config: Dict) -> str:
    """Greeter contract address from the environment"""
    env_var = config['contract'].get('address_env', 'GREETER_CONTRACT_ADDRESS')
    address = os.getenv(env_var) or config['contract'].get('address')

    if not address:
        raise ConfigError(f"{env_var} must be set in .env")
    return address
