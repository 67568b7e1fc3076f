"""
System Check Script
Verifies configuration, node connectivity, wallet and contract before running the client
"""

import os
import sys

from web3 import Web3
from eth_account import Account
from loguru import logger
from dotenv import load_dotenv

from blockchain.exceptions import ConfigError
from greeter.abi import load_greeter_abi
from utils.config import get_contract_address, get_rpc_url, load_config

load_dotenv()

CONFIG_PATH = os.getenv('GREETER_CONFIG', 'config/greeter_config.json')


def check_environment_variables():
    """Check if required environment variables are set"""
    logger.info("Checking environment variables...")

    required_vars = ['GREETER_CONTRACT_ADDRESS']
    optional_vars = ['RPC_URL', 'PRIVATE_KEY']

    missing = [var for var in required_vars if not os.getenv(var)]
    if missing:
        logger.error(f"Missing environment variables: {', '.join(missing)}")
        return False

    for var in optional_vars:
        if not os.getenv(var):
            logger.warning(f"  {var} not set (defaults / read-only mode)")

    logger.success("✓ Required environment variables set")
    return True


def check_configuration():
    """Check the config file and the Greeter ABI"""
    logger.info("Checking configuration...")

    try:
        config = load_config(CONFIG_PATH)
        load_greeter_abi(config['contract'].get('artifact_path'))
    except ConfigError as e:
        logger.error(f"  ✗ {e}")
        return False

    logger.success(f"  ✓ {CONFIG_PATH}")
    return True


def check_rpc_connection():
    """Check the RPC endpoint answers"""
    logger.info("Checking RPC connection...")

    rpc_url = get_rpc_url(load_config(CONFIG_PATH))
    w3 = Web3(Web3.HTTPProvider(rpc_url))

    if not w3.is_connected():
        logger.error(f"  ✗ {rpc_url}: Connection failed")
        return False

    logger.success(f"  ✓ {rpc_url}: Connected (Block: {w3.eth.block_number}, Chain: {w3.eth.chain_id})")
    return True


def check_wallet_balance():
    """Check the signing account can pay for gas"""
    logger.info("Checking wallet balance...")

    private_key = os.getenv('PRIVATE_KEY')
    if not private_key:
        logger.warning("  No PRIVATE_KEY - greeting updates disabled")
        return True

    w3 = Web3(Web3.HTTPProvider(get_rpc_url(load_config(CONFIG_PATH))))
    address = Account.from_key(private_key).address

    balance = w3.from_wei(w3.eth.get_balance(address), 'ether')
    logger.info(f"  {address}: {balance:.4f} ETH")

    if balance == 0:
        logger.warning("  ⚠ Account has no funds for gas")
    else:
        logger.success("  ✓ Account funded")
    return True


def check_contract_deployment():
    """Check contract code exists at the configured address"""
    logger.info("Checking Greeter deployment...")

    config = load_config(CONFIG_PATH)
    contract_address = get_contract_address(config)

    w3 = Web3(Web3.HTTPProvider(get_rpc_url(config)))
    code = w3.eth.get_code(Web3.to_checksum_address(contract_address))

    if code in (b'', '0x'):
        logger.error(f"  ✗ No contract at {contract_address}")
        return False

    logger.success(f"  ✓ Contract deployed at {contract_address}")
    return True


def main():
    """Run all system checks"""
    logger.info("=" * 70)
    logger.info("Greeter Client System Check")
    logger.info("=" * 70)

    checks = [
        ("Environment Variables", check_environment_variables),
        ("Configuration", check_configuration),
        ("RPC Connection", check_rpc_connection),
        ("Wallet Balance", check_wallet_balance),
        ("Contract Deployment", check_contract_deployment)
    ]

    results = []

    for name, check_func in checks:
        logger.info("")
        try:
            result = check_func()
            results.append((name, result))
        except Exception as e:
            logger.error(f"Error in {name}: {e}")
            results.append((name, False))

    logger.info("")
    logger.info("=" * 70)
    logger.info("Summary")
    logger.info("=" * 70)

    passed = sum(1 for _, result in results if result)
    total = len(results)

    for name, result in results:
        status = "✓ PASS" if result else "✗ FAIL"
        logger.info(f"  {status}: {name}")

    logger.info("")
    logger.info(f"Total: {passed}/{total} checks passed")

    if passed == total:
        logger.success("✅ Ready: python main.py")
        return 0

    logger.error("❌ System not ready - fix issues above")
    return 1


if __name__ == "__main__":
    sys.exit(main())
