"""
Greeter Client - Main Entry Point
Reads the greeting and optionally submits a new one

Usage:
    python main.py                 # show the current greeting
    python main.py "new greeting"  # submit and wait for the outcome
"""

import asyncio
import signal
import sys
from typing import Optional

from loguru import logger

from blockchain import ChainClient, ContractBinding, TrackerConfig, TransactionTracker
from blockchain.exceptions import ChainInteractionError
from greeter import GreeterCore, GreeterState, greeter_contract_ref
from utils import configure_logging, get_contract_address, get_rpc_url, load_config
from wallet import LocalWalletSession


class GreeterRunner:
    """Wires the components together and handles shutdown"""

    def __init__(self, config_path: str = "config/greeter_config.json"):
        """Initialize runner"""
        self.config = load_config(config_path)
        configure_logging(self.config.get('logging'))

        network = self.config['network']
        contract = self.config['contract']

        self.w3 = ChainClient.create_web3(
            get_rpc_url(self.config),
            request_timeout=network.get('request_timeout_seconds', 10)
        )
        self.wallet = LocalWalletSession(
            self.w3,
            private_key_env=self.config.get('wallet', {}).get('private_key_env', 'PRIVATE_KEY')
        )
        self.chain_client = ChainClient(
            self.w3,
            self.wallet,
            read_timeout=network.get('read_timeout_seconds', 5)
        )
        self.binding = ContractBinding(
            self.chain_client,
            greeter_contract_ref(get_contract_address(self.config), contract.get('artifact_path'))
        )
        self.tracker = TransactionTracker(
            self.chain_client,
            TrackerConfig.from_dict(self.config['tracker'])
        )
        self.core = GreeterCore(
            self.binding,
            self.wallet,
            self.tracker,
            read_method=contract.get('read_method', 'greet'),
            write_method=contract.get('write_method', 'setGreet')
        )
        self.core.subscribe(self._render)

        self.running = False

    def _render(self, state: GreeterState):
        """Log every view-state change"""
        read, write = state.read, state.write
        parts = [f"value={read.value!r}"]
        if read.is_loading:
            parts.append("loading")
        if read.error:
            parts.append(f"read_error={read.error}")
        if write.pending:
            parts.append(f"pending={write.tx_id} ({write.confirmations} conf)")
        if write.error:
            parts.append(f"write_error={write.error}")
        logger.debug("View: " + ", ".join(parts))

    async def start(self, new_greeting: Optional[str] = None) -> int:
        """Run once; returns the process exit code"""
        self.running = True

        if not await self.chain_client.is_connected():
            logger.error("RPC node not reachable")
            return 1

        await self.core.mount()
        logger.info(f"Current greeting: {self.core.read_state.value!r}")

        if new_greeting is None:
            return 0 if self.core.read_state.error is None else 1

        self.wallet.connect()
        pending = await self.core.set_greeter(new_greeting)
        logger.info(f"Waiting for {pending.tx_id}...")

        await self.core.wait_idle()

        if self.core.write_state.error:
            logger.error(f"Update failed: {self.core.write_state.error}")
            return 1

        logger.success(f"Greeting is now: {self.core.read_state.value!r}")
        return 0

    async def stop(self):
        """Tear down trackers"""
        if not self.running:
            return

        self.running = False
        self.core.unmount()
        self.tracker.cancel_all()

        stats = self.chain_client.get_stats()
        logger.info(
            f"RPC usage - calls: {stats['calls']}, submissions: {stats['submissions']}, "
            f"receipt polls: {stats['receipt_polls']}, failures: {stats['failures']}"
        )


async def main() -> int:
    """Main entry point"""
    new_greeting = sys.argv[1] if len(sys.argv) > 1 else None

    try:
        runner = GreeterRunner()
    except ChainInteractionError as e:
        logger.error(f"Startup failed - {type(e).__name__}: {e}")
        return 1

    loop = asyncio.get_running_loop()
    main_task = asyncio.current_task()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, main_task.cancel)
        except NotImplementedError:
            pass

    try:
        return await runner.start(new_greeting)
    except ChainInteractionError as e:
        logger.error(f"{type(e).__name__}: {e}")
        return 1
    except asyncio.CancelledError:
        logger.info("Received shutdown signal")
        return 130
    finally:
        await runner.stop()


if __name__ == "__main__":
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
