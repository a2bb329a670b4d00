import json
import logging
from pathlib import Path
from typing import Any

from eth_utils import event_abi_to_log_topic
from web3 import Web3

from ..config import BONDING_MANAGER_ADDRESS, ROUNDS_MANAGER_ADDRESS
from ..exceptions import ConfigError
from ..models import FilterSpec

logger = logging.getLogger(__name__)


def address_to_topic(address: str) -> str:
    """Left-pad an address to a 32-byte topic value."""
    return "0x" + "0" * 24 + Web3.to_checksum_address(address)[2:].lower()


def event_topic(abi: list[dict[str, Any]], event_name: str) -> str:
    """Resolve an event name to its signature hash (topic[0]).

    Args:
        abi: Contract ABI
        event_name: Name of the event, e.g. "Reward"

    Returns:
        0x-prefixed keccak hash of the canonical event signature

    Raises:
        ConfigError: If the event is not present in the ABI
    """
    for entry in abi:
        if entry.get("type") == "event" and entry.get("name") == event_name:
            return "0x" + event_abi_to_log_topic(entry).hex()
    raise ConfigError(f"Event {event_name} not found in contract ABI")


class ContractUtility:
    """
    Utility for ABI loading and log filter construction.

    ABI files are the raw ABI arrays written by the ABI downloader; full
    deployment records with an ``abi`` field are accepted as well.
    """

    BONDING_MANAGER = "BondingManager"
    ROUNDS_MANAGER = "RoundsManager"

    def __init__(self, abi_dir: str | Path) -> None:
        """
        Initialize the ContractUtility.

        Args:
            abi_dir: Directory containing the <ContractName>.json ABI files
        """
        self.abi_dir = Path(abi_dir)
        self._abis: dict[str, list[dict[str, Any]]] = {}

    def get_contract_abi(self, contract_name: str) -> list[dict[str, Any]]:
        """Fetches ABI of the given contract from the ABI directory.

        Args:
            contract_name: Name of the contract (without .json extension)

        Returns:
            List of ABI dictionaries for the contract

        Raises:
            ConfigError: If the file is missing, unreadable or not a valid ABI
        """
        if contract_name in self._abis:
            return self._abis[contract_name]

        contract_path: Path = self.abi_dir / f"{contract_name}.json"
        try:
            with contract_path.open() as file:
                contract_data: Any = json.load(file)
        except OSError as e:
            raise ConfigError(f"Failed to read {contract_name} ABI file {contract_path}: {e}") from e
        except json.JSONDecodeError as e:
            raise ConfigError(f"Failed to parse {contract_name} ABI file {contract_path}: {e}") from e

        if isinstance(contract_data, dict) and "abi" in contract_data:
            contract_data = contract_data["abi"]
        if not isinstance(contract_data, list):
            raise ConfigError(f"{contract_path} does not contain an ABI array")

        logger.debug(f"Loaded {contract_name} ABI from {contract_path} ({len(contract_data)} entries)")
        self._abis[contract_name] = contract_data
        return contract_data

    def reward_filter(self, orchestrator: str) -> FilterSpec:
        """Filter for BondingManager Reward events of one orchestrator."""
        topic = event_topic(self.get_contract_abi(self.BONDING_MANAGER), "Reward")
        return FilterSpec(
            address=BONDING_MANAGER_ADDRESS,
            topics=(topic, address_to_topic(orchestrator))
        )

    def new_round_filter(self) -> FilterSpec:
        """Filter for RoundsManager NewRound events."""
        topic = event_topic(self.get_contract_abi(self.ROUNDS_MANAGER), "NewRound")
        return FilterSpec(address=ROUNDS_MANAGER_ADDRESS, topics=(topic,))
