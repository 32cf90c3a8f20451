from abc import ABC, abstractmethod
from typing import Any, Dict, List, NamedTuple, Optional, Sequence

from eth_typing import ChecksumAddress
from eth_utils import to_checksum_address
from hexbytes import HexBytes

EMPTY_SLOT = b"\x00" * 32


class Deployed(NamedTuple):
    """A confirmed contract creation."""

    instance: Any
    block_number: int


class Event(NamedTuple):
    name: str
    args: Dict[str, Any]
    block_number: Optional[int] = None


class Receipt(NamedTuple):
    """A confirmed transaction."""

    txn_hash: str
    block_number: int
    events: Sequence[Event] = ()

    def events_named(self, name: str) -> List[Event]:
        return [event for event in self.events if event.name == name]


class ChainClient(ABC):
    """
    The single boundary to the external contract system.
    Every call blocks until the node answers; transactions block until confirmed.
    """

    network_name: str
    chain_id: int

    @property
    @abstractmethod
    def account(self) -> ChecksumAddress:
        """The address that signs transactions."""
        raise NotImplementedError

    @property
    @abstractmethod
    def block_number(self) -> int:
        raise NotImplementedError

    @abstractmethod
    def deploy(self, contract_type: str, *args, libraries: Sequence[Any] = ()) -> Deployed:
        """Deploys a contract, links the given deployed libraries and waits for confirmation."""
        raise NotImplementedError

    @abstractmethod
    def contract_at(self, contract_type: str, address: str) -> Any:
        """Returns a handle of the given contract type bound to an address."""
        raise NotImplementedError

    @abstractmethod
    def transact(self, method: Any, *args) -> Receipt:
        """Sends a transaction calling a contract method and waits for confirmation."""
        raise NotImplementedError

    @abstractmethod
    def get_code(self, address: str) -> bytes:
        raise NotImplementedError

    @abstractmethod
    def get_storage_at(self, address: str, slot: int) -> bytes:
        raise NotImplementedError

    @abstractmethod
    def get_logs(self, contract: Any, event_name: str, start_block: int, stop_block: int) -> List[Event]:
        """Returns decoded events of a contract, both block bounds inclusive."""
        raise NotImplementedError

    @abstractmethod
    def mine(self, num_blocks: int = 1) -> None:
        """Advances a development chain."""
        raise NotImplementedError

    def has_code(self, address: str) -> bool:
        return len(self.get_code(address)) > 0

    def read_address_slot(self, address: str, slot: int) -> Optional[ChecksumAddress]:
        """Reads an address stored in a storage slot; None when the slot is empty."""
        value = HexBytes(self.get_storage_at(address, slot))
        if len(value) == 0 or value == HexBytes(EMPTY_SLOT[: len(value)]):
            return None
        return to_checksum_address(value[-20:].rjust(20, b"\x00"))
