from pathlib import Path
from typing import Dict, Mapping, Optional, Union

from eth_typing import ChecksumAddress
from eth_utils import is_address, to_checksum_address

from mcdex_deployment.chain import ChainClient
from mcdex_deployment.config import NetworkConfig
from mcdex_deployment.contracts import Contract
from mcdex_deployment.errors import ConfigError
from mcdex_deployment.networks import records_filepath, validate_network
from mcdex_deployment.records import DeploymentRecord, RecordStore, same_address

Overrides = Mapping[Union[str, Contract], str]


def validate_overrides(overrides: Optional[Overrides]) -> Dict[Contract, ChecksumAddress]:
    """Converts operator supplied overrides into a typed contract -> address mapping."""
    validated = dict()
    for key, address in (overrides or {}).items():
        contract = Contract.from_name(key)
        if not isinstance(address, str) or not is_address(address):
            raise ConfigError(f"Override for {contract} is not a valid address: {address!r}")
        validated[contract] = to_checksum_address(address)
    return validated


class Environment:
    """
    The state of one network for the lifetime of a script:
    its chain client, its record store and its fixed addresses.
    """

    def __init__(
        self,
        network: str,
        chain: ChainClient,
        store: RecordStore,
        overrides: Optional[Dict[Contract, ChecksumAddress]] = None,
        read_only: bool = False,
    ):
        self.network = network
        self.chain = chain
        self.store = store
        self.overrides = overrides or dict()
        self.read_only = read_only

    @classmethod
    def from_config(
        cls,
        config: NetworkConfig,
        chain: ChainClient,
        records_dir: Optional[Path] = None,
        read_only: bool = False,
    ) -> "Environment":
        config.validate_chain(chain_id=chain.chain_id, provider_network=chain.network_name)
        return resolve(
            network=config.network,
            overrides=config.overrides,
            chain=chain,
            records_dir=records_dir,
            read_only=read_only,
        )

    def override_of(self, contract: Contract) -> Optional[ChecksumAddress]:
        return self.overrides.get(contract)

    def save(self) -> None:
        """Flushes the record store; read-only environments never write."""
        if self.read_only:
            return
        self.store.save()

    def __repr__(self):
        return f"Environment(network={self.network!r}, records={self.store.filepath})"


def _seed_presets(store: RecordStore, overrides: Dict[Contract, ChecksumAddress]) -> bool:
    seeded = False
    for contract, address in overrides.items():
        existing = store.find(contract.contract_name)
        if existing is None:
            store.upsert(DeploymentRecord.preset(name=contract.contract_name, address=address))
            seeded = True
        elif not same_address(existing.address, address):
            raise ConfigError(
                f"Override for {contract} ({address}) conflicts with the recorded "
                f"{existing.type.value} address {existing.address}"
            )
    return seeded


def resolve(
    network: str,
    overrides: Optional[Overrides],
    chain: ChainClient,
    records_dir: Optional[Path] = None,
    read_only: bool = False,
) -> Environment:
    """Loads the record store of a network and pre-seeds it with the override addresses."""
    validate_network(network)
    typed_overrides = validate_overrides(overrides)
    store = RecordStore.load(records_filepath(network, records_dir=records_dir))

    environment = Environment(
        network=network,
        chain=chain,
        store=store,
        overrides=typed_overrides,
        read_only=read_only,
    )
    if _seed_presets(store, typed_overrides):
        environment.save()
    return environment
