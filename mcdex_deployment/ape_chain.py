import os
from typing import Any, List, Optional, Sequence, Tuple

from ape import accounts, chain, compilers, networks, project
from ape.api import AccountAPI
from ape.contracts import ContractContainer
from ape.exceptions import ApeException
from eth_typing import ChecksumAddress
from eth_utils import to_checksum_address

from mcdex_deployment.chain import ChainClient, Deployed, Event, Receipt
from mcdex_deployment.config import NetworkConfig
from mcdex_deployment.constants import (
    DEPLOYER_ACCOUNT_ENVVAR,
    OZ_DEPENDENCY_NAME,
    OZ_DEPENDENCY_VERSION,
)
from mcdex_deployment.deployer import Deployer
from mcdex_deployment.environment import Environment
from mcdex_deployment.errors import ChainError, ConfigError
from mcdex_deployment.networks import is_local_network


def _get_dependency_contract_container(contract: str) -> ContractContainer:
    for dependency_name, dependency_versions in project.dependencies.items():
        if dependency_name == OZ_DEPENDENCY_NAME:
            dependency_api = dependency_versions[OZ_DEPENDENCY_VERSION]
        elif len(dependency_versions) > 1:
            raise ConfigError(f"Ambiguous {dependency_name} dependency for {contract}")
        else:
            dependency_api = list(dependency_versions.values())[0]
        try:
            return getattr(dependency_api, contract)
        except AttributeError:
            continue
    raise ConfigError(f"No contract found with name '{contract}'.")


def get_contract_container(contract: str) -> ContractContainer:
    try:
        contract_container = getattr(project, contract)
    except AttributeError:
        # not in root project; check dependencies (e.g. openzeppelin proxies)
        contract_container = _get_dependency_contract_container(contract)

    return contract_container


def get_deployer_account(alias: Optional[str] = None) -> AccountAPI:
    """
    Returns the signing account: the first test account on local networks,
    otherwise the keyfile account named by alias or the deployer environment variable.
    """
    network_name = networks.provider.network.name
    alias = alias or os.environ.get(DEPLOYER_ACCOUNT_ENVVAR)
    if alias is None:
        if is_local_network(network_name):
            return accounts.test_accounts[0]
        raise ConfigError(
            f"Must specify an account alias (or set {DEPLOYER_ACCOUNT_ENVVAR}) "
            f"when deploying to {network_name}"
        )
    return accounts.load(alias)


class ApeChain(ChainClient):
    """
    Chain client backed by the connected ape provider.
    Without an account the client can only read.
    """

    def __init__(
        self, account: Optional[AccountAPI], publish: bool = False, autosign: bool = True
    ):
        self._account = account
        self.publish = publish
        self.network_name = networks.provider.network.name
        self.chain_id = networks.provider.network.chain_id
        if account is not None and autosign and not is_local_network(self.network_name):
            # the passphrase is read from APE_ACCOUNTS_<alias>_PASSPHRASE
            self._account.set_autosign(True)

    @classmethod
    def connect(
        cls, alias: Optional[str] = None, publish: bool = False, read_only: bool = False
    ) -> "ApeChain":
        network_name = networks.provider.network.name
        alias = alias or os.environ.get(DEPLOYER_ACCOUNT_ENVVAR)
        if read_only and alias is None and not is_local_network(network_name):
            return cls(account=None)
        return cls(account=get_deployer_account(alias), publish=publish)

    @property
    def signer(self) -> AccountAPI:
        if self._account is None:
            raise ChainError(f"No deployer account is loaded for {self.network_name}")
        return self._account

    @property
    def account(self) -> Optional[ChecksumAddress]:
        return self._account.address if self._account is not None else None

    @property
    def block_number(self) -> int:
        return chain.blocks.height

    def deploy(self, contract_type: str, *args, libraries: Sequence[Any] = ()) -> Deployed:
        container = get_contract_container(contract_type)
        if libraries:
            compilers.solidity.add_library(*libraries)
        try:
            instance = self.signer.deploy(container, *args, publish=self.publish)
        except ApeException as e:
            raise ChainError(f"Deployment of {contract_type} failed: {e}") from e
        return Deployed(instance=instance, block_number=instance.receipt.block_number)

    def contract_at(self, contract_type: str, address: str) -> Any:
        return get_contract_container(contract_type).at(to_checksum_address(address))

    def transact(self, method: Any, *args) -> Receipt:
        try:
            receipt = method(*args, sender=self.signer)
        except ApeException as e:
            raise ChainError(f"Transaction {method} reverted: {e}") from e
        if receipt.failed:
            raise ChainError(f"Transaction {receipt.txn_hash} failed")
        events = [
            Event(
                name=log.event_name,
                args=dict(log.event_arguments),
                block_number=log.block_number,
            )
            for log in receipt.events
        ]
        return Receipt(txn_hash=receipt.txn_hash, block_number=receipt.block_number, events=events)

    def get_code(self, address: str) -> bytes:
        return bytes(chain.provider.get_code(to_checksum_address(address)))

    def get_storage_at(self, address: str, slot: int) -> bytes:
        return bytes(chain.provider.get_storage_at(address=to_checksum_address(address), slot=slot))

    def get_logs(self, contract: Any, event_name: str, start_block: int, stop_block: int) -> List[Event]:
        contract_event = getattr(contract, event_name)
        try:
            # range() excludes its stop block
            logs = list(contract_event.range(start_block, stop_block + 1))
        except ApeException as e:
            raise ChainError(f"Querying {event_name} logs failed: {e}") from e
        return [
            Event(name=log.event_name, args=dict(log.event_arguments), block_number=log.block_number)
            for log in logs
        ]

    def mine(self, num_blocks: int = 1) -> None:
        chain.mine(num_blocks)


def connect_deployer(
    network: str,
    alias: Optional[str] = None,
    publish: bool = False,
    read_only: bool = False,
) -> Tuple[NetworkConfig, Deployer]:
    """Loads a network's config and records and binds them to the connected ape provider."""
    config = NetworkConfig.for_network(network)
    ape_chain = ApeChain.connect(alias=alias, publish=publish, read_only=read_only)
    environment = Environment.from_config(config, chain=ape_chain, read_only=read_only)
    return config, Deployer(environment)
