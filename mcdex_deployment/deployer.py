from typing import Any, Callable, List, Optional, Union

from eth_typing import ChecksumAddress
from eth_utils import to_checksum_address

from mcdex_deployment.chain import Deployed, Receipt
from mcdex_deployment.constants import (
    EIP1967_ADMIN_SLOT,
    EIP1967_BEACON_SLOT,
    EIP1967_IMPLEMENTATION_SLOT,
)
from mcdex_deployment.contracts import Contract
from mcdex_deployment.environment import Environment
from mcdex_deployment.errors import ChainError, DeploymentError, StaleRecordError
from mcdex_deployment.records import DeploymentRecord, RecordStore, RecordType

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

PROXY_CONTRACT_TYPE = "TransparentUpgradeableProxy"
PROXY_ADMIN_CONTRACT_TYPE = "ProxyAdmin"

ContractLike = Union[Contract, str]


def _describe(method: Any) -> str:
    contract = getattr(method, "contract", None)
    contract_type = getattr(contract, "contract_type", None)
    if contract_type is not None:
        return f"{contract_type.name}[{contract.address[:10]}].{method}"
    return getattr(method, "__qualname__", str(method))


def _has_owner(handle: Any) -> bool:
    """Ownable initializers set the owner; an unset owner means initialize() has not run."""
    return handle.owner() != ZERO_ADDRESS


class Transactor:
    """
    Represents the chain signer plus annotated transaction execution.
    """

    def __init__(self, environment: Environment):
        self.environment = environment
        self.chain = environment.chain

    def get_account(self) -> ChecksumAddress:
        """Returns the transactor account."""
        return self.chain.account

    def transact(self, method: Any, *args) -> Receipt:
        base_message = f"\nTransacting {_describe(method)}"
        if args:
            pretty_args = "\n\t".join(str(arg) for arg in args)
            message = f"{base_message} with arguments:\n\t{pretty_args}"
        else:
            message = f"{base_message} with no arguments"
        print(message)
        return self.chain.transact(method, *args)


class Deployer(Transactor):
    """
    Deploys named contracts of one network, consulting and updating its record store
    so that rerunning a script only performs the steps that have not happened yet.
    """

    def __init__(self, environment: Environment, verify_code: bool = True):
        super().__init__(environment)
        self.verify_code = verify_code
        self._print_deployment_info()

    @property
    def store(self) -> RecordStore:
        return self.environment.store

    def _print_deployment_info(self):
        print(
            f"Account: {self.get_account()}",
            f"Network: {self.environment.network}",
            f"Chain ID: {self.chain.chain_id}",
            f"Records: {self.store.filepath}",
            f"Recorded contracts: {len(self.store)}",
            f"Read only: {self.environment.read_only}",
            sep="\n",
        )

    #
    # Records
    #

    def register(self, record: DeploymentRecord) -> DeploymentRecord:
        """Registers a confirmed deployment and persists it before any later step runs."""
        if self.environment.read_only:
            raise DeploymentError(
                f"Cannot record {record.name}: {self.environment} is read only"
            )
        self.store.upsert(record)
        self.environment.save()
        return record

    def _check_code(self, record: DeploymentRecord) -> None:
        if not self.verify_code or record.type == RecordType.PRESET:
            return
        if not self.chain.has_code(record.address):
            raise StaleRecordError(
                f"{record.name} is recorded at {record.address} (block {record.deployed_at}) "
                f"but no code exists there on {self.environment.network}; "
                f"remove the record from {self.store.filepath} to redeploy it."
            )

    def _handle(self, contract: Contract, address: str) -> Any:
        return self.chain.contract_at(contract.contract_type, to_checksum_address(address))

    def _existing(self, contract: Contract, name: Optional[str] = None) -> Optional[Any]:
        record = self.store.find(name or contract.contract_name)
        if record is None:
            return None
        self._check_code(record)
        print(f"(i) {record.name} already deployed at {record.address}; skipping.")
        return self._handle(contract, record.address)

    #
    # Deployment
    #

    def _check_not_preset(self, contract: Contract, name: str) -> None:
        if contract.spec.preset:
            raise DeploymentError(
                f"{contract} is supplied externally; add it to the network overrides"
            )
        record = self.store.find(name)
        if record is not None and record.type == RecordType.PRESET:
            raise DeploymentError(
                f"{name} is an override at {record.address} and is never redeployed"
            )

    def _link_libraries(self, contract: Contract) -> List[Any]:
        return [self.deploy_or_skip(library) for library in contract.libraries]

    def _deploy_contract(self, contract: Contract, args: tuple) -> Deployed:
        args = contract.bind(*args)
        libraries = self._link_libraries(contract)
        print(f"\nDeploying {contract.contract_type} as {contract.contract_name}...")
        deployed = self.chain.deploy(contract.contract_type, *args, libraries=libraries)
        print(
            f"(i) {contract.contract_name} deployed at {deployed.instance.address} "
            f"(block {deployed.block_number})"
        )
        return deployed

    def deploy_or_skip(self, contract: ContractLike, *args, name: Optional[str] = None) -> Any:
        """
        Returns the recorded contract without sending any transaction,
        or deploys, records and returns it when it has no record yet.
        """
        contract = Contract.from_name(contract)
        existing = self._existing(contract, name=name)
        if existing is not None:
            return existing
        self._check_not_preset(contract, name or contract.contract_name)

        deployed = self._deploy_contract(contract, args)
        self.register(
            DeploymentRecord.plain(
                name=name or contract.contract_name,
                address=deployed.instance.address,
                deployed_at=deployed.block_number,
            )
        )
        return deployed.instance

    def deploy(self, contract: ContractLike, *args, name: Optional[str] = None) -> Any:
        """Always deploys, replacing any record under the same name (e.g. beacon proxies)."""
        contract = Contract.from_name(contract)
        self._check_not_preset(contract, name or contract.contract_name)
        deployed = self._deploy_contract(contract, args)
        self.register(
            DeploymentRecord.plain(
                name=name or contract.contract_name,
                address=deployed.instance.address,
                deployed_at=deployed.block_number,
            )
        )
        return deployed.instance

    def deploy_as_upgradeable(self, contract: ContractLike, admin: str, *args) -> Any:
        """
        Deploys a logic contract behind a transparent proxy administered by admin.
        Calling initialize on the returned proxy is left to the caller.
        """
        contract = Contract.from_name(contract)
        existing = self._existing(contract)
        if existing is not None:
            return existing

        admin = to_checksum_address(admin)
        implementation = self._deploy_contract(contract, args)
        print(f"\nDeploying {PROXY_CONTRACT_TYPE} for {contract.contract_name} (admin {admin})...")
        proxy = self.chain.deploy(
            PROXY_CONTRACT_TYPE, implementation.instance.address, admin, b""
        )
        self.register(
            DeploymentRecord.upgradeable(
                name=contract.contract_name,
                address=proxy.instance.address,
                admin=admin,
                implementation=implementation.instance.address,
                deployed_at=proxy.block_number,
            )
        )
        print(
            f"\nWrapping {contract.contract_name} into {PROXY_CONTRACT_TYPE} "
            f"at {proxy.instance.address}."
        )
        return self._handle(contract, proxy.instance.address)

    def initialize_once(
        self,
        handle: Any,
        *args,
        initialized: Callable[[Any], bool] = _has_owner,
    ) -> Optional[Receipt]:
        """Calls initialize on a proxy unless a previous run already did."""
        if initialized(handle):
            print(f"(i) {handle.address} is already initialized; skipping.")
            return None
        return self.transact(handle.initialize, *args)

    def upgrade(self, contract: ContractLike, *args, data: bytes = b"") -> Any:
        """
        Deploys a new logic contract and points the recorded proxy at it through its proxy admin.
        """
        contract = Contract.from_name(contract)
        record = self.store.get(contract.contract_name)
        if not record.is_upgradeable:
            raise DeploymentError(f"{contract} is a {record.type.value} record, not upgradeable")

        proxy_address = to_checksum_address(record.address)
        admin_address = self.get_admin_of_upgradeable_contract(proxy_address)
        if admin_address is None:
            raise ChainError(
                f"Admin slot for contract at {proxy_address} is empty. "
                "Are you sure this is an EIP1967-compatible proxy?"
            )
        implementation = self._deploy_contract(contract, args).instance
        proxy_admin = self.chain.contract_at(PROXY_ADMIN_CONTRACT_TYPE, admin_address)
        if data:
            self.transact(proxy_admin.upgradeAndCall, proxy_address, implementation.address, data)
        else:
            self.transact(proxy_admin.upgrade, proxy_address, implementation.address)

        self.store.update_implementation(contract.contract_name, implementation.address)
        self.environment.save()
        return self._handle(contract, proxy_address)

    #
    # Lookups
    #

    def address_of(self, contract: ContractLike) -> ChecksumAddress:
        contract = Contract.from_name(contract)
        return to_checksum_address(self.store.get(contract.contract_name).address)

    def get_deployed_contract(self, contract: ContractLike) -> Any:
        contract = Contract.from_name(contract)
        return self._handle(contract, self.address_of(contract))

    def get_contract_at(self, contract: ContractLike, address: str) -> Any:
        contract_type = contract.contract_type if isinstance(contract, Contract) else contract
        return self.chain.contract_at(contract_type, to_checksum_address(address))

    #
    # On-chain proxy metadata (read from storage, never from records)
    #

    def get_implementation(self, proxy_address: str) -> Optional[ChecksumAddress]:
        return self.chain.read_address_slot(proxy_address, EIP1967_IMPLEMENTATION_SLOT)

    def get_admin_of_upgradeable_contract(self, proxy_address: str) -> Optional[ChecksumAddress]:
        return self.chain.read_address_slot(proxy_address, EIP1967_ADMIN_SLOT)

    def get_beacon(self, proxy_address: str) -> Optional[ChecksumAddress]:
        return self.chain.read_address_slot(proxy_address, EIP1967_BEACON_SLOT)
