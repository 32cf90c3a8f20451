import copy
from collections import namedtuple
from typing import Any, Dict, List, Sequence, Tuple

import pytest
from eth_utils import to_checksum_address
from hexbytes import HexBytes
from web3 import Web3

from mcdex_deployment.chain import EMPTY_SLOT, ChainClient, Deployed, Event, Receipt
from mcdex_deployment.constants import (
    DEFAULT_ADMIN_ROLE,
    EIP1967_ADMIN_SLOT,
    EIP1967_BEACON_SLOT,
    EIP1967_IMPLEMENTATION_SLOT,
    UPGRADE_DELAY_BLOCKS,
)
from mcdex_deployment.contracts import Contract
from mcdex_deployment.deployer import Deployer
from mcdex_deployment.environment import resolve
from mcdex_deployment.errors import ChainError
from mcdex_deployment.upgrade import version_key

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
DEPLOYER_ADDRESS = to_checksum_address("0x1e59ce931b4cfea3fe4b875411e280e173cb7a9c")
VAULT_ADDRESS = to_checksum_address("0x02e8735cd053fc738170011f7ebc4117f285fe9d")
VAULT_FEE_RATE = 150000000000000
PROPOSAL_THRESHOLD = 100


def fake_address(seed: str) -> str:
    return to_checksum_address(Web3.keccak(text=seed)[-20:])


def address_slot(address: str) -> bytes:
    return b"\x00" * 12 + bytes(HexBytes(address))


class Revert(Exception):
    pass


#
# Fake contracts
#


class transaction:
    """Marks a fake contract method as state changing; it receives the sender."""

    def __init__(self, func):
        self.func = func

    def __get__(self, handle, owner=None):
        if handle is None:
            return self
        return BoundTransaction(handle, self.func)


class BoundTransaction:
    def __init__(self, handle, func):
        self.handle = handle
        self.func = func
        self.__name__ = func.__name__
        self.__qualname__ = f"{handle.type_name}.{func.__name__}"

    def __call__(self, *args, sender=None):
        return self.func(self.handle, *args, sender=sender)

    def encode_input(self, *args) -> bytes:
        return f"{self.__name__}{args!r}".encode()


class FakeContract:
    """A typed view on the state stored at one address of the fake chain."""

    def __init__(self, chain: "FakeChain", address: str, type_name: str):
        self.chain = chain
        self.address = to_checksum_address(address)
        self.type_name = type_name

    @property
    def state(self) -> Dict[str, Any]:
        return self.chain.state.setdefault(self.address, {})

    def on_create(self, *args, sender=None):
        self.state["constructor_args"] = list(args)

    def owner(self):
        return self.state.get("owner", ZERO_ADDRESS)

    def _initialize(self, args, sender):
        if self.state.get("initialized"):
            raise Revert("Initializable: contract is already initialized")
        self.state["initialized"] = True
        self.state["owner"] = sender
        self.state["init_args"] = list(args)


class FakeInitializable(FakeContract):
    @transaction
    def initialize(self, *args, sender=None):
        self._initialize(args, sender)


class FakeTransparentProxy(FakeContract):
    def on_create(self, logic, admin, data, sender=None):
        self.chain.set_slot(self.address, EIP1967_IMPLEMENTATION_SLOT, logic)
        self.chain.set_slot(self.address, EIP1967_ADMIN_SLOT, admin)


class FakeProxyAdmin(FakeContract):
    def on_create(self, sender=None):
        self.state["owner"] = sender

    def _check_owner(self, sender):
        if sender != self.owner():
            raise Revert("Ownable: caller is not the owner")

    @transaction
    def upgrade(self, proxy, implementation, sender=None):
        self._check_owner(sender)
        self.chain.set_slot(proxy, EIP1967_IMPLEMENTATION_SLOT, implementation)

    @transaction
    def upgradeAndCall(self, proxy, implementation, data, sender=None):
        self._check_owner(sender)
        self.chain.set_slot(proxy, EIP1967_IMPLEMENTATION_SLOT, implementation)
        if data == b"revert":
            raise Revert("upgrade call reverted")
        self.chain.state.setdefault(proxy, {})["upgrade_call"] = data

    def getProxyImplementation(self, proxy):
        return self.chain.read_address_slot(proxy, EIP1967_IMPLEMENTATION_SLOT)


class FakeSymbolService(FakeInitializable):
    def isWhitelistedFactory(self, factory):
        return factory in self.state.get("factories", [])

    @transaction
    def addWhitelistedFactory(self, factory, sender=None):
        self.state.setdefault("factories", []).append(factory)


class FakeAccessControl(FakeContract):
    def _roles(self) -> Dict[bytes, List[str]]:
        return self.state.setdefault("roles", {})

    def getRoleMemberCount(self, role):
        return len(self._roles().get(bytes(role), []))

    def getRoleMember(self, role, index):
        return self._roles()[bytes(role)][index]

    def grant(self, role, account):
        self._roles().setdefault(bytes(role), []).append(account)

    @transaction
    def initialize(self, *args, sender=None):
        if self.getRoleMemberCount(DEFAULT_ADMIN_ROLE):
            raise Revert("Initializable: contract is already initialized")
        self.grant(DEFAULT_ADMIN_ROLE, sender)


class FakeMultiOracle(FakeAccessControl):
    def _market(self, index):
        return self.state.get("markets", {}).get(int(index), ("", ""))

    def collateral(self, index):
        return self._market(index)[0]

    def underlyingAsset(self, index):
        return self._market(index)[1]

    @transaction
    def setMarket(self, index, collateral, underlying_asset, sender=None):
        self.state.setdefault("markets", {})[index] = (collateral, underlying_asset)


class FakeUpgradeableBeacon(FakeContract):
    def on_create(self, implementation, sender=None):
        self.state["implementation"] = implementation
        self.state["owner"] = sender

    def implementation(self):
        return self.state["implementation"]


class FakeBeaconProxy(FakeContract):
    def on_create(self, beacon, data, sender=None):
        self.chain.set_slot(self.address, EIP1967_BEACON_SLOT, beacon)
        self.state["init_data"] = data


class FakePoolCreator(FakeInitializable):
    @transaction
    def initialize(self, symbol_service, vault, vault_fee_rate, sender=None):
        self._initialize((symbol_service, vault, vault_fee_rate), sender)
        self.state["vault"] = vault
        self.state["vault_fee_rate"] = vault_fee_rate

    def upgradeAdmin(self):
        # pools share the admin of the pool creator itself
        return self.chain.read_address_slot(self.address, EIP1967_ADMIN_SLOT)

    def getVault(self):
        return self.state.get("vault", ZERO_ADDRESS)

    def getVaultFeeRate(self):
        return self.state.get("vault_fee_rate", 0)

    def listKeepers(self, begin, end):
        return self.state.get("keepers", [])[begin:end]

    @transaction
    def addKeeper(self, keeper, sender=None):
        self.state.setdefault("keepers", []).append(keeper)

    def isGuardian(self, guardian):
        return guardian in self.state.get("guardians", [])

    @transaction
    def addGuardian(self, guardian, sender=None):
        self.state.setdefault("guardians", []).append(guardian)
        self.chain.emit(self.address, "AddGuardian", guardian=guardian)

    def _versions(self) -> Dict[bytes, Dict[str, Any]]:
        return self.state.setdefault("versions", {})

    def isVersionKeyValid(self, key):
        return bytes(key) in self._versions()

    def getVersion(self, key):
        return self._versions()[bytes(key)]

    @transaction
    def addVersion(self, implementations, governor, compatibility, note, sender=None):
        key = bytes(version_key(implementations, governor))
        if key in self._versions():
            raise Revert("implementation is already existed")
        self._versions()[key] = {
            "implementations": list(implementations),
            "governor": governor,
            "compatibility": compatibility,
            "note": note,
        }
        self.state["latest_version"] = key

    @transaction
    def createLiquidityPool(self, collateral, collateral_decimals, nonce, init_data, sender=None):
        version = self.getVersion(self.state["latest_version"])
        admin = self.upgradeAdmin()
        pool = self.chain.create(
            "TransparentUpgradeableProxy", version["implementations"][0], admin, b"", sender=sender
        )
        governor = self.chain.create(
            "TransparentUpgradeableProxy", version["governor"], admin, b"", sender=sender
        )
        self.chain.state[governor] = {"pool_creator": self.address, "pool": pool}
        self.state.setdefault("pools", []).append(pool)
        self.chain.emit(
            self.address,
            "CreateLiquidityPool",
            versionKey=self.state["latest_version"],
            liquidityPool=pool,
            governor=governor,
            creator=sender,
            collateral=collateral,
            collateralDecimals=collateral_decimals,
            initData=init_data,
        )


Proposal = namedtuple("Proposal", "proposer startBlock executed canceled versionKey dataPool dataGov")


class FakeLpGovernor(FakeContract):
    """Governor behaviour at a governor proxy; execute upgrades the pool and itself."""

    def balanceOf(self, account):
        return self.state.setdefault("balances", {}).get(account, 0)

    def mint_votes(self, account, amount):
        balances = self.state.setdefault("balances", {})
        balances[account] = balances.get(account, 0) + amount

    def proposalThreshold(self):
        return PROPOSAL_THRESHOLD

    def _proposals(self) -> Dict[int, Dict[str, Any]]:
        return self.state.setdefault("proposals", {})

    def proposalCount(self):
        return len(self._proposals())

    def proposals(self, proposal_id):
        proposal = self._proposals().get(int(proposal_id))
        if proposal is None:
            return Proposal(ZERO_ADDRESS, 0, False, False, b"", b"", b"")
        return Proposal(**proposal)

    def _pool_creator(self) -> FakePoolCreator:
        return FakePoolCreator(self.chain, self.state["pool_creator"], "PoolCreator")

    @transaction
    def proposeToUpgradeAndCall(self, key, data_pool, data_gov, description, sender=None):
        if not self._pool_creator().isVersionKeyValid(key):
            raise Revert("version is not valid")
        if self.balanceOf(sender) < self.proposalThreshold():
            raise Revert("proposer votes below proposal threshold")
        proposal_id = self.proposalCount() + 1
        self._proposals()[proposal_id] = dict(
            proposer=sender,
            startBlock=self.chain.block_number,
            executed=False,
            canceled=False,
            versionKey=bytes(key),
            dataPool=data_pool,
            dataGov=data_gov,
        )
        self.chain.emit(self.address, "ProposalCreated", id=proposal_id, proposer=sender)

    @transaction
    def execute(self, proposal_id, sender=None):
        proposal = self._proposals()[int(proposal_id)]
        if proposal["executed"] or proposal["canceled"]:
            raise Revert("proposal can only be executed once")
        if self.chain.block_number < proposal["startBlock"] + UPGRADE_DELAY_BLOCKS:
            raise Revert("proposal is not yet executable")
        version = self._pool_creator().getVersion(proposal["versionKey"])
        self.chain.set_slot(self.state["pool"], EIP1967_IMPLEMENTATION_SLOT, version["implementations"][0])
        if self.chain.fail_upgrade_call:
            # the pool is already repointed; the whole transaction must roll back
            raise Revert("upgradeAndCall: call reverted")
        self.chain.set_slot(self.address, EIP1967_IMPLEMENTATION_SLOT, version["governor"])
        proposal["executed"] = True

    @transaction
    def cancel(self, proposal_id, sender=None):
        self._proposals()[int(proposal_id)]["canceled"] = True


BEHAVIOURS = {
    "TransparentUpgradeableProxy": FakeTransparentProxy,
    "ProxyAdmin": FakeProxyAdmin,
    "SymbolService": FakeSymbolService,
    "PoolCreator": FakePoolCreator,
    "LpGovernor": FakeLpGovernor,
    "MCDEXMultiOracle": FakeMultiOracle,
    "TunableOracleRegister": FakeAccessControl,
    "MultiTunableOracleSetter": FakeAccessControl,
    "MCDEXSingleOracle": FakeInitializable,
    "UpgradeableBeacon": FakeUpgradeableBeacon,
    "BeaconProxy": FakeBeaconProxy,
}


#
# Fake chain
#


class FakeChain(ChainClient):
    """In-memory chain: every deployment and transaction mines one block."""

    def __init__(self, network_name: str = "local", chain_id: int = 1337):
        self.network_name = network_name
        self.chain_id = chain_id
        self.height = 0
        self.code: Dict[str, bytes] = dict()
        self.storage: Dict[str, Dict[int, bytes]] = dict()
        self.state: Dict[str, Dict[str, Any]] = dict()
        self.logs: List[Tuple[str, Event]] = list()
        self.deployments: List[tuple] = list()
        self.transactions: List[tuple] = list()
        self.log_queries: List[tuple] = list()
        self.fail_deploy_types: List[str] = list()
        self.fail_upgrade_call = False
        self.revert_calls: List[tuple] = list()
        self._nonce = 0
        self._pending_events: List[Tuple[str, Event]] = list()

    @property
    def account(self):
        return DEPLOYER_ADDRESS

    @property
    def block_number(self) -> int:
        return self.height

    def handle(self, contract_type: str, address: str) -> FakeContract:
        behaviour = BEHAVIOURS.get(contract_type, FakeContract)
        return behaviour(self, address, contract_type)

    def create(self, contract_type: str, *args, sender=None) -> str:
        self._nonce += 1
        address = fake_address(f"{contract_type}-{self._nonce}")
        self.code[address] = b"\x60\x80\x60\x40"
        self.handle(contract_type, address).on_create(*args, sender=sender)
        return address

    def deploy(self, contract_type: str, *args, libraries: Sequence[Any] = ()) -> Deployed:
        if contract_type in self.fail_deploy_types:
            raise ChainError(f"Deployment of {contract_type} failed: out of gas")
        self.height += 1
        address = self.create(contract_type, *args, sender=self.account)
        self.deployments.append((contract_type, args, tuple(lib.address for lib in libraries)))
        return Deployed(instance=self.handle(contract_type, address), block_number=self.height)

    def contract_at(self, contract_type: str, address: str) -> FakeContract:
        return self.handle(contract_type, address)

    def _snapshot(self):
        return copy.deepcopy((self.code, self.storage, self.state, self._nonce))

    def transact(self, method: Any, *args) -> Receipt:
        snapshot = self._snapshot()
        self.height += 1
        self._pending_events = list()
        try:
            if (method.__qualname__, args) in self.revert_calls:
                raise Revert("execution reverted")
            method(*args, sender=self.account)
        except Revert as e:
            self.code, self.storage, self.state, self._nonce = snapshot
            raise ChainError(f"Transaction {method.__qualname__} reverted: {e}") from e
        events = [event for _address, event in self._pending_events]
        self.logs.extend(self._pending_events)
        self.transactions.append((method.__qualname__, args))
        return Receipt(txn_hash=f"0x{len(self.transactions):064x}", block_number=self.height, events=events)

    def emit(self, address: str, name: str, **args) -> None:
        event = Event(name=name, args=args, block_number=self.height)
        self._pending_events.append((to_checksum_address(address), event))

    def get_code(self, address: str) -> bytes:
        return self.code.get(to_checksum_address(address), b"")

    def set_slot(self, address: str, slot: int, value: str) -> None:
        self.storage.setdefault(to_checksum_address(address), {})[slot] = address_slot(value)

    def get_storage_at(self, address: str, slot: int) -> bytes:
        return self.storage.get(to_checksum_address(address), {}).get(slot, EMPTY_SLOT)

    def get_logs(self, contract: Any, event_name: str, start_block: int, stop_block: int) -> List[Event]:
        self.log_queries.append((event_name, start_block, stop_block))
        return [
            event
            for address, event in self.logs
            if event.name == event_name
            and address == contract.address
            and start_block <= event.block_number <= stop_block
        ]

    def mine(self, num_blocks: int = 1) -> None:
        self.height += num_blocks

    #
    # Test helpers
    #

    def transaction_names(self) -> List[str]:
        return [name for name, _args in self.transactions]

    def destroy(self, address: str) -> None:
        self.code.pop(to_checksum_address(address), None)


#
# Fixtures
#


@pytest.fixture
def chain():
    return FakeChain()


@pytest.fixture
def records_dir(tmp_path):
    return tmp_path / "records"


@pytest.fixture
def environment(chain, records_dir):
    return resolve(network="local", overrides=None, chain=chain, records_dir=records_dir)


@pytest.fixture
def deployer(environment):
    return Deployer(environment)


@pytest.fixture
def proxy_admin(deployer):
    return deployer.deploy_or_skip(Contract.PROXY_ADMIN)


@pytest.fixture
def constants(proxy_admin):
    Constants = namedtuple("Constants", "UPGRADE_ADMIN VAULT VAULT_FEE_RATE KEEPERS GUARDIANS")
    return Constants(
        UPGRADE_ADMIN=proxy_admin.address,
        VAULT=VAULT_ADDRESS,
        VAULT_FEE_RATE=VAULT_FEE_RATE,
        KEEPERS=[fake_address("keeper-1"), fake_address("keeper-2")],
        GUARDIANS=[fake_address("guardian-1")],
    )
