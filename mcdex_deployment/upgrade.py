"""
Versioned governance upgrades of liquidity pools.

A liquidity pool and its LpGovernor are two proxies upgraded together: the pool creator
registers a version (the pool implementation, its hop module and a governor implementation)
under a content-hash key, token holders propose moving their pool to a key, and once the
delay has elapsed a single execute transaction repoints both proxies and runs their call data.
"""
import time
from enum import Enum
from typing import Any, Dict, List, NamedTuple, Optional, Sequence, Tuple

from eth_typing import ChecksumAddress
from eth_utils import to_checksum_address
from hexbytes import HexBytes
from web3 import Web3

from mcdex_deployment.constants import UPGRADE_DELAY_BLOCKS
from mcdex_deployment.contracts import Contract
from mcdex_deployment.deployer import Deployer
from mcdex_deployment.errors import (
    NotAuthorizedError,
    TooEarlyError,
    UnknownVersionError,
    UpgradeError,
)
from mcdex_deployment.networks import is_local_network
from mcdex_deployment.records import DeploymentRecord, same_address


def version_key(implementations: Sequence[str], governor: str) -> HexBytes:
    """
    keccak256(abi.encodePacked(address[] implementations, address governor)),
    the key PoolCreator.addVersion stores. Implementation order is significant.
    """
    return HexBytes(
        Web3.solidity_keccak(
            ["address[]", "address"],
            [[to_checksum_address(a) for a in implementations], to_checksum_address(governor)],
        )
    )


class VersionEntry(NamedTuple):
    implementations: Tuple[ChecksumAddress, ...]
    governor: ChecksumAddress
    schema_version: int
    description: str = ""

    @property
    def key(self) -> HexBytes:
        return version_key(self.implementations, self.governor)


class PoolGroup(NamedTuple):
    """The coupled proxies of one liquidity pool."""

    pool: ChecksumAddress
    governor: ChecksumAddress
    created_at_block: Optional[int] = None

    @property
    def proxies(self) -> Tuple[ChecksumAddress, ChecksumAddress]:
        return self.pool, self.governor


class ProposalState(Enum):
    PENDING = "Pending"
    EXECUTABLE = "Executable"
    EXECUTED = "Executed"
    CANCELLED = "Cancelled"


class UpgradeProposal(NamedTuple):
    proposal_id: int
    group: PoolGroup
    target_version_key: Optional[HexBytes]
    call_data: Tuple[bytes, bytes]
    description: str
    proposer: ChecksumAddress
    created_at_block: int
    state: ProposalState = ProposalState.PENDING

    def executable_at(self, delay: int) -> int:
        return self.created_at_block + delay

    def state_at(self, block_number: int, delay: int) -> ProposalState:
        if self.state in (ProposalState.EXECUTED, ProposalState.CANCELLED):
            return self.state
        if block_number >= self.executable_at(delay):
            return ProposalState.EXECUTABLE
        return ProposalState.PENDING


class UpgradeOrchestrator:
    """Registers versions on the pool creator and drives LpGovernor upgrade proposals."""

    def __init__(
        self,
        deployer: Deployer,
        pool_creator: Optional[Any] = None,
        delay: int = UPGRADE_DELAY_BLOCKS,
    ):
        self.deployer = deployer
        self.chain = deployer.chain
        if pool_creator is None:
            pool_creator = deployer.get_deployed_contract(Contract.POOL_CREATOR)
        self.pool_creator = pool_creator
        self.delay = delay
        self._versions: Dict[HexBytes, VersionEntry] = dict()
        self._proposals: Dict[Tuple[ChecksumAddress, int], UpgradeProposal] = dict()

    #
    # Versions
    #

    def is_registered(self, key: HexBytes) -> bool:
        key = HexBytes(key)
        return key in self._versions or bool(self.pool_creator.isVersionKeyValid(key))

    def add_version(
        self,
        implementations: Sequence[str],
        governor: str,
        schema_version: int,
        description: str,
    ) -> VersionEntry:
        """Registers a version once; an already registered implementation set is a lookup."""
        entry = VersionEntry(
            implementations=tuple(to_checksum_address(a) for a in implementations),
            governor=to_checksum_address(governor),
            schema_version=int(schema_version),
            description=description,
        )
        key = entry.key
        if self.is_registered(key):
            print(f"(i) Version {key.hex()} is already registered; skipping.")
        else:
            self.deployer.transact(
                self.pool_creator.addVersion,
                list(entry.implementations),
                entry.governor,
                entry.schema_version,
                entry.description,
            )
        self._versions[key] = entry
        return entry

    def get_version(self, key: HexBytes) -> VersionEntry:
        try:
            return self._versions[HexBytes(key)]
        except KeyError:
            raise UnknownVersionError(f"Version {HexBytes(key).hex()} is not known locally")

    #
    # Pools
    #

    def create_liquidity_pool(
        self, collateral: str, collateral_decimals: int, nonce: int, init_data: bytes
    ) -> PoolGroup:
        receipt = self.deployer.transact(
            self.pool_creator.createLiquidityPool,
            to_checksum_address(collateral),
            collateral_decimals,
            nonce,
            init_data,
        )
        events = receipt.events_named("CreateLiquidityPool")
        if not events:
            raise UpgradeError(f"No CreateLiquidityPool event in transaction {receipt.txn_hash}")
        args = events[-1].args
        group = PoolGroup(
            pool=to_checksum_address(args["liquidityPool"]),
            governor=to_checksum_address(args["governor"]),
            created_at_block=receipt.block_number,
        )
        print(f"(i) Created liquidity pool {group.pool} governed by {group.governor}")
        return group

    def track_pool(self, group: PoolGroup, name: str) -> List[DeploymentRecord]:
        """Adds a created pool and its governor to the record store as upgradeable entries."""
        admin = to_checksum_address(self.pool_creator.upgradeAdmin())
        deployed_at = group.created_at_block
        if deployed_at is None:
            deployed_at = self.chain.block_number
        records = []
        for record_name, proxy in ((name, group.pool), (f"{name}Governor", group.governor)):
            implementation = self.deployer.get_implementation(proxy)
            if implementation is None:
                raise UpgradeError(f"Proxy {proxy} has no implementation in its EIP1967 slot")
            record = DeploymentRecord.upgradeable(
                name=record_name,
                address=proxy,
                admin=admin,
                implementation=implementation,
                deployed_at=deployed_at,
            )
            records.append(self.deployer.register(record))
        return records

    #
    # Proposals
    #

    def _key(self, group: PoolGroup, proposal_id: int) -> Tuple[ChecksumAddress, int]:
        return group.governor, int(proposal_id)

    def _governor(self, group: PoolGroup) -> Any:
        return self.deployer.get_contract_at(Contract.LP_GOVERNOR, group.governor)

    def propose_to_upgrade_and_call(
        self,
        group: PoolGroup,
        target_version_key: HexBytes,
        pool_call_data: bytes = b"",
        governor_call_data: bytes = b"",
        description: str = "",
    ) -> UpgradeProposal:
        target_version_key = HexBytes(target_version_key)
        if not self.is_registered(target_version_key):
            raise UnknownVersionError(
                f"Version {target_version_key.hex()} was never added to the pool creator"
            )

        governor = self._governor(group)
        proposer = self.deployer.get_account()
        votes = governor.balanceOf(proposer)
        threshold = governor.proposalThreshold()
        if votes < threshold:
            raise NotAuthorizedError(
                f"{proposer} holds {votes} votes; proposing requires {threshold}"
            )

        receipt = self.deployer.transact(
            governor.proposeToUpgradeAndCall,
            target_version_key,
            pool_call_data,
            governor_call_data,
            description,
        )
        created = receipt.events_named("ProposalCreated")
        proposal_id = created[-1].args["id"] if created else governor.proposalCount()

        proposal = UpgradeProposal(
            proposal_id=int(proposal_id),
            group=group,
            target_version_key=target_version_key,
            call_data=(bytes(pool_call_data), bytes(governor_call_data)),
            description=description,
            proposer=to_checksum_address(proposer),
            created_at_block=receipt.block_number,
        )
        self._proposals[self._key(group, proposal.proposal_id)] = proposal
        print(
            f"(i) Proposal #{proposal.proposal_id} created at block {proposal.created_at_block}; "
            f"executable from block {proposal.executable_at(self.delay)}"
        )
        return proposal

    def get_proposal(self, group: PoolGroup, proposal_id: int) -> UpgradeProposal:
        """Returns a proposal made by this process, or reads it back from the governor."""
        key = self._key(group, proposal_id)
        if key in self._proposals:
            return self._proposals[key]

        onchain = self._governor(group).proposals(proposal_id)
        if onchain.proposer == "0x0000000000000000000000000000000000000000":
            raise UpgradeError(f"Proposal #{proposal_id} does not exist on {group.governor}")
        if onchain.executed:
            state = ProposalState.EXECUTED
        elif onchain.canceled:
            state = ProposalState.CANCELLED
        else:
            state = ProposalState.PENDING
        proposal = UpgradeProposal(
            proposal_id=int(proposal_id),
            group=group,
            target_version_key=None,
            call_data=(b"", b""),
            description="",
            proposer=to_checksum_address(onchain.proposer),
            created_at_block=int(onchain.startBlock),
            state=state,
        )
        self._proposals[key] = proposal
        return proposal

    def state_of(self, group: PoolGroup, proposal_id: int) -> ProposalState:
        proposal = self.get_proposal(group, proposal_id)
        return proposal.state_at(self.chain.block_number, self.delay)

    def execute(self, group: PoolGroup, proposal_id: int) -> UpgradeProposal:
        """
        Sends the single transaction that repoints every proxy of the group and runs their
        call data. A revert leaves the whole group, the proposal and the records as they were.
        """
        proposal = self.get_proposal(group, proposal_id)
        if proposal.state in (ProposalState.EXECUTED, ProposalState.CANCELLED):
            raise UpgradeError(
                f"Proposal #{proposal_id} is {proposal.state.value.lower()} and cannot be executed"
            )

        current_block = self.chain.block_number
        executable_at = proposal.executable_at(self.delay)
        if current_block < executable_at:
            raise TooEarlyError(
                f"Proposal #{proposal_id} is executable from block {executable_at}; "
                f"current block is {current_block}"
            )

        self.deployer.transact(self._governor(group).execute, proposal.proposal_id)

        executed = proposal._replace(state=ProposalState.EXECUTED)
        self._proposals[self._key(group, proposal_id)] = executed
        self._refresh_records(group)
        return executed

    def cancel(self, group: PoolGroup, proposal_id: int) -> UpgradeProposal:
        proposal = self.get_proposal(group, proposal_id)
        if proposal.state in (ProposalState.EXECUTED, ProposalState.CANCELLED):
            raise UpgradeError(
                f"Proposal #{proposal_id} is {proposal.state.value.lower()} and cannot be cancelled"
            )
        self.deployer.transact(self._governor(group).cancel, proposal.proposal_id)
        cancelled = proposal._replace(state=ProposalState.CANCELLED)
        self._proposals[self._key(group, proposal_id)] = cancelled
        return cancelled

    def _refresh_records(self, group: PoolGroup) -> None:
        """Rewrites the recorded implementation of every tracked proxy of the group."""
        store = self.deployer.store
        changed = False
        for proxy in group.proxies:
            record = store.find_by_address(proxy)
            if record is None or not record.is_upgradeable:
                continue
            implementation = self.deployer.get_implementation(proxy)
            if implementation is None or same_address(implementation, record.dependencies.implementation):
                continue
            store.update_implementation(record.name, implementation)
            print(f"(i) {record.name} now points at implementation {implementation}")
            changed = True
        if changed:
            self.deployer.environment.save()

    def wait_for_block(self, target_block: int, poll_interval: float = 5.0) -> int:
        """Blocks until the chain reaches target_block; development chains are mined forward."""
        current_block = self.chain.block_number
        if current_block >= target_block:
            return current_block
        if is_local_network(self.chain.network_name):
            self.chain.mine(target_block - current_block)
            return self.chain.block_number
        while current_block < target_block:
            print(f"(i) Waiting for block {target_block} (current {current_block})...")
            time.sleep(poll_interval)
            current_block = self.chain.block_number
        return current_block
