from typing import Any, Dict, List, NamedTuple, Optional, Sequence, Tuple

from eth_typing import ChecksumAddress
from hexbytes import HexBytes
from web3 import Web3

from mcdex_deployment.batch import run_in_batches
from mcdex_deployment.chain import Event
from mcdex_deployment.constants import DEFAULT_ADMIN_ROLE, DEFAULT_BATCH_SIZE, FILTER_LOG_STEP
from mcdex_deployment.contracts import Contract
from mcdex_deployment.deployer import Deployer
from mcdex_deployment.records import DeploymentRecord, RecordType, same_address
from mcdex_deployment.utils import from_wei, pass_or_warn, print_warning


class Drift(NamedTuple):
    """A recorded value that does not match live chain state."""

    name: str
    field: str
    recorded: Optional[str]
    actual: Optional[str]

    def __str__(self):
        return f"{self.name}.{self.field}: recorded {self.recorded}, on chain {self.actual}"


def block_windows(begin: int, end: int, step: int = FILTER_LOG_STEP) -> List[Tuple[int, int]]:
    """Splits [begin, end] into consecutive inclusive windows of at most step blocks."""
    if step < 1:
        raise ValueError(f"step must be positive, got {step}")
    windows = list()
    start = begin
    while start <= end:
        stop = min(start + step - 1, end)
        windows.append((start, stop))
        start = stop + 1
    return windows


def role_hash(role_name: Optional[str]) -> HexBytes:
    if role_name in (None, "", "DEFAULT_ADMIN_ROLE"):
        return HexBytes(DEFAULT_ADMIN_ROLE)
    return HexBytes(Web3.solidity_keccak(["string"], [role_name]))


class Inspector:
    """Read-only comparison of the record store against live chain state."""

    def __init__(self, deployer: Deployer, batch_size: int = DEFAULT_BATCH_SIZE):
        self.deployer = deployer
        self.chain = deployer.chain
        self.store = deployer.store
        self.batch_size = batch_size

    #
    # Reconciliation
    #

    def _reconcile_record(self, record: DeploymentRecord) -> List[Drift]:
        drifts = list()
        if not self.chain.has_code(record.address):
            drifts.append(Drift(record.name, "code", record.address, None))
            return drifts

        if record.type != RecordType.UPGRADEABLE:
            return drifts

        implementation = self.deployer.get_implementation(record.address)
        if not same_address(implementation, record.dependencies.implementation):
            drifts.append(
                Drift(record.name, "implementation", record.dependencies.implementation, implementation)
            )
        admin = self.deployer.get_admin_of_upgradeable_contract(record.address)
        if not same_address(admin, record.dependencies.admin):
            drifts.append(Drift(record.name, "admin", record.dependencies.admin, admin))
        return drifts

    def reconcile(self) -> List[Drift]:
        """Reports every mismatch between records and chain; drift is never fatal."""
        records = self.store.records()
        calls = [lambda r=record: self._reconcile_record(r) for record in records]
        drifts = [drift for found in run_in_batches(calls, self.batch_size) for drift in found]
        for drift in drifts:
            print_warning(str(drift))
        if not drifts:
            print(f"(i) All {len(records)} records match {self.deployer.environment.network}.")
        return drifts

    #
    # Roles and whitelists
    #

    def role_members(self, contract: Any, role_name: Optional[str] = None) -> List[ChecksumAddress]:
        role = role_hash(role_name)
        count = int(contract.getRoleMemberCount(role))
        calls = [lambda i=index: contract.getRoleMember(role, i) for index in range(count)]
        return list(run_in_batches(calls, self.batch_size))

    def list_keepers(self, pool_creator: Any, limit: int = 100) -> List[ChecksumAddress]:
        return list(pool_creator.listKeepers(0, limit))

    def scan_events(
        self,
        contract: Any,
        event_name: str,
        begin: Optional[int] = None,
        end: Optional[int] = None,
    ) -> List[Event]:
        """Collects events window by window so no single query exceeds the host's range limit."""
        end = self.chain.block_number if end is None else end
        if begin is None:
            begin = self.store.earliest_block()
            begin = end if begin is None else begin
        events = list()
        for start, stop in block_windows(begin, end):
            events.extend(self.chain.get_logs(contract, event_name, start, stop))
        return events

    #
    # Reports
    #

    def _proxy_summary(self, contract: Contract) -> Dict[str, Any]:
        record = self.store.get(contract.contract_name)
        handle = self.deployer.get_deployed_contract(contract)
        implementation = self.deployer.get_implementation(record.address)
        admin = self.deployer.get_admin_of_upgradeable_contract(record.address)
        summary = {
            "address": record.address,
            "implementation": implementation,
            "upgradeAdmin": admin,
            "owner": handle.owner(),
        }
        print(f"\n===={contract.contract_name}====")
        print("address(proxy):", record.address)
        recorded = record.dependencies
        print(
            pass_or_warn("implementation:", recorded is None or same_address(recorded.implementation, implementation)),
            implementation,
        )
        print(pass_or_warn("upgradeAdmin:", recorded is None or same_address(recorded.admin, admin)), admin)
        print("owner:", summary["owner"])
        return summary

    def inspect_pool_creator(self) -> Dict[str, Dict[str, Any]]:
        report = dict()

        pool_creator_summary = self._proxy_summary(Contract.POOL_CREATOR)
        pool_creator = self.deployer.get_deployed_contract(Contract.POOL_CREATOR)
        pool_creator_summary["poolUpgradeAdmin"] = pool_creator.upgradeAdmin()
        pool_creator_summary["keepers"] = self.list_keepers(pool_creator)
        pool_creator_summary["vault"] = pool_creator.getVault()
        pool_creator_summary["vaultFeeRate"] = pool_creator.getVaultFeeRate()
        print("poolUpgradeAdmin (nobody can transfer the owner):", pool_creator_summary["poolUpgradeAdmin"])
        print("whitelist keepers:", pool_creator_summary["keepers"])
        print(
            "vault:",
            pool_creator_summary["vault"],
            "vault fee rate:",
            from_wei(pool_creator_summary["vaultFeeRate"]),
        )
        report[Contract.POOL_CREATOR.contract_name] = pool_creator_summary

        report[Contract.SYMBOL_SERVICE.contract_name] = self._proxy_summary(Contract.SYMBOL_SERVICE)
        return report

    def inspect_roles(self, contract: Any, role_names: Sequence[Optional[str]]) -> Dict[str, List[str]]:
        members = dict()
        for role_name in role_names:
            name = role_name or "DEFAULT_ADMIN_ROLE"
            members[name] = self.role_members(contract, role_name)
            print(f"{name} ({role_hash(role_name).hex()}):")
            for member in members[name]:
                print("    ", member)
        return members

    def inspect_beacon_proxy(self, address: str) -> Dict[str, Optional[str]]:
        beacon = self.deployer.get_beacon(address)
        implementation = None
        if beacon is not None:
            implementation = self.deployer.get_contract_at(
                Contract.UPGRADEABLE_BEACON, beacon
            ).implementation()
        print(f"    address: {address}\n      beacon: {beacon}\n      implementation: {implementation}")
        return {"address": address, "beacon": beacon, "implementation": implementation}
