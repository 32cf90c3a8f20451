import pytest
from web3 import Web3

from mcdex_deployment.constants import DEFAULT_ADMIN_ROLE, EIP1967_IMPLEMENTATION_SLOT, FILTER_LOG_STEP
from mcdex_deployment.contracts import Contract
from mcdex_deployment.inspection import Drift, Inspector, block_windows, role_hash
from mcdex_deployment.rollout import deploy_infrastructure
from tests.conftest import DEPLOYER_ADDRESS, VAULT_ADDRESS, VAULT_FEE_RATE, fake_address


@pytest.fixture
def inspector(deployer):
    return Inspector(deployer, batch_size=3)


def test_block_windows():
    assert block_windows(0, 9999) == [(0, 4999), (5000, 9999)]
    assert block_windows(100, 100) == [(100, 100)]
    assert block_windows(10, 9) == []
    assert block_windows(1, 10, step=4) == [(1, 4), (5, 8), (9, 10)]
    with pytest.raises(ValueError):
        block_windows(0, 10, step=0)


def test_windows_cover_range_without_gaps():
    windows = block_windows(11137711, 11156381)
    assert windows[0][0] == 11137711
    assert windows[-1][1] == 11156381
    for (_start, stop), (next_start, _next_stop) in zip(windows, windows[1:]):
        assert next_start == stop + 1
    assert all(stop - start + 1 <= FILTER_LOG_STEP for start, stop in windows)


def test_role_hash():
    assert role_hash(None) == DEFAULT_ADMIN_ROLE
    assert role_hash("DEFAULT_ADMIN_ROLE") == DEFAULT_ADMIN_ROLE
    assert role_hash("PRICE_SETTER_ROLE") == Web3.keccak(text="PRICE_SETTER_ROLE")


def test_reconcile_in_sync(deployer, inspector, proxy_admin):
    deployer.deploy_or_skip(Contract.BROKER)
    deployer.deploy_as_upgradeable(Contract.SYMBOL_SERVICE, proxy_admin.address)
    assert inspector.reconcile() == []


def test_reconcile_reports_drift(chain, deployer, inspector, proxy_admin):
    broker = deployer.deploy_or_skip(Contract.BROKER)
    symbol_service = deployer.deploy_as_upgradeable(Contract.SYMBOL_SERVICE, proxy_admin.address)
    record = deployer.store.get("SymbolService")

    # someone upgraded the proxy outside of this tooling, and the broker vanished
    outside_implementation = fake_address("outside")
    chain.set_slot(symbol_service.address, EIP1967_IMPLEMENTATION_SLOT, outside_implementation)
    chain.destroy(broker.address)

    drifts = inspector.reconcile()
    assert Drift("Broker", "code", broker.address, None) in drifts
    assert (
        Drift("SymbolService", "implementation", record.dependencies.implementation, outside_implementation)
        in drifts
    )
    assert len(drifts) == 2
    # reconciliation only reports
    assert deployer.store.get("SymbolService") == record


def test_role_members(deployer, inspector, proxy_admin):
    oracle = deployer.deploy_as_upgradeable(Contract.MCDEX_MULTI_ORACLE, proxy_admin.address)
    deployer.transact(oracle.initialize)
    setters = [fake_address(f"setter-{i}") for i in range(7)]
    for setter in setters:
        oracle.grant(role_hash("PRICE_SETTER_ROLE"), setter)

    # seven members are read in three batches
    assert inspector.role_members(oracle, "PRICE_SETTER_ROLE") == setters
    assert inspector.role_members(oracle) == [DEPLOYER_ADDRESS]
    assert inspector.role_members(oracle, "TERMINATER_ROLE") == []

    roles = inspector.inspect_roles(oracle, [None, "PRICE_SETTER_ROLE"])
    assert roles == {"DEFAULT_ADMIN_ROLE": [DEPLOYER_ADDRESS], "PRICE_SETTER_ROLE": setters}


def test_scan_events_in_windows(chain, deployer, inspector, constants):
    deploy_infrastructure(deployer, constants)
    pool_creator = deployer.get_deployed_contract(Contract.POOL_CREATOR)
    chain.mine(2 * FILTER_LOG_STEP)

    events = inspector.scan_events(pool_creator, "AddGuardian")
    assert [event.args["guardian"] for event in events] == constants.GUARDIANS

    # the scan starts at the earliest recorded deployment and never spans more than one window
    queries = [query for query in chain.log_queries if query[0] == "AddGuardian"]
    assert queries[0][1] == deployer.store.earliest_block()
    assert queries[-1][2] == chain.block_number
    assert len(queries) == 3


def test_inspect_pool_creator(deployer, inspector, constants, proxy_admin):
    deploy_infrastructure(deployer, constants)

    report = inspector.inspect_pool_creator()
    pool_creator = report["PoolCreator"]
    assert pool_creator["address"] == deployer.address_of(Contract.POOL_CREATOR)
    assert pool_creator["upgradeAdmin"] == proxy_admin.address
    assert pool_creator["poolUpgradeAdmin"] == proxy_admin.address
    assert pool_creator["owner"] == deployer.get_account()
    assert pool_creator["vault"] == VAULT_ADDRESS
    assert pool_creator["vaultFeeRate"] == VAULT_FEE_RATE
    assert pool_creator["keepers"] == constants.KEEPERS
    assert report["SymbolService"]["implementation"] == (
        deployer.store.get("SymbolService").dependencies.implementation
    )


def test_inspect_beacon_proxy(deployer, inspector):
    template = deployer.deploy_or_skip(Contract.MCDEX_SINGLE_ORACLE)
    beacon = deployer.deploy_or_skip(Contract.UPGRADEABLE_BEACON, template.address)
    proxy = deployer.deploy(Contract.BEACON_PROXY, beacon.address, b"", name="MCDEXSingleOracle0")

    assert inspector.inspect_beacon_proxy(proxy.address) == {
        "address": proxy.address,
        "beacon": beacon.address,
        "implementation": template.address,
    }
    assert inspector.inspect_beacon_proxy(template.address)["beacon"] is None
