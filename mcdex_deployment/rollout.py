"""
Ordered rollouts of the protocol onto one network.

Every step is a deploy-or-skip or a guarded transaction, so a rollout interrupted
halfway can simply be run again: recorded contracts are reused and state that is
already on chain (initializers, whitelists, registered versions) is left alone.
"""
from typing import Any, List, NamedTuple, Optional, Sequence

from eth_utils import to_checksum_address

from mcdex_deployment.constants import DEFAULT_ADMIN_ROLE, RESERVED_SYMBOL_COUNT
from mcdex_deployment.contracts import Contract
from mcdex_deployment.deployer import Deployer
from mcdex_deployment.upgrade import UpgradeOrchestrator, VersionEntry
from mcdex_deployment.utils import print_info

INITIAL_VERSION_DESCRIPTION = "initial version"


class Infrastructure(NamedTuple):
    symbol_service: Any
    pool_creator: Any
    reader: Any
    version: VersionEntry


def _has_admin_role(handle: Any) -> bool:
    """AccessControl initializers grant the default admin role to the caller."""
    return int(handle.getRoleMemberCount(DEFAULT_ADMIN_ROLE)) > 0


def _addresses(values: Optional[Sequence[str]]) -> List[str]:
    return [to_checksum_address(value) for value in values or []]


def whitelist_factory(deployer: Deployer, symbol_service: Any, factory: str) -> None:
    if symbol_service.isWhitelistedFactory(factory):
        print(f"(i) {factory} is already a whitelisted factory; skipping.")
        return
    deployer.transact(symbol_service.addWhitelistedFactory, factory)


def add_keepers(deployer: Deployer, pool_creator: Any, keepers: Sequence[str]) -> None:
    whitelisted = set(_addresses(pool_creator.listKeepers(0, len(keepers) + 100)))
    for keeper in _addresses(keepers):
        if keeper in whitelisted:
            print(f"(i) Keeper {keeper} is already whitelisted; skipping.")
            continue
        deployer.transact(pool_creator.addKeeper, keeper)


def add_guardians(deployer: Deployer, pool_creator: Any, guardians: Sequence[str]) -> None:
    for guardian in _addresses(guardians):
        if pool_creator.isGuardian(guardian):
            print(f"(i) Guardian {guardian} is already added; skipping.")
            continue
        deployer.transact(pool_creator.addGuardian, guardian)


def set_markets(deployer: Deployer, multi_oracle: Any, markets: Sequence[Sequence[Any]]) -> None:
    for index, collateral, underlying_asset in markets:
        index = int(index)
        market = (multi_oracle.collateral(index), multi_oracle.underlyingAsset(index))
        if market == (collateral, underlying_asset):
            print(f"(i) Market {index} is already {collateral}-{underlying_asset}; skipping.")
            continue
        deployer.transact(multi_oracle.setMarket, index, collateral, underlying_asset)


def deploy_infrastructure(deployer: Deployer, constants: Any) -> Infrastructure:
    """
    Deploys the shared contracts, the upgradeable SymbolService and PoolCreator,
    registers the initial pool version and deploys the Reader.

    constants must provide UPGRADE_ADMIN, VAULT and VAULT_FEE_RATE;
    KEEPERS and GUARDIANS are optional address lists.
    """
    upgrade_admin = to_checksum_address(constants.UPGRADE_ADMIN)
    vault = to_checksum_address(constants.VAULT)
    vault_fee_rate = int(constants.VAULT_FEE_RATE)

    # infrastructure
    deployer.deploy_or_skip(Contract.BROKER)
    deployer.deploy_or_skip(Contract.ORACLE_ROUTER_CREATOR)
    deployer.deploy_or_skip(Contract.UNISWAP_V3_ORACLE_ADAPTOR_CREATOR)
    deployer.deploy_or_skip(Contract.UNISWAP_V3_TOOL)
    deployer.deploy_or_skip(Contract.INVERSE_STATE_SERVICE)

    # upgradeable services
    symbol_service = deployer.deploy_as_upgradeable(Contract.SYMBOL_SERVICE, upgrade_admin)
    deployer.initialize_once(symbol_service, RESERVED_SYMBOL_COUNT)

    pool_creator = deployer.deploy_as_upgradeable(Contract.POOL_CREATOR, upgrade_admin)
    deployer.initialize_once(
        pool_creator,
        deployer.address_of(Contract.SYMBOL_SERVICE),
        vault,
        vault_fee_rate,
    )
    whitelist_factory(deployer, symbol_service, pool_creator.address)

    add_keepers(deployer, pool_creator, getattr(constants, "KEEPERS", None) or [])
    add_guardians(deployer, pool_creator, getattr(constants, "GUARDIANS", None) or [])

    # initial version
    liquidity_pool = deployer.deploy_or_skip(Contract.LIQUIDITY_POOL)
    liquidity_pool_hop1 = deployer.deploy_or_skip(Contract.LIQUIDITY_POOL_HOP1)
    governor = deployer.deploy_or_skip(Contract.LP_GOVERNOR)
    orchestrator = UpgradeOrchestrator(deployer, pool_creator=pool_creator)
    version = orchestrator.add_version(
        [liquidity_pool.address, liquidity_pool_hop1.address],
        governor.address,
        0,
        INITIAL_VERSION_DESCRIPTION,
    )

    reader = deployer.deploy_or_skip(
        Contract.READER,
        deployer.address_of(Contract.POOL_CREATOR),
        deployer.address_of(Contract.INVERSE_STATE_SERVICE),
    )
    print_info(f"Infrastructure of {deployer.environment.network} is in place.")
    return Infrastructure(
        symbol_service=symbol_service,
        pool_creator=pool_creator,
        reader=reader,
        version=version,
    )


def deploy_version(deployer: Deployer) -> List[Any]:
    """Deploys fresh liquidity pool implementations, replacing their records."""
    liquidity_pool = deployer.deploy(Contract.LIQUIDITY_POOL)
    liquidity_pool_hop1 = deployer.deploy(Contract.LIQUIDITY_POOL_HOP1)
    print("new liquidity pool imp      =>", liquidity_pool.address)
    print("new liquidity pool imp hop1 =>", liquidity_pool_hop1.address)
    return [liquidity_pool, liquidity_pool_hop1]


def single_oracle_name(market_index: int) -> str:
    return f"{Contract.MCDEX_SINGLE_ORACLE.contract_name}{market_index}"


def deploy_oracles(
    deployer: Deployer,
    upgrade_admin: str,
    markets: Sequence[Sequence[Any]] = (),
) -> List[Any]:
    """
    Deploys the upgradeable MCDEXMultiOracle and one beacon proxied MCDEXSingleOracle
    per market. markets holds (index, collateral, underlying asset) triples.
    """
    upgrade_admin = to_checksum_address(upgrade_admin)
    multi_oracle = deployer.deploy_as_upgradeable(Contract.MCDEX_MULTI_ORACLE, upgrade_admin)
    deployer.initialize_once(multi_oracle, initialized=_has_admin_role)
    set_markets(deployer, multi_oracle, markets)

    single_oracle_template = deployer.deploy_or_skip(Contract.MCDEX_SINGLE_ORACLE)
    beacon = deployer.deploy_or_skip(Contract.UPGRADEABLE_BEACON, single_oracle_template.address)

    single_oracles = list()
    for index, _collateral, _underlying_asset in markets:
        data = single_oracle_template.initialize.encode_input(multi_oracle.address, int(index))
        single_oracle = deployer.deploy_or_skip(
            Contract.BEACON_PROXY,
            beacon.address,
            data,
            name=single_oracle_name(int(index)),
        )
        single_oracles.append(single_oracle)
    return [multi_oracle] + single_oracles


def deploy_tunable_oracle_register(deployer: Deployer, upgrade_admin: str) -> List[Any]:
    """Deploys the TunableOracleRegister and the MultiTunableOracleSetter behind proxies."""
    upgrade_admin = to_checksum_address(upgrade_admin)
    register = deployer.deploy_as_upgradeable(Contract.TUNABLE_ORACLE_REGISTER, upgrade_admin)
    deployer.initialize_once(register, initialized=_has_admin_role)

    setter = deployer.deploy_as_upgradeable(Contract.MULTI_TUNABLE_ORACLE_SETTER, upgrade_admin)
    deployer.initialize_once(setter, initialized=_has_admin_role)
    return [register, setter]
