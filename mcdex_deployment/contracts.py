from enum import Enum
from typing import Any, NamedTuple, Tuple, Union

from web3.auto import w3

from mcdex_deployment.errors import ConfigError

Parameter = Tuple[str, str]  # (name, abi type)


class ContractSpec(NamedTuple):
    """Describes one deployable (or externally supplied) component."""

    name: str
    contract_type: str
    parameters: Tuple[Parameter, ...] = ()
    libraries: Tuple[str, ...] = ()
    upgradeable: bool = False
    preset: bool = False


_POOL_LIBRARIES = ("LiquidityPoolModule", "LiquidityPoolModule2", "OrderModule", "TradeModule")
_HOP1_LIBRARIES = ("AMMModule", "LiquidityPoolModule", "LiquidityPoolModule2", "TradeModule")


class Contract(Enum):
    # proxy admin (when the network does not use an externally owned upgrade admin)
    PROXY_ADMIN = ContractSpec("ProxyAdmin", "ProxyAdmin")

    # infrastructure
    BROKER = ContractSpec("Broker", "Broker")
    ORACLE_ROUTER_CREATOR = ContractSpec("OracleRouterCreator", "OracleRouterCreator")
    UNISWAP_V3_ORACLE_ADAPTOR_CREATOR = ContractSpec(
        "UniswapV3OracleAdaptorCreator", "UniswapV3OracleAdaptorCreator"
    )
    UNISWAP_V3_TOOL = ContractSpec("UniswapV3Tool", "UniswapV3Tool")
    INVERSE_STATE_SERVICE = ContractSpec("InverseStateService", "InverseStateService")
    READER = ContractSpec(
        "Reader",
        "Reader",
        parameters=(("poolCreator_", "address"), ("inverseStateService_", "address")),
    )
    DISPERSE = ContractSpec("Disperse", "Disperse")

    # upgradeable services
    SYMBOL_SERVICE = ContractSpec("SymbolService", "SymbolService", upgradeable=True)
    POOL_CREATOR_MODULE = ContractSpec("PoolCreatorModule", "PoolCreatorModule")
    POOL_CREATOR = ContractSpec(
        "PoolCreator", "PoolCreator", libraries=("PoolCreatorModule",), upgradeable=True
    )

    # liquidity pool libraries
    AMM_MODULE = ContractSpec("AMMModule", "AMMModule")
    COLLATERAL_MODULE = ContractSpec("CollateralModule", "CollateralModule")
    PERPETUAL_MODULE = ContractSpec("PerpetualModule", "PerpetualModule")
    LIQUIDITY_POOL_MODULE = ContractSpec(
        "LiquidityPoolModule",
        "LiquidityPoolModule",
        libraries=("CollateralModule", "AMMModule", "PerpetualModule"),
    )
    LIQUIDITY_POOL_MODULE_2 = ContractSpec(
        "LiquidityPoolModule2",
        "LiquidityPoolModule2",
        libraries=("CollateralModule", "PerpetualModule", "LiquidityPoolModule"),
    )
    ORDER_MODULE = ContractSpec("OrderModule", "OrderModule")
    TRADE_MODULE = ContractSpec(
        "TradeModule",
        "TradeModule",
        libraries=("AMMModule", "LiquidityPoolModule", "LiquidityPoolModule2"),
    )

    # version implementations
    LIQUIDITY_POOL = ContractSpec("LiquidityPool", "LiquidityPool", libraries=_POOL_LIBRARIES)
    LIQUIDITY_POOL_HOP1 = ContractSpec(
        "LiquidityPoolHop1", "LiquidityPoolHop1", libraries=_HOP1_LIBRARIES
    )
    LP_GOVERNOR = ContractSpec("LpGovernor", "LpGovernor")

    # oracles
    MCDEX_MULTI_ORACLE = ContractSpec("MCDEXMultiOracle", "MCDEXMultiOracle", upgradeable=True)
    MCDEX_SINGLE_ORACLE = ContractSpec("MCDEXSingleOracle", "MCDEXSingleOracle")
    UPGRADEABLE_BEACON = ContractSpec(
        "UpgradeableBeacon", "UpgradeableBeacon", parameters=(("implementation_", "address"),)
    )
    BEACON_PROXY = ContractSpec(
        "BeaconProxy", "BeaconProxy", parameters=(("beacon", "address"), ("data", "bytes"))
    )
    TUNABLE_ORACLE_REGISTER = ContractSpec(
        "TunableOracleRegister", "TunableOracleRegister", upgradeable=True
    )
    MULTI_TUNABLE_ORACLE_SETTER = ContractSpec(
        "MultiTunableOracleSetter", "MultiTunableOracleSetter", upgradeable=True
    )

    # externally supplied tokens
    BUSD = ContractSpec("BUSD", "CustomERC20", preset=True)
    USDC = ContractSpec("USDC", "CustomERC20", preset=True)
    WETH9 = ContractSpec("WETH9", "WETH9", preset=True)

    @property
    def spec(self) -> ContractSpec:
        return self.value

    @property
    def contract_name(self) -> str:
        """The registry name used as the deployment record key."""
        return self.value.name

    @property
    def contract_type(self) -> str:
        """The compiled contract type backing this component."""
        return self.value.contract_type

    @property
    def libraries(self) -> Tuple["Contract", ...]:
        return tuple(Contract.from_name(library) for library in self.value.libraries)

    @classmethod
    def from_name(cls, name: Union[str, "Contract"]) -> "Contract":
        if isinstance(name, Contract):
            return name
        for member in cls:
            if member.value.name == name:
                return member
        raise ConfigError(f"Unknown contract '{name}'")

    def bind(self, *args: Any) -> Tuple[Any, ...]:
        """Validates constructor arguments against this contract's parameter shape."""
        parameters = self.value.parameters
        if len(args) != len(parameters):
            raise ConfigError(
                f"Constructor parameters length mismatch - "
                f"{self.contract_name} requires {len(parameters)}, got {len(args)}."
            )
        for position, ((name, abi_type), value) in enumerate(zip(parameters, args)):
            if not w3.is_encodable(abi_type, value):
                raise ConfigError(
                    f"{self.contract_name} constructor param '{name}' at position {position} "
                    f"has a value '{value}' whose type does not match expected ABI type "
                    f"'{abi_type}'"
                )
        return tuple(args)

    def __str__(self):
        return self.contract_name
