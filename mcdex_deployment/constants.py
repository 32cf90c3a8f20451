from pathlib import Path

import mcdex_deployment

#
# Filesystem
#

PACKAGE_DIR = Path(mcdex_deployment.__file__).parent
CONFIGS_DIR = PACKAGE_DIR / "configs"
RECORDS_DIR = PACKAGE_DIR / "records"
RECORDS_SUFFIX = ".deployment.json"

#
# Networks
#

BSC = "bsc"
ARB_ONE = "arb-one"
ARB_RINKEBY = "arb-rinkeby"
OPTIMISM_KOVAN = "optimism-kovan"
AVALANCHE_LOCAL = "avalanche-local"
LOCAL = "local"

SUPPORTED_NETWORKS = [BSC, ARB_ONE, ARB_RINKEBY, OPTIMISM_KOVAN, AVALANCHE_LOCAL, LOCAL]

# ape network choices that never need a matching chain id or explorer
LOCAL_NETWORK_NAMES = ["local", "localhost", "hardhat", "anvil", "foundry"]

DEPLOYER_ACCOUNT_ENVVAR = "MCDEX_DEPLOYER"

#
# Contracts
#

OZ_DEPENDENCY_NAME = "openzeppelin"
OZ_DEPENDENCY_VERSION = "4.9.3"

# EIP1967 slots - https://eips.ethereum.org/EIPS/eip-1967
EIP1967_IMPLEMENTATION_SLOT = 0x360894A13BA1A3210667C828492DB98DCA3E2076CC3735A920A3CA505D382BBC
EIP1967_ADMIN_SLOT = 0xB53127684A568B3173AE13B9F8A6016E243E63B6E8EE1178D6A717850B5D6103
EIP1967_BEACON_SLOT = 0xA3F0AD74E5423AEBFD80D3EF4346578335A9A72AEAEE59FF6CB3582B35133D50

# first symbol handed out by SymbolService
RESERVED_SYMBOL_COUNT = 10000

# block count between proposal creation and execution eligibility of an LpGovernor proposal
UPGRADE_DELAY_BLOCKS = 40

DEFAULT_ADMIN_ROLE = b"\x00" * 32
KNOWN_ROLES = ["PRICE_SETTER_ROLE", "MARKET_CLOSER_ROLE", "TERMINATER_ROLE"]

#
# RPC limits
#

# host RPCs reject log queries spanning more blocks than this
FILTER_LOG_STEP = 5000
DEFAULT_BATCH_SIZE = 10
