from pathlib import Path
from typing import Optional

from mcdex_deployment.constants import (
    LOCAL,
    LOCAL_NETWORK_NAMES,
    RECORDS_DIR,
    RECORDS_SUFFIX,
    SUPPORTED_NETWORKS,
)
from mcdex_deployment.errors import ConfigError


def is_local_network(network_name: str) -> bool:
    """Returns True for development chains that are expected to be thrown away."""
    if network_name == LOCAL:
        return True
    # ape reports forks and dev nodes as e.g. "bsc:mainnet-fork" or "ethereum:local"
    suffix = network_name.split(":")[-1]
    return suffix in LOCAL_NETWORK_NAMES or suffix.endswith("-fork")


def validate_network(network_name: str) -> str:
    if network_name not in SUPPORTED_NETWORKS:
        raise ConfigError(
            f"Unsupported network '{network_name}'; expected one of {', '.join(SUPPORTED_NETWORKS)}"
        )
    return network_name


def records_filepath(network_name: str, records_dir: Optional[Path] = None) -> Path:
    """Returns the deployment record file of a network."""
    records_dir = Path(records_dir) if records_dir else RECORDS_DIR
    return records_dir / f"{network_name}{RECORDS_SUFFIX}"
