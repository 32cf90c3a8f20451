from collections import namedtuple
from pathlib import Path
from typing import Any, Dict, Optional

from mcdex_deployment.constants import CONFIGS_DIR
from mcdex_deployment.errors import ConfigError
from mcdex_deployment.networks import is_local_network, validate_network
from mcdex_deployment.utils import _load_yaml


def validate_config(config: Dict) -> None:
    """Checks that a network config carries the keys every deployment script relies on."""
    print("Validating network config...")

    if not isinstance(config, dict):
        raise ConfigError("Network config must be a mapping.")

    deployment = config.get("deployment")
    if not deployment:
        raise ConfigError("deployment is not set in network config.")

    network = deployment.get("network")
    if not network:
        raise ConfigError("network is not set in network config.")
    validate_network(network)

    chain_id = deployment.get("chain_id")
    if chain_id is None:
        raise ConfigError("chain_id is not set in network config.")
    try:
        int(chain_id)
    except (TypeError, ValueError):
        raise ConfigError(f"chain_id '{chain_id}' is not an integer.")

    overrides = config.get("overrides") or {}
    if not isinstance(overrides, dict):
        raise ConfigError("overrides must map contract names to addresses.")

    constants = config.get("constants") or {}
    if not isinstance(constants, dict):
        raise ConfigError("constants must be a mapping.")
    for name in constants:
        if not name.isupper():
            raise ConfigError(f"Constant '{name}' must be upper case.")


class NetworkConfig:
    """Per-network deployment parameters loaded from configs/<network>.yml."""

    def __init__(self, config: Dict[str, Any], path: Optional[Path] = None):
        validate_config(config)
        self.path = path
        self.config = config
        deployment = config["deployment"]
        self.network = deployment["network"]
        self.chain_id = int(deployment["chain_id"])
        self.overrides = dict(config.get("overrides") or {})

        # Little trick to expose constants as attributes (e.g., config.constants.VAULT)
        constants = config.get("constants") or {}
        _Constants = namedtuple("_Constants", list(constants))
        self.constants = _Constants(**constants)

    @classmethod
    def from_yaml(cls, filepath: Path) -> "NetworkConfig":
        filepath = Path(filepath)
        if not filepath.exists():
            raise ConfigError(f"No network config found at {filepath}")
        return cls(config=_load_yaml(filepath), path=filepath)

    @classmethod
    def for_network(cls, network: str, configs_dir: Optional[Path] = None) -> "NetworkConfig":
        configs_dir = Path(configs_dir) if configs_dir else CONFIGS_DIR
        return cls.from_yaml(configs_dir / f"{network}.yml")

    def validate_chain(self, chain_id: int, provider_network: str) -> None:
        """Fails when the connected chain is not the one this config was written for."""
        chain_mismatch = self.chain_id != int(chain_id)
        if chain_mismatch and not is_local_network(provider_network):
            raise ConfigError(
                f"chain_id in network config ({self.chain_id}) does not match "
                f"chain_id of current network ({chain_id})."
            )
