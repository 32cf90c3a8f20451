class DeploymentError(Exception):
    """Base exception for deployment-related errors."""


class ConfigError(DeploymentError, ValueError):
    """Raised when a network config, override or contract argument is malformed."""


class RecordError(ConfigError):
    """Raised when a deployment record file cannot be trusted."""


class NotDeployedError(DeploymentError, KeyError):
    """Raised when looking up a contract that has no deployment record."""

    def __str__(self):
        # KeyError quotes its argument; keep the message readable
        return str(self.args[0]) if self.args else ""


class ChainError(DeploymentError):
    """Raised when an RPC call or transaction fails or reverts."""


class StaleRecordError(ChainError):
    """Raised when a recorded address has no code on chain."""


class UpgradeError(DeploymentError):
    """Base exception for governance upgrade misuse."""


class UnknownVersionError(UpgradeError):
    """Raised when proposing a version key that was never registered."""


class NotAuthorizedError(UpgradeError):
    """Raised when the proposer lacks proposal rights."""


class TooEarlyError(UpgradeError):
    """Raised when executing a proposal before its delay has elapsed."""
