"""AP Pop-Up: join a known WiFi network or fall back to a local Access Point."""

from .config import APPopupConfig, ConfigurationError, load_config
from .controller import ConnectionState, CycleDecision, CycleOutcome, ModeController
from .network import ConnectionProfile, NetworkManagerClient, NetworkManagerError, NMCLIClient
from .version import APP_VERSION

__all__ = [
    "APP_VERSION",
    "APPopupConfig",
    "ConfigurationError",
    "ConnectionProfile",
    "ConnectionState",
    "CycleDecision",
    "CycleOutcome",
    "ModeController",
    "NMCLIClient",
    "NetworkManagerClient",
    "NetworkManagerError",
    "load_config",
]
