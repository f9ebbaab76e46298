from codex_relay.core.config import RelayConfig
from codex_relay.core.logging import configure_logging

__all__ = ["RelayConfig", "configure_logging"]
