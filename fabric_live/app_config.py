from pydantic import BaseModel

from fabric_live.shared.config import config


class AppEnvironConfig(BaseModel):
    DEBUG: bool = config.get_bool("DEBUG")

    # Fabric node used until the object's own ingress node is known
    FABRIC_API_URL: str = config.get_str("FABRIC_API_URL", "http://localhost:8008")
    FABRIC_AUTH_TOKEN: str | None = config.get_str("FABRIC_AUTH_TOKEN") or None
    HTTP_TIMEOUT_SECONDS: float = config.get_float("HTTP_TIMEOUT_SECONDS", 30)

    # Stream name table (name -> objectId/libraryId)
    LIVE_CONF_PATH: str = config.get_str("LIVE_CONF_PATH", "liveconf.json")

    # Convergence polling used by start/stop/reset/terminate
    STATUS_MAX_ATTEMPTS: int = config.get_int("STATUS_MAX_ATTEMPTS", 10)
    STATUS_POLL_INTERVAL: float = config.get_float("STATUS_POLL_INTERVAL", 1.0)

    # A running recording with no finalized part for longer than this is stalled
    STALL_THRESHOLD_SECONDS: float = config.get_float("STALL_THRESHOLD_SECONDS", 32.9)


_app_environ_config = AppEnvironConfig()


def get_app_environ_config() -> AppEnvironConfig:
    return _app_environ_config
