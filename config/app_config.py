import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class AppConfig:
    # Asterisk AMI Configuration
    ASTERISK_HOST: str = os.getenv("ASTERISK_HOST", "127.0.0.1")
    ASTERISK_PORT: int = int(os.getenv("ASTERISK_PORT", 5038))
    ASTERISK_AMI_USER: str | None = os.getenv("ASTERISK_AMI_USER")
    ASTERISK_AMI_SECRET: str | None = os.getenv("ASTERISK_AMI_SECRET")
    AMI_AUTO_CONNECT: bool = _env_flag("AMI_AUTO_CONNECT") # Connect with the creds above on startup

    # Bridge timings (seconds)
    AMI_CONNECT_TIMEOUT_S: float = float(os.getenv("AMI_CONNECT_TIMEOUT_S", 10))
    AMI_ACTION_TIMEOUT_S: float = float(os.getenv("AMI_ACTION_TIMEOUT_S", 10))
    AMI_LIST_QUERY_TIMEOUT_S: float = float(os.getenv("AMI_LIST_QUERY_TIMEOUT_S", 10))

    # Originate defaults
    DEFAULT_ORIGINATE_CONTEXT: str = os.getenv("DEFAULT_ORIGINATE_CONTEXT", "from-internal")
    DEFAULT_CALLER_ID_NAME: str = os.getenv("DEFAULT_CALLER_ID_NAME", "CRM Call")
    ORIGINATE_RING_TIMEOUT_MS: int = int(os.getenv("ORIGINATE_RING_TIMEOUT_MS", 30000))

    # Redis Configuration (secondary event channel)
    REDIS_HOST: str = os.getenv("REDIS_HOST", "localhost")
    REDIS_PORT: int = int(os.getenv("REDIS_PORT", 6379))
    REDIS_DB: int = int(os.getenv("REDIS_DB", 0))
    REDIS_PASSWORD: str | None = os.getenv("REDIS_PASSWORD") or None # Optional
    AMI_EVENTS_REDIS_ENABLED: bool = _env_flag("AMI_EVENTS_REDIS_ENABLED")
    AMI_EVENTS_REDIS_CHANNEL: str = os.getenv("AMI_EVENTS_REDIS_CHANNEL", "ami_bridge:events")
    REDIS_SOCKET_TIMEOUT_S: float = float(os.getenv("REDIS_SOCKET_TIMEOUT_S", 5))
    REDIS_RELAY_MAX_IN_FLIGHT: int = int(os.getenv("REDIS_RELAY_MAX_IN_FLIGHT", 1000)) # Publishes beyond this are dropped

    # WebSocket event channel
    WS_SUBSCRIBER_QUEUE_SIZE: int = int(os.getenv("WS_SUBSCRIBER_QUEUE_SIZE", 1000))

    # Application Settings
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
    LOG_TO_FILE: bool = _env_flag("LOG_TO_FILE", "true")
    LOG_DIR: str | None = os.getenv("LOG_DIR") # Defaults to <project root>/logs

    # Web Interface Configuration
    WEB_SERVER_HOST: str = os.getenv("WEB_SERVER_HOST", "0.0.0.0")
    WEB_SERVER_PORT: int = int(os.getenv("WEB_SERVER_PORT", 3001))


    def __init__(self):
        # Using print here as logger might not be set up when this class is imported/instantiated
        if self.AMI_AUTO_CONNECT and (not self.ASTERISK_AMI_USER or not self.ASTERISK_AMI_SECRET):
            print("WARNING: AMI_AUTO_CONNECT is set but ASTERISK_AMI_USER or ASTERISK_AMI_SECRET is missing. Auto-connect will be skipped.", flush=True)

# Instantiate the config for easy import elsewhere
app_config = AppConfig()

if __name__ == "__main__":
    print(f"Asterisk Host: {app_config.ASTERISK_HOST}:{app_config.ASTERISK_PORT}")
    print(f"Action timeout: {app_config.AMI_ACTION_TIMEOUT_S}s, list timeout: {app_config.AMI_LIST_QUERY_TIMEOUT_S}s")
    print(f"Redis relay: {'on' if app_config.AMI_EVENTS_REDIS_ENABLED else 'off'} ({app_config.AMI_EVENTS_REDIS_CHANNEL})")
    print(f"Log Level: {app_config.LOG_LEVEL}")
    print(f"Web server: {app_config.WEB_SERVER_HOST}:{app_config.WEB_SERVER_PORT}")
