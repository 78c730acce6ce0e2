import os
import json
import logging
from functools import lru_cache
from typing import Optional
from dataclasses import dataclass

logger = logging.getLogger(__name__)

CONFIG_FILE = "config.json"
ENV_PREFIX = "MWB_"
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def mask_sensitive_value(value: str) -> str:
    """Mask sensitive values for logging."""
    if not value or len(value) < 8:
        return "****"
    return value[:4] + "*" * (len(value) - 4)


@dataclass
class AppConfig:
    app_folder_name: str = "MoneyWallet"
    chunk_size: int = 1024 * 1024
    token_dir: str = "."
    google_client_secrets: Optional[str] = None
    google_redirect_uri: str = "http://localhost"
    dropbox_app_key: Optional[str] = None
    dropbox_app_secret: Optional[str] = None
    log_level: str = "INFO"

    @classmethod
    def load(cls, path: str = CONFIG_FILE, load_env_file: bool = True) -> 'AppConfig':
        """Loads configuration from JSON and environment variables."""
        try:
            with open(path, 'r') as f:
                config_data = json.load(f)
            logger.info(f"Configuration loaded from {path}")
        except FileNotFoundError:
            logger.warning(f"Configuration file '{path}' not found. Using defaults.")
            config_data = {}
        except json.JSONDecodeError:
            logger.error(f"Error: Could not decode JSON from '{path}'. Using defaults.")
            config_data = {}
        if not isinstance(config_data, dict):
            logger.error(f"Error: '{path}' does not contain a JSON object. Using defaults.")
            config_data = {}

        config = cls()

        if load_env_file:
            from dotenv import load_dotenv
            if load_dotenv():
                logger.info("Loaded environment variables from .env file")

        env_vars = {
            "APP_FOLDER_NAME": "app_folder_name",
            "CHUNK_SIZE": "chunk_size",
            "TOKEN_DIR": "token_dir",
            "GOOGLE_CLIENT_SECRETS": "google_client_secrets",
            "GOOGLE_REDIRECT_URI": "google_redirect_uri",
            "DROPBOX_APP_KEY": "dropbox_app_key",
            "DROPBOX_APP_SECRET": "dropbox_app_secret",
            "LOG_LEVEL": "log_level",
        }

        for env_name, attr_name in env_vars.items():
            env_value = os.getenv(f"{ENV_PREFIX}{env_name}")
            if env_value is not None:
                setattr(config, attr_name, env_value)
                if any(keyword in attr_name for keyword in ['key', 'secret', 'token']):
                    logger.info(f"Using {ENV_PREFIX}{env_name} from environment: {mask_sensitive_value(env_value)}")
                else:
                    logger.info(f"Using {ENV_PREFIX}{env_name} from environment: {env_value}")
            elif attr_name in config_data:
                config_value = config_data[attr_name]
                setattr(config, attr_name, config_value)
                if attr_name == "dropbox_app_secret":
                    logger.warning(f"Using {attr_name} from config file: {mask_sensitive_value(config_value)}. "
                                   f"Consider moving this to {ENV_PREFIX}{env_name} environment variable.")

        try:
            config.chunk_size = int(config.chunk_size)
        except (TypeError, ValueError):
            logger.error(f"Invalid chunk_size {config.chunk_size!r}. Using default.")
            config.chunk_size = cls.chunk_size
        if config.chunk_size <= 0:
            logger.error(f"chunk_size must be positive, got {config.chunk_size}. Using default.")
            config.chunk_size = cls.chunk_size

        if not config.google_client_secrets:
            logger.debug("Google Drive sign-in disabled: no client secrets file configured.")
        if not config.dropbox_app_key:
            logger.debug("Dropbox sign-in disabled: no app key configured.")
        return config

    def token_path(self, provider: str) -> str:
        return os.path.join(self.token_dir, f"{provider}_tokens.json")


@lru_cache(maxsize=None)
def get_app_config(path: str = CONFIG_FILE) -> AppConfig:
    """Loads the configuration once per path and caches it."""
    return AppConfig.load(path)


def setup_logging(config: AppConfig):
    logging.basicConfig(level=getattr(logging, str(config.log_level).upper(), logging.INFO),
                        format=LOG_FORMAT)
