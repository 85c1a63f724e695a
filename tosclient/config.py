"""Environment configuration for the example programs.

The client core never reads the environment for its configuration; only
the example CLI does, through load_from_env().

Environment Variable Format:
    TOS_ENDPOINT=tos-cn-beijing.volces.com
    TOS_REGION=cn-beijing
    TOS_ACCESS_KEY=xxx
    TOS_SECRET_KEY=xxx
"""

import os
from dataclasses import dataclass

ENV_ENDPOINT = "TOS_ENDPOINT"
ENV_REGION = "TOS_REGION"
ENV_ACCESS_KEY = "TOS_ACCESS_KEY"
ENV_SECRET_KEY = "TOS_SECRET_KEY"

# Variables that must be set and non-empty
REQUIRED_VARIABLES = [ENV_ENDPOINT, ENV_ACCESS_KEY, ENV_SECRET_KEY]


class ConfigError(Exception):
    """Raised when configuration loading fails."""

    pass


@dataclass
class EnvConfig:
    """Connection settings for the example programs."""

    endpoint: str
    region: str
    access_key: str
    secret_key: str


def load_from_env() -> EnvConfig:
    """Load connection settings from environment variables.

    Returns:
        EnvConfig populated from TOS_ENDPOINT, TOS_REGION, TOS_ACCESS_KEY
        and TOS_SECRET_KEY. The region may be empty.

    Raises:
        ConfigError: If a required variable is missing or empty.
    """
    for name in REQUIRED_VARIABLES:
        if not os.environ.get(name, "").strip():
            raise ConfigError(f"Missing environment variable: {name}")

    return EnvConfig(
        endpoint=os.environ[ENV_ENDPOINT].strip(),
        region=os.environ.get(ENV_REGION, "").strip(),
        access_key=os.environ[ENV_ACCESS_KEY].strip(),
        secret_key=os.environ[ENV_SECRET_KEY].strip(),
    )
