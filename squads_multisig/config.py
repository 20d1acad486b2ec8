"""Client configuration: RPC endpoint, program id and request settings."""

import os
from dataclasses import dataclass, fields, replace
from typing import Mapping, Optional

import yaml

from .errors import SquadsError

# Solana program addresses
SQUADS_V4_PROGRAM = "SQDS4ep65T869zMMBKyuUq6aD6EgTu8psMjkvj52pCf"
SYSTEM_PROGRAM = "11111111111111111111111111111111"

DEFAULT_RPC_ENDPOINT = "https://api.mainnet-beta.solana.com"
DEFAULT_COMMITMENT = "confirmed"
DEFAULT_REQUEST_TIMEOUT = 30.0


class ConfigError(SquadsError):
    pass


def get_rpc_endpoint(environ: Optional[Mapping[str, str]] = None) -> str:
    """Get RPC endpoint from environment or use default."""
    environ = os.environ if environ is None else environ
    if api_key := environ.get("HELIUS_API_KEY"):
        return f"https://mainnet.helius-rpc.com/?api-key={api_key}"
    if rpc_url := environ.get("SOLANA_RPC_URL"):
        return rpc_url
    return DEFAULT_RPC_ENDPOINT


def mask_api_key(url: str) -> str:
    """Mask API key in URL for display."""
    if "api-key=" in url:
        return url.split("api-key=")[0] + "api-key=***"
    return url


@dataclass(frozen=True)
class ClientConfig:
    rpc_endpoint: str = DEFAULT_RPC_ENDPOINT
    program_id: str = SQUADS_V4_PROGRAM
    commitment: str = DEFAULT_COMMITMENT
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ClientConfig":
        environ = os.environ if environ is None else environ
        return cls(
            rpc_endpoint=get_rpc_endpoint(environ),
            program_id=environ.get("SQUADS_PROGRAM_ID", SQUADS_V4_PROGRAM),
            commitment=environ.get("SQUADS_COMMITMENT", DEFAULT_COMMITMENT),
            request_timeout=float(environ.get("SQUADS_REQUEST_TIMEOUT", DEFAULT_REQUEST_TIMEOUT)),
        )

    @classmethod
    def from_file(cls, path: str, base: Optional["ClientConfig"] = None) -> "ClientConfig":
        """Load settings from a YAML file; keys missing from the file keep `base` values."""
        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Error loading config file {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"Config file {path} must contain a mapping")

        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ConfigError(f"Unknown config keys in {path}: {', '.join(sorted(unknown))}")

        return (base or cls()).with_overrides(**data)

    def with_overrides(self, **overrides) -> "ClientConfig":
        """Return a copy with every non-None override applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        if "request_timeout" in changes:
            changes["request_timeout"] = float(changes["request_timeout"])
        return replace(self, **changes)

    @property
    def display_endpoint(self) -> str:
        return mask_api_key(self.rpc_endpoint)
