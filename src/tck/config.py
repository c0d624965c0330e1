import os
import tomllib
from collections.abc import Mapping
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, PositiveFloat, ValidationError, model_validator

import tck.constants as C
from tck.errors import ConfigError
from tck.harness import RetryPolicy

pkg_root = Path(__file__).parent
config_file = pkg_root / "config.toml"

# network table key -> environment variable that overrides it
ENV_OVERRIDES = {
    "json_rpc_server_url": "JSON_RPC_SERVER_URL",
    "mirror_node_rest_url": "MIRROR_NODE_REST_URL",
    "mirror_node_rest_java_url": "MIRROR_NODE_REST_JAVA_URL",
    "node_ip": "NODE_IP",
    "node_account_id": "NODE_ACCOUNT_ID",
    "mirror_network": "MIRROR_NETWORK",
    "node_timeout": "NODE_TIMEOUT",
    "operator_account_id": "OPERATOR_ACCOUNT_ID",
    "operator_account_private_key": "OPERATOR_ACCOUNT_PRIVATE_KEY",
    "retry_timeout": "TCK_CONVERGENCE_TIMEOUT",
    "retry_interval": "TCK_RETRY_INTERVAL",
}


class NetworkConfig(BaseModel):
    """Everything a session needs to reach the system under test and its read paths."""

    model_config = ConfigDict(frozen=True)

    network: Literal["local", "testnet"] = "local"
    json_rpc_server_url: str
    mirror_node_rest_url: str
    mirror_node_rest_java_url: str | None = None
    node_ip: str | None = None
    node_account_id: str | None = None
    mirror_network: str | None = None
    node_timeout: PositiveFloat | None = None
    operator_account_id: str
    operator_account_private_key: str

    test_timeout: PositiveFloat = C.TEST_TIMEOUT
    rpc_timeout: PositiveFloat = C.RPC_TIMEOUT
    mirror_timeout: PositiveFloat = C.MIRROR_TIMEOUT
    retry_timeout: PositiveFloat = C.CONVERGENCE_TIMEOUT
    retry_interval: PositiveFloat = C.RETRY_INTERVAL

    @model_validator(mode="after")
    def _check(self) -> "NetworkConfig":
        if self.retry_timeout >= self.test_timeout:
            raise ValueError(
                f"convergence budget ({self.retry_timeout}s) must be shorter than "
                f"the per-test timeout ({self.test_timeout}s)"
            )
        if self.network == "testnet" and C.TESTNET_PLACEHOLDER in (
            self.operator_account_id,
            self.operator_account_private_key,
        ):
            raise ValueError("OPERATOR_ACCOUNT_ID and OPERATOR_ACCOUNT_PRIVATE_KEY must be set for testnet")
        return self

    @property
    def is_local(self) -> bool:
        return self.network == "local"

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(timeout=self.retry_timeout, interval=self.retry_interval)

    def setup_params(self) -> dict:
        """Parameters for the service's ``setup`` method."""
        params = {
            "operatorAccountId": self.operator_account_id,
            "operatorPrivateKey": self.operator_account_private_key,
        }
        if self.is_local:
            params |= {
                "nodeIp": self.node_ip,
                "nodeAccountId": self.node_account_id,
                "mirrorNetworkIp": self.mirror_network,
            }
        return params


def load_config(
    network: str | None = None,
    *,
    env: Mapping[str, str] | None = None,
    path: Path | None = None,
) -> NetworkConfig:
    """Build a NetworkConfig from config.toml, overridden by environment variables."""
    env = os.environ if env is None else env
    try:
        cfg = tomllib.loads((path or config_file).read_text())
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigError(f"cannot read config {path or config_file}: {e}") from e

    network = network or env.get("NETWORK") or cfg.get("network", "local")
    if not isinstance(cfg.get(network), dict):
        raise ConfigError(f"unknown network {network!r}")

    values = dict(cfg[network])
    to = cfg.get("timeout", {})
    retry = cfg.get("retry", {})
    values.setdefault("test_timeout", to.get("test", C.TEST_TIMEOUT))
    values.setdefault("rpc_timeout", to.get("rpc", C.RPC_TIMEOUT))
    values.setdefault("mirror_timeout", to.get("mirror", C.MIRROR_TIMEOUT))
    values.setdefault("retry_timeout", retry.get("timeout", C.CONVERGENCE_TIMEOUT))
    values.setdefault("retry_interval", retry.get("interval", C.RETRY_INTERVAL))

    for key, var in ENV_OVERRIDES.items():
        if env.get(var):
            values[key] = env[var]

    try:
        return NetworkConfig(network=network, **values)
    except ValidationError as e:
        raise ConfigError(str(e)) from e
