"""
fleet_config -- single public entrypoint for billing configuration.

Responsibility:
    ``get_active_config()`` is the only way services obtain billing
    parameters at runtime.  The YAML document lives in
    ``fleet_config/defaults/billing.yaml``; the ``FLEET_BILLING_CONFIG``
    environment variable points at an alternative document.

Architecture position:
    Configuration sits above ``fleet_kernel`` and ``fleet_engines`` and
    below ``fleet_services``.  The kernel and the engines never import
    ``fleet_config``; ``fleet_config.bridges`` translates parameters into
    engine inputs.

Audit relevance:
    Every load emits a ``fleet_config_loaded`` log entry with the config id,
    version and checksum, tying each billing run to the exact parameters
    that priced it.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from fleet_config.loader import load_billing_parameters
from fleet_config.schema import BillingParameters, KmTierDef

_logger = logging.getLogger("fleet_billing.config")

CONFIG_PATH_ENV = "FLEET_BILLING_CONFIG"
DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults" / "billing.yaml"


def get_active_config(config_path: Path | str | None = None) -> BillingParameters:
    """Load and validate the active billing parameters.

    Resolution order: explicit ``config_path``, then ``FLEET_BILLING_CONFIG``,
    then the packaged default document.
    """
    path = Path(config_path or os.environ.get(CONFIG_PATH_ENV) or DEFAULT_CONFIG_PATH)
    params = load_billing_parameters(path)
    _logger.info(
        "fleet_config_loaded",
        extra={
            "config_id": params.config_id,
            "config_version": params.version,
            "checksum": params.checksum,
            "config_path": str(path),
        },
    )
    return params


__all__ = [
    "BillingParameters",
    "KmTierDef",
    "get_active_config",
    "CONFIG_PATH_ENV",
    "DEFAULT_CONFIG_PATH",
]
