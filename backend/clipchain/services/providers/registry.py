"""Provider registry for the gateway.

Picks the live Kling provider when its credentials are configured and the
stateless simulation backend otherwise.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

from clipchain.services.providers.base import VideoProvider

if TYPE_CHECKING:
    from clipchain.config import Settings

logger = logging.getLogger(__name__)


def has_live_credentials(config: "Settings") -> bool:
    """Return True if both Kling keys are set."""
    return bool(config.kling.access_key and config.kling.secret_key)


def get_provider(config: Optional["Settings"] = None) -> VideoProvider:
    """Return the provider the gateway should serve.

    Routing logic:
    - Kling access + secret keys configured → KlingProvider
    - anything else → SimulationBackend

    Args:
        config: Settings to read; defaults to the module-level settings.

    Returns:
        Configured VideoProvider instance ready for use.
    """
    if config is None:
        from clipchain.config import settings as config

    if has_live_credentials(config):
        from clipchain.services.providers.kling import KlingProvider

        logger.info("Using Kling provider at %s", config.kling.base_url)
        return KlingProvider(config.kling)

    from clipchain.services.providers.simulation import SimulationBackend

    logger.info(
        "No Kling credentials configured; serving simulated jobs (%.0fs delay)",
        config.simulation.generation_delay_seconds,
    )
    return SimulationBackend(
        generation_delay_seconds=config.simulation.generation_delay_seconds,
        sample_video_url=config.simulation.sample_video_url,
    )
