# darkstore-sim/darkstore_sim/fatigue.py
"""
Agent fatigue model.

Busy agents that have made too many deliveries in a row, or have been active
for too long, lose speed in fixed steps down to MIN_FATIGUE_FACTOR. Agents
idle for long enough regain speed step by step back to 1.0.
"""

from __future__ import annotations

import logging

from . import config
from .models import Agent

logger = logging.getLogger(__name__)


def is_tired(agent: Agent) -> bool:
    """Whether a busy agent has crossed either fatigue threshold."""
    return (
        agent.consecutive_deliveries_since_rest >= config.FATIGUE_CONSECUTIVE_DELIVERIES_THRESHOLD
        or agent.time_continuously_active >= config.FATIGUE_CONTINUOUSLY_ACTIVE_THRESHOLD_MIN
    )


def update_fatigue(agent: Agent, now: float, force: bool = False) -> bool:
    """
    Evaluate fatigue for one agent.

    Busy agents are evaluated every FATIGUE_UPDATE_INTERVAL minutes, available
    agents on every call. `force` evaluates regardless of the interval (used
    the moment an agent finishes a delivery).

    Returns:
        True if the fatigue factor changed
    """
    if not force and not agent.is_available and now % config.FATIGUE_UPDATE_INTERVAL != 0:
        return False

    before = agent.fatigue_factor

    if not agent.is_available:
        if is_tired(agent):
            agent.fatigue_factor = round(
                max(config.MIN_FATIGUE_FACTOR, agent.fatigue_factor - config.FATIGUE_REDUCTION_STEP), 6
            )
    else:
        idle_for = now - agent.time_became_available_at
        if agent.fatigue_factor < 1.0 and idle_for >= config.FATIGUE_RECOVERY_IDLE_TIME_MIN:
            agent.fatigue_factor = round(
                min(1.0, agent.fatigue_factor + config.FATIGUE_RECOVERY_STEP), 6
            )
            agent.consecutive_deliveries_since_rest = 0
            agent.time_became_available_at = now

    if agent.fatigue_factor != before:
        logger.debug(f"[T:{now}] Agent {agent.agent_id} fatigue {before:.2f} -> {agent.fatigue_factor:.2f}")
        return True
    return False
