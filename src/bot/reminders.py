# Copyright (c) 2025 Stephen Clau
#
# This file is part of Hydration Bot.
#
# Hydration Bot is dual-licensed:
#
# 1. GNU Affero General Public License v3.0 (AGPL-3.0)
#    See LICENSE file for full terms
#
# 2. Commercial License
#    For proprietary use without AGPL requirements
#    Contact: licensing@laudiversified.com
#
# SPDX-License-Identifier: AGPL-3.0-only OR Commercial

"""Opt-in reminder bookkeeping.

Each opted-in user maps to the monotonic timestamp of their last reminder
(or of the opt-in itself). The scheduler calls sweep() once per tick.
"""

import threading
from typing import Dict, List

import structlog

logger = structlog.get_logger()

UserId = int

OPT_IN_ACK = "Enabled drate reminders"
OPT_OUT_ACK = "Disabled drate reminders"


class ReminderRegistry:
    """Thread-safe mapping of user ID to last-reminded timestamp."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._last_reminded: Dict[UserId, float] = {}

    def opt_in(self, user_id: UserId, now: float) -> str:
        """
        Enable reminders for a user, stamping them with the current time.

        Opting in again overwrites the previous stamp.

        Args:
            user_id: Discord user ID
            now: Current monotonic time in seconds

        Returns:
            Acknowledgement text for the user
        """
        with self._lock:
            self._last_reminded[user_id] = now
        logger.info("reminders_enabled", user_id=user_id)
        return OPT_IN_ACK

    def opt_out(self, user_id: UserId) -> str:
        """
        Disable reminders for a user. No-op if they never opted in.

        Args:
            user_id: Discord user ID

        Returns:
            Acknowledgement text for the user
        """
        with self._lock:
            removed = self._last_reminded.pop(user_id, None) is not None
        logger.info("reminders_disabled", user_id=user_id, was_enabled=removed)
        return OPT_OUT_ACK

    def sweep(self, now: float, threshold: float) -> List[UserId]:
        """
        Select users due for a reminder and restamp them.

        A user is due when more than ``threshold`` seconds have passed since
        their stamp. Due users are restamped to ``now`` before this returns,
        so a failed delivery does not re-fire on the next tick.

        Args:
            now: Current monotonic time in seconds
            threshold: Minimum seconds between reminders

        Returns:
            New list of due user IDs (order unspecified)
        """
        due: List[UserId] = []
        with self._lock:
            for user_id, stamp in self._last_reminded.items():
                if now - stamp > threshold:
                    due.append(user_id)
            for user_id in due:
                self._last_reminded[user_id] = now

        if due:
            logger.debug("reminder_sweep_selected", count=len(due))
        return due

    def is_opted_in(self, user_id: UserId) -> bool:
        with self._lock:
            return user_id in self._last_reminded

    def count(self) -> int:
        with self._lock:
            return len(self._last_reminded)
