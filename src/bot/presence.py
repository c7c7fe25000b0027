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

"""Tracking of users currently present in a voice channel or guild."""

import threading
from typing import FrozenSet, Set

UserId = int


class PresenceRegistry:
    """Thread-safe set of user IDs currently present."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._present: Set[UserId] = set()

    def mark_present(self, user_id: UserId) -> None:
        """
        Record that a user joined.

        Args:
            user_id: Discord user ID
        """
        with self._lock:
            self._present.add(user_id)

    def mark_absent(self, user_id: UserId) -> None:
        """
        Record that a user left. No-op if the user was not present.

        Args:
            user_id: Discord user ID
        """
        with self._lock:
            self._present.discard(user_id)

    def is_present(self, user_id: UserId) -> bool:
        with self._lock:
            return user_id in self._present

    def count(self) -> int:
        with self._lock:
            return len(self._present)

    def snapshot(self) -> FrozenSet[UserId]:
        """Return an immutable copy of the present users."""
        with self._lock:
            return frozenset(self._present)
