"""Lock key schema for fleetlock.

Key format: {key_prefix}lock:{name}

Where:
- key_prefix: optional deployment-wide namespace applied by the store client
- lock: fixed namespace separating lock records from other keys
- name: caller-supplied logical lock name (e.g. "cron:daily-sync")
"""

from __future__ import annotations


class InvalidLockRequest(ValueError):
    """Raised when a caller passes an unusable lock name or TTL."""


class LockKeys:
    """Lock key generator following a consistent naming convention."""

    PREFIX = "lock"

    @classmethod
    def validate_name(cls, name: str) -> str:
        """Return the name unchanged, or raise if it cannot name a lock."""
        if not isinstance(name, str) or not name.strip():
            raise InvalidLockRequest(f"Lock name must be a non-empty string, got {name!r}")
        return name

    @classmethod
    def lock(cls, name: str) -> str:
        """Key for the lock record guarding ``name``."""
        return f"{cls.PREFIX}:{cls.validate_name(name)}"

    @classmethod
    def parse(cls, key: str) -> str | None:
        """Return the logical lock name of a lock key.

        Only the first separator is significant, so names may themselves
        contain colons ("lock:cron:sync" parses to "cron:sync").

        Returns:
            The lock name, or None if the key is not a lock key.
        """
        prefix, sep, name = key.partition(":")
        if prefix != cls.PREFIX or not sep or not name:
            return None
        return name
