"""The in-flight change description and the migration it belongs to."""

import logging
from dataclasses import dataclass
from typing import Any, Optional


@dataclass(frozen=True)
class MigrationInfo:
    """Identity of the running migration.

    `destination_visitable` is None when the destination cannot read its history.
    """

    origin_label: str
    destination_visitable: Optional[Any] = None


class TransformWork:
    """Holds the change message that transformations read and rewrite."""

    def __init__(self, message, migration_info):
        self._message = message
        self.migration_info = migration_info

    @property
    def message(self):
        return self._message

    @message.setter
    def message(self, value):
        logging.debug(f"Updating change message ({len(self._message)} -> {len(value)} chars).")
        self._message = value

