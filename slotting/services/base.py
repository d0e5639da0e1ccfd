"""Common base for slotting services."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

from slotting.config import SlottingSettings
from slotting.models.levels import LevelNaming, default_naming
from slotting.store.base import SlottingStore

logger = logging.getLogger(__name__)


class BaseService(ABC):
    """Holds the collaborators every service needs; all of them are injected."""

    def __init__(
        self,
        service_name: str,
        store: SlottingStore,
        settings: Optional[SlottingSettings] = None,
        naming: Optional[LevelNaming] = None,
    ):
        self.service_name = service_name
        self.store = store
        self.settings = settings or SlottingSettings()
        self.naming = naming or default_naming

        logger.debug("Service started: %s (store: %s)", service_name, type(store).__name__)

    @abstractmethod
    def process(self, *args: Any, **kwargs: Any) -> Any:
        """Main entry point of the service."""
        ...
