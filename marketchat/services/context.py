from dataclasses import dataclass, field
from uuid import UUID

from marketchat.core.config import Settings, settings as default_settings
from marketchat.db import DataStore
from marketchat.notifications import LoggingNotifier, Notifier
from marketchat.realtime import LocalRealtimeHub
from marketchat.storage import LocalStorageClient


@dataclass
class SessionContext:
    """Everything scoped to one signed-in user's session.

    Passed explicitly to the coordinator and tracker so several simulated
    sessions can share a store and hub in one process.
    """

    user_id: UUID
    store: DataStore
    storage: LocalStorageClient | None = None
    notifier: Notifier = field(default_factory=LoggingNotifier)
    settings: Settings = field(default_factory=lambda: default_settings)

    @property
    def hub(self) -> LocalRealtimeHub:
        return self.store.hub
