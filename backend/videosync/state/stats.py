from __future__ import annotations

from dataclasses import asdict, dataclass


@dataclass
class RelayStats:
    """Process-wide counters; reset only by restarting the relay."""

    total_connections: int = 0
    current_connections: int = 0
    rooms_created: int = 0
    messages_processed: int = 0

    def connection_opened(self) -> None:
        self.total_connections += 1
        self.current_connections += 1

    def connection_closed(self) -> None:
        self.current_connections = max(0, self.current_connections - 1)

    def as_wire(self) -> dict[str, int]:
        data = asdict(self)
        return {
            "totalConnections": data["total_connections"],
            "currentConnections": data["current_connections"],
            "roomsCreated": data["rooms_created"],
            "messagesProcessed": data["messages_processed"],
        }
