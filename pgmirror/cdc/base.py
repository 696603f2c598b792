"""Base types for notification-driven mirror sync"""

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Optional

from ..exceptions import PayloadDecodeError, UnknownChannelError

if TYPE_CHECKING:
    from ..config.tables import TableRegistry


PAYLOAD_SEPARATOR = ":"


class ChangeOperation(Enum):
    """Row operations carried by a change notification"""
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"

    @classmethod
    def parse(cls, value: str) -> Optional["ChangeOperation"]:
        """Return the operation for ``value`` or None if it is not one"""
        try:
            return cls(value.strip())
        except ValueError:
            return None


@dataclass(frozen=True)
class DecodedChange:
    """A notification resolved to a concrete table row"""
    table_name: str
    operation: ChangeOperation
    primary_key_value: str

    def __str__(self) -> str:
        return f"{self.table_name} ({self.operation.value}:{self.primary_key_value})"


@dataclass(frozen=True)
class ChangeNotification:
    """
    Raw notification received on a subscription channel

    The payload wire format is ``"<OPERATION>:<primaryKeyValue>"``. A
    table-qualified ``"<OPERATION>:<table>:<primaryKeyValue>"`` is also
    accepted when the qualifier names the channel's own table.
    """
    channel: str
    raw_payload: str

    def decode(self, registry: "TableRegistry") -> DecodedChange:
        """
        Resolve the notification against the table registry

        Args:
            registry: Registry used to map the channel to its table

        Returns:
            The decoded change

        Raises:
            UnknownChannelError: No table is configured for the channel
            PayloadDecodeError: The payload is malformed
        """
        config = registry.for_channel(self.channel)
        if config is None:
            raise UnknownChannelError(f"Unknown sync channel: {self.channel}")

        payload = self.raw_payload or ""
        if PAYLOAD_SEPARATOR not in payload:
            raise PayloadDecodeError(
                f"Missing '{PAYLOAD_SEPARATOR}' separator in payload {payload!r} "
                f"on channel {self.channel}"
            )

        raw_operation, key = payload.split(PAYLOAD_SEPARATOR, 1)
        operation = ChangeOperation.parse(raw_operation)
        if operation is None:
            raise PayloadDecodeError(
                f"Unknown operation {raw_operation!r} on channel {self.channel}"
            )

        qualifier = f"{config.table_name}{PAYLOAD_SEPARATOR}"
        if key.startswith(qualifier):
            key = key[len(qualifier):]

        key = key.strip()
        if not key:
            raise PayloadDecodeError(
                f"Empty primary key in payload {payload!r} on channel {self.channel}"
            )

        return DecodedChange(
            table_name=config.table_name,
            operation=operation,
            primary_key_value=key
        )


@dataclass
class SyncOutcome:
    """Result of syncing one change; used for stats and logging only"""
    table_name: str
    primary_key_value: str
    operation: str
    success: bool
    duration_ms: float
    error: Optional[str] = None
    skipped: bool = False
