"""Base entity class for named, identifiable objects."""

from typing import Any
from uuid import NAMESPACE_DNS, UUID, getnode, uuid4, uuid5

from pydantic import BaseModel, ConfigDict, Field


class Entity(BaseModel):
    """Base class for all identifiable objects in the keezer controller.

    Gives each runner, controller, loop and simulator a UUID and a
    human-readable name. Entities are plain pydantic models, so their
    configuration can be dumped to and restored from JSON.
    """

    model_config = ConfigDict(extra="allow", frozen=True)

    uuid: UUID = Field(
        default_factory=uuid4,
        description="Unique identifier for this entity",
    )
    name: str = Field(
        min_length=1, description="Human-readable name for this entity"
    )

    def __init__(self, unique_id: str | None = None, **data: Any) -> None:
        """Initialize Entity with automatic UUID generation.

        Args:
            unique_id: Optional stable identifier, such as a 1-Wire probe
                id or a GPIO line. When given, the UUID is derived from
                this machine and the identifier so that the same piece
                of hardware keeps its UUID across restarts.
            **data: Field values for the entity
        """
        if unique_id is not None and "uuid" not in data:
            machine_id = getnode()
            dns_name = f"{machine_id}.{unique_id}.uuid.keezer.local"
            data["uuid"] = uuid5(NAMESPACE_DNS, dns_name)
        super().__init__(**data)

    def __repr__(self) -> str:
        """Return string representation showing all fields."""
        fields = []
        for field_name, field_value in self.model_dump().items():
            if isinstance(field_value, str):
                fields.append(f"{field_name}='{field_value}'")
            else:
                fields.append(f"{field_name}={field_value}")

        return f"{self.__class__.__name__}({', '.join(fields)})"
