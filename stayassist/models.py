"""Pydantic models for the payloads returned by the availability MCP tools."""

from __future__ import annotations

from datetime import date

from pydantic import BaseModel, ConfigDict, Field, ValidationError


class AvailableDate(BaseModel):
    year: str
    month: str
    day: str

    def to_date(self) -> date:
        return date(int(self.year), int(self.month), int(self.day))


class RoomAvailability(BaseModel):
    """Free periods for one room; each period is a run of consecutive dates."""

    room_id: str = Field(alias="roomId")
    availability: list[list[AvailableDate]]


class RoomRef(BaseModel):
    room_name: str = Field(alias="roomName")
    room_id: str = Field(alias="roomId")


class Property(BaseModel):
    """A rental property as returned by the availability service.

    Besides the named fields the service adds one key per room (``"0"``,
    ``"1"``, …) holding a :class:`RoomRef`; those land in ``model_extra``.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    name: str
    beds24_prop_id: str = Field(alias="beds24PropId")
    availabilities: list[RoomAvailability]

    def rooms(self) -> list[RoomRef]:
        """Room references from the numbered keys, in key order."""
        extra = self.model_extra or {}
        refs: list[RoomRef] = []
        for key in sorted(extra, key=lambda k: (not k.isdigit(), int(k) if k.isdigit() else 0, k)):
            try:
                refs.append(RoomRef.model_validate(extra[key]))
            except ValidationError:
                continue  # not a room entry
        return refs

    def room_name(self, room_id: str) -> str:
        for ref in self.rooms():
            if ref.room_id == room_id:
                return ref.room_name
        return room_id
