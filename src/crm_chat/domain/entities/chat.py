from __future__ import annotations

from dataclasses import dataclass, field

from crm_chat.domain.value_objects.enums import ChatType


@dataclass(frozen=True, slots=True)
class Chat:
    id: str
    type: ChatType
    name: str | None
    created_at: int
    participant_ids: list[str] = field(default_factory=list)
    participant_names: dict[str, str] = field(default_factory=dict)
    last_message: str | None = None
    last_message_sender: str | None = None
    last_message_time: int | None = None

    @property
    def is_group(self) -> bool:
        return self.type == ChatType.GROUP

    def has_participant(self, user_id: str) -> bool:
        # The group chat implicitly includes everyone.
        return self.is_group or user_id in self.participant_ids

    def other_participant_id(self, viewer_id: str) -> str | None:
        if self.is_group:
            return None
        for participant_id in self.participant_ids:
            if participant_id != viewer_id:
                return participant_id
        return None

    def display_name_for(self, viewer_id: str) -> str:
        """Label shown to ``viewer_id``, resolved from the names stored at creation."""
        if self.is_group:
            return self.name or "Group Chat"
        other_id = self.other_participant_id(viewer_id)
        if other_id is None:
            return self.name or "Direct Chat"
        return self.participant_names.get(other_id, other_id)
