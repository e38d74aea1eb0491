"""Per-stream registry of speaker tags and the players behind them."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class SpeakerMapping:
    speaker_id: str
    player_name: str

    def to_dict(self) -> dict[str, str]:
        return {"speaker_id": self.speaker_id, "player_name": self.player_name}


class SpeakerRegistry:
    """Tracks which diarization tags have been seen and who they belong to.

    A tag counts as known once it has either been observed in a result or been
    mapped to a player, so `observe()` reports each new tag exactly once.
    """

    def __init__(self) -> None:
        self._mappings: dict[str, str] = {}
        self._seen: set[str] = set()

    def observe(self, speaker_id: str) -> bool:
        """Record a tag from a result. Returns True only the first time it is seen."""
        if speaker_id in self._seen or speaker_id in self._mappings:
            return False
        self._seen.add(speaker_id)
        return True

    def map(self, speaker_id: str, player_name: str) -> SpeakerMapping:
        self._mappings[speaker_id] = player_name
        self._seen.add(speaker_id)
        return SpeakerMapping(speaker_id, player_name)

    def name_for(self, speaker_id: str | None) -> str | None:
        if speaker_id is None:
            return None
        return self._mappings.get(speaker_id)

    def display_name(self, speaker_id: str | None) -> str:
        """Player name when mapped, otherwise a readable label for the raw tag."""
        if speaker_id is None:
            return "Unknown"
        return self._mappings.get(speaker_id) or f"Speaker {speaker_id}"

    def mappings(self) -> list[SpeakerMapping]:
        return [SpeakerMapping(sid, name) for sid, name in self._mappings.items()]

    def clear(self) -> None:
        self._mappings.clear()
        self._seen.clear()

    def __len__(self) -> int:
        return len(self._mappings)
