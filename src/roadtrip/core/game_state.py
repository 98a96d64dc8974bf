"""Core game state data structures."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .enums import GamePhase, Proximity


@dataclass
class Player:
    """A player riding along in the car."""

    name: str
    score: int = 0
    is_leader: bool = False  # only the leader may reroll, skip or end

    def matches(self, name: str) -> bool:
        """Case-insensitive name comparison."""
        return self.name.strip().lower() == (name or "").strip().lower()

    def to_wire(self) -> Dict[str, Any]:
        return {"name": self.name, "score": self.score, "isLeader": self.is_leader}


@dataclass
class Round:
    """One "I spy" clue: a letter, its answer and up to four hints."""

    letter: str = ""
    answer: str = ""
    hints: List[str] = field(default_factory=list)
    hints_revealed: int = 0
    proximity: Proximity = Proximity.REGION
    nearby_location: Optional[str] = None
    essay: Optional[str] = None
    answer_revealed: bool = False

    @property
    def in_progress(self) -> bool:
        """True once a start_round has supplied an answer."""
        return bool(self.answer)

    @property
    def visible_hints(self) -> List[str]:
        return self.hints[: self.hints_revealed]

    def to_wire(self, include_essay: bool = True) -> Dict[str, Any]:
        """
        Wire representation of the round.

        The essay is left out of agent requests: the model wrote it already
        and sending it back only costs tokens.
        """
        if not self.in_progress:
            return {}
        data: Dict[str, Any] = {
            "letter": self.letter,
            "answer": self.answer,
            "hints": list(self.hints),
            "hintsRevealed": self.hints_revealed,
            "proximity": self.proximity.value,
            "nearbyLocation": self.nearby_location,
            "answerRevealed": self.answer_revealed,
        }
        if include_essay:
            data["essay"] = self.essay
        return data


@dataclass
class Location:
    """Last known GPS fix plus coarse place names."""

    latitude: Optional[float] = None
    longitude: Optional[float] = None
    city: str = ""
    county: str = ""
    region: str = ""

    @property
    def has_fix(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    def describe(self) -> str:
        """
        Human readable place.

        Falls back to raw coordinates when geocoding failed, and to
        "Unknown" when there is no fix at all.
        """
        names = [part for part in (self.city, self.county, self.region) if part]
        if self.city and self.region:
            return ", ".join(names)
        if self.has_fix:
            return f"{self.latitude:.4f}, {self.longitude:.4f}"
        if names:
            return ", ".join(names)
        return "Unknown"

    def to_wire(self) -> Dict[str, Any]:
        return {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "city": self.city,
            "county": self.county,
            "region": self.region,
        }


@dataclass
class GameState:
    """Complete game state for one session."""

    phase: GamePhase = GamePhase.SETUP_INTRO
    players: List[Player] = field(default_factory=list)
    round_number: int = 0
    category: Optional[str] = None
    current_round: Round = field(default_factory=Round)
    location: Location = field(default_factory=Location)

    @property
    def leader(self) -> Optional[Player]:
        for player in self.players:
            if player.is_leader:
                return player
        return None

    def get_player_by_name(self, name: str) -> Optional[Player]:
        """Get player by name, ignoring case and surrounding whitespace."""
        for player in self.players:
            if player.matches(name):
                return player
        return None

    def needs_clue(self) -> bool:
        """
        True when the agent picked a category but never started a round.

        Only meaningful outside the opening phase; during setup the agent is
        still greeting players.
        """
        return (
            bool(self.category)
            and not self.current_round.in_progress
            and self.phase != GamePhase.SETUP_INTRO
        )

    def snapshot(self) -> Dict[str, Any]:
        """State as sent to the game master (round essay stripped)."""
        return {
            "phase": self.phase.value,
            "players": [p.to_wire() for p in self.players],
            "roundNumber": self.round_number,
            "category": self.category,
            "currentRound": self.current_round.to_wire(include_essay=False),
            "location": self.location.to_wire(),
        }
