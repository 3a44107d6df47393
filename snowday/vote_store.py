"""Per-location community tally of closure predictions.

Each client may vote once per location. The tally and the "has voted" flag are
separate keys, updated read-modify-write without locking: concurrent writers
in other processes can lose increments, which is accepted for a best-effort
counter.
"""

from __future__ import annotations

from pydantic import ValidationError

from snowday.domain import CommunityVote, VoteChoice, VoteResult
from snowday.errors import MissingInput, StorageUnavailable
from snowday.kv_store import KeyValueStore
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="vote_store")


def tally_key(location: str) -> str:
    return f"votes_{location.strip()}"


def voted_key(client_id: str, location: str) -> str:
    return f"voted_{client_id}_{location.strip()}"


class VoteStore:
    """Read and increment community votes for a single client identity."""

    def __init__(self, store: KeyValueStore, client_id: str = "local") -> None:
        self.store = store
        self.client_id = client_id

    def _load_tally(self, location: str) -> CommunityVote:
        raw = self.store.get(tally_key(location))
        if raw is None:
            return CommunityVote()
        try:
            return CommunityVote.model_validate(raw)
        except ValidationError:
            logger.warning("Resetting malformed tally", extra={"location": location})
            return CommunityVote()

    def get_tally(self, location: str) -> CommunityVote:
        """Current tally; zeros when absent or when storage is unreachable."""
        try:
            return self._load_tally(location)
        except StorageUnavailable as exc:
            logger.warning("Tally read degraded to empty", extra={"location": location, "error": str(exc)})
            return CommunityVote()

    def _clear_flag(self, location: str) -> None:
        """Undo a voted flag whose tally write failed, so the client can retry."""
        try:
            self.store.delete(voted_key(self.client_id, location))
        except StorageUnavailable as exc:
            logger.warning("Could not clear voted flag", extra={"location": location, "error": str(exc)})

    def has_voted(self, location: str) -> bool:
        try:
            return bool(self.store.get(voted_key(self.client_id, location)))
        except StorageUnavailable:
            return False

    def vote(self, location: str, choice: VoteChoice) -> VoteResult:
        """
        Record one vote for ``location``. Repeat votes from the same client are
        ignored and return the current tally.
        """
        if not (location or "").strip():
            raise MissingInput("A location is required to vote")
        choice = VoteChoice(choice)

        if self.has_voted(location):
            logger.debug("Ignoring repeat vote", extra={"location": location, "client_id": self.client_id})
            return VoteResult(tally=self.get_tally(location), accepted=False, persisted=False)

        try:
            updated = self._load_tally(location).incremented(choice)
        except StorageUnavailable:
            updated = CommunityVote().incremented(choice)
            logger.warning("Vote not persisted (storage unavailable)", extra={"location": location})
            return VoteResult(tally=updated, accepted=True, persisted=False)

        # flag before tally: a half-written vote may be lost but never counted twice
        try:
            self.store.put(voted_key(self.client_id, location), True)
        except StorageUnavailable as exc:
            logger.warning("Vote not persisted", extra={"location": location, "error": str(exc)})
            return VoteResult(tally=updated, accepted=True, persisted=False)

        try:
            self.store.put(tally_key(location), updated.model_dump())
        except StorageUnavailable as exc:
            logger.warning("Vote tally not persisted", extra={"location": location, "error": str(exc)})
            self._clear_flag(location)
            return VoteResult(tally=updated, accepted=True, persisted=False)

        logger.info(
            "Recorded community vote",
            extra={"location": location, "choice": choice.value, "closes": updated.closes, "opens": updated.opens},
        )
        return VoteResult(tally=updated, accepted=True, persisted=True)
