# attendance_engine/services/identity_matcher.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Tuple

from attendance_engine.schemas.participant import (
    IdentityMatchResult,
    MatchedAttendee,
    NormalizedParticipant,
    UnmatchedAttendee,
)
from attendance_engine.services.segment_normalizer import (
    DEFAULT_MERGE_GAP_MINUTES,
    merge_segments,
    normalize_email,
)


@dataclass(frozen=True)
class UserDirectory:
    """
    Known accounts, keyed by normalized email.

    Primary profile emails win over alias emails. An email that points at
    more than one user in the same table is ambiguous and never matches.
    """

    primary: Mapping[str, int] = field(default_factory=dict)
    aliases: Mapping[str, int] = field(default_factory=dict)
    ambiguous: FrozenSet[str] = frozenset()

    @classmethod
    def from_entries(
        cls,
        primary: Iterable[Tuple[str, int]],
        aliases: Iterable[Tuple[str, int]] = (),
    ) -> "UserDirectory":
        ambiguous: set[str] = set()

        def _index(pairs: Iterable[Tuple[str, int]]) -> Dict[str, int]:
            index: Dict[str, int] = {}
            for raw_email, user_id in pairs:
                email = normalize_email(raw_email)
                if email is None:
                    continue
                if email in index and index[email] != user_id:
                    ambiguous.add(email)
                index.setdefault(email, user_id)
            return index

        primary_index = _index(primary)
        alias_index = _index(aliases)
        for email in ambiguous:
            primary_index.pop(email, None)
            alias_index.pop(email, None)

        return cls(primary=primary_index, aliases=alias_index, ambiguous=frozenset(ambiguous))

    def lookup(self, email: Optional[str]) -> Optional[int]:
        key = normalize_email(email)
        if key is None or key in self.ambiguous:
            return None
        if key in self.primary:
            return self.primary[key]
        return self.aliases.get(key)


class IdentityMatcher:
    """
    Resolves normalized participants to known user accounts.

    Steps
    -----
    1) Participants reported under different keys but with the same email
       (several devices, reconnects with a new provider id) are merged.
    2) Each email is looked up exactly: trimmed, case-insensitive, primary
       emails first, then aliases. No fuzzy or partial matching.
    3) Distinct emails resolving to the same user (alias case) are merged
       into one matched attendee.
    4) Everything else is unmatched, keeping the raw email/name.

    Every input participant ends up in exactly one attendee.
    """

    def __init__(
        self,
        directory: UserDirectory,
        merge_gap_minutes: float = DEFAULT_MERGE_GAP_MINUTES,
    ) -> None:
        self.directory = directory
        self.merge_gap_minutes = merge_gap_minutes

    def match(self, participants: Sequence[NormalizedParticipant]) -> IdentityMatchResult:
        by_email: Dict[str, List[NormalizedParticipant]] = {}
        without_email: List[NormalizedParticipant] = []

        for participant in participants:
            email = normalize_email(participant.email)
            if email is None:
                without_email.append(participant)
            else:
                by_email.setdefault(email, []).append(participant)

        by_user: Dict[int, List[NormalizedParticipant]] = {}
        unmatched: List[UnmatchedAttendee] = []

        for email, group in by_email.items():
            merged = self._merge(group, identity_key=email)
            user_id = self.directory.lookup(email)
            if user_id is None:
                unmatched.append(
                    UnmatchedAttendee(
                        email=email,
                        display_name=merged.display_name,
                        participant=merged,
                    )
                )
            else:
                by_user.setdefault(user_id, []).append(merged)

        matched = [
            MatchedAttendee(
                user_id=user_id,
                participant=self._merge(group, identity_key=group[0].identity_key),
            )
            for user_id, group in by_user.items()
        ]

        for participant in without_email:
            unmatched.append(
                UnmatchedAttendee(
                    email=None,
                    display_name=participant.display_name,
                    participant=participant,
                )
            )

        return IdentityMatchResult(matched=tuple(matched), unmatched=tuple(unmatched))

    def _merge(
        self,
        group: Sequence[NormalizedParticipant],
        identity_key: str,
    ) -> NormalizedParticipant:
        if len(group) == 1 and group[0].identity_key == identity_key:
            return group[0]

        return NormalizedParticipant(
            identity_key=identity_key,
            email=next((p.email for p in group if p.email), None),
            display_name=next((p.display_name for p in group if p.display_name), None),
            segments=merge_segments(
                (seg for p in group for seg in p.segments),
                self.merge_gap_minutes,
            ),
        )
