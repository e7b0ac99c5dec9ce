"""Qualification state machine: human consultant vs. automated agent."""

from __future__ import annotations

from enum import Enum

from sdr.intent import Intent, asked_preference, classify_preference


class QualificationState(str, Enum):
    INIT = "INIT"
    AWAITING_PREFERENCE = "AWAITING_PREFERENCE"
    QUALIFIED_AGENT = "QUALIFIED_AGENT"
    QUALIFIED_HUMAN = "QUALIFIED_HUMAN"

    @property
    def asked_about_preference(self) -> bool:
        return self is not QualificationState.INIT

    @property
    def completed(self) -> bool:
        return self is QualificationState.QUALIFIED_AGENT

    @classmethod
    def from_flags(cls, asked: bool, completed: bool) -> "QualificationState":
        """Rebuild a state from the legacy boolean pair stored by older records."""
        if completed:
            return cls.QUALIFIED_AGENT
        if asked:
            return cls.AWAITING_PREFERENCE
        return cls.INIT

    @classmethod
    def parse(cls, value, *, asked: bool = False, completed: bool = False) -> "QualificationState":
        try:
            return cls(str(value))
        except ValueError:
            return cls.from_flags(asked, completed)


def advance(state: QualificationState, user_message: str, ai_reply: str) -> QualificationState:
    """Apply one turn.

    The user's choice is read against the state held before this turn, so a
    reply to the preference question only counts once the question was asked.
    The assistant's own question moves INIT to AWAITING_PREFERENCE afterwards.
    A customer who asked for a human keeps the question open and may still
    hand the conversation back to the agent. QUALIFIED_AGENT is final.
    """
    nxt = state
    if state is QualificationState.AWAITING_PREFERENCE:
        choice = classify_preference(user_message)
        if choice is Intent.CHOOSE_HUMAN:
            nxt = QualificationState.QUALIFIED_HUMAN
        elif choice is Intent.CHOOSE_AGENT:
            nxt = QualificationState.QUALIFIED_AGENT
    elif state is QualificationState.QUALIFIED_HUMAN:
        if classify_preference(user_message) is Intent.CHOOSE_AGENT:
            nxt = QualificationState.QUALIFIED_AGENT
    if nxt is QualificationState.INIT and asked_preference(ai_reply):
        nxt = QualificationState.AWAITING_PREFERENCE
    return nxt
