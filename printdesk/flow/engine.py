"""
printdesk/flow/engine.py

Purpose: Conversation engine

- Decides the next state for (current state, input token)
- Selects the content and quick-reply options to show
- Pure: no database, no network, never raises for user input
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional, Tuple

from printdesk.flow.grammar import MenuGrammar
from printdesk.utils.constants import (
    ATTACHMENT_RECEIVED_MESSAGE,
    STATUS_COMMAND,
    STATUS_MESSAGE,
    UNMATCHED_INPUT_MESSAGE,
    VERSION_COMMAND,
    VERSION_MESSAGE,
)

# A special command receives the current state and returns the reply text
SpecialCommand = Callable[[str], str]


class DecisionOutcome(str, Enum):
    TRANSITION = "transition"
    UNMATCHED = "unmatched"
    COMMAND = "command"
    GREETING = "greeting"
    ATTACHMENT = "attachment"


@dataclass(frozen=True)
class Decision:
    """
    Result of one engine step.

    `next_state` is only a proposal; it is durable once the store has
    accepted it.
    """
    next_state: str
    content: str
    transitioned: bool
    offered_options: Tuple[str, ...]
    outcome: DecisionOutcome

    @property
    def unmatched(self) -> bool:
        return self.outcome == DecisionOutcome.UNMATCHED


DEFAULT_SPECIAL_COMMANDS: Dict[str, SpecialCommand] = {
    STATUS_COMMAND: lambda state: STATUS_MESSAGE.format(state=state),
    VERSION_COMMAND: lambda state: VERSION_MESSAGE,
}


class ConversationEngine:
    """
    Interprets a MenuGrammar.
    """

    def __init__(
        self,
        grammar: MenuGrammar,
        special_commands: Optional[Dict[str, SpecialCommand]] = None,
        unmatched_message: str = UNMATCHED_INPUT_MESSAGE,
    ):
        self.grammar = grammar
        self.special_commands = dict(
            DEFAULT_SPECIAL_COMMANDS if special_commands is None else special_commands
        )
        self.unmatched_message = unmatched_message

    def decide(self, current_state: str, input_token: str) -> Decision:
        """
        Computes what should happen when `input_token` arrives in `current_state`.

        Args:
            current_state: The user's stored state label
            input_token: Typed text or quick-reply payload (exact match)

        Returns:
            Decision; unmatched input is a normal result with the state unchanged
        """
        command = self.special_commands.get(input_token)
        if command is not None:
            return Decision(
                next_state=current_state,
                content=command(current_state),
                transitioned=False,
                offered_options=self.grammar.available_transitions(current_state),
                outcome=DecisionOutcome.COMMAND,
            )

        destination = self.grammar.resolve(current_state, input_token)

        if destination is None:
            return Decision(
                next_state=current_state,
                content=self.unmatched_message,
                transitioned=False,
                offered_options=self.grammar.available_transitions(current_state),
                outcome=DecisionOutcome.UNMATCHED,
            )

        return Decision(
            next_state=destination,
            content=self.grammar.content_for(destination),
            transitioned=True,
            offered_options=self.grammar.available_transitions(destination),
            outcome=DecisionOutcome.TRANSITION,
        )

    def greet(self, state: Optional[str] = None) -> Decision:
        """Arrival at `state` (the initial state by default) without a decision."""
        state = state or self.grammar.initial_state
        return Decision(
            next_state=state,
            content=self.grammar.content_for(state),
            transitioned=False,
            offered_options=self.grammar.available_transitions(state),
            outcome=DecisionOutcome.GREETING,
        )

    def acknowledge_attachment(self, current_state: str) -> Decision:
        return Decision(
            next_state=current_state,
            content=ATTACHMENT_RECEIVED_MESSAGE,
            transitioned=False,
            offered_options=self.grammar.available_transitions(current_state),
            outcome=DecisionOutcome.ATTACHMENT,
        )
