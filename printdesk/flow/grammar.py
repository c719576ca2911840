"""
printdesk/flow/grammar.py

Purpose: Menu grammar (transition table + content table)

- Immutable lookup structure built once at startup
- Concrete rules keyed by (source, label), wildcard rules keyed by label
- Concrete rules take precedence over wildcard rules
- Validated on construction; inconsistencies raise ConfigurationError
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from printdesk.core.exceptions import ConfigurationError

WILDCARD = "*"


@dataclass(frozen=True)
class TransitionRule:
    """
    A single menu transition.

    `label` is the input token (typed text or quick-reply payload) that
    triggers the rule; `source` is a state name or WILDCARD.
    """
    label: str
    source: str
    dest: str

    @property
    def is_wildcard(self) -> bool:
        return self.source == WILDCARD


class MenuGrammar:
    """
    Immutable finite-state menu.

    Safe to share between concurrent sessions: nothing is mutated after
    __init__ returns.
    """

    def __init__(
        self,
        initial_state: str,
        rules: Iterable[TransitionRule],
        content: Mapping[str, str],
    ):
        self._initial_state = initial_state
        self._rules: Tuple[TransitionRule, ...] = tuple(rules)
        self._content = MappingProxyType(dict(content))

        concrete: Dict[Tuple[str, str], TransitionRule] = {}
        wildcard: Dict[str, TransitionRule] = {}
        by_source: Dict[str, List[TransitionRule]] = {}

        for rule in self._rules:
            if rule.is_wildcard:
                if rule.label in wildcard:
                    raise ConfigurationError(
                        f"Duplicate wildcard rule for label '{rule.label}'",
                        details={"label": rule.label},
                    )
                wildcard[rule.label] = rule
            else:
                key = (rule.source, rule.label)
                if key in concrete:
                    raise ConfigurationError(
                        f"Duplicate rule for label '{rule.label}' from state '{rule.source}'",
                        details={"label": rule.label, "source": rule.source},
                    )
                concrete[key] = rule
                by_source.setdefault(rule.source, []).append(rule)

        self._concrete = MappingProxyType(concrete)
        self._wildcard = MappingProxyType(wildcard)
        self._wildcard_order: Tuple[TransitionRule, ...] = tuple(wildcard.values())
        self._by_source = MappingProxyType(
            {source: tuple(rules) for source, rules in by_source.items()}
        )

        self.validate()

        # Options are precomputed per known state; unknown states fall back
        # to the wildcard-only computation.
        self._options = MappingProxyType(
            {state: self._compute_options(state) for state in self.states}
        )

    @property
    def initial_state(self) -> str:
        return self._initial_state

    @property
    def rules(self) -> Tuple[TransitionRule, ...]:
        return self._rules

    @property
    def states(self) -> Tuple[str, ...]:
        """All state names with content, in declaration order."""
        return tuple(self._content.keys())

    def has_state(self, state: str) -> bool:
        return state in self._content

    def validate(self) -> None:
        """
        Checks the grammar is internally consistent.

        Raises:
            ConfigurationError: initial state or a destination has no content,
                or a concrete rule starts from a state without content
        """
        if self._initial_state not in self._content:
            raise ConfigurationError(
                f"Initial state '{self._initial_state}' has no content",
                details={"state": self._initial_state},
            )

        missing = sorted(
            {rule.dest for rule in self._rules if rule.dest not in self._content}
            | {
                rule.source
                for rule in self._rules
                if not rule.is_wildcard and rule.source not in self._content
            }
        )
        if missing:
            raise ConfigurationError(
                f"States without content: {', '.join(missing)}",
                details={"states": missing},
            )

    def resolve(self, state: str, label: str) -> Optional[str]:
        """
        Looks up the destination for `label` from `state`.

        Returns:
            Destination state name, or None when no rule applies
        """
        rule = self._concrete.get((state, label))
        if rule is None:
            rule = self._wildcard.get(label)
        return rule.dest if rule is not None else None

    def available_transitions(self, state: str) -> Tuple[str, ...]:
        """
        Returns the labels valid from `state`, concrete rules first, in
        declaration order and without duplicates.
        """
        options = self._options.get(state)
        if options is None:
            options = self._compute_options(state)
        return options

    def content_for(self, state: str) -> str:
        try:
            return self._content[state]
        except KeyError:
            raise ConfigurationError(
                f"No content for state '{state}'",
                details={"state": state},
            ) from None

    def _compute_options(self, state: str) -> Tuple[str, ...]:
        labels: List[str] = []
        seen = set()

        for rule in self._by_source.get(state, ()):
            if rule.label not in seen:
                seen.add(rule.label)
                labels.append(rule.label)

        for rule in self._wildcard_order:
            # A wildcard leading back to the current state is not offered
            if rule.label in seen or rule.dest == state:
                continue
            seen.add(rule.label)
            labels.append(rule.label)

        return tuple(labels)

    def __repr__(self) -> str:
        return (
            f"MenuGrammar(initial_state={self._initial_state!r}, "
            f"states={len(self._content)}, rules={len(self._rules)})"
        )
