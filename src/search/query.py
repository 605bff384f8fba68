"""Free-text query grammar and weighted-field matching.

Grammar, whitespace separated:

- ``term``: required word
- ``+term``: required word (explicit)
- ``-term``: excluded word
- ``"some phrase"`` / ``-"some phrase"``: required or excluded phrase
- ``a OR b``: both neighbours become optional
- ``real-time`` / ``-real-time``: a bare token made of several words is a phrase

An item matches when every required clause appears in some weighted field
and no excluded clause appears anywhere. A query made only of optional
clauses needs at least one of them to match.
"""

import re
from dataclasses import dataclass, field


# Field weights, highest first
WEIGHT_A = 1.0
WEIGHT_B = 0.4
WEIGHT_C = 0.2

_TOKEN_RE = re.compile(r'([+-]?)"([^"]*)"?|(\S+)')
_WORD_RE = re.compile(r"\w+", re.UNICODE)


def tokenize_words(text: str) -> list[str]:
    """Lower-cased word tokens of a text."""
    return _WORD_RE.findall(text.lower())


@dataclass(frozen=True)
class Clause:
    """A single word or phrase of a parsed query."""

    text: str
    is_phrase: bool = False


@dataclass
class ParsedQuery:
    """Structured form of a free-text query."""

    required: list[Clause] = field(default_factory=list)
    optional: list[Clause] = field(default_factory=list)
    negated: list[Clause] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        """True when the query imposes no text constraint."""
        return not (self.required or self.optional or self.negated)

    @property
    def positive(self) -> list[Clause]:
        """Clauses that contribute to the text score."""
        return self.required + self.optional


@dataclass(frozen=True)
class WeightedField:
    """Text of one searchable field with its weight."""

    weight: float
    text: str


@dataclass
class _Token:
    clauses: list[Clause]
    modifier: str
    optional: bool = False


def _clauses_for(body: str) -> list[Clause]:
    # a token splitting into several words is matched as one phrase
    words = tokenize_words(body)
    if not words:
        return []
    if len(words) > 1:
        return [Clause(" ".join(words), is_phrase=True)]
    return [Clause(words[0])]


def parse_query(query: str | None) -> ParsedQuery:
    """Parse a free-text query.

    Args:
        query: Raw query text, may be None or blank.

    Returns:
        The parsed query; empty when nothing searchable remains.
    """
    parsed = ParsedQuery()
    if not query or not query.strip():
        return parsed

    tokens: list[_Token] = []
    pending_or = False
    for match in _TOKEN_RE.finditer(query):
        quoted_modifier, quoted_body, bare = match.groups()
        if bare is not None:
            if bare == "OR":
                if tokens:
                    tokens[-1].optional = True
                    pending_or = True
                continue
            modifier = bare[0] if bare[0] in "+-" and len(bare) > 1 else ""
            clauses = _clauses_for(bare[len(modifier):])
        else:
            modifier = quoted_modifier
            clauses = _clauses_for(quoted_body)

        if not clauses:
            continue
        token = _Token(clauses=clauses, modifier=modifier)
        if pending_or:
            token.optional = True
            pending_or = False
        tokens.append(token)

    for token in tokens:
        if token.modifier == "-":
            parsed.negated.extend(token.clauses)
        elif token.optional and token.modifier != "+":
            parsed.optional.extend(token.clauses)
        else:
            parsed.required.extend(token.clauses)
    return parsed


class _FieldIndex:
    """Word sets and normalized text of weighted fields."""

    def __init__(self, fields: list[WeightedField]) -> None:
        self._entries = []
        for f in fields:
            words = tokenize_words(f.text)
            self._entries.append((f.weight, set(words), f" {' '.join(words)} "))

    def best_weight(self, clause: Clause) -> float | None:
        best: float | None = None
        for weight, words, normalized in self._entries:
            if clause.is_phrase:
                found = f" {clause.text} " in normalized
            else:
                found = clause.text in words
            if found and (best is None or weight > best):
                best = weight
        return best


def match_query(parsed: ParsedQuery, fields: list[WeightedField]) -> float | None:
    """Score an item against a parsed query.

    Args:
        parsed: Parsed query.
        fields: The item's weighted text fields.

    Returns:
        Text score (sum of the best field weight of each matched clause),
        or None when the item does not match.
    """
    index = _FieldIndex(fields)

    for clause in parsed.negated:
        if index.best_weight(clause) is not None:
            return None

    score = 0.0
    for clause in parsed.required:
        weight = index.best_weight(clause)
        if weight is None:
            return None
        score += weight

    matched_optional = 0
    for clause in parsed.optional:
        weight = index.best_weight(clause)
        if weight is not None:
            matched_optional += 1
            score += weight

    if parsed.optional and not parsed.required and matched_optional == 0:
        return None
    return score
