"""Transition guard conditions.

Conditions are a small closed grammar, never executed as code::

    answer == '1'
    label != "no"
    answer == 1 or answer == 2
    not (digits === '9') && type == dtmf
    *                      (always matches)

Subjects: ``answer``/``digits`` (raw value entered), ``label`` and ``value``
(the matched DTMF option), ``type`` (``dtmf`` or ``voice``). Literals are
quoted strings or bare tokens and are compared as trimmed strings.
"""
import logging
import re
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(
    r"""\s*(?:
        (?P<op>===|!==|==|!=|&&|\|\|)
      | (?P<paren>[()])
      | (?P<bang>!)
      | '(?P<sq>[^']*)'
      | "(?P<dq>[^"]*)"
      | (?P<word>[^\s()=!&|'"]+)
    )""",
    re.VERBOSE,
)

_SUBJECTS = {"answer", "digits", "label", "value", "type"}
_CONSTANTS = {"true": True, "always": True, "default": True, "*": True, "false": False}

Node = Tuple[Any, ...]


class ConditionSyntaxError(ValueError):
    """Raised internally when a condition does not fit the grammar."""


def _tokenize(condition: str) -> List[Tuple[str, str]]:
    tokens: List[Tuple[str, str]] = []
    position = 0
    text = condition.strip()
    while position < len(text):
        match = _TOKEN_RE.match(text, position)
        if not match or match.end() == position:
            raise ConditionSyntaxError(f"Unexpected input at {position}: {text[position:]!r}")
        position = match.end()
        if match.group("op"):
            op = match.group("op")
            if op == "&&":
                tokens.append(("and", op))
            elif op == "||":
                tokens.append(("or", op))
            else:
                tokens.append(("cmp", op))
        elif match.group("paren"):
            tokens.append((match.group("paren"), match.group("paren")))
        elif match.group("bang"):
            tokens.append(("not", "!"))
        elif match.group("sq") is not None:
            tokens.append(("str", match.group("sq")))
        elif match.group("dq") is not None:
            tokens.append(("str", match.group("dq")))
        else:
            word = match.group("word")
            lowered = word.lower()
            if lowered in ("and", "or", "not"):
                tokens.append((lowered, word))
            else:
                tokens.append(("word", word))
    return tokens


class _Parser:
    """Recursive descent parser over condition tokens."""

    def __init__(self, tokens: List[Tuple[str, str]]):
        self.tokens = tokens
        self.position = 0

    def _peek(self) -> Optional[Tuple[str, str]]:
        if self.position < len(self.tokens):
            return self.tokens[self.position]
        return None

    def _take(self) -> Tuple[str, str]:
        token = self._peek()
        if token is None:
            raise ConditionSyntaxError("Unexpected end of condition")
        self.position += 1
        return token

    def parse(self) -> Node:
        if not self.tokens:
            raise ConditionSyntaxError("Empty condition")
        node = self._or()
        if self._peek() is not None:
            raise ConditionSyntaxError(f"Unexpected token {self._peek()[1]!r}")
        return node

    def _or(self) -> Node:
        nodes = [self._and()]
        while self._peek() is not None and self._peek()[0] == "or":
            self._take()
            nodes.append(self._and())
        return nodes[0] if len(nodes) == 1 else ("or", tuple(nodes))

    def _and(self) -> Node:
        nodes = [self._unary()]
        while self._peek() is not None and self._peek()[0] == "and":
            self._take()
            nodes.append(self._unary())
        return nodes[0] if len(nodes) == 1 else ("and", tuple(nodes))

    def _unary(self) -> Node:
        kind, text = self._take()
        if kind == "not":
            return ("not", self._unary())
        if kind == "(":
            node = self._or()
            if self._take()[0] != ")":
                raise ConditionSyntaxError("Missing closing parenthesis")
            return node
        if kind == "word":
            lowered = text.lower()
            if lowered in _SUBJECTS:
                return self._comparison(lowered)
            if lowered in _CONSTANTS:
                return ("const", _CONSTANTS[lowered])
        raise ConditionSyntaxError(f"Unexpected token {text!r}")

    def _comparison(self, subject: str) -> Node:
        kind, op = self._take()
        if kind != "cmp":
            raise ConditionSyntaxError(f"Expected comparison after {subject!r}")
        kind, literal = self._take()
        if kind not in ("str", "word"):
            raise ConditionSyntaxError(f"Expected literal after {op!r}")
        return ("cmp", subject, op in ("!=", "!=="), literal.strip())


class ConditionEvaluator:
    """Evaluates transition conditions against answers.

    ``evaluate`` never raises: a condition that does not parse is logged and
    treated as not matching.
    """

    def __init__(self):
        self._cache: Dict[str, Optional[Node]] = {}

    def _compile(self, condition: str) -> Optional[Node]:
        if condition not in self._cache:
            try:
                self._cache[condition] = _Parser(_tokenize(condition)).parse()
            except ConditionSyntaxError as e:
                logger.warning(f"[CONDITION] Unparseable condition {condition!r}: {e}")
                self._cache[condition] = None
        return self._cache[condition]

    def is_well_formed(self, condition: str) -> bool:
        return isinstance(condition, str) and self._compile(condition) is not None

    def evaluate(self, condition: str, answer) -> bool:
        """Return True when the answer satisfies the condition."""
        if not isinstance(condition, str):
            return False
        node = self._compile(condition)
        if node is None:
            return False
        return self._eval(node, answer)

    def _eval(self, node: Node, answer) -> bool:
        kind = node[0]
        if kind == "const":
            return node[1]
        if kind == "not":
            return not self._eval(node[1], answer)
        if kind == "and":
            return all(self._eval(child, answer) for child in node[1])
        if kind == "or":
            return any(self._eval(child, answer) for child in node[1])

        _, subject, negate, literal = node
        actual = self._subject_value(subject, answer)
        if actual is None:
            # A missing label/value never equals anything
            return negate
        return (actual.strip() == literal) != negate

    @staticmethod
    def _subject_value(subject: str, answer) -> Optional[str]:
        if subject in ("answer", "digits"):
            return answer.value or ""
        if subject == "label":
            return answer.label
        if subject == "value":
            return answer.option_value
        return str(answer.answer_type)
