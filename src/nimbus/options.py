"""Option declarations and the context-sensitive argv parser.

Public API:
    ValueArity: Whether an option takes no value, an optional one, or a required one
    OptionSpec: A declared option (``"-s, --subscription <id>"``)
    ParsedArgv: Result of parsing tokens against the options in scope
    normalize: Split ``--flag=value`` and bundled short flags
    parse_argv: Parse tokens against the options in scope of a tree node

The parser is run once per level of the command tree. Options that are not
in scope at a level are passed down as ``unknown`` tokens so the next level
can recognize them; tokens after ``--`` are always positional.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from nimbus.errors import MissingArgumentError

logger = logging.getLogger(__name__)

_FLAG_SEPARATOR = re.compile(r"[ ,|]+")

LITERAL_SEPARATOR = "--"


def option_key(name: str) -> str:
    """Return the options-mapping key for a flag or argument name.

    Example:
        >>> option_key("--endpoint-name")
        'endpoint_name'
    """
    return name.lstrip("-").replace("-", "_")


def looks_like_flag(token: str) -> bool:
    """True for tokens such as ``-v`` or ``--json`` (a bare ``-`` is not one)."""
    return len(token) > 1 and token.startswith("-")


class ValueArity(StrEnum):
    """How many value tokens an option consumes."""

    NONE = "none"  # boolean flag
    OPTIONAL = "optional"  # --location [name]
    REQUIRED = "required"  # --subscription <id>


@dataclass
class OptionSpec:
    """A declared option.

    Attributes:
        flags: Flag declaration, e.g. ``"-s, --subscription <id>"``
        description: Help text
        default: Default value (boolean ``--no-*`` flags default to True)
        inherited: Visible at every level below the declaring node
    """

    flags: str
    description: str = ""
    default: Any = None
    inherited: bool = False
    short: str | None = field(default=None, init=False)
    long: str | None = field(default=None, init=False)
    arity: ValueArity = field(default=ValueArity.NONE, init=False)
    negate: bool = field(default=False, init=False)

    def __post_init__(self) -> None:
        for part in _FLAG_SEPARATOR.split(self.flags.strip()):
            if part.startswith("--"):
                self.long = part
            elif part.startswith("-"):
                self.short = part
            elif part.startswith("<"):
                self.arity = ValueArity.REQUIRED
            elif part.startswith("["):
                self.arity = ValueArity.OPTIONAL

        if self.long is None and self.short is None:
            raise ValueError(f"Invalid option declaration: '{self.flags}'")

        self.negate = bool(self.long and self.long.startswith("--no-"))
        if self.negate and self.default is None:
            self.default = True

    @property
    def name(self) -> str:
        """Flag name without dashes or ``no-`` prefix."""
        name = (self.long or self.short or "").lstrip("-")
        if self.negate:
            name = name[len("no-") :]
        return name

    @property
    def key(self) -> str:
        """Key under which the option's value is stored."""
        return option_key(self.name)

    def matches(self, token: str) -> bool:
        return token in (self.short, self.long)

    def value_for(self, value: str | None) -> Any:
        """Value to record when the option is seen with ``value`` (or none)."""
        if self.arity is ValueArity.NONE:
            return not self.negate
        if value is None:
            return self.default if self.default is not None else True
        return value

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"flags": self.flags, "description": self.description}
        if self.default is not None and not self.negate:
            data["default"] = self.default
        if self.inherited:
            data["inherited"] = True
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OptionSpec":
        return cls(
            flags=data["flags"],
            description=data.get("description", ""),
            default=data.get("default"),
            inherited=data.get("inherited", False),
        )


def find_option(options: list[OptionSpec], token: str) -> OptionSpec | None:
    """Return the first option declared with ``token`` as one of its flags."""
    for spec in options:
        if spec.matches(token):
            return spec
    return None


@dataclass
class ParsedArgv:
    """Tokens split into positionals, unknown options and recognized values.

    Attributes:
        positionals: Tokens that are not options, in order
        unknown: Flag-like tokens not in scope (with their guessed values)
        values: Recognized option values keyed by ``OptionSpec.key``
        literal_from: Index in ``positionals`` where the ``--`` section starts
    """

    positionals: list[str] = field(default_factory=list)
    unknown: list[str] = field(default_factory=list)
    values: dict[str, Any] = field(default_factory=dict)
    literal_from: int | None = None

    def forward(self, skip: int = 1) -> list[str]:
        """Rebuild the tokens a deeper level has to parse.

        Drops the first ``skip`` positionals (the names already resolved) and
        keeps unknown options and the literal section re-parseable.
        """
        if self.literal_from is None:
            return self.positionals[skip:] + self.unknown

        plain = self.positionals[: self.literal_from]
        literal = self.positionals[self.literal_from :]
        if skip > len(plain):
            literal = literal[skip - len(plain) :]
        return plain[skip:] + self.unknown + [LITERAL_SEPARATOR] + literal


def normalize(tokens: list[str]) -> list[str]:
    """Split ``--flag=value`` and bundled short flags (``-vv`` -> ``-v -v``).

    Tokens after ``--`` are returned untouched.

    Example:
        >>> normalize(["-vv", "--name=web", "--", "-x"])
        ['-v', '-v', '--name', 'web', '--', '-x']
    """
    result: list[str] = []
    for index, token in enumerate(tokens):
        if token == LITERAL_SEPARATOR:
            result.extend(tokens[index:])
            break
        if token.startswith("--") and "=" in token:
            flag, _, value = token.partition("=")
            result.extend([flag, value])
        elif len(token) > 2 and token[0] == "-" and token[1:].isalpha():
            result.extend(f"-{char}" for char in token[1:])
        else:
            result.append(token)
    return result


def fallback_option(context: Any, positionals: list[str], token: str) -> OptionSpec | None:
    """Look for ``token`` among nodes named by the positionals seen so far.

    Walks ``context``'s categories following the positionals in order and
    stops at the first category declaring the option. Otherwise the first
    positional that is not a category is tried as a command name. When several
    nodes declare the same flag, the first one on that walk wins.
    """
    node = context
    name = None
    for name in positionals:
        child = node.categories.get(name)
        if child is None:
            break
        node = child
        found = find_option(node.options, token)
        if found is not None:
            return found

    if name is not None and name in node.commands:
        return find_option(node.commands[name].options, token)
    return None


def parse_argv(
    tokens: list[str], options: list[OptionSpec], context: Any = None
) -> ParsedArgv:
    """Parse ``tokens`` against the options in scope.

    Args:
        tokens: Normalized tokens still to be parsed at this level
        options: Options recognized at this level
        context: Tree node being resolved; used to guess how many tokens an
            out-of-scope option takes

    Returns:
        ParsedArgv with positionals, unknown options and recognized values

    Raises:
        MissingArgumentError: A required-value option has no value, or the
            next token is itself a flag
    """
    parsed = ParsedArgv()
    count = len(tokens)
    index = 0

    while index < count:
        token = tokens[index]
        following = tokens[index + 1] if index + 1 < count else None

        if parsed.literal_from is not None:
            parsed.positionals.append(token)
            index += 1
            continue

        if token == LITERAL_SEPARATOR:
            parsed.literal_from = len(parsed.positionals)
            index += 1
            continue

        spec = find_option(options, token) if token.startswith("-") else None
        if spec is not None:
            value = None
            if spec.arity is ValueArity.REQUIRED:
                if following is None:
                    raise MissingArgumentError(spec.long or spec.short or token)
                if following.startswith("-"):
                    raise MissingArgumentError(spec.long or spec.short or token, following)
                value = following
                index += 1
            elif spec.arity is ValueArity.OPTIONAL:
                if following is not None and not following.startswith("-"):
                    value = following
                    index += 1
            parsed.values[spec.key] = spec.value_for(value)
            index += 1
            continue

        if looks_like_flag(token):
            parsed.unknown.append(token)
            hint = fallback_option(context, parsed.positionals, token) if context else None
            arity = hint.arity if hint is not None else ValueArity.OPTIONAL
            if following is not None and following != LITERAL_SEPARATOR:
                if arity is ValueArity.REQUIRED or (
                    arity is ValueArity.OPTIONAL and not following.startswith("-")
                ):
                    parsed.unknown.append(following)
                    index += 1
            index += 1
            continue

        parsed.positionals.append(token)
        index += 1

    if parsed.unknown:
        logger.debug(f"Options not in scope: {parsed.unknown}")
    return parsed
