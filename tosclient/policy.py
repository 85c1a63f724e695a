"""Bucket policy document model.

Policies travel as IAM-style JSON documents whose Principal, Action and
Resource fields are polymorphic: each may be a bare string, an array of
strings, or (for Principal) an object keyed by identity provider. This
module parses every accepted shape and re-emits the canonical compact form:

- an empty list is omitted from the document,
- a single value is written as a bare JSON string,
- two or more values are written as a JSON array.

The wildcard principal is kept distinct from an explicit provider mapping:
"*" and ["*"] decode to Principals.all(), while {"TOS": "*"} decodes to a
multi-principal mapping whose only entry happens to be "*".
"""

import json
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Iterator, Mapping, Optional, Union

from tosclient.errors import InvalidPolicySyntax
from tosclient.log import get_logger

logger = get_logger(__name__)

ALLOW = "Allow"
DENY = "Deny"

POLICY_VERSION = "2012-10-17"

WILDCARD = "*"

# Identity-provider key used by some_principals()
DEFAULT_PRINCIPAL_KEY = "TOS"

ALL_ACTIONS = "tos:*"

_SID_PATTERN = re.compile(r"^[A-Za-z0-9]*$")

JSONInput = Union[bytes, bytearray, str]


def _dumps(value: Any) -> bytes:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def _loads(data: JSONInput) -> Any:
    """Parse JSON input; empty input is treated like null."""
    if isinstance(data, (bytes, bytearray)):
        try:
            data = bytes(data).decode("utf-8")
        except UnicodeDecodeError as e:
            raise InvalidPolicySyntax(f"policy is not valid UTF-8: {e}") from e
    if not data.strip():
        return None
    try:
        return json.loads(data)
    except ValueError as e:
        raise InvalidPolicySyntax(f"invalid policy JSON: {e}") from e


def _compact_to_value(values: tuple[str, ...]) -> Union[None, str, list[str]]:
    if not values:
        return None
    if len(values) == 1:
        return values[0]
    return list(values)


def _compact_from_value(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, list):
        if not all(isinstance(item, str) for item in value):
            raise InvalidPolicySyntax("invalid policy compact value syntax: non-string element")
        return list(value)
    raise InvalidPolicySyntax("invalid policy compact value syntax")


def encode_compact(values: Iterable[str]) -> bytes:
    """Encode a list of strings using the compact wire rules.

    Args:
        values: Strings to encode.

    Returns:
        b"" for an empty list (the caller omits the field), a JSON string
        for one element, a JSON array otherwise.
    """
    value = _compact_to_value(tuple(values))
    if value is None:
        return b""
    return _dumps(value)


def decode_compact(data: JSONInput) -> list[str]:
    """Decode a compact value.

    Args:
        data: JSON text: null, a string, or an array of strings.

    Returns:
        The decoded list; empty for null or empty input.

    Raises:
        InvalidPolicySyntax: For any other JSON token.
    """
    return _compact_from_value(_loads(data))


class _Compact:
    """Immutable ordered list of strings with compact wire encoding."""

    __slots__ = ("_values",)

    def __init__(self, values: Iterable[str] = ()):
        if isinstance(values, str):
            values = (values,)
        object.__setattr__(self, "_values", tuple(values))

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError(f"{type(self).__name__} is immutable")

    @property
    def values(self) -> tuple[str, ...]:
        return self._values

    def __len__(self) -> int:
        return len(self._values)

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __bool__(self) -> bool:
        return bool(self._values)

    def __eq__(self, other: object) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return self._values == other._values

    def __hash__(self) -> int:
        return hash((type(self).__name__, self._values))

    def __repr__(self) -> str:
        return f"{type(self).__name__}({list(self._values)!r})"

    def _single_or_multi(self) -> Union[None, str, tuple[str, ...]]:
        if len(self._values) == 1:
            return self._values[0]
        if len(self._values) > 1:
            return self._values
        return None

    def to_value(self) -> Union[None, str, list[str]]:
        return _compact_to_value(self._values)

    def encode(self) -> bytes:
        return encode_compact(self._values)

    @classmethod
    def from_value(cls, value: Any):
        return cls(_compact_from_value(value))

    @classmethod
    def decode(cls, data: JSONInput):
        return cls(decode_compact(data))


class Actions(_Compact):
    """The Action field of a statement."""

    __slots__ = ()

    def action(self) -> Union[None, str, tuple[str, ...]]:
        """Return the single action, a tuple of actions, or None when empty."""
        return self._single_or_multi()


class Resources(_Compact):
    """The Resource field of a statement."""

    __slots__ = ()

    def resource(self) -> Union[None, str, tuple[str, ...]]:
        """Return the single resource, a tuple of resources, or None when empty."""
        return self._single_or_multi()


class PrincipalKind(Enum):
    """Active variant of a Principals value."""

    NONE = "none"
    ALL = "all"
    MULTI = "multi"


class AllPrincipal:
    """Marker returned by Principals.principal() for the wildcard variant."""

    __slots__ = ()

    def __eq__(self, other: object) -> bool:
        return isinstance(other, AllPrincipal)

    def __hash__(self) -> int:
        return hash(WILDCARD)

    def __repr__(self) -> str:
        return "AllPrincipal()"


MultiPrincipal = dict[str, list[str]]


@dataclass(frozen=True)
class Principals:
    """The Principal field of a statement.

    Exactly one variant is active. Use the all(), multi() and none()
    constructors rather than building instances directly. Multi entries are
    stored sorted by key so equality ignores mapping order.
    """

    kind: PrincipalKind = PrincipalKind.NONE
    entries: tuple[tuple[str, tuple[str, ...]], ...] = ()

    def __post_init__(self):
        if self.kind is not PrincipalKind.MULTI and self.entries:
            raise ValueError("only multi principals carry entries")

    @classmethod
    def all(cls) -> "Principals":
        return cls(PrincipalKind.ALL)

    @classmethod
    def multi(cls, mapping: Mapping[str, Iterable[str]]) -> "Principals":
        """Build a provider mapping.

        Keys with no identifiers are dropped, since the wire cannot carry
        them. A mapping left with no keys is the none variant.
        """
        entries = []
        for key in sorted(mapping):
            values = mapping[key]
            if isinstance(values, str):
                values = (values,)
            values = tuple(values)
            if values:
                entries.append((key, values))
        if not entries:
            return cls.none()
        return cls(PrincipalKind.MULTI, tuple(entries))

    @classmethod
    def none(cls) -> "Principals":
        return cls(PrincipalKind.NONE)

    @property
    def is_all(self) -> bool:
        return self.kind is PrincipalKind.ALL

    @property
    def is_multi(self) -> bool:
        return self.kind is PrincipalKind.MULTI

    @property
    def is_none(self) -> bool:
        return self.kind is PrincipalKind.NONE

    def as_dict(self) -> MultiPrincipal:
        return {key: list(values) for key, values in self.entries}

    def principal(self) -> Union[None, AllPrincipal, MultiPrincipal]:
        """Return AllPrincipal(), the provider mapping, or None."""
        if self.kind is PrincipalKind.ALL:
            return AllPrincipal()
        if self.kind is PrincipalKind.MULTI:
            return self.as_dict()
        return None

    def to_value(self) -> Union[None, str, dict[str, Any]]:
        if self.kind is PrincipalKind.ALL:
            return WILDCARD
        if self.kind is PrincipalKind.MULTI and self.entries:
            return {key: _compact_to_value(values) for key, values in self.entries}
        return None

    def encode(self) -> bytes:
        value = self.to_value()
        if value is None:
            return b""
        return _dumps(value)

    @classmethod
    def from_value(cls, value: Any) -> "Principals":
        if value is None:
            return cls.none()
        if value == WILDCARD or value == [WILDCARD]:
            return cls.all()
        if isinstance(value, dict):
            return cls.multi({key: _compact_from_value(v) for key, v in value.items()})
        raise InvalidPolicySyntax("invalid policy principal syntax")

    @classmethod
    def decode(cls, data: JSONInput) -> "Principals":
        return cls.from_value(_loads(data))


Condition = dict[str, list[str]]
Conditions = dict[str, Condition]


def all_principals() -> Principals:
    return Principals.all()


def some_principals(principal: str, *more: str) -> Principals:
    """Principals for the given identifiers under the TOS provider key."""
    return Principals.multi({DEFAULT_PRINCIPAL_KEY: (principal,) + more})


def all_actions() -> Actions:
    return Actions((ALL_ACTIONS,))


def some_actions(action: str, *more: str) -> Actions:
    return Actions((action,) + more)


def some_resources(resource: str, *more: str) -> Resources:
    return Resources((resource,) + more)


def _conditions_from_value(value: Any) -> Conditions:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise InvalidPolicySyntax("invalid policy condition syntax")

    conditions: Conditions = {}
    for operator, condition in value.items():
        if not isinstance(condition, dict):
            raise InvalidPolicySyntax(f"invalid policy condition syntax for {operator}")
        conditions[operator] = {
            key: _compact_from_value(values) for key, values in condition.items()
        }
    return conditions


def _optional_string(value: Any, name: str) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise InvalidPolicySyntax(f"invalid policy {name}: expected a string")
    return value


@dataclass
class Statement:
    """One Allow or Deny rule of a policy document."""

    sid: str = ""
    effect: str = ""
    principals: Optional[Principals] = None
    actions: Actions = field(default_factory=Actions)
    resources: Resources = field(default_factory=Resources)
    conditions: Conditions = field(default_factory=dict)

    def __post_init__(self):
        if self.principals is not None and self.principals.is_none:
            self.principals = None
        if not isinstance(self.actions, Actions):
            self.actions = Actions(self.actions)
        if not isinstance(self.resources, Resources):
            self.resources = Resources(self.resources)
        self.conditions = {
            operator: {
                key: [values] if isinstance(values, str) else list(values)
                for key, values in condition.items()
            }
            for operator, condition in self.conditions.items()
        }

    def to_dict(self) -> dict[str, Any]:
        """Convert to the wire structure, omitting absent fields."""
        data: dict[str, Any] = {}
        if self.sid:
            data["Sid"] = self.sid
        if self.effect:
            data["Effect"] = self.effect
        if self.principals is not None:
            principal = self.principals.to_value()
            if principal is not None:
                data["Principal"] = principal
        if self.actions:
            data["Action"] = self.actions.to_value()
        if self.resources:
            data["Resource"] = self.resources.to_value()
        if self.conditions:
            data["Condition"] = {
                operator: {key: list(values) for key, values in condition.items()}
                for operator, condition in self.conditions.items()
            }
        return data

    @classmethod
    def from_dict(cls, data: Any) -> "Statement":
        if not isinstance(data, dict):
            raise InvalidPolicySyntax("invalid policy statement: expected an object")

        principals = None
        if data.get("Principal") is not None:
            principals = Principals.from_value(data["Principal"])

        return cls(
            sid=_optional_string(data.get("Sid"), "Sid"),
            effect=_optional_string(data.get("Effect"), "Effect"),
            principals=principals,
            actions=Actions.from_value(data.get("Action")),
            resources=Resources.from_value(data.get("Resource")),
            conditions=_conditions_from_value(data.get("Condition")),
        )


@dataclass
class Rules:
    """A policy document: version, id and an ordered list of statements."""

    version: str = ""
    id: str = ""
    statements: list[Statement] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.version:
            data["Version"] = self.version
        if self.id:
            data["Id"] = self.id
        if self.statements:
            data["Statement"] = [statement.to_dict() for statement in self.statements]
        return data

    def to_json(self) -> bytes:
        """Encode the document as compact JSON.

        Validation problems are logged as warnings; the Service is the
        authority on what it accepts, so encoding never fails on them.
        """
        for warning in validate_rules(self):
            logger.warning("policy_validation", problem=warning)
        return _dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: Any) -> "Rules":
        if not isinstance(data, dict):
            raise InvalidPolicySyntax("invalid policy document: expected an object")

        raw_statements = data.get("Statement")
        if raw_statements is None:
            raw_statements = []
        elif isinstance(raw_statements, dict):
            raw_statements = [raw_statements]
        elif not isinstance(raw_statements, list):
            raise InvalidPolicySyntax("invalid policy document: Statement must be a list")

        return cls(
            version=_optional_string(data.get("Version"), "Version"),
            id=_optional_string(data.get("Id"), "Id"),
            statements=[Statement.from_dict(item) for item in raw_statements],
        )

    @classmethod
    def from_json(cls, data: JSONInput) -> "Rules":
        """Decode a policy document.

        Raises:
            InvalidPolicySyntax: If the document is malformed.
        """
        value = _loads(data)
        if value is None:
            return cls()
        return cls.from_dict(value)


def validate_rules(rules: Rules) -> list[str]:
    """Return human-readable warnings for questionable statements."""
    warnings = []
    for index, statement in enumerate(rules.statements):
        label = statement.sid or f"#{index}"
        if statement.effect not in (ALLOW, DENY):
            warnings.append(f"statement {label}: Effect must be Allow or Deny, got {statement.effect!r}")
        if not _SID_PATTERN.match(statement.sid):
            warnings.append(f"statement {label}: Sid should only contain letters and digits")
        if not statement.actions:
            warnings.append(f"statement {label}: no Action")
    return warnings
