"""Data models shared by the rules, the PHP adapter and the engine.

Contains frozen dataclasses describing:
    - argument values    (ClassReference, StringLiteral, RawArgument)
    - AnnotationUse      one ``Kind(arg, ...)`` inside a ``#[...]`` group
    - AnnotationGroup    one ``#[...]`` group
    - ClassDeclaration   what a rule sees of a class
    - ResolvedTarget     the production class (and method) a test covers
    - NoChange / Replace the rewrite decision returned by a rule
"""

from dataclasses import dataclass, field
from typing import Union

SEPARATOR = "\\"

COVERS_CLASS = "\\PHPUnit\\Framework\\Attributes\\CoversClass"
COVERS_METHOD = "\\PHPUnit\\Framework\\Attributes\\CoversMethod"


def split_name(name: str) -> tuple[str, ...]:
    """Split a qualified name into segments.

    Accepts ``\\``, ``/`` and ``.`` as separators and ignores a leading one,
    so ``Tests\\Feature``, ``Tests/Feature`` and ``Tests.Feature`` all give
    ``("Tests", "Feature")``.
    """
    normalised = name.replace("/", SEPARATOR).replace(".", SEPARATOR)
    return tuple(part for part in normalised.split(SEPARATOR) if part)


def join_fqn(segments) -> str:
    """Join segments into a root-anchored name: ``("App", "Foo")`` → ``\\App\\Foo``."""
    return SEPARATOR + SEPARATOR.join(segments)


def normalise_fqn(name: str) -> str:
    return join_fqn(split_name(name))


# ---------------------------------------------------------------------------
# Annotation values
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ClassReference:
    """A ``Foo::class`` argument, resolved to a root-anchored FQN."""

    fqn: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "fqn", normalise_fqn(self.fqn))


@dataclass(frozen=True)
class StringLiteral:
    value: str


@dataclass(frozen=True)
class RawArgument:
    """Any argument expression the adapter does not interpret."""

    text: str


ArgumentValue = Union[ClassReference, StringLiteral, RawArgument]


@dataclass(frozen=True)
class AnnotationUse:
    kind: str
    args: tuple[ArgumentValue, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "kind", normalise_fqn(self.kind))
        object.__setattr__(self, "args", tuple(self.args))


@dataclass(frozen=True)
class AnnotationGroup:
    """One ``#[...]`` group.

    ``source`` holds the original text for groups read from a file and is
    ``None`` for groups built by a rule. It is excluded from equality so a
    parsed group compares equal to a freshly built one with the same content.
    """

    annotations: tuple[AnnotationUse, ...]
    source: str | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "annotations", tuple(self.annotations))


# ---------------------------------------------------------------------------
# Class declarations
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ClassDeclaration:
    """A named class as seen by a rule.

    ``namespace`` holds the segments of the enclosing namespace (``()`` for the
    global namespace) and is ``None`` when it could not be resolved, as is
    ``simple_name`` for anonymous classes.
    """

    simple_name: str | None
    namespace: tuple[str, ...] | None
    groups: tuple[AnnotationGroup, ...] = ()

    def __post_init__(self) -> None:
        if self.namespace is not None:
            object.__setattr__(self, "namespace", tuple(self.namespace))
        object.__setattr__(self, "groups", tuple(self.groups))

    @property
    def full_namespace(self) -> tuple[str, ...] | None:
        """Namespaced class name, e.g. ``("Tests", "Unit", "FooTest")``."""
        if self.simple_name is None or self.namespace is None:
            return None
        return self.namespace + (self.simple_name,)

    @property
    def fqn(self) -> str | None:
        full = self.full_namespace
        return join_fqn(full) if full is not None else None

    def with_groups(self, groups) -> "ClassDeclaration":
        return ClassDeclaration(self.simple_name, self.namespace, tuple(groups))


# ---------------------------------------------------------------------------
# Rule output
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ResolvedTarget:
    tested_class_fqn: str
    covered_method_name: str | None = None


@dataclass(frozen=True)
class NoChange:
    """The declaration already satisfies the rule (or the rule does not apply)."""


@dataclass(frozen=True)
class Replace:
    """The complete new group sequence for a declaration."""

    groups: tuple[AnnotationGroup, ...]
    target: ResolvedTarget

    def __post_init__(self) -> None:
        object.__setattr__(self, "groups", tuple(self.groups))


RewriteDecision = Union[NoChange, Replace]

NO_CHANGE = NoChange()
