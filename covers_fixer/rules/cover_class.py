"""Rule: every test class carries a CoversClass attribute for the class it tests.

The tested class is inferred from the test's namespaced name:

    Tests\\Unit\\Services\\Billing\\InvoiceServiceTest
        -> \\App\\Services\\Billing\\InvoiceService

CRUD-convention tests (``CreateTest``, ``IndexTest``...) live in a namespace
named after the controller and cover a single method of it:

    Tests\\Feature\\Http\\Controllers\\TeamController\\DeleteTest
        -> CoversClass(\\App\\Http\\Controllers\\TeamController)
        -> CoversMethod(\\App\\Http\\Controllers\\TeamController, 'Delete')
"""

from covers_fixer.models import (
    COVERS_CLASS,
    COVERS_METHOD,
    NO_CHANGE,
    AnnotationGroup,
    AnnotationUse,
    ClassDeclaration,
    ClassReference,
    Replace,
    ResolvedTarget,
    RewriteDecision,
    StringLiteral,
    join_fqn,
    split_name,
)

TEST_SUFFIX = "Test"

SPECIAL_TEST_NAMES = frozenset(
    {"CreateTest", "UpdateTest", "DeleteTest", "ShowTest", "IndexTest", "DestroyTest"}
)

#: (prefix segments, replacement segment), checked in order
DEFAULT_NAMESPACE_MAP: tuple[tuple[tuple[str, ...], str], ...] = (
    (("Tests", "Feature"), "App"),
    (("Tests", "Unit"), "App"),
)

DEFAULT_NAMESPACE = "App"


class CoverageAnnotationResolver:
    """Decide what a test class's coverage attributes should be."""

    name = "fix-missing-cover-class"
    description = (
        "Add a CoversClass attribute pointing to the tested class, and a "
        "CoversMethod attribute for CRUD-convention test classes."
    )
    sample = (
        "namespace Tests\\Feature\\Http\\Controllers\\Admin\\LinkController;\n"
        "\n"
        "class CreateTest extends TestCase\n"
        "{\n"
        "}\n",
        "namespace Tests\\Feature\\Http\\Controllers\\Admin\\LinkController;\n"
        "\n"
        "#[\\PHPUnit\\Framework\\Attributes\\CoversClass(\\App\\Http\\Controllers\\Admin\\LinkController::class)]\n"
        "#[\\PHPUnit\\Framework\\Attributes\\CoversMethod(\\App\\Http\\Controllers\\Admin\\LinkController::class, 'Create')]\n"
        "class CreateTest extends TestCase\n"
        "{\n"
        "}\n",
    )

    def __init__(
        self,
        namespace_map=DEFAULT_NAMESPACE_MAP,
        default_namespace: str = DEFAULT_NAMESPACE,
        verify_covers_method: bool = False,
    ) -> None:
        self.namespace_map = tuple(
            (tuple(prefix), replacement) for prefix, replacement in namespace_map
        )
        self.default_namespace = default_namespace
        self.verify_covers_method = verify_covers_method

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    def resolve(self, decl: ClassDeclaration) -> RewriteDecision:
        """Return ``NoChange`` or the ``Replace`` decision for *decl*."""
        target = self.resolve_target(decl)
        if target is None:
            return NO_CHANGE

        if self._is_satisfied(decl, target):
            return NO_CHANGE

        covers_class = AnnotationGroup((
            AnnotationUse(COVERS_CLASS, (ClassReference(target.tested_class_fqn),)),
        ))
        groups = list(decl.groups)
        if not groups:
            groups.append(covers_class)
        elif groups[0] != covers_class:
            groups[0] = covers_class

        if target.covered_method_name is not None:
            covers_method = AnnotationGroup((
                AnnotationUse(COVERS_METHOD, (
                    ClassReference(target.tested_class_fqn),
                    StringLiteral(target.covered_method_name),
                )),
            ))
            stale = self._stale_method_group(groups, target) if self.verify_covers_method else None
            if stale is None:
                groups.append(covers_method)
            else:
                groups[stale] = covers_method

        return Replace(tuple(groups), target)

    def resolve_target(self, decl: ClassDeclaration) -> ResolvedTarget | None:
        """Infer the covered class (and method) or ``None`` if *decl* is not a test."""
        full_namespace = decl.full_namespace
        if full_namespace is None:
            return None
        simple_name = decl.simple_name
        if not simple_name.endswith(TEST_SUFFIX):
            return None

        if simple_name in SPECIAL_TEST_NAMES:
            tested_name = ""
            method_name = simple_name[: -len(TEST_SUFFIX)]
        else:
            # A class named exactly "Test" has no tested simple name
            tested_name = simple_name[: -len(TEST_SUFFIX)]
            method_name = None

        return ResolvedTarget(
            self.resolve_tested_namespace(full_namespace, tested_name),
            method_name,
        )

    def resolve_tested_namespace(self, full_namespace, tested_name: str) -> str:
        """Map a namespaced test class name to the tested class FQN.

        *full_namespace* includes the test class itself as its last segment.
        """
        segments = tuple(full_namespace)
        for prefix, replacement in self.namespace_map:
            if segments[: len(prefix)] == prefix:
                rebuilt = split_name(replacement) + segments[len(prefix):-1]
                break
        else:
            rebuilt = split_name(self.default_namespace)

        if tested_name:
            rebuilt += (tested_name,)
        return join_fqn(rebuilt)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _is_satisfied(self, decl: ClassDeclaration, target: ResolvedTarget) -> bool:
        if not _has_annotation(decl, COVERS_CLASS, target.tested_class_fqn):
            return False
        if self.verify_covers_method and target.covered_method_name is not None:
            return _has_annotation(
                decl, COVERS_METHOD, target.tested_class_fqn, target.covered_method_name
            )
        return True

    @staticmethod
    def _stale_method_group(groups, target: ResolvedTarget) -> int | None:
        """Index of a later group holding only CoversMethod for the tested class."""
        for index, group in enumerate(groups[1:], start=1):
            if group.annotations and all(
                a.kind == COVERS_METHOD
                and a.args
                and a.args[0] == ClassReference(target.tested_class_fqn)
                for a in group.annotations
            ):
                return index
        return None


def _has_annotation(
    decl: ClassDeclaration, kind: str, fqn: str, method: str | None = None
) -> bool:
    """True when some group holds ``kind(fqn::class[, method])``."""
    for group in decl.groups:
        for annotation in group.annotations:
            if annotation.kind != kind or not annotation.args:
                continue
            first = annotation.args[0]
            if not isinstance(first, ClassReference) or first.fqn != fqn:
                continue
            if method is None:
                return True
            if len(annotation.args) > 1 and annotation.args[1] == StringLiteral(method):
                return True
    return False
