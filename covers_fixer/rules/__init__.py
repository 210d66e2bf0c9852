"""Rule catalogue.

Rules are plain objects with ``name``, ``description``, ``sample`` and a
``resolve(decl) -> RewriteDecision`` method. The engine receives the rule
instances it should run; nothing here is mutated at runtime.
"""

from covers_fixer.rules.cover_class import CoverageAnnotationResolver

RULE_CLASSES = {
    CoverageAnnotationResolver.name: CoverageAnnotationResolver,
}


def build_rules(config) -> list:
    """Instantiate the rules enabled in *config*, in configured order."""
    factories = {
        CoverageAnnotationResolver.name: lambda: CoverageAnnotationResolver(
            namespace_map=config.namespace_map,
            default_namespace=config.default_namespace,
            verify_covers_method=config.verify_covers_method,
        ),
    }
    return [factories[name]() for name in config.rules]
