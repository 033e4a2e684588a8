"""Feature-name predicates used to select gene subsets (mitochondrial, ribosomal, ...)."""

from typing import Callable, Iterable

FeaturePredicate = Callable[[str], bool]


def prefix_predicate(*prefixes: str, case_sensitive: bool = True) -> FeaturePredicate:
    """Match features whose name starts with any of ``prefixes``.

    >>> is_mito = prefix_predicate("MT-")
    >>> is_mito("MT-CO1"), is_mito("ACTB")
    (True, False)
    """
    if not prefixes:
        raise ValueError("prefix_predicate needs at least one prefix")
    if case_sensitive:
        wanted = tuple(prefixes)
        return lambda name: name.startswith(wanted)
    wanted = tuple(p.lower() for p in prefixes)
    return lambda name: name.lower().startswith(wanted)


def set_predicate(names: Iterable[str]) -> FeaturePredicate:
    """Match features listed explicitly in ``names``."""
    members = frozenset(names)
    if not members:
        raise ValueError("set_predicate needs at least one feature name")
    return lambda name: name in members


def any_of(*predicates: FeaturePredicate) -> FeaturePredicate:
    """Match a feature selected by any of ``predicates``."""
    return lambda name: any(p(name) for p in predicates)
