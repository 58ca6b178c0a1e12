from __future__ import annotations

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from kbquery.transforms import (
    DEFAULT_PIPELINE,
    KeyTransformEngine,
    TransformRegistry,
    UnknownTransformError,
    default_registry,
)
from kbquery.transforms.functions import (
    canonical,
    casefold,
    split_hyphens,
    strip_family_suffixes,
    strip_gene_affixes,
    strip_mutant,
    strip_ptm_prefixes,
)


def test_canonical_removes_whitespace_and_punctuation() -> None:
    assert canonical("TGF-beta 1, (human)") == ("tgfbeta1human",)


def test_casefold_normalizes_unicode() -> None:
    assert casefold("STRASSE") == ("strasse",)
    assert casefold("Straße") == ("strasse",)


def test_split_hyphens_variants() -> None:
    assert split_hyphens("IL-2") == ("IL-2", "IL 2", "IL2")
    assert split_hyphens("p53") == ("p53",)


@pytest.mark.parametrize(
    "func, text, expected",
    [
        (strip_gene_affixes, "BRCA1 gene", ("BRCA1 gene", "BRCA1")),
        (strip_gene_affixes, "TP53 proteins", ("TP53 proteins", "TP53")),
        (strip_family_suffixes, "RAS protein family", ("RAS protein family", "RAS")),
        (strip_family_suffixes, "AKT-family", ("AKT-family", "AKT")),
        (strip_mutant, "mutant KRAS", ("mutant KRAS", "KRAS")),
        (strip_mutant, "KRAS mutants", ("KRAS mutants", "KRAS")),
        (strip_ptm_prefixes, "phospho-ERK", ("phospho-ERK", "ERK")),
        (strip_gene_affixes, "gene", ("gene",)),
    ],
)
def test_affix_transforms(func, text, expected) -> None:
    assert func(text) == expected


def test_empty_pipeline_yields_text() -> None:
    engine = KeyTransformEngine()

    assert engine.transform("AKT1", []) == frozenset({"AKT1"})


def test_single_lowercase_stage() -> None:
    engine = KeyTransformEngine()

    assert engine.transform("p53", ["lowercase"]) == frozenset({"p53"})
    assert engine.transform("TP53", ["lowercase"]) == frozenset({"tp53"})


def test_default_pipeline_expands_breadth() -> None:
    engine = KeyTransformEngine()

    keys = engine.transform("TGF-Beta")

    assert engine.default_pipeline == DEFAULT_PIPELINE
    assert keys == frozenset({"TGF-Beta", "tgf-beta", "tgfbeta"})


def test_stages_apply_to_every_variant_of_previous_stage() -> None:
    engine = KeyTransformEngine()

    keys = engine.transform("phospho-ERK gene", ["strip_gene_affixes", "strip_ptm_prefixes"])

    assert keys == frozenset({"phospho-ERK gene", "phospho-ERK", "ERK gene", "ERK"})


def test_keys_are_stripped_and_non_empty() -> None:
    registry = TransformRegistry()
    registry.register("pad", lambda text: (f"  {text}  ", "   "))
    engine = KeyTransformEngine(registry)

    assert engine.transform("abc", ["pad"]) == frozenset({"abc"})


def test_ordered_keys_are_sorted_and_repeatable() -> None:
    engine = KeyTransformEngine()

    first = engine.ordered_keys("Protein Kinase-B")
    second = engine.ordered_keys("Protein Kinase-B")

    assert first == sorted(first)
    assert first == second


def test_unknown_transform_raises() -> None:
    engine = KeyTransformEngine()

    with pytest.raises(UnknownTransformError) as excinfo:
        engine.transform("abc", ["lowercase", "reverse"])

    assert excinfo.value.names == ("reverse",)


def test_engine_rejects_unknown_default_pipeline() -> None:
    with pytest.raises(UnknownTransformError):
        KeyTransformEngine(default_pipeline=("nope",))


def test_registry_registration_and_lookup() -> None:
    registry = TransformRegistry({})
    registry.register("upper", lambda text: (text.upper(),))

    assert "upper" in registry
    assert len(registry) == 1
    assert registry.unknown(["upper", "lowercase"]) == ["lowercase"]
    with pytest.raises(ValueError):
        registry.register("", lambda text: (text,))


def test_reregistered_transform_takes_effect_after_first_use() -> None:
    registry = TransformRegistry({"shout": lambda text: (text.upper(),)})
    engine = KeyTransformEngine(registry, ("shout",))
    assert engine.transform("tp53") == frozenset({"TP53"})

    registry.register("shout", lambda text: (text + "!",))

    assert engine.transform("tp53") == frozenset({"tp53!"})
    assert registry.version == 1


def test_engine_uses_an_empty_registry_as_given() -> None:
    with pytest.raises(UnknownTransformError):
        KeyTransformEngine(TransformRegistry({}), ("lowercase",))


def test_default_registry_has_builtin_transforms() -> None:
    registry = default_registry()

    for name in ("identity", "lowercase", "canonical", "casefold", "strip_mutant"):
        assert name in registry


@settings(suppress_health_check=[HealthCheck.function_scoped_fixture])
@given(st.text(max_size=40))
def test_transform_is_deterministic(text: str) -> None:
    engine = KeyTransformEngine()
    pipeline = ["identity", "split_hyphens", "lowercase", "canonical"]

    keys = engine.transform(text, pipeline)

    assert keys == engine.transform(text, pipeline)
    assert all(key and key == key.strip() for key in keys)
