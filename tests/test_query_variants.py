"""
Tests for query normalization and search-variant building.
"""
from __future__ import annotations

import pytest

from copyscout.domain.models import VariantKey
from copyscout.services.query_svc import (
    QueryProfiler,
    build_core_window,
    build_query_variants,
    keyword_tokens,
    normalize_search_text,
    strip_punctuation,
)


class TestNormalization:
    def test_strips_zero_width_and_collapses_whitespace(self):
        assert normalize_search_text("hello\u200b   world\n\tagain") == "hello world again"

    def test_collapses_repeated_terminal_punctuation(self):
        assert normalize_search_text("this is wild!!!!") == "this is wild!"
        assert normalize_search_text("wait what???") == "wait what?"

    def test_keeps_double_punctuation(self):
        assert normalize_search_text("really!!") == "really!!"

    def test_strict_pass_keeps_mentions_and_hashtags(self):
        assert strip_punctuation("Hey @bob, #python's great... right?") == "Hey @bob #pythons great right"

    def test_none_is_empty(self):
        assert normalize_search_text(None) == ""


class TestBuildQueryVariants:
    @pytest.mark.parametrize("text", ["", "short", "tiny text", "a b", "   "])
    def test_unsearchable_inputs_return_nothing(self, text):
        assert build_query_variants(text) == []

    def test_long_enough_but_two_tokens_returns_nothing(self):
        assert build_query_variants("extraordinarily verbose") == []

    def test_variants_are_ordered_most_literal_first(self):
        variants = build_query_variants("Just shipped the new release, check it out!")

        keys = [variant.key for variant in variants]
        assert keys[0] == VariantKey.EXACT_QUOTED
        assert variants[0].query == '"Just shipped the new release, check it out!"'
        assert variants[0].quoted is True
        assert VariantKey.NORMALIZED_QUOTED in keys
        assert variants[-1].key == VariantKey.KEYWORD_FALLBACK
        assert variants[-1].quoted is False

    def test_plain_values_are_unique_case_insensitively(self):
        variants = build_query_variants("hello world this is long enough")

        plains = [variant.plain.lower() for variant in variants]
        assert len(plains) == len(set(plains))
        # Nothing to strip, so the normalized form collapses into the exact one.
        assert VariantKey.NORMALIZED_QUOTED not in [variant.key for variant in variants]

    @pytest.mark.parametrize("max_variants", [1, 2, 3, 4])
    def test_never_exceeds_max_variants(self, max_variants):
        text = " ".join(f"word{index}" for index in range(30)) + "!"
        assert len(build_query_variants(text, max_variants=max_variants)) <= max_variants

    def test_long_posts_get_a_core_window(self):
        text = " ".join(f"token{index}" for index in range(20))
        variants = build_query_variants(text)

        window = next(variant for variant in variants if variant.key == VariantKey.CORE_WINDOW_QUOTED)
        assert window.plain.split() == [f"token{index}" for index in range(4, 16)]

    def test_keyword_fallback_drops_stopwords_but_keeps_tags(self):
        variants = build_query_variants("the cat and the dog are on #the mat with @them")
        fallback = variants[-1]

        assert fallback.key == VariantKey.KEYWORD_FALLBACK
        assert fallback.plain == "cat dog #the mat @them"


class TestHelpers:
    def test_core_window_sizes(self):
        tokens = [str(index) for index in range(40)]
        assert len(build_core_window(tokens).split()) == 16
        tokens = [str(index) for index in range(17)]
        assert build_core_window(tokens).split() == [str(index) for index in range(3, 13)]

    def test_keyword_tokens_respects_limit_and_uniqueness(self):
        tokens = ["Alpha", "alpha", "beta", "the", "gamma", "delta"]
        assert keyword_tokens(tokens, limit=3) == ["Alpha", "beta", "gamma"]


class TestQueryProfiler:
    def test_short_query(self):
        profile = QueryProfiler().profile("rust async traits")
        assert profile.short is True
        assert profile.needs_adaptive_variants is True

    def test_generic_query(self):
        profile = QueryProfiler().profile("good morning to all my people today")
        assert profile.generic is True
        assert profile.short is False

    def test_specific_query(self):
        profile = QueryProfiler().profile("Compiler backends emit relocatable object files quickly")
        assert profile.needs_adaptive_variants is False

    def test_generic_terms_are_configurable(self):
        profiler = QueryProfiler(generic_terms={"compiler", "backends", "emit"}, generic_ratio=0.5)
        assert profiler.profile("compiler backends emit relocatable object files").generic is True

    def test_adaptive_variants_added_for_generic_query(self):
        profiler = QueryProfiler()
        text = "hello world this is long enough"
        variants = profiler.build_variants(text, profiler.profile(text), max_variants=4, max_total=6)

        keys = [variant.key for variant in variants]
        assert VariantKey.BROAD_UNQUOTED in keys
        broad = next(variant for variant in variants if variant.key == VariantKey.BROAD_UNQUOTED)
        assert broad.query == text
        assert len(variants) <= 6

    def test_no_adaptive_variants_for_specific_query(self):
        profiler = QueryProfiler()
        text = "Compiler backends emit relocatable object files quickly"
        variants = profiler.build_variants(text, profiler.profile(text))

        assert all(
            variant.key not in (VariantKey.BROAD_UNQUOTED, VariantKey.KEYWORD_WINDOW) for variant in variants
        )

    def test_unsearchable_text_gets_no_adaptive_variants(self):
        profiler = QueryProfiler()
        assert profiler.build_variants("hi", profiler.profile("hi")) == []
