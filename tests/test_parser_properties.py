"""Property-based tests for the parser.

Generated templates are arbitrary nestings of text, tags, and blocks
written with canonical markers, so re-serializing the parsed tree must
reproduce the source exactly.
"""

from __future__ import annotations

import re

from hypothesis import given, settings
from hypothesis import strategies as st

from talisman import Block, Tag, Text, parse

from .strategies import block_name, plain_text, tag_name, template_source


class TestStructuralRoundTrip:
    """parse() then source() is the identity on canonical templates."""

    @given(source=template_source)
    @settings(max_examples=200)
    def test_round_trip(self, source: str) -> None:
        assert parse(source).source() == source

    @given(source=template_source)
    @settings(max_examples=200)
    def test_names_preserved(self, source: str) -> None:
        root = parse(source)
        expected_blocks = re.findall(r"<!--\{#([a-z0-9_]+)\}-->", source)
        expected_tags = re.findall(r"\{([a-z_][a-z0-9_]*)\}", source)
        walked = list(root.walk())
        assert [n.name for n in walked if isinstance(n, Block)] == expected_blocks
        assert [n.name for n in walked if isinstance(n, Tag)] == expected_tags

    @given(source=template_source)
    @settings(max_examples=100)
    def test_raw_text_matches_source(self, source: str) -> None:
        for node in parse(source).walk():
            if isinstance(node, Block):
                assert node.raw_text == node.source()


class TestTextOnly:
    """Text without braces or markers is a single Text node."""

    @given(text=plain_text)
    def test_text_is_untouched(self, text: str) -> None:
        root = parse(text)
        assert len(root.content) == 1
        assert isinstance(root.content[0], Text)
        assert root.content[0].value == text

    @given(name=tag_name, before=plain_text, after=plain_text)
    def test_tag_between_text(self, name: str, before: str, after: str) -> None:
        root = parse(f"{before}{{{name}}}{after}")
        assert [type(n) for n in root.content] == [Text, Tag, Text]
        assert root.tags[0].name == name

    @given(names=st.lists(block_name, min_size=1, max_size=6))
    def test_deep_nesting(self, names: list[str]) -> None:
        source = "".join(f"<!--{{#{n}}}-->" for n in names)
        source += "".join(f"<!--{{/{n}}}-->" for n in reversed(names))
        block = parse(source)
        for name in names:
            (block,) = block.blocks
            assert block.name == name
