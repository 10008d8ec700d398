"""Tests for template loaders."""

from __future__ import annotations

from pathlib import Path

import pytest

from talisman import (
    ChoiceLoader,
    DictLoader,
    Environment,
    FileSystemLoader,
    FunctionLoader,
    TemplateNotFoundError,
)

from .conftest import render


@pytest.fixture
def views(tmp_path: Path) -> Path:
    (tmp_path / "index.html").write_text("<h1>{title}</h1>", encoding="utf-8")
    (tmp_path / "partials").mkdir()
    (tmp_path / "partials" / "nav.html").write_text("<nav>{active}</nav>", encoding="utf-8")
    return tmp_path


class TestFileSystemLoader:
    def test_relative_name(self, views: Path) -> None:
        source, filename = FileSystemLoader(views).get_source("index.html")
        assert source == "<h1>{title}</h1>"
        assert filename == str(views / "index.html")

    def test_search_order(self, views: Path, tmp_path_factory) -> None:
        override = tmp_path_factory.mktemp("override")
        (override / "index.html").write_text("custom", encoding="utf-8")
        loader = FileSystemLoader([override, views])
        assert loader.get_source("index.html")[0] == "custom"
        assert loader.paths == [override, views]

    def test_absolute_path(self, views: Path) -> None:
        loader = FileSystemLoader("/nonexistent")
        source, _ = loader.get_source(str(views / "partials" / "nav.html"))
        assert source == "<nav>{active}</nav>"

    def test_missing(self, views: Path) -> None:
        with pytest.raises(TemplateNotFoundError) as exc_info:
            FileSystemLoader(views).get_source("missing.html")
        assert "missing.html" in str(exc_info.value)

    def test_missing_absolute(self, views: Path) -> None:
        with pytest.raises(TemplateNotFoundError):
            FileSystemLoader(views).get_source(str(views / "gone.html"))

    def test_relative_name_cannot_escape_search_path(self, views: Path) -> None:
        loader = FileSystemLoader(views / "partials")
        with pytest.raises(TemplateNotFoundError, match="outside the search path"):
            loader.get_source("../index.html")
        with pytest.raises(TemplateNotFoundError):
            FileSystemLoader(views).get_source("partials/../../index.html")

    def test_undecodable(self, views: Path) -> None:
        (views / "latin.html").write_bytes(b"caf\xe9")
        with pytest.raises(TemplateNotFoundError):
            FileSystemLoader(views).get_source("latin.html")
        source, _ = FileSystemLoader(views, encoding="latin-1").get_source("latin.html")
        assert source == "café"

    def test_list_templates(self, views: Path) -> None:
        assert FileSystemLoader(views).list_templates() == ["index.html", "partials/nav.html"]

    @pytest.mark.asyncio
    async def test_load_fragment_by_path(self, views: Path) -> None:
        env = Environment(loader=FileSystemLoader(views))
        page = env.from_string("{nav}|{title}").load("partials/nav.html").bind("active", "x")
        assert await render(page) == "<nav>x</nav>|{title}"

    @pytest.mark.asyncio
    async def test_create_from_disk(self, views: Path) -> None:
        env = Environment(loader=FileSystemLoader(views))
        page = env.get_template("index.html").bind("title", "Home")
        assert page.filename == str(views / "index.html")
        assert await render(page) == "<h1>Home</h1>"


class TestDictLoader:
    def test_found(self) -> None:
        assert DictLoader({"a.html": "A"}).get_source("a.html") == ("A", None)

    def test_suggestion(self) -> None:
        with pytest.raises(TemplateNotFoundError) as exc_info:
            DictLoader({"header.html": ""}).get_source("heder.html")
        assert "Did you mean 'header.html'" in str(exc_info.value)

    def test_list_templates(self) -> None:
        assert DictLoader({"b": "", "a": ""}).list_templates() == ["a", "b"]


class TestChoiceLoader:
    def test_first_match_wins(self) -> None:
        loader = ChoiceLoader([DictLoader({"a": "first"}), DictLoader({"a": "second", "b": "B"})])
        assert loader.get_source("a")[0] == "first"
        assert loader.get_source("b")[0] == "B"

    def test_none_match(self) -> None:
        with pytest.raises(TemplateNotFoundError):
            ChoiceLoader([DictLoader({})]).get_source("a")


class TestFunctionLoader:
    def test_string_result(self) -> None:
        loader = FunctionLoader(lambda name: f"<p>{name}</p>")
        assert loader.get_source("x") == ("<p>x</p>", "<function>")

    def test_tuple_result(self) -> None:
        loader = FunctionLoader(lambda name: ("src", f"db://{name}"))
        assert loader.get_source("x") == ("src", "db://x")

    def test_none_is_missing(self) -> None:
        with pytest.raises(TemplateNotFoundError):
            FunctionLoader(lambda name: None).get_source("x")
