"""Tests for block visibility: hide/restore, forced display, gates, and unused bindings."""

from __future__ import annotations

import asyncio
import inspect
import logging

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from talisman import Environment

from .conftest import later, rejected, render
from .strategies import safe_value

PAGE = (
    "<header>{title}</header>"
    "<!--{#banner}--><div class='banner'>{message}</div><!--{/banner}-->"
    "<!--{#list}--><ul><!--{#row}--><li>{name}</li><!--{/row}--></ul><!--{/list}-->"
    "<!--{#nolist}--><p>Nothing here</p><!--{/nolist}-->"
)


# ---------------------------------------------------------------------------
# Default policy
# ---------------------------------------------------------------------------


class TestDefaultVisibility:
    @pytest.mark.asyncio
    async def test_unbound_block_renders_empty(self, env: Environment) -> None:
        t = env.from_string("a<!--{#banner}-->{message}<!--{/banner}-->b")
        assert await render(t) == "ab"

    @pytest.mark.asyncio
    async def test_block_renders_when_its_tags_are_bound(self, env: Environment) -> None:
        t = env.from_string("a<!--{#banner}-->{message}<!--{/banner}-->b").bind("message", "!")
        assert await render(t) == "a!b"

    @pytest.mark.asyncio
    async def test_partially_bound_block_is_suppressed(self, env: Environment) -> None:
        t = env.from_string("<!--{#card}-->{title}/{body}<!--{/card}-->").bind("title", "T")
        assert await render(t) == ""

    @pytest.mark.asyncio
    async def test_static_block_renders(self, env: Environment) -> None:
        t = env.from_string("<!--{#nolist}--><p>Nothing</p><!--{/nolist}-->")
        assert await render(t) == "<p>Nothing</p>"

    @pytest.mark.asyncio
    async def test_nested_tags_do_not_count(self, env: Environment) -> None:
        t = env.from_string(
            "<!--{#outer}-->[<!--{#inner}-->{x}<!--{/inner}-->]<!--{/outer}-->"
        )
        assert await render(t) == "[]"

    @pytest.mark.asyncio
    async def test_suppression_is_logged_at_debug(self, env: Environment, caplog) -> None:
        t = env.from_string("<!--{#banner}-->{message}<!--{/banner}-->")
        with caplog.at_level(logging.DEBUG, logger="talisman"):
            await render(t)
        assert any("banner" in r.getMessage() for r in caplog.records if r.levelno == logging.DEBUG)


# ---------------------------------------------------------------------------
# Explicit visibility
# ---------------------------------------------------------------------------


class TestExplicitVisibility:
    @pytest.mark.asyncio
    async def test_show_undefined_block_renders_placeholders(self, env: Environment) -> None:
        t = env.from_string("<!--{#banner}--><b>{message}</b><!--{/banner}-->")
        t.show_undefined_block("banner")
        assert await render(t) == "<b>{message}</b>"

    @pytest.mark.asyncio
    async def test_remove_hides_bound_block(self, env: Environment) -> None:
        t = env.from_string("a<!--{#banner}-->{message}<!--{/banner}-->b")
        t.bind("message", "!").remove("banner")
        assert await render(t) == "ab"

    @pytest.mark.asyncio
    async def test_hidden_wins_over_shown(self, env: Environment) -> None:
        t = env.from_string("<!--{#x}-->static<!--{/x}-->")
        t.show_undefined_block("x").remove("x")
        assert await render(t) == ""

    @pytest.mark.asyncio
    async def test_hidden_block_values_are_never_resolved(self, env: Environment) -> None:
        calls: list[str] = []

        def expensive() -> str:
            calls.append("x")
            return "x"

        t = env.from_string("<!--{#x}-->{v}<!--{/x}-->").bind("v", expensive).remove("x")
        assert await render(t) == ""
        assert calls == []

    @pytest.mark.asyncio
    async def test_remove_qualified_name(self, env: Environment) -> None:
        t = env.from_string(
            "<!--{#a}--><!--{#item}-->A<!--{/item}--><!--{/a}-->"
            "<!--{#b}--><!--{#item}-->B<!--{/item}--><!--{/b}-->"
        )
        t.remove("a:item")
        assert await render(t) == "B"

    @pytest.mark.asyncio
    async def test_remove_restore_is_identity(self, env: Environment) -> None:
        plain = env.from_string(PAGE).bind({"title": "T", "message": "M"})
        plain.set_iterator([{"name": "n"}], "list:row")
        toggled = env.from_string(PAGE).bind({"title": "T", "message": "M"})
        toggled.set_iterator([{"name": "n"}], "list:row")
        toggled.remove("banner").remove("list").restore("banner").restore("list")
        assert await render(toggled) == await render(plain)

    @given(
        hidden=st.lists(st.sampled_from(["banner", "list", "row", "nolist"]), unique=True),
        title=safe_value,
    )
    @settings(max_examples=30, deadline=None)
    def test_remove_restore_law(self, hidden: list[str], title: str) -> None:
        env = Environment()

        def build():
            return env.from_string(PAGE).bind({"title": title, "message": "M"})

        async def both() -> tuple[str, str]:
            toggled = build()
            for name in hidden:
                toggled.remove(name)
            for name in hidden:
                toggled.restore(name)
            return await render(toggled), await render(build())

        toggled, untouched = asyncio.run(both())
        assert toggled == untouched


# ---------------------------------------------------------------------------
# Gates
# ---------------------------------------------------------------------------


class TestWaitUntil:
    @pytest.mark.asyncio
    async def test_gate_failure_handler_controls_visibility(self, env: Environment) -> None:
        """The control-flow pattern: a failure handler removes and binds."""
        t = env.from_string(PAGE).bind("title", "Shop")

        async def load_rows() -> list[dict[str, str]]:
            try:
                return await rejected("catalog offline", delay=0.01)
            except RuntimeError as e:
                t.remove("list").bind("message", str(e))
                return []

        data = load_rows()
        t.wait_until(data, "banner").wait_until(data, "list").set_iterator(data, "list:row")
        html = await render(t)
        assert "<div class='banner'>catalog offline</div>" in html
        assert "<ul>" not in html
        assert "<p>Nothing here</p>" in html

    @pytest.mark.asyncio
    async def test_success_path(self, env: Environment) -> None:
        t = env.from_string(PAGE).bind("title", "Shop")
        data = later([{"name": "Melons"}], 0.01)
        t.wait_until(data, "list").set_iterator(data, "list:row").remove("nolist")
        html = await render(t)
        assert html == "<header>Shop</header><ul><li>Melons</li></ul>"

    @pytest.mark.asyncio
    async def test_rejected_gate_does_not_hide(self, env: Environment) -> None:
        t = env.from_string("<!--{#x}-->shown<!--{/x}-->").wait_until(rejected(), "x")
        assert await render(t) == "shown"

    @pytest.mark.asyncio
    async def test_gate_holds_back_block(self, env: Environment) -> None:
        gate = asyncio.get_running_loop().create_future()
        t = env.from_string("a<!--{#x}-->{v}<!--{/x}-->")
        t.wait_until(gate, "x")

        async def open_gate() -> None:
            await asyncio.sleep(0.01)
            t.bind("v", "late")
            gate.set_result(None)

        opener = asyncio.create_task(open_gate())
        assert await render(t) == "alate"
        await opener

    @pytest.mark.asyncio
    async def test_cancelled_gate_does_not_hide(self, env: Environment) -> None:
        gate = asyncio.get_running_loop().create_future()
        gate.cancel()
        t = env.from_string("x<!--{#blk}-->static<!--{/blk}-->y").wait_until(gate, "blk")
        assert await asyncio.wait_for(render(t), 2) == "xstaticy"

    @pytest.mark.asyncio
    async def test_gate_task_cancelled_while_waiting(self, env: Environment) -> None:
        gate = asyncio.create_task(asyncio.sleep(10))
        asyncio.get_running_loop().call_later(0.01, gate.cancel)
        t = env.from_string("x<!--{#blk}-->static<!--{/blk}-->y").wait_until(gate, "blk")
        assert await asyncio.wait_for(render(t), 2) == "xstaticy"

    @pytest.mark.asyncio
    async def test_gate_holds_back_fragment_tag(self, env_with_loader: Environment) -> None:
        page = env_with_loader.from_string("[{header}]").load("header.html")
        page.bind("title", "Hi")
        ran: list[str] = []

        async def decide() -> None:
            await asyncio.sleep(0.01)
            ran.append("gate")
            page.remove("header")

        page.wait_until(decide(), "header")
        assert await render(page) == "[]"
        assert ran == ["gate"]


# ---------------------------------------------------------------------------
# Unused bindings
# ---------------------------------------------------------------------------


class TestUnusedBindings:
    @pytest.mark.asyncio
    async def test_coroutine_in_hidden_block_is_closed(self, env: Environment) -> None:
        value = later("x")
        t = env.from_string("<!--{#x}-->{v}<!--{/x}-->").bind("v", value).remove("x")
        assert await render(t) == ""
        assert inspect.getcoroutinestate(value) == inspect.CORO_CLOSED

    @pytest.mark.asyncio
    async def test_gate_of_unreached_block_is_closed(self, env: Environment) -> None:
        gate = later(None)
        t = env.from_string("<!--{#outer}--><!--{#inner}-->i<!--{/inner}--><!--{/outer}-->")
        t.wait_until(gate, "inner").remove("outer")
        assert await render(t) == ""
        assert inspect.getcoroutinestate(gate) == inspect.CORO_CLOSED
