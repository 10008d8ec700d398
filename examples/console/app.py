"""Console demo -- every kind of binding in one page.

Shows masks (global and block-scoped), deferred values, a streamed file,
a fragment loaded from another file, a deferred iterator guarded by
``wait_until()`` with a failure handler, and an ObjectStream iterator fed
by a producer task. The page is written to stdout as it renders.

Run:
    python app.py
    python app.py --fail      # take the failure path of the list
"""

import asyncio
import logging
import sys
from pathlib import Path

from talisman import Environment, FileSystemLoader, ObjectStream, Template

templates_dir = Path(__file__).parent / "templates"
env = Environment(loader=FileSystemLoader(str(templates_dir)))

LABELS = ["If", "you", "wish", "to", "make", "an", "apple pie", "from", "scratch"]


async def delay(seconds: float, value=None):
    await asyncio.sleep(seconds)
    return value


async def read_chunks(path: Path, size: int = 256):
    """Stream a file's bytes in chunks."""
    data = path.read_bytes()
    for start in range(0, len(data), size):
        await asyncio.sleep(0)
        yield data[start : start + size]


def build_view(fail: bool = False, title_delay: float = 0.05) -> tuple[Template, ObjectStream]:
    view = env.create("console.html")

    # Masks transform values at render time, here only inside <head>
    view.add_mask("lowercase", str.lower, "head")

    # Every tag inside "list" goes through "uppercase"
    view.add_mask("uppercase", str.upper, "list")

    # Values can be awaitables
    view.bind(
        {
            "title": "Talisman Console Demo",
            "pageTitle": delay(title_delay, "Welcome to the Talisman console demo"),
        }
    ).bind("html", "<strong>API calls can be chained</strong>", raw=True)

    # Values can be streams
    view.bind("streamedContent", read_chunks(templates_dir / "external.html"))

    # Other files can be loaded as blocks
    view.load(str(templates_dir / "external.html"), "externalContent")

    # Iterators can be awaitables
    async def load_rows():
        try:
            await asyncio.sleep(0.01)
            if fail:
                raise ConnectionError("Sometimes things fail")
            view.remove("nolist")
            return [{"label": label} for label in LABELS]
        except ConnectionError as e:
            view.remove("list")
            view.bind("errorMessage", str(e))
            return []

    data = load_rows()
    view.wait_until(data, "list").wait_until(data, "nolist").set_iterator(data, "list:row")

    # Iterators can be object streams
    rows = ObjectStream()
    view.set_iterator(rows, "externalContent:row")
    return view, rows


async def produce(rows: ObjectStream) -> None:
    for name in ["Object", "Streams", "FTW"]:
        await rows.push({"name": name})
    rows.end()


async def render_page(fail: bool = False) -> str:
    view, rows = build_view(fail)
    producer = asyncio.create_task(produce(rows))
    html = await view.render_async()
    await producer
    return html


output = asyncio.run(render_page())


async def stream_to_stdout(fail: bool) -> None:
    view, rows = build_view(fail, title_delay=1.0)
    producer = asyncio.create_task(produce(rows))
    async with view.render() as stream:
        async for chunk in stream:
            sys.stdout.buffer.write(chunk)
            sys.stdout.buffer.flush()
    await producer


def main() -> None:
    logging.basicConfig(level=logging.WARNING)
    asyncio.run(stream_to_stdout("--fail" in sys.argv))


if __name__ == "__main__":
    main()
