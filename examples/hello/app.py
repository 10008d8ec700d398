"""Hello World -- the simplest talisman example.

Parse a template from a string, bind a value, and render it.
No templates directory needed.

Run:
    python app.py
"""

import asyncio

from talisman import Environment

env = Environment()

template = env.from_string("<p id='greeting'>Hello, {name}!</p>")
template.bind("name", "World")

output = asyncio.run(template.render_async())


async def greet_all(names: list[str]) -> list[str]:
    """Render one page per name, all concurrently."""
    pages = [env.from_string("Hello, {name}!").bind("name", name) for name in names]
    return await asyncio.gather(*(page.render_async() for page in pages))


def main() -> None:
    print(output)
    print()

    for line in asyncio.run(greet_all(["Talisman", "asyncio", "Python"])):
        print(line)


if __name__ == "__main__":
    main()
