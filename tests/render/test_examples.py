"""Tests for the literate example renderer."""

from __future__ import annotations

from capidocs.render.examples import (
    ExampleRenderer,
    RenderedExample,
    Section,
    example_output_path,
    split_sections,
)

SOURCE = """// Open the repo.
#include <widget.h>

int main(void)
{
\t/* Look it up
\t * carefully */
\treturn widget_open(NULL, "path"); // done
}
"""


def test_split_sections_pairs_comments_with_following_code() -> None:
    sections = split_sections(SOURCE)

    assert sections == [
        Section(docs=["Open the repo."], code=["#include <widget.h>", "", "int main(void)", "{"]),
        Section(
            docs=["Look it up", "carefully"],
            code=['\treturn widget_open(NULL, "path"); // done', "}"],
        ),
    ]


def test_example_output_path_replaces_extension() -> None:
    assert example_output_path("v1.0.0", "network/fetch.c") == "ex/v1.0.0/network/fetch.html"


def test_render_builds_page_with_relative_links() -> None:
    files = {"general.c": SOURCE, "network/fetch.c": "int x;\n"}
    renderer = ExampleRenderer()

    result = renderer.render("general.c", sorted(files), files.__getitem__, version="v1.0.0")

    assert result.source == "general.c"
    assert result.output_path == "ex/v1.0.0/general.html"
    assert 'href="../css.css"' in result.html
    assert 'href="network/fetch.html"' in result.html
    assert "<p>Open the repo.</p>" in result.html
    assert "widget_open" in result.html
    assert "v1.0.0" in result.html


def test_nested_example_climbs_to_stylesheet() -> None:
    files = {"general.c": SOURCE, "network/fetch.c": "int x;\n"}

    result = ExampleRenderer().render(
        "network/fetch.c", sorted(files), files.__getitem__, version="HEAD"
    )

    assert 'href="../../css.css"' in result.html
    assert 'href="../general.html"' in result.html


def test_hooks_rewrite_html() -> None:
    seen = []

    def hook(html: str, example: RenderedExample) -> str:
        seen.append(example.output_path)
        return html.replace("Open the repo.", "Open the repository.")

    result = ExampleRenderer().render(
        "general.c", ["general.c"], lambda path: SOURCE, version="v1.0.0", hooks=[hook]
    )

    assert seen == ["ex/v1.0.0/general.html"]
    assert "Open the repository." in result.html
