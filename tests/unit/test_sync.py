import asyncio

import pytest

from puml_sync.diagnostics import MissingAssetError, RendererError
from puml_sync.hashing import content_hash
from puml_sync.sync import RunRegistry, process_document, run_sync

H = content_hash("A--B;")


def write(path, text):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(text.encode("utf-8"))
    return path


def read(path):
    return path.read_bytes().decode("utf-8")


def annotated(digest, source="A--B;", caption="UML"):
    return (
        f"<!-- puml:{digest} -->\n"
        f"![{caption}](generated-assets/{digest}.svg)\n"
        "\n"
        "<details>\n"
        "<summary>PlantUML source</summary>\n"
        "\n"
        "```puml\n"
        f"{source}\n"
        "```\n"
        "\n"
        "</details>\n"
    )


def test_raw_block_is_rendered_and_annotated(root, make_config, renderer):
    doc = write(root / "docs" / "guide.md", "# Guide\n\n```puml\nA--B;\n```\n")

    report = run_sync(make_config(), renderer=renderer)

    assert read(doc) == "# Guide\n\n" + annotated(H)
    assert (root / "docs" / "generated-assets" / f"{H}.svg").exists()
    assert renderer.sources == ["A--B;"]
    assert report.written == [doc]
    assert report.rendered == 1


def test_second_run_is_idempotent(root, make_config, renderer):
    doc = write(root / "docs" / "guide.md", "# Guide\n\n```puml\nA--B;\n```\n")
    run_sync(make_config(), renderer=renderer)
    before = doc.read_bytes()
    renderer.sources.clear()

    report = run_sync(make_config(), renderer=renderer)

    assert doc.read_bytes() == before
    assert renderer.sources == []
    assert report.written == []
    assert report.gc.kept == (H,)
    assert report.gc.deleted == ()


def test_stale_annotation_is_updated_and_old_asset_collected(root, make_config, renderer):
    old = content_hash("old source")
    out = root / "docs" / "generated-assets"
    write(out / f"{old}.svg", "<svg/>")
    doc = write(root / "docs" / "guide.md", annotated(old, source="A--B;", caption="Kept"))

    report = run_sync(make_config(), renderer=renderer)

    assert read(doc) == annotated(H, caption="Kept")
    assert (out / f"{H}.svg").exists()
    assert not (out / f"{old}.svg").exists()
    assert report.gc.deleted == (out / f"{old}.svg",)


def test_rewrite_all_renders_current_annotations_without_rewriting(root, make_config, renderer):
    out = root / "docs" / "generated-assets"
    write(out / f"{H}.svg", "<svg>stale bytes</svg>")
    doc = write(root / "docs" / "guide.md", annotated(H))

    report = run_sync(make_config(rewrite_all=True), renderer=renderer)

    assert renderer.sources == ["A--B;"]
    assert read(doc) == annotated(H)
    assert report.written == []
    assert read(out / f"{H}.svg") == "<svg>A--B;</svg>"


def test_literal_blocks_never_render(root, make_config, renderer):
    text = "Usage:\n\n    ```puml\n    A--B;\n    ```\n"
    doc = write(root / "docs" / "guide.md", text)

    report = run_sync(make_config(), renderer=renderer)

    assert read(doc) == text
    assert renderer.sources == []
    assert report.registry.live == set()


def test_identical_sources_across_documents_share_one_asset(root, make_config, renderer):
    write(root / "docs" / "a.md", "```puml\nA--B;\n```\n")
    write(root / "docs" / "sub" / "b.md", "```puml Other\nA--B;\n```\n")

    run_sync(make_config(), renderer=renderer)

    assets = sorted(p.name for p in (root / "docs" / "generated-assets").iterdir())
    assert assets == [f"{H}.svg"]
    assert f"](../generated-assets/{H}.svg)" in read(root / "docs" / "sub" / "b.md")


def test_broken_reference_does_not_stop_the_run(root, make_config, renderer):
    a = write(root / "docs" / "a.md", "![Flow](missing.puml)\n\n```puml\nA--B;\n```\n")
    b = write(root / "docs" / "b.md", "```puml\nC--D;\n```\n")
    reported = []

    run_sync(make_config(), renderer=renderer, report=reported.append)

    assert read(a).startswith("![Flow](missing.puml)\n\n<!-- puml:")
    assert read(b).startswith(f"<!-- puml:{content_hash('C--D;')} -->")
    assert [d.code for d in reported] == ["W_SOURCE_UNREADABLE"]
    assert reported[0].path == str(a)


def test_syntax_error_in_one_diagram_does_not_abort(root, make_config, renderer):
    """A renderer syntax error is reported and the run carries on."""
    bad = content_hash("SYNTAX")
    a = write(root / "docs" / "a.md", "```puml\nSYNTAX\n```\n\n```puml\nA--B;\n```\n")
    write(root / "docs" / "b.md", "```puml\nC--D;\n```\n")
    reported = []

    report = run_sync(make_config(), renderer=renderer, report=reported.append)

    out = root / "docs" / "generated-assets"
    assert (out / f"{H}.svg").exists()
    assert (out / f"{content_hash('C--D;')}.svg").exists()
    assert not (out / f"{bad}.svg").exists()
    # The markup already points at the new hash.
    assert f"<!-- puml:{bad} -->" in read(a)
    assert [d.code for d in reported] == ["W_RENDER_SYNTAX"]
    assert report.gc.unrendered == (bad,)
    assert report.registry.failed == {bad: [a]}
    assert [d.code for d in report.unrendered_warnings] == ["W_RENDER_FAILED_ASSET"]


def test_missing_asset_for_current_annotation_fails_the_run(root, make_config, renderer):
    write(root / "docs" / "guide.md", annotated(H))

    with pytest.raises(MissingAssetError) as excinfo:
        run_sync(make_config(), renderer=renderer)
    assert excinfo.value.missing == [H]


def test_unreachable_renderer_is_fatal(root, make_config):
    write(root / "docs" / "guide.md", "```puml\nA--B;\n```\n")
    cfg = make_config(renderer=(str(root / "no-such-renderer"),))

    with pytest.raises(RendererError):
        run_sync(cfg)


def test_real_subprocess_renderer_end_to_end(root, make_config, fake_renderer_argv):
    doc = write(root / "docs" / "guide.md", "```puml\nA--B;\n```\n")

    run_sync(make_config(renderer=tuple(fake_renderer_argv)))

    asset = root / "docs" / "generated-assets" / f"{H}.svg"
    assert asset.read_bytes() == b"<svg><!--@startuml\nA--B;\n@enduml\n--></svg>"
    assert read(doc) == annotated(H)


def test_discovery_skips_dependency_directories(root, make_config, renderer):
    vendored = write(root / "node_modules" / "pkg" / "README.md", "```puml\nX\n```\n")
    doc = write(root / "README.md", "```puml\nA--B;\n```\n")

    run_sync(make_config(output_dir=root / "assets"), renderer=renderer)

    assert read(vendored) == "```puml\nX\n```\n"
    assert f"](assets/{H}.svg)" in read(doc)


def test_glob_override_limits_documents(root, make_config, renderer):
    skipped = write(root / "notes" / "todo.md", "```puml\nX\n```\n")
    write(root / "docs" / "guide.md", "```puml\nA--B;\n```\n")

    run_sync(make_config(glob="docs/**/*.md"), renderer=renderer)

    assert read(skipped) == "```puml\nX\n```\n"
    assert renderer.sources == ["A--B;"]


def test_crlf_text_outside_blocks_is_preserved(root, make_config, renderer):
    doc = write(root / "docs" / "guide.md", "# Guide\r\n\r\n```puml\r\nA--B;\r\n```\r\nEnd\r\n")

    run_sync(make_config(), renderer=renderer)

    text = read(doc)
    assert text.startswith("# Guide\r\n\r\n<!-- puml:")
    assert text.endswith("</details>\r\nEnd\r\n")
    assert renderer.sources == ["A--B;"]


def test_process_document_records_into_registry(root, make_config, renderer):
    doc = write(root / "docs" / "guide.md", "```puml\nA--B;\n```\n")
    registry = RunRegistry()

    result = asyncio.run(process_document(doc, make_config(), renderer, registry))

    assert result.changed
    assert result.decisions == ("regenerate",)
    assert registry.live == {H}
    assert registry.documents == [result]


def test_source_with_backtick_fence_lines_is_stable_across_runs(root, make_config, renderer):
    source = "note\n```\nend note"
    doc = write(root / "docs" / "guide.md", f"````puml\n{source}\n````\n")

    run_sync(make_config(), renderer=renderer)
    first = read(doc)
    renderer.sources.clear()
    run_sync(make_config(), renderer=renderer)

    digest = content_hash(source)
    assert first.count("<!-- puml:") == 1
    assert f"<!-- puml:{digest} -->" in first
    assert f"````puml\n{source}\n````\n\n</details>\n" in first
    assert read(doc) == first
    assert renderer.sources == []


def test_unreadable_document_is_skipped_and_the_run_continues(root, make_config, renderer):
    bad = root / "docs" / "a.md"
    bad.parent.mkdir(parents=True)
    bad.write_bytes(b"caf\xe9\n")
    good = write(root / "docs" / "b.md", "```puml\nA--B;\n```\n")
    reported = []

    report = run_sync(make_config(), renderer=renderer, report=reported.append)

    assert bad.read_bytes() == b"caf\xe9\n"
    assert read(good) == annotated(H)
    assert [d.code for d in reported] == ["W_DOCUMENT_UNREADABLE"]
    assert reported[0].path == str(bad)
    assert report.written == [good]
    assert report.gc.kept == (H,)


def test_unreadable_document_keeps_its_assets(root, make_config, renderer):
    out = root / "docs" / "generated-assets"
    orphan = write(out / f"{content_hash('old source')}.svg", "<svg/>")
    bad = root / "docs" / "a.md"
    bad.parent.mkdir(parents=True, exist_ok=True)
    bad.write_bytes(b"\xff\xfe not utf-8\n")

    report = run_sync(make_config(), renderer=renderer, report=lambda d: None)

    assert orphan.exists()
    assert report.registry.skipped == [bad]
    assert report.gc.deleted == ()


def test_failed_render_is_retried_only_after_the_source_is_fixed(root, make_config, renderer):
    doc = write(root / "docs" / "guide.md", "```puml\nSYNTAX\n```\n")
    run_sync(make_config(), renderer=renderer, report=lambda d: None)

    with pytest.raises(MissingAssetError) as excinfo:
        run_sync(make_config(), renderer=renderer)
    assert excinfo.value.missing == [content_hash("SYNTAX")]
    assert "source is fixed" in excinfo.value.hint

    write(doc, read(doc).replace("SYNTAX\n", "A--B;\n"))
    run_sync(make_config(), renderer=renderer)
    assert (root / "docs" / "generated-assets" / f"{H}.svg").exists()
