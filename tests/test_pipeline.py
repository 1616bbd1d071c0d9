"""End-to-end tests for EditPipeline: model output in, files on disk out."""

from pathlib import Path

import pytest

from edits_mcp.engine import ChangeKind, ChangeLedger, EditPipeline, EditRecord, PipelineConfig

APP_SOURCE = (
    "import os\n"
    "\n"
    "def a():\n"
    "    return 1\n"
    "\n"
    "def b():\n"
    "    return 2\n"
    "\n"
    "def c():\n"
    "    return 3\n"
)


def chunked(text: str, size: int) -> list[str]:
    return [text[i : i + size] for i in range(0, len(text), size)]


@pytest.fixture
def app_project(project: Path) -> Path:
    (project / "app.py").write_text(APP_SOURCE)
    return project


# =============================================================================
# Single response
# =============================================================================


class TestProcessStream:
    """One model response through scanner, expander, chooser and applier."""

    @pytest.mark.asyncio
    async def test_abbreviated_edit_end_to_end(self, app_project: Path) -> None:
        response = (
            "Sure.\n\n"
            '<write_file path="app.py">\n'
            "# ... existing code ...\n"
            "def b():\n"
            "    return 20\n"
            "# ... existing code ...\n"
            "</write_file>\n\n"
            "Done."
        )

        result = await EditPipeline(app_project).process_stream(chunked(response, 7))

        assert result.text == "Sure.\n\n\n\nDone."
        assert result.outcome.modified == ["app.py"]
        assert result.failures == {}
        assert (app_project / "app.py").read_text() == APP_SOURCE.replace("return 2\n", "return 20\n")

    @pytest.mark.asyncio
    async def test_new_file_from_file_tag(self, project: Path) -> None:
        response = '<file path="pkg/new.py">\nVALUE = 42\n</file>'

        result = await EditPipeline(project).process_stream([response])

        assert result.outcome.created == ["pkg/new.py"]
        assert [c.kind for c in result.changes] == [ChangeKind.FULL_FILE]
        assert (project / "pkg" / "new.py").read_text() == "VALUE = 42\n"

    @pytest.mark.asyncio
    async def test_failure_in_one_file_does_not_stop_others(self, app_project: Path) -> None:
        response = (
            '<write_file path="app.py">\n'
            "def nowhere():\n"
            "    pass\n"
            "# ... existing code ...\n"
            "</write_file>\n"
            '<write_file path="ok.py">\n'
            "ok = True\n"
            "</write_file>\n"
        )

        result = await EditPipeline(app_project).process_stream(chunked(response, 13))

        assert list(result.failures) == ["app.py"]
        assert "elision" in result.failures["app.py"]
        assert result.outcome.created == ["ok.py"]
        assert (app_project / "app.py").read_text() == APP_SOURCE

    @pytest.mark.asyncio
    async def test_unchanged_file_is_not_written(self, app_project: Path) -> None:
        response = f'<write_file path="app.py">\n{APP_SOURCE}</write_file>'

        result = await EditPipeline(app_project).process_stream([response])

        assert result.unchanged == ["app.py"]
        assert result.changes == []
        assert result.outcome.all_paths() == []

    @pytest.mark.asyncio
    async def test_stop_after_first_edit(self, project: Path) -> None:
        response = (
            'before <write_file path="a.txt">\nA\n</write_file> between '
            '<write_file path="b.txt">\nB\n</write_file> after'
        )

        result = await EditPipeline(project).process_stream([response], stop_after_first_edit=True)

        assert result.terminated_early
        assert result.text == "before "
        assert result.outcome.created == ["a.txt"]
        assert not (project / "b.txt").exists()

    @pytest.mark.asyncio
    async def test_incomplete_edit_is_reported_not_applied(self, project: Path) -> None:
        response = 'Here it is: <write_file path="cut.py">\nx = 1\n'

        result = await EditPipeline(project).process_stream(chunked(response, 5))

        assert result.incomplete_tags == ["cut.py"]
        assert result.changes == []
        assert not (project / "cut.py").exists()

    @pytest.mark.asyncio
    async def test_async_chunk_source(self, project: Path) -> None:
        async def model_output():
            for chunk in chunked('<file path="a.txt">\nfrom async\n</file>', 3):
                yield chunk

        result = await EditPipeline(project).process_stream(model_output())

        assert result.outcome.created == ["a.txt"]
        assert (project / "a.txt").read_text() == "from async\n"

    @pytest.mark.asyncio
    async def test_same_path_edited_twice_in_one_response(self, project: Path) -> None:
        """The second edit is reconciled against the first edit's result."""
        response = (
            '<file path="n.py">\na = 1\nb = 2\n</file>\n'
            '<file path="n.py">\n'
            "<<<<<<< SEARCH\nb = 2\n=======\nb = 3\n>>>>>>> REPLACE\n"
            "</file>\n"
        )

        result = await EditPipeline(project).process_stream([response])

        assert len(result.changes) == 2
        assert result.outcome.created == ["n.py"]
        assert (project / "n.py").read_text() == "a = 1\nb = 3\n"

    @pytest.mark.asyncio
    async def test_aliased_paths_name_one_file(self, project: Path) -> None:
        response = (
            '<file path="n.py">\na = 1\nb = 2\n</file>\n'
            '<file path="./n.py">\n'
            "<<<<<<< SEARCH\nb = 2\n=======\nb = 3\n>>>>>>> REPLACE\n"
            "</file>\n"
        )

        result = await EditPipeline(project).process_stream([response])

        assert result.failures == {}
        assert result.outcome.created == ["n.py"]
        assert result.outcome.modified == ["./n.py"]
        assert (project / "n.py").read_text() == "a = 1\nb = 3\n"

    @pytest.mark.asyncio
    async def test_long_open_tag_streamed_one_character_at_a_time(self, project: Path) -> None:
        path = "src/components/dashboard/widgets/RevenueChartWidget.tsx"
        response = f'Adding the widget.\n<write_file path="{path}">\nexport {{}};\n</write_file>\n'

        result = await EditPipeline(project).process_stream(list(response))

        assert result.outcome.created == [path]
        assert result.text == "Adding the widget.\n\n"
        assert (project / path).read_text() == "export {};\n"

    @pytest.mark.asyncio
    async def test_edit_without_path_attribute(self, project: Path) -> None:
        result = await EditPipeline(project).process_stream(["<write_file>\nx\n</write_file>"])

        assert list(result.failures) == ["<write_file>"]
        assert result.changes == []

    @pytest.mark.asyncio
    async def test_ignored_path_reported(self, project: Path) -> None:
        (project / ".gitignore").write_text("secret.txt\n")

        result = await EditPipeline(project).process_stream(
            ['<write_file path="secret.txt">\nhunter2\n</write_file>']
        )

        assert result.outcome.ignored == ["secret.txt"]
        assert not (project / "secret.txt").exists()

    @pytest.mark.asyncio
    async def test_custom_edit_tags(self, project: Path) -> None:
        config = PipelineConfig(edit_tags=["edit"])

        result = await EditPipeline(project, config=config).process_stream(
            ['<edit path="x.txt">\nx\n</edit><write_file path="y.txt">\ny\n</write_file>']
        )

        assert result.outcome.created == ["x.txt"]
        assert '<write_file path="y.txt">' in result.text


# =============================================================================
# Ledger integration
# =============================================================================


class TestLedgerAcrossTurns:
    """Changes are recorded per turn and reset lazily on the next turn's output."""

    def test_empty_ledger_is_used_as_given(self, project: Path) -> None:
        ledger = ChangeLedger()

        assert len(ledger) == 0
        assert EditPipeline(project, ledger=ledger).ledger is ledger

    @pytest.mark.asyncio
    async def test_changes_recorded_per_turn(self, project: Path) -> None:
        ledger = ChangeLedger()
        pipeline = EditPipeline(project, ledger=ledger)

        ledger.start_turn("turn-1")
        await pipeline.process_stream(['<file path="one.txt">\n1\n</file>'])
        assert [c.path for c in ledger.get_changes()] == ["one.txt"]

        ledger.start_turn("turn-2")
        assert [c.path for c in ledger.get_changes()] == ["one.txt"]

        await pipeline.process_stream(['<file path="two.txt">\n2\n</file>'])
        assert [c.path for c in ledger.get_changes()] == ["two.txt"]

    @pytest.mark.asyncio
    async def test_turn_without_edits_clears_ledger(self, project: Path) -> None:
        ledger = ChangeLedger()
        pipeline = EditPipeline(project, ledger=ledger)
        await pipeline.process_stream(['<file path="one.txt">\n1\n</file>'])

        ledger.start_turn()
        await pipeline.process_stream(["Nothing to change this time."])

        assert ledger.get_changes() == ()

    @pytest.mark.asyncio
    async def test_unchanged_edit_not_recorded(self, app_project: Path) -> None:
        ledger = ChangeLedger()

        await EditPipeline(app_project, ledger=ledger).process_stream(
            [f'<write_file path="app.py">\n{APP_SOURCE}</write_file>']
        )

        assert len(ledger) == 0


# =============================================================================
# Single edit
# =============================================================================


class TestReconcile:
    """reconcile() and read_old_content() without the stream."""

    def test_reconcile_small_edit_as_patch(self, project: Path) -> None:
        old = "".join(f"item_{i} = {i}\n" for i in range(50))
        record = EditRecord(
            file_path="items.py",
            old_content=old,
            raw_new_representation=(
                "# ... existing code ...\n"
                "item_24 = 24\n"
                "item_25 = 'changed'\n"
                "item_26 = 26\n"
                "# ... existing code ...\n"
            ),
        )

        change = EditPipeline(project).reconcile(record)

        assert change.kind == ChangeKind.PATCH
        assert "+item_25 = 'changed'\n" in change.content
        assert "-item_25 = 25\n" in change.content

    def test_read_old_content(self, app_project: Path) -> None:
        pipeline = EditPipeline(app_project)

        assert pipeline.read_old_content("app.py") == APP_SOURCE
        assert pipeline.read_old_content("missing.py") is None
        assert pipeline.read_old_content("../escape.py") is None
