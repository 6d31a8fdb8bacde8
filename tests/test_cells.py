"""Tests for CellStore."""
from labplay.notebook.cells import CellStore
from labplay.schemas.notebook_schema import CellOutput, CellStatus


def test_starts_with_one_idle_cell():
    store = CellStore()
    cells = store.snapshot()
    assert len(cells) == 1
    assert cells[0].status == CellStatus.IDLE
    assert cells[0].code == ""
    assert store.execution_count == 0


def test_insert_move_and_delete():
    store = CellStore()
    first = store.snapshot()[0]
    last = store.insert_after()
    middle = store.insert_after(first.id)
    assert [c.id for c in store.snapshot()] == [first.id, middle.id, last.id]
    assert store.insert_after("missing").id == store.snapshot()[-1].id

    assert not store.move_up(first.id)
    assert store.move_down(first.id)
    assert store.index_of(first.id) == 1
    assert store.move_up(first.id)
    assert not store.move_down(store.snapshot()[-1].id)

    for cell in store.snapshot()[1:]:
        assert store.delete(cell.id)
    assert not store.delete(first.id)
    assert len(store) == 1


def test_only_one_cell_runs_at_a_time():
    store = CellStore()
    a = store.snapshot()[0]
    b = store.insert_after(a.id)
    store.set_code(a.id, "print(1)")

    running = store.mark_running(a.id)
    assert running.status == CellStatus.RUNNING
    assert running.execution_index == 1
    assert store.mark_running(b.id) is None
    assert store.mark_running(a.id) is None
    assert store.running_cell().id == a.id


def test_rerun_clears_previous_output():
    store = CellStore()
    cell = store.snapshot()[0]
    store.mark_running(cell.id)
    store.complete(cell.id, CellOutput(stdout="1\n"), duration_ms=12)
    rerun = store.mark_running(cell.id)
    assert rerun.output is None
    assert rerun.execution_index == 2


def test_complete_and_fail_set_status_and_open_output():
    store = CellStore()
    cell = store.snapshot()[0]
    store.toggle_output(cell.id)
    assert not store.get(cell.id).output_open

    store.mark_running(cell.id)
    done = store.complete(cell.id, CellOutput(stdout="ok"), duration_ms=5)
    assert done.status == CellStatus.DONE
    assert done.output_open
    assert done.duration_ms == 5

    store.mark_running(cell.id)
    errored = store.complete(cell.id, CellOutput(error="NameError: x"), duration_ms=3)
    assert errored.status == CellStatus.ERROR

    failed = store.fail(cell.id, "unreachable")
    assert failed.status == CellStatus.ERROR
    assert failed.output.error == "unreachable"


def test_resolved_cells_share_the_execution_counter():
    store = CellStore()
    cell = store.snapshot()[0]
    store.mark_running(cell.id)
    appended = store.append_resolved("df.head()", "rows", None, ["png"])
    failed = store.append_resolved("boom()", None, "NameError")
    assert appended.execution_index == 2
    assert appended.status == CellStatus.DONE
    assert appended.output.charts == ["png"]
    assert failed.execution_index == 3
    assert failed.status == CellStatus.ERROR
    assert failed.output.stdout == ""

    store.reset()
    assert len(store) == 1
    assert store.execution_count == 0


def test_resolved_cell_renders_non_string_values():
    store = CellStore()
    cell = store.append_resolved(None, 412.7, None, "not-a-list")
    assert cell.code == ""
    assert cell.output.stdout == "412.7"
    assert cell.output.charts == []
    assert cell.status == CellStatus.DONE

    failed = store.append_resolved("x", {"k": 1}, {"type": "KeyError"})
    assert failed.status == CellStatus.ERROR
    assert failed.output.stdout == "{'k': 1}"
    assert failed.output.error == "{'type': 'KeyError'}"
