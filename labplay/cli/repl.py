"""
Terminal front end for the Lab Playground.
Commands drive the notebook and agent pipeline; any other text goes to chat.
"""

import re
import shlex
import sys
from typing import Dict, List, Optional, Set

from labplay.api import Lab
from labplay.config import LabConfig
from labplay.dataset import DatasetError, preview_dataset
from labplay.pipeline.orchestrator import PipelineState
from labplay.schemas.chat_schema import ChatMessage, GuardStep, MessageKind
from labplay.schemas.notebook_schema import Cell, CellStatus

PROMPT = "lab › "

GUARD_ICONS = {
    GuardStep.ANALYZING: "🔍",
    GuardStep.SEARCHING: "🌐",
    GuardStep.FIXING: "🔧",
    GuardStep.SUCCESS: "✅",
    GuardStep.FAILED: "❌",
}
STATUS_ICONS = {
    CellStatus.IDLE: "○",
    CellStatus.RUNNING: "●",
    CellStatus.DONE: "✓",
    CellStatus.ERROR: "✕",
}

HELP = """  Commands:
    load <file>            upload a CSV/Excel dataset
    columns <file>         list the columns of a local dataset
    target <column>        set the target column (blank to clear)
    analyze                analyse the uploaded dataset
    select <model>         build the pipeline with a suggested model
    predict col=value ...  predict with the built pipeline
    cells                  list notebook cells
    add [n]                add an empty cell (after cell n)
    code <n> <source>      replace the code of cell n
    run <n>                run cell n
    up <n> | down <n>      move cell n
    del <n>                delete cell n
    toggle <n>             show/hide the output of cell n
    show <n>               print cell n with its output
    charts <n> <dir>       save the charts of cell n as PNG files
    status                 service, session and pipeline status
    reset                  reset the kernel and the notebook
    resume <session>       reattach to a session with a cached transcript
    quit
  Anything else is sent to the agent as chat.
"""


def run_repl(config: Optional[LabConfig] = None) -> None:
    lab = Lab(config=config)
    lab.start_health_polling()
    _print_banner(lab)
    seen = {m.id for m in lab.messages}
    try:
        while True:
            try:
                line = input(PROMPT).strip()
            except EOFError:
                print()
                break
            if not line:
                continue
            if line.lower() in ("quit", "exit", "q"):
                break
            try:
                _handle_input(line, lab)
            except KeyboardInterrupt:
                print("\nInterrupted. Type 'quit' to exit.")
                continue
            _print_new_messages(lab, seen)
            if lab.connection_error:
                print(f"  ✗  {lab.connection_error}", file=sys.stderr)
            lab.save_transcript()
    finally:
        lab.close()


def _print_banner(lab: Lab) -> None:
    print()
    print("  ----------------------------------------")
    print("  Lab Playground")
    print("  Notebook + AutoML agent in your terminal.")
    print("  ----------------------------------------")
    print()
    _print_status(lab)
    print("  Type 'help' for commands.")
    print()
    for msg in lab.messages:
        _print_message(msg)
    print()


def _print_status(lab: Lab) -> None:
    health = lab.check_health()
    for name, up in health.items():
        mark = "✓" if up else "✗"
        print(f"  {mark}  {name} {'running' if up else 'offline'}")
    sid = lab.session_id
    print(f"  session: {sid[:7] + '…' if sid else 'none'}")
    print(f"  pipeline: {lab.state.value}")
    print()


def _cell_at(lab: Lab, arg: str) -> Optional[Cell]:
    cells = lab.cell_list
    try:
        n = int(arg)
    except ValueError:
        print(f"Not a cell number: {arg}")
        return None
    if not 1 <= n <= len(cells):
        print(f"No cell {n} (there are {len(cells)})")
        return None
    return cells[n - 1]


def _parse_assignments(args: List[str]) -> Dict[str, str]:
    values = {}
    for arg in args:
        if "=" not in arg:
            print(f"Ignoring {arg!r}: expected column=value")
            continue
        key, value = arg.split("=", 1)
        values[key.strip()] = value
    return values


def _handle_input(line: str, lab: Lab) -> None:
    head, _, rest = line.partition(" ")
    cmd = head.lower()
    rest = rest.strip()

    if cmd == "help":
        print(HELP)
    elif cmd == "load" and rest:
        lab.upload(rest.strip("\"'"))
    elif cmd == "columns" and rest:
        try:
            preview = preview_dataset(rest.strip("\"'"))
        except DatasetError as e:
            print(f"Error: {e}")
            return
        print(f"  {preview.filename}: {', '.join(preview.columns)}")
    elif cmd == "target":
        lab.set_target_column(rest)
        print(f"Target column: {rest or '(auto)'}")
    elif cmd in ("analyze", "analyse"):
        if not lab.pipeline.dataset:
            print("Load a dataset first: load path/to/file.csv")
            return
        lab.analyze()
    elif cmd == "select" and rest:
        if not lab.select_model(rest):
            names = ", ".join(s.name for s in lab.suggestions) or "none"
            print(f"Cannot select {rest!r} now (state: {lab.state.value}; suggested: {names})")
    elif cmd == "predict":
        if lab.state != PipelineState.PIPELINE_BUILT:
            print("Build a pipeline first (analyze, then select <model>).")
            return
        try:
            values = _parse_assignments(shlex.split(rest))
        except ValueError as e:
            print(f"Error: {e}")
            return
        missing = [c for c in lab.feature_columns if c not in values]
        if missing:
            print(f"  (sending empty values for: {', '.join(missing)})")
        lab.predict(values)
    elif cmd == "cells":
        for i, cell in enumerate(lab.cell_list, start=1):
            _print_cell_line(i, cell)
    elif cmd == "add":
        anchor = _cell_at(lab, rest) if rest else None
        if rest and anchor is None:
            return
        lab.add_cell(after=anchor.id if anchor else None)
        print(f"  {len(lab.cell_list)} cells")
    elif cmd == "code" and rest:
        num, _, source = rest.partition(" ")
        cell = _cell_at(lab, num)
        if cell:
            lab.cells.set_code(cell.id, source.replace("\\n", "\n"))
    elif cmd == "run" and rest:
        cell = _cell_at(lab, rest)
        if cell:
            result = lab.run(cell.id)
            _print_cell(result or lab.cells.get(cell.id))
    elif cmd in ("up", "down", "del", "toggle", "show") and rest:
        cell = _cell_at(lab, rest)
        if not cell:
            return
        if cmd == "up":
            lab.cells.move_up(cell.id)
        elif cmd == "down":
            lab.cells.move_down(cell.id)
        elif cmd == "del" and not lab.cells.delete(cell.id):
            print("The last cell cannot be deleted.")
        elif cmd == "toggle":
            lab.cells.toggle_output(cell.id)
        elif cmd == "show":
            _print_cell(cell)
    elif cmd == "charts":
        args = rest.split()
        cell = _cell_at(lab, args[0]) if len(args) == 2 else None
        if cell:
            for path in lab.save_charts(cell.id, args[1]):
                print(f"  wrote {path}")
    elif cmd == "status":
        _print_status(lab)
    elif cmd == "reset":
        lab.reset()
        print("Kernel and notebook reset.")
    elif cmd == "resume" and rest:
        if lab.resume(rest):
            print(f"Resumed session {rest}")
        else:
            print(f"No cached transcript for session {rest}")
    else:
        lab.ask(line)


def _print_cell_line(n: int, cell: Cell) -> None:
    first = (cell.code.strip().split("\n") or [""])[0][:60]
    idx = f"[{cell.execution_index}]" if cell.execution_index is not None else "[ ]"
    print(f"  {n:>3} {STATUS_ICONS[cell.status]} {idx:<6} {first}")


def _print_cell(cell: Optional[Cell]) -> None:
    if cell is None:
        return
    idx = cell.execution_index if cell.execution_index is not None else " "
    print(f"In [{idx}]:")
    for line in cell.code.split("\n"):
        print(f"    {line}")
    if cell.output is None or not cell.output_open:
        return
    if cell.output.stdout:
        print(cell.output.stdout.rstrip())
    if cell.output.error:
        print(f"  ✕ {cell.output.error}", file=sys.stderr)
    if cell.output.charts:
        print(f"  ({len(cell.output.charts)} chart(s); use 'charts' to save)")
    if cell.duration_ms:
        print(f"  {cell.duration_ms} ms")


def _print_new_messages(lab: Lab, seen: Set[str]) -> None:
    for msg in lab.messages:
        if msg.id not in seen:
            seen.add(msg.id)
            _print_message(msg)


def _strip_md(text: str) -> str:
    return re.sub(r"\*\*([^*]+)\*\*", r"\1", text or "")


def _print_message(msg: ChatMessage) -> None:
    kind = msg.kind
    if kind in (MessageKind.WELCOME, MessageKind.INFO, MessageKind.AI, MessageKind.INSIGHT):
        print(_strip_md(msg.text))
    elif kind == MessageKind.USER:
        return
    elif kind == MessageKind.ERROR:
        print(f"Error: {msg.text}", file=sys.stderr)
    elif kind == MessageKind.GUARD:
        print(f"  {GUARD_ICONS.get(msg.guard_step, '•')} {_strip_md(msg.text)}")
        if msg.guard_code:
            print("     (fix code available)")
    elif kind == MessageKind.ANALYSIS and msg.analysis:
        a = msg.analysis
        print(f"Problem: {a.problem_type}   Target: {a.target_column}")
        for title, text in (
            ("Dataset", a.dataset_summary),
            ("Features", a.feature_analysis),
            ("Missing values", a.missing_values_note),
            ("Feature engineering", a.feature_engineering_reasoning),
        ):
            if text:
                print(f"  {title}: {_strip_md(text)}")
    elif kind == MessageKind.EDA_SUMMARY and msg.eda_summary:
        print(_strip_md(msg.eda_summary.summary))
    elif kind == MessageKind.FE and msg.fe:
        print("Feature engineering " + ("failed: " + msg.fe.error if msg.fe.error else "applied."))
    elif kind == MessageKind.MODELS and msg.models:
        print("Suggested models (select <name>):")
        for m in msg.models:
            print(f"  {m.rank}. {m.display_name or m.name} [{m.name}] — {m.expected_performance}")
            if m.reasoning:
                print(f"     {_strip_md(m.reasoning)}")
    elif kind == MessageKind.PIPELINE:
        print(_strip_md(msg.reasoning or ""))
    elif kind == MessageKind.PREDICT_FORM:
        print("Pipeline ready. Predict with: predict <column>=<value> ...")
