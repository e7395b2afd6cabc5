"""Tests for the turn loop: ordering, budget, gating, cancellation."""

import asyncio
import os
import signal
import sys
import time

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from picocode.agent import AbortReason, TurnInProgress, TurnLoop, TurnState
from picocode.confirmation import ConfirmationGate
from picocode.errors import CollaboratorUnreachable
from picocode.interrupt import InterruptState
from picocode.output import EventKind
from picocode.tool_registry import ToolName
from picocode.tools import build_default_registry

from fakes import RecordingOutput, ScriptedClient, call, final, make_context, tool_reply


def make_loop(tmp_path, replies=(), answers=(), yolo=True, limit=50, auto_allow=None):
    client = ScriptedClient(list(replies))
    output = RecordingOutput(answers=list(answers))
    registry = build_default_registry(make_context(tmp_path))
    gate = ConfirmationGate(output, yolo=yolo, bash_auto_allow=auto_allow)
    loop = TurnLoop(client, registry, gate, output, tool_call_limit=limit, interrupt=InterruptState())
    return loop, client, output


def roles(history):
    return [m.role for m in history]


# ============================================================
# Basic flow
# ============================================================

class TestTurnFlow:
    def test_final_answer(self, tmp_path):
        loop, client, output = make_loop(tmp_path, [final("Hello!")])
        outcome = asyncio.run(loop.run_turn("hi"))

        assert outcome.state == TurnState.COMPLETED
        assert outcome.text == "Hello!"
        assert roles(loop.history) == ["user", "assistant"]
        assert output.texts(EventKind.TEXT) == ["Hello!"]

    def test_tool_results_fed_back_in_order(self, tmp_path):
        (tmp_path / "a.txt").write_text("A")
        (tmp_path / "b.txt").write_text("B")
        loop, client, _ = make_loop(tmp_path, [
            tool_reply(call("read_file", call_id="r1", path="a.txt"),
                       call("read_file", call_id="r2", path="b.txt")),
            final("Both read."),
        ])
        outcome = asyncio.run(loop.run_turn("read both"))

        assert outcome.completed
        assert outcome.tool_calls == 2
        assert roles(loop.history) == ["user", "assistant", "tool", "tool", "assistant"]
        assert [m.tool_call_id for m in loop.history if m.role == "tool"] == ["r1", "r2"]
        # Second model request saw both results
        second = client.requests[1]
        assert [m.content for m in second if m.role == "tool"] == ["A", "B"]

    def test_calls_execute_sequentially(self, tmp_path):
        loop, _, _ = make_loop(tmp_path, [
            tool_reply(call("write_file", path="f.txt", content="one"),
                       call("edit_file", path="f.txt", old="one", new="two")),
            final("ok"),
        ])
        asyncio.run(loop.run_turn("go"))
        assert (tmp_path / "f.txt").read_text() == "two"

    def test_failing_call_does_not_abort_siblings(self, tmp_path):
        loop, _, _ = make_loop(tmp_path, [
            tool_reply(call("read_file", path="missing.txt"),
                       call("write_file", path="ok.txt", content="x")),
            final("done"),
        ])
        outcome = asyncio.run(loop.run_turn("go"))

        assert outcome.completed
        assert [r.success for r in outcome.results] == [False, True]
        assert outcome.results[0].error_kind == "NotFound"
        assert (tmp_path / "ok.txt").exists()

    def test_unknown_tool_skips_gate(self, tmp_path):
        loop, _, output = make_loop(tmp_path, [tool_reply(call("teleport")), final("hm")], yolo=False)
        outcome = asyncio.run(loop.run_turn("go"))
        assert outcome.results[0].error_kind == "UnknownTool"
        assert output.prompts == []

    def test_exactly_one_result_per_call(self, tmp_path):
        calls = [call("list_dir") for _ in range(4)]
        loop, _, _ = make_loop(tmp_path, [tool_reply(*calls), final("ok")])
        outcome = asyncio.run(loop.run_turn("go"))
        ids = [m.tool_call_id for m in loop.history if m.role == "tool"]
        assert ids == [c.id for c in calls]
        assert len(outcome.results) == 4


# ============================================================
# Tool call budget
# ============================================================

class TestToolCallLimit:
    def test_third_sequential_call_refused(self, tmp_path):
        loop, client, output = make_loop(tmp_path, [
            tool_reply(call("write_file", path="1.txt", content="")),
            tool_reply(call("write_file", path="2.txt", content="")),
            tool_reply(call("write_file", call_id="third", path="3.txt", content="")),
            final("never reached"),
        ], limit=2)
        outcome = asyncio.run(loop.run_turn("make three files"))

        assert outcome.state == TurnState.ABORTED
        assert outcome.reason == AbortReason.LIMIT_EXCEEDED
        assert (tmp_path / "1.txt").exists() and (tmp_path / "2.txt").exists()
        assert not (tmp_path / "3.txt").exists()
        assert outcome.results[-1].call_id == "third"
        assert outcome.results[-1].error_kind == "ToolCallLimitExceeded"
        # No further model call after the limit
        assert len(client.requests) == 3
        assert any("limit" in text.lower() for text in output.texts(EventKind.NOTICE))

    def test_limit_inside_one_batch(self, tmp_path):
        calls = [call("write_file", path=f"{i}.txt", content="") for i in range(3)]
        loop, _, _ = make_loop(tmp_path, [tool_reply(*calls)], limit=2)
        outcome = asyncio.run(loop.run_turn("go"))

        assert outcome.reason == AbortReason.LIMIT_EXCEEDED
        assert [r.error_kind for r in outcome.results] == [None, None, "ToolCallLimitExceeded"]
        assert [m.tool_call_id for m in loop.history if m.role == "tool"] == [c.id for c in calls]
        assert not (tmp_path / "2.txt").exists()

    def test_next_turn_starts_cleanly(self, tmp_path):
        loop, client, _ = make_loop(tmp_path, [
            tool_reply(call("list_dir"), call("list_dir"), call("list_dir")),
        ], limit=2)
        asyncio.run(loop.run_turn("first"))
        before = len(loop.history)

        client.queue(tool_reply(call("list_dir"), call("list_dir")), final("fine"))
        outcome = asyncio.run(loop.run_turn("second"))

        assert outcome.completed
        assert outcome.tool_calls == 2
        assert loop.history[before].content == "second"

    def test_limit_must_be_positive(self, tmp_path):
        with pytest.raises(ValueError):
            make_loop(tmp_path, limit=0)


# ============================================================
# Confirmation
# ============================================================

class TestGating:
    def test_denial_yields_result_and_turn_continues(self, tmp_path):
        loop, _, output = make_loop(tmp_path, [
            tool_reply(call("write_file", path="no.txt", content="x"),
                       call("write_file", path="yes.txt", content="y")),
            final("done"),
        ], answers=[False, True], yolo=False)
        outcome = asyncio.run(loop.run_turn("go"))

        assert outcome.completed
        assert outcome.results[0].error_kind == "ConfirmationDenied"
        assert outcome.results[1].success
        assert not (tmp_path / "no.txt").exists()
        assert (tmp_path / "yes.txt").read_text() == "y"
        assert len(output.prompts) == 2

    def test_nothing_executes_before_the_answer(self, tmp_path):
        loop, _, output = make_loop(tmp_path, [
            tool_reply(call("write_file", path="f.txt", content="x")), final("ok"),
        ], answers=[True], yolo=False)
        seen = []
        output.on_confirm = lambda description: seen.append((tmp_path / "f.txt").exists())
        asyncio.run(loop.run_turn("go"))
        assert seen == [False]
        assert (tmp_path / "f.txt").exists()

    def test_auto_allowed_bash_not_prompted(self, tmp_path):
        loop, _, output = make_loop(tmp_path, [
            tool_reply(call("bash", command="echo hi")), final("ok"),
        ], yolo=False, auto_allow=[r"^echo\b"])
        outcome = asyncio.run(loop.run_turn("go"))
        assert output.prompts == []
        assert "hi" in outcome.results[0].output


# ============================================================
# Transport failure, cancellation, single turn in flight
# ============================================================

class TestAbortsAndCancellation:
    def test_unreachable_model_aborts_turn(self, tmp_path):
        loop, client, output = make_loop(tmp_path, [CollaboratorUnreachable("connection refused")])
        outcome = asyncio.run(loop.run_turn("hi"))

        assert outcome.state == TurnState.ABORTED
        assert outcome.reason == AbortReason.COLLABORATOR_UNREACHABLE
        assert output.texts(EventKind.ERROR) == ["connection refused"]
        assert roles(loop.history) == ["user"]

        client.queue(final("back"))
        assert asyncio.run(loop.run_turn("again")).completed

    def test_keyboard_interrupt_records_cancelled_calls(self, tmp_path):
        loop, _, _ = make_loop(tmp_path)

        async def interrupted(ctx, path="."):
            raise KeyboardInterrupt

        loop.registry.bind(ToolName.LIST_DIR, interrupted)
        loop.client.queue(tool_reply(call("read_file", path="x"), call("list_dir"), call("list_dir")))
        outcome = asyncio.run(loop.run_turn("go"))

        assert outcome.reason == AbortReason.CANCELLED
        kinds = [r.error_kind for r in outcome.results]
        assert kinds == ["NotFound", "Cancelled", "Cancelled"]
        assert roles(loop.history).count("tool") == 3

    def test_task_cancellation_propagates_after_recording(self, tmp_path):
        loop, _, _ = make_loop(tmp_path)

        async def cancelled(ctx, path="."):
            raise asyncio.CancelledError

        loop.registry.bind(ToolName.LIST_DIR, cancelled)
        loop.client.queue(tool_reply(call("list_dir", call_id="c1"), call("list_dir", call_id="c2")))

        async def scenario():
            with pytest.raises(asyncio.CancelledError):
                await loop.run_turn("go")

        asyncio.run(scenario())
        assert [m.tool_call_id for m in loop.history if m.role == "tool"] == ["c1", "c2"]
        assert all(m.content.startswith("Error [Cancelled]") for m in loop.history if m.role == "tool")
        assert not loop.busy

    def test_interrupt_flag_stops_before_next_call(self, tmp_path):
        loop, _, _ = make_loop(tmp_path)

        def reply():
            loop.interrupt.trigger("escape")
            return tool_reply(call("write_file", path="a.txt", content="x"))

        loop.client.queue(reply)
        outcome = asyncio.run(loop.run_turn("go"))
        assert outcome.reason == AbortReason.CANCELLED
        assert outcome.results[0].error_kind == "Cancelled"
        assert not (tmp_path / "a.txt").exists()

    def test_second_turn_refused_while_in_flight(self, tmp_path):
        loop, client, _ = make_loop(tmp_path)

        async def scenario():
            release = asyncio.Event()

            async def slow_send(messages, tools=None):
                await release.wait()
                return final("done")

            client.send = slow_send
            first = asyncio.ensure_future(loop.run_turn("one"))
            await asyncio.sleep(0)
            assert loop.busy
            with pytest.raises(TurnInProgress):
                await loop.run_turn("two")
            release.set()
            return await first

        outcome = asyncio.run(scenario())
        assert outcome.completed
        assert [m.content for m in loop.history if m.role == "user"] == ["one"]

    def test_outcome_to_dict(self, tmp_path):
        loop, _, _ = make_loop(tmp_path, [tool_reply(call("list_dir")), final("ok")])
        data = asyncio.run(loop.run_turn("go")).to_dict()
        assert data["state"] == "completed"
        assert data["reason"] is None
        assert data["text"] == "ok"
        assert data["tool_calls"] == 1
        assert data["results"][0]["success"] is True


class TestGlobalInterrupt:
    def test_trigger_interrupt_reaches_default_loop(self, tmp_path):
        from picocode.interrupt import get_interrupt_state, trigger_interrupt

        client = ScriptedClient()
        output = RecordingOutput()
        loop = TurnLoop(client, build_default_registry(make_context(tmp_path)),
                        ConfirmationGate(output, yolo=True), output)
        assert loop.interrupt is get_interrupt_state()

        def reply():
            trigger_interrupt("test")
            return tool_reply(call("list_dir"))

        client.queue(reply)
        outcome = asyncio.run(loop.run_turn("go"))
        assert outcome.reason == AbortReason.CANCELLED
        get_interrupt_state().reset()


@pytest.mark.skipif(sys.platform == "win32", reason="needs POSIX SIGINT delivery")
class TestCtrlCDuringConfirmation:
    def test_sigint_while_waiting_cancels_the_call(self, tmp_path):
        (tmp_path / "keep.txt").write_text("precious")
        loop, client, output = make_loop(tmp_path, [
            tool_reply(call("remove", call_id="rm", path="keep.txt")),
            final("removed"),
        ], answers=[True], yolo=False)

        def press_ctrl_c(description):
            os.kill(os.getpid(), signal.SIGINT)
            time.sleep(1)

        output.on_confirm = press_ctrl_c
        outcome = asyncio.run(loop.run_turn("clean up"))

        assert outcome.state == TurnState.ABORTED
        assert outcome.reason == AbortReason.CANCELLED
        assert [(r.call_id, r.error_kind) for r in outcome.results] == [("rm", "Cancelled")]
        assert (tmp_path / "keep.txt").read_text() == "precious"
        assert len(client.requests) == 1
        assert not loop.busy

    def test_sigint_handler_restored_after_prompt(self, tmp_path):
        loop, _, output = make_loop(tmp_path, [
            tool_reply(call("write_file", path="a.txt", content="x")),
            final("ok"),
        ], answers=[True], yolo=False)
        seen = []
        output.on_confirm = lambda description: seen.append(signal.getsignal(signal.SIGINT))

        async def scenario():
            before = signal.getsignal(signal.SIGINT)
            outcome = await loop.run_turn("go")
            return before, outcome, signal.getsignal(signal.SIGINT)

        before, outcome, after = asyncio.run(scenario())
        assert outcome.completed
        assert seen == [signal.default_int_handler]
        assert after == before
