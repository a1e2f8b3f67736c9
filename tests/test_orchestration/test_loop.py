"""Tests for the conversation state machine."""

import pytest

from askrelay.errors import InferenceError
from askrelay.orchestration.loop import (
    CORRECTIVE_MESSAGE,
    DEGRADED_ANSWER,
    MAX_LOOPS,
    ConversationLoop,
    LoopState,
    OrchestrationStep,
    build_system_prompt,
    to_json,
)
from askrelay.orchestration.parser import Answer, ToolCall
from askrelay.tools.invoker import ToolResult
from askrelay.tools.remote import MATH_TOOL, WEATHER_TOOL

MATH_PAYLOAD = {"expression": "2+2", "result": 4}


def answer(text: str) -> dict:
    return {"action": "answer", "result": text}


def call(tool: str, **args) -> dict:
    return {"action": "call", "tool": tool, "args": args}


def make_loop(llm, invoker, sink=None, **kwargs) -> ConversationLoop:
    return ConversationLoop(
        llm_client=llm,
        invoker=invoker,
        event_sink=sink,
        execution_id="exec-test",
        **kwargs,
    )


class TestHelpers:
    """Tests for module-level helpers."""

    def test_to_json_is_compact(self):
        """Folded JSON has no whitespace between tokens."""
        assert to_json(MATH_PAYLOAD) == '{"expression":"2+2","result":4}'

    def test_to_json_keeps_unicode(self):
        """Non-ASCII text is not escaped."""
        assert to_json({"city": "Zürich"}) == '{"city":"Zürich"}'

    def test_terminal_states(self):
        """Only DONE and FAILED are terminal."""
        terminal = {state for state in LoopState if state.is_terminal}
        assert terminal == {LoopState.DONE, LoopState.FAILED}

    def test_step_defaults(self):
        """A fresh step records nothing."""
        step = OrchestrationStep(step_number=1)
        assert step.reply is None
        assert step.actions == []
        assert step.tool_results == []
        assert step.corrective is False
        assert step.is_final is False


class TestSystemPrompt:
    """Tests for the seeded conversation."""

    def test_lists_registered_tools(self):
        """The system prompt names every registered tool."""
        prompt = build_system_prompt()
        assert f"- {WEATHER_TOOL}:" in prompt
        assert f"- {MATH_TOOL}:" in prompt
        assert '{"action":"answer","result":"<final text>"}' in prompt

    def test_custom_summary(self):
        """An explicit tools summary replaces the registry listing."""
        prompt = build_system_prompt("- only.tool: does things")
        assert "- only.tool: does things" in prompt
        assert WEATHER_TOOL + ":" not in prompt

    def test_seeded_conversation(self, scripted_llm, invoker):
        """A run starts from system instructions and the question."""
        llm = scripted_llm(answer("hi"))
        make_loop(llm, invoker).run("Hello?")

        first = llm.calls[0]
        assert [m["role"] for m in first] == ["system", "user"]
        assert first[1]["content"] == "Hello?"


class TestImmediateAnswer:
    """Tests for replies that answer straight away."""

    def test_first_reply_answer(self, scripted_llm, invoker):
        """An answer in the first reply ends the loop after one call."""
        llm = scripted_llm(answer("X"))
        result = make_loop(llm, invoker).run("q")

        assert result.answer == "X"
        assert result.iterations == 1
        assert result.degraded is False
        assert len(llm.calls) == 1
        assert invoker.calls == []

    def test_answer_embedded_in_prose(self, scripted_llm, invoker):
        """An answer object inside prose is still honoured."""
        llm = scripted_llm('Sure: {"action":"answer","result":"4"}')
        assert make_loop(llm, invoker).run("q").answer == "4"

    def test_empty_answer_does_not_finish(self, scripted_llm, invoker):
        """An empty answer stops the batch but the loop keeps going."""
        llm = scripted_llm(answer(""), answer("ok"))
        result = make_loop(llm, invoker).run("q")

        assert result.answer == "ok"
        assert result.iterations == 2
        # Nothing was appended for the empty answer
        assert len(llm.calls[1]) == 2


class TestToolDispatch:
    """Tests for tool call handling."""

    def test_payload_folded_into_next_call(self, scripted_llm, make_invoker):
        """A successful payload reaches the next inference call as compact JSON."""
        llm = scripted_llm(call(MATH_TOOL, expression="2+2"), answer("4"))
        invoker = make_invoker({MATH_TOOL: MATH_PAYLOAD})

        result = make_loop(llm, invoker).run("What is 2+2?")

        assert result.answer == "4"
        assert result.iterations == 2
        second = llm.calls[1]
        assert second[2] == {
            "role": "assistant",
            "content": '{"action":"call","tool":"math.calculate","args":{"expression":"2+2"}}',
        }
        assert second[3] == {
            "role": "user",
            "content": 'Tool math.calculate result: {"expression":"2+2","result":4}',
        }
        assert second[4]["role"] == "user"
        assert second[4]["content"] == (
            'You now have results: {"math.calculate":{"expression":"2+2","result":4}}. '
            'Please respond with {"action":"answer","result":"..."} only.'
        )

    def test_invoker_receives_endpoint_and_args(self, scripted_llm, make_invoker):
        """The invoker gets the registered endpoint and the call's args."""
        llm = scripted_llm(call(WEATHER_TOOL, city="Dubai"), answer("hot"))
        invoker = make_invoker()

        make_loop(llm, invoker).run("q")

        tool, endpoint, args = invoker.calls[0]
        assert tool == WEATHER_TOOL
        assert endpoint.endswith("/call/get_weather")
        assert args == {"city": "Dubai"}

    def test_failure_reported_to_model(self, scripted_llm, make_invoker):
        """A failing tool does not end the loop; the failure text is shown to the model."""
        llm = scripted_llm(call(MATH_TOOL, expression="1/"), answer("sorry"))
        invoker = make_invoker({MATH_TOOL: RuntimeError("Tool call failed (500): bad input")})

        result = make_loop(llm, invoker).run("q")

        assert result.answer == "sorry"
        contents = [m["content"] for m in llm.calls[1]]
        assert (
            "Tool math.calculate failed: Tool call failed (500): bad input. "
            "Try answering anyway."
        ) in contents
        assert contents[-1].startswith(
            'You now have results: {"math.calculate":{"error":"Tool call failed (500): bad input"}}'
        )

    def test_batch_dispatched_in_order(self, scripted_llm, make_invoker):
        """Several calls in one reply are dispatched sequentially, in order."""
        llm = scripted_llm(
            [call(WEATHER_TOOL, city="Dubai"), call(MATH_TOOL, expression="2+2")],
            answer("done"),
        )
        invoker = make_invoker({WEATHER_TOOL: {"temp": 30}, MATH_TOOL: MATH_PAYLOAD})

        result = make_loop(llm, invoker).run("q")

        assert [c[0] for c in invoker.calls] == [WEATHER_TOOL, MATH_TOOL]
        assert result.tools_used == [WEATHER_TOOL, MATH_TOOL]
        second = llm.calls[1]
        # system, question, two (echo, result) pairs, closing instruction
        assert len(second) == 7
        assert second[-1]["content"].startswith(
            'You now have results: {"weather.get_weather":{"temp":30},'
            '"math.calculate":{"expression":"2+2","result":4}}'
        )

    def test_tool_before_answer_dispatched(self, scripted_llm, make_invoker):
        """A call before the answer runs, but the answer text is returned."""
        llm = scripted_llm(
            [call(WEATHER_TOOL, city="Dubai"), answer("final"), call(MATH_TOOL, expression="1+1")]
        )
        invoker = make_invoker({WEATHER_TOOL: {"temp": 30}})

        result = make_loop(llm, invoker).run("q")

        assert result.answer == "final"
        assert result.iterations == 1
        assert [c[0] for c in invoker.calls] == [WEATHER_TOOL]

    def test_actions_after_answer_ignored(self, scripted_llm, invoker):
        """Nothing after the first answer is dispatched."""
        llm = scripted_llm([answer("first"), call(MATH_TOOL, expression="1+1"), answer("second")])

        result = make_loop(llm, invoker).run("q")

        assert result.answer == "first"
        assert invoker.calls == []

    def test_unknown_tool_ignored(self, scripted_llm, invoker):
        """Calls to unregistered tools are skipped without any message."""
        llm = scripted_llm(call("search.web", query="x"), answer("ok"))

        result = make_loop(llm, invoker).run("q")

        assert result.answer == "ok"
        assert invoker.calls == []
        assert len(llm.calls[1]) == 2

    def test_state_while_waiting_on_tool(self, scripted_llm):
        """The loop reports AWAITING_TOOLS during a tool invocation."""
        seen = []
        llm = scripted_llm(call(MATH_TOOL, expression="2+2"), answer("4"))
        loop = None

        def invoker(tool, endpoint, args):
            seen.append(loop.context.state)
            return ToolResult(tool=tool, success=True, payload=MATH_PAYLOAD)

        loop = make_loop(llm, invoker)
        loop.run("q")

        assert seen == [LoopState.AWAITING_TOOLS]


class TestCorrectivePath:
    """Tests for replies without any JSON."""

    def test_corrective_message_appended(self, scripted_llm, invoker):
        """A reply with no JSON asks the model to correct itself."""
        llm = scripted_llm("The answer is four.", answer("4"))

        result = make_loop(llm, invoker).run("q")

        assert result.answer == "4"
        assert result.iterations == 2
        assert llm.calls[1][-1] == {"role": "user", "content": CORRECTIVE_MESSAGE}
        assert result.steps[0].corrective is True

    def test_unrecognized_json_not_corrected(self, scripted_llm, invoker):
        """JSON that holds no known action gets no corrective message."""
        llm = scripted_llm('{"thought": "hmm"}', answer("ok"))

        make_loop(llm, invoker).run("q")

        assert len(llm.calls[1]) == 2


class TestLoopBound:
    """Tests for loop exhaustion."""

    def test_never_json_degrades(self, scripted_llm, invoker):
        """A model that never produces JSON gets the degraded answer."""
        llm = scripted_llm("no json here")

        result = make_loop(llm, invoker).run("q")

        assert result.answer == DEGRADED_ANSWER
        assert result.degraded is True
        assert result.iterations == MAX_LOOPS
        assert len(llm.calls) == MAX_LOOPS

    def test_custom_bound(self, scripted_llm, invoker):
        """The bound limits inference calls."""
        llm = scripted_llm(call(MATH_TOOL, expression="1"))

        result = make_loop(llm, invoker, max_loops=3).run("q")

        assert len(llm.calls) == 3
        assert len(invoker.calls) == 3
        assert result.degraded is True

    def test_unknown_tools_until_bound(self, scripted_llm, invoker):
        """Batches with no progress still consume the bound."""
        llm = scripted_llm(call("nope.tool"))

        result = make_loop(llm, invoker, max_loops=4).run("q")

        assert result.answer == DEGRADED_ANSWER
        assert len(llm.calls) == 4
        assert all(len(messages) == 2 for messages in llm.calls)


class TestInferenceFailure:
    """Tests for fatal inference errors."""

    def test_failure_raises(self, scripted_llm, invoker, sink):
        """An inference failure ends the request with InferenceError."""
        llm = scripted_llm(RuntimeError("connection refused"))
        loop = make_loop(llm, invoker, sink)

        with pytest.raises(InferenceError, match="connection refused"):
            loop.run("q")

        assert len(llm.calls) == 1
        assert loop.context.state is LoopState.FAILED
        assert sink.types() == ["inference_error"]

    def test_failure_after_tool_not_retried(self, scripted_llm, make_invoker):
        """A failure on a later iteration is not retried either."""
        llm = scripted_llm(call(MATH_TOOL, expression="2+2"), RuntimeError("timeout"))

        with pytest.raises(InferenceError):
            make_loop(llm, make_invoker()).run("q")

        assert len(llm.calls) == 2


class TestEvents:
    """Tests for broadcast events."""

    def test_tool_and_answer_events(self, scripted_llm, make_invoker, sink):
        """Dispatches and the final answer are broadcast."""
        llm = scripted_llm(call(MATH_TOOL, expression="2+2"), answer("4"))
        invoker = make_invoker({MATH_TOOL: MATH_PAYLOAD})

        make_loop(llm, invoker, sink).run("q")

        assert sink.types() == ["tool_result", "answer"]
        tool_event = sink.events[0]
        assert tool_event["tool"] == MATH_TOOL
        assert tool_event["payload"] == MATH_PAYLOAD
        assert all(event["execution_id"] == "exec-test" for event in sink.events)

    def test_tool_error_event(self, scripted_llm, make_invoker, sink):
        """A failed dispatch is broadcast as tool_error."""
        llm = scripted_llm(call(WEATHER_TOOL, city="X"), answer("?"))
        invoker = make_invoker({WEATHER_TOOL: RuntimeError("unreachable")})

        make_loop(llm, invoker, sink).run("q")

        assert sink.types() == ["tool_error", "answer"]
        assert sink.events[0]["error"] == "unreachable"

    def test_degraded_event(self, scripted_llm, invoker, sink):
        """Exhaustion is broadcast."""
        make_loop(scripted_llm("text"), invoker, sink, max_loops=2).run("q")
        assert sink.types() == ["degraded"]

    def test_broken_sink_does_not_affect_result(self, scripted_llm, invoker):
        """A failing observer never changes the outcome."""

        class BrokenSink:
            def emit(self, event):
                raise RuntimeError("observer gone")

        result = make_loop(scripted_llm(answer("fine")), invoker, BrokenSink()).run("q")
        assert result.answer == "fine"


class TestStepping:
    """Tests for driving the state machine one transition at a time."""

    def test_transitions(self, scripted_llm, invoker):
        """advance() walks AWAITING_MODEL -> PARSING -> DISPATCHING -> DONE."""
        loop = make_loop(scripted_llm(answer("a")), invoker)
        context = loop.start("q")

        assert context.state is LoopState.AWAITING_MODEL
        assert loop.advance() is LoopState.PARSING
        assert loop.advance() is LoopState.DISPATCHING
        assert loop.advance() is LoopState.DONE
        assert context.final_result == "a"

    def test_advance_before_start(self, scripted_llm, invoker):
        """advance() requires a started conversation."""
        with pytest.raises(RuntimeError):
            make_loop(scripted_llm(answer("a")), invoker).advance()

    def test_advance_from_terminal_state(self, scripted_llm, invoker):
        """A finished loop cannot be advanced."""
        loop = make_loop(scripted_llm(answer("a")), invoker)
        loop.run("q")
        with pytest.raises(RuntimeError):
            loop.advance()


class TestProcessBatch:
    """Tests for processing a parsed action list."""

    def test_no_dispatch_no_messages(self, scripted_llm, invoker):
        """A batch with only unknown tools adds nothing."""
        loop = make_loop(scripted_llm(), invoker)
        loop.start("q")

        outcome = loop.process_batch([ToolCall(tool="missing", args={})])

        assert outcome.dispatched is False
        assert outcome.answered is False
        assert outcome.messages == []

    def test_answer_only(self, scripted_llm, invoker):
        """An answer-only batch produces no messages."""
        loop = make_loop(scripted_llm(), invoker)
        loop.start("q")

        outcome = loop.process_batch([Answer(result="yes")])

        assert outcome.answered is True
        assert outcome.answer == "yes"
        assert outcome.messages == []


class TestTrace:
    """Tests for get_trace."""

    def test_trace_records_each_iteration(self, scripted_llm, make_invoker):
        """Every iteration appears in the trace with its outcome."""
        llm = scripted_llm("oops", call(MATH_TOOL, expression="2+2"), answer("4"))
        loop = make_loop(llm, make_invoker({MATH_TOOL: MATH_PAYLOAD}))
        loop.run("q")

        trace = loop.get_trace()

        assert [step["step"] for step in trace] == [1, 2, 3]
        assert trace[0]["corrective"] is True
        assert trace[1]["tool_results"][0]["payload"] == MATH_PAYLOAD
        assert trace[1]["actions"] == [call(MATH_TOOL, expression="2+2")]
        assert trace[2]["is_final"] is True
        assert trace[2]["final_answer"] == "4"
