"""Tests for the control agent and agent state machines."""

import asyncio

import pytest

from agent_fsm.agent import Agent
from agent_fsm.agent_state import AgentState, FanOutState
from agent_fsm.control import AgentStateMachine, ControlAgent
from agent_fsm.errors import ConfigurationError, NoTransitionError
from agent_fsm.llm.adapter import MessageItem, ModelResponse
from agent_fsm.state import FunctionState


# -- Mock model --

class ReplyModel:
    def __init__(self, reply=lambda prompt: f"reply to {prompt}", delay=0.0):
        self.reply = reply
        self.delay = delay
        self.requests = []

    async def create_response(self, items, options):
        self.requests.append(list(items))
        if self.delay:
            await asyncio.sleep(self.delay)
        prompt = [i for i in items if isinstance(i, MessageItem) and i.role == "user"][-1].content
        return ModelResponse(output=[MessageItem(role="assistant", content=self.reply(prompt))])

    async def create_streaming_response(self, items, options, on_delta):
        response = await self.create_response(items, options)
        on_delta(response.text)
        return response


class TestControlAgentConversation:
    @pytest.mark.asyncio
    async def test_add_to_conversation_keeps_history(self):
        model = ReplyModel()
        control = ControlAgent(Agent(model))
        assert await control.add_to_conversation("one") == "reply to one"
        assert await control.add_to_conversation("two") == "reply to two"
        assert len(model.requests[1]) == 3
        assert len(control.current_result.items) == 4

    @pytest.mark.asyncio
    async def test_start_new_conversation_resets_history(self):
        model = ReplyModel()
        control = ControlAgent(Agent(model))
        await control.add_to_conversation("one")
        await control.start_new_conversation("fresh")
        assert len(model.requests[1]) == 1

    @pytest.mark.asyncio
    async def test_streaming_goes_to_control_bus(self):
        control = ControlAgent(Agent(ReplyModel()))
        deltas = []
        control.callbacks.streaming.subscribe(deltas.append)
        await control.add_to_conversation("hi", streaming=True)
        assert deltas == ["reply to hi"]

    @pytest.mark.asyncio
    async def test_requires_agent(self):
        with pytest.raises(ConfigurationError):
            await ControlAgent().add_to_conversation("hi")


class TestAgentStateMachine:
    @pytest.mark.asyncio
    async def test_registration_lifecycle(self):
        control = ControlAgent()
        added, removed = [], []
        control.machine_added.subscribe(added.append)
        control.machine_removed.subscribe(removed.append)
        seen_while_running = []

        def step(x):
            seen_while_running.extend(control.active_machines)
            return x

        state = FunctionState(step, name="step")
        state.to_exit()
        machine = AgentStateMachine(control, states=[state], entry_state=state)
        await machine.run("x")

        assert seen_while_running == [machine]
        assert added == [machine]
        assert removed == [machine]
        assert control.active_machines == []

    @pytest.mark.asyncio
    async def test_unregisters_on_error(self):
        control = ControlAgent()
        state = FunctionState(lambda x: x, name="dead_end")
        machine = AgentStateMachine(control, states=[state], entry_state=state)
        with pytest.raises(NoTransitionError):
            await machine.run("x")
        assert control.active_machines == []

    @pytest.mark.asyncio
    async def test_cancel_all(self):
        control = ControlAgent()
        model = ReplyModel(delay=0.05)
        state = AgentState("slow", Agent(model))
        state.to_exit()
        machine = AgentStateMachine(control, states=[state], entry_state=state)

        task = asyncio.create_task(machine.run("x"))
        while not model.requests:
            await asyncio.sleep(0)
        control.cancel_all()
        assert await task is None
        assert machine.cancelled
        assert control.active_machines == []

    @pytest.mark.asyncio
    async def test_state_callbacks_forwarded_only_while_current(self):
        control = ControlAgent()
        messages = []
        control.callbacks.verbose.subscribe(messages.append)

        first = AgentState("first", Agent(ReplyModel(lambda p: "from first")))
        second = AgentState("second", Agent(ReplyModel(lambda p: "from second")))
        first.add_transition(second)
        second.to_exit()
        machine = AgentStateMachine(
            control, states=[first, second], entry_state=first, output_state=second
        )
        await machine.run("go")

        assert messages == ["[Message](assistant) from first", "[Message](assistant) from second"]
        assert not first.callbacks.is_attached(control.callbacks)
        assert not second.callbacks.is_attached(control.callbacks)

        # after exit, nothing reaches the control agent
        await first.begin_run("again")
        assert len(messages) == 2

    @pytest.mark.asyncio
    async def test_fan_out_branches_share_bus(self):
        control = ControlAgent()
        messages = []
        control.callbacks.verbose.subscribe(messages.append)

        state = FanOutState("fan", lambda: Agent(ReplyModel(lambda p: p, delay=0.01)))
        state.to_exit()
        machine = AgentStateMachine(control, states=[state], entry_state=state, output_state=state)
        await machine.run(["a", "b", "c"])
        assert sorted(messages) == [f"[Message](assistant) {q}" for q in "abc"]

    def test_shared_items_come_from_control(self):
        control = ControlAgent()
        state = FunctionState(lambda x: x)
        machine = AgentStateMachine(control, states=[state], entry_state=state)
        assert machine.shared_items is control.shared_items
