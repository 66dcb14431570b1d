"""Example: research agent as a state machine.

Demonstrates:
- An AgentState producing structured output (a search plan)
- A self-loop that re-plans when the plan comes back empty
- A FanOutState running one isolated researcher per query
- Forwarding verbose output to a ControlAgent while states are current

To run (requires an OpenAI API key):
    export OPENAI_API_KEY=sk-...
    python examples/research_workflow.py
"""

import asyncio

from pydantic import BaseModel

from agent_fsm import Agent, AgentState, AgentStateMachine, ControlAgent, FanOutState
from agent_fsm.llm.openai import OpenAIAdapter


class SearchPlan(BaseModel):
    queries: list[str]


class Finding(BaseModel):
    query: str
    summary: str
    sources: list[str]


def search_web(query: str) -> str:
    """Search the web for information."""
    # Stub, replace with a real search API
    return f"Results for '{query}':\n- Source A: key finding about {query}\n- Source B: additional data"


def build_research_machine(control: ControlAgent, model: OpenAIAdapter) -> AgentStateMachine:
    plan = AgentState(
        "plan",
        lambda: Agent(
            model,
            name="planner",
            instructions="Break the topic into 2-4 focused web search queries.",
            output_type=SearchPlan,
        ),
        max_attempts=3,
    )
    research = FanOutState(
        "research",
        lambda: Agent(
            model,
            name="researcher",
            instructions="Use search_web, then summarize what you found and list the sources.",
            tools=[search_web],
            output_type=Finding,
        ),
        split=lambda p: p.queries,
        input_type=SearchPlan,
    )
    report = AgentState(
        "report",
        Agent(
            model,
            name="writer",
            instructions="Write a short report with sections and a conclusion.",
        ),
        prompt=lambda findings: "\n\n".join(
            f"## {f.query}\n{f.summary}\nSources: {', '.join(f.sources)}" for f in findings
        ),
    )

    plan.add_transition(research, lambda p: len(p.queries) > 0)
    plan.add_transition(plan)
    research.add_transition(report)
    report.to_exit()

    return AgentStateMachine(
        control,
        states=[plan, research, report],
        entry_state=plan,
        output_state=report,
        name="research",
    )


async def main():
    control = ControlAgent()
    control.callbacks.verbose.subscribe(print)

    machine = build_research_machine(control, OpenAIAdapter(model="gpt-4o-mini"))
    report = await machine.run("quantum computing advances in 2025")
    print("\n=== Report ===")
    print(report)


if __name__ == "__main__":
    asyncio.run(main())
