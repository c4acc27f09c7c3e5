"""LangGraph chat agent that drives the Focusmate tools.

Architecture:
  A two-node LangGraph StateGraph:

    1. **chatbot**: Claude with the four Focusmate tools bound
    2. **tools**: executes any tool calls the LLM requests

  Routing:
    chatbot → (has tool calls?) → tools → chatbot (loop)
            → (no tool calls?)  → END

  Memory:
    Conversation state is kept per thread via LangGraph's MemorySaver
    checkpoint, enabling multi-turn conversations across API calls.
"""

from __future__ import annotations

import logging
import time
from typing import Annotated

from langchain_anthropic import ChatAnthropic
from langchain_core.messages import AnyMessage, SystemMessage
from langchain_core.tools import BaseTool
from langgraph.checkpoint.memory import MemorySaver
from langgraph.graph import END, StateGraph
from langgraph.graph.message import add_messages
from langgraph.prebuilt import ToolNode
from typing_extensions import TypedDict

from focusmate_agent.config import MODEL_NAME, require_env
from focusmate_agent.dispatcher import ActionDispatcher
from focusmate_agent.prompts import get_system_prompt
from focusmate_agent.services.metrics import metrics
from focusmate_agent.tools.focusmate import build_tools

logger = logging.getLogger(__name__)


# ── State schema ─────────────────────────────────────────────────────


class AgentState(TypedDict):
    """``messages`` uses the ``add_messages`` reducer so nodes append to history."""

    messages: Annotated[list[AnyMessage], add_messages]


# ── LLM builder ──────────────────────────────────────────────────────


def _build_llm(tools: list[BaseTool]):
    llm = ChatAnthropic(
        model=MODEL_NAME,
        api_key=require_env("ANTHROPIC_API_KEY"),
        temperature=0.1,
        max_tokens=1024,
    )
    return llm.bind_tools(tools)


# ── Node: chatbot ────────────────────────────────────────────────────


def _make_chatbot_node(tools: list[BaseTool]):
    """Create the chatbot node; the bound LLM is shared across loop iterations."""
    llm_with_tools = _build_llm(tools)

    def chatbot_node(state: AgentState) -> dict:
        system = SystemMessage(content=get_system_prompt())
        t0 = time.perf_counter()
        try:
            response = llm_with_tools.invoke([system] + state["messages"])
            elapsed = (time.perf_counter() - t0) * 1000
            metrics.record_success("anthropic", "llm_invoke", latency_ms=elapsed)
            logger.debug("chatbot responded in %.0fms", elapsed)
            return {"messages": [response]}
        except Exception as exc:
            elapsed = (time.perf_counter() - t0) * 1000
            metrics.record_failure(
                "anthropic", "llm_invoke",
                error_type=type(exc).__name__, latency_ms=elapsed,
            )
            raise

    return chatbot_node


# ── Conditional edge ─────────────────────────────────────────────────


def should_use_tools(state: AgentState) -> str:
    """Route to the tools node when the last message requested tool calls."""
    last_message = state["messages"][-1]
    if hasattr(last_message, "tool_calls") and last_message.tool_calls:
        return "tools"
    return END


# ── Graph assembly ───────────────────────────────────────────────────


def create_focusmate_agent(dispatcher: ActionDispatcher):
    """Build and compile the chat agent around *dispatcher*.

    Returns a compiled graph that can be invoked with:
        graph.invoke(
            {"messages": [HumanMessage(content="...")]},
            config={"configurable": {"thread_id": "session-123"}},
        )
    """
    tools = build_tools(dispatcher)
    graph = StateGraph(AgentState)

    graph.add_node("chatbot", _make_chatbot_node(tools))
    graph.add_node("tools", ToolNode(tools))
    graph.set_entry_point("chatbot")
    graph.add_conditional_edges(
        "chatbot", should_use_tools, {"tools": "tools", END: END},
    )
    graph.add_edge("tools", "chatbot")

    compiled = graph.compile(checkpointer=MemorySaver())
    logger.debug("Focusmate agent compiled (model %s, %d tools)", MODEL_NAME, len(tools))
    return compiled
