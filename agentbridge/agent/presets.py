"""
Agent presets.

A preset specializes the assistant for one job: its system prompt, the tool
categories the relevance filter should favour, how many tools to expose and
which servers to enable when the request names none.

Prompts live as text files in agentbridge/prompts/. The base template
(system.txt) has an {agent_block} placeholder that receives the preset's
role prompt.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field

from agentbridge.tools.categories import ToolCategory
from agentbridge.tools.models import FilterStrategy

PROMPTS_DIR = Path(__file__).parent.parent / "prompts"

DEFAULT_MAX_TOOLS = 40
DEFAULT_AGENT_ID = "general"

C = ToolCategory


class AgentPreset(BaseModel):
    id: str
    name: str
    description: str
    prompt_file: str = Field(description="File name under agentbridge/prompts/")
    priority_categories: list[str] = Field(default_factory=list)
    max_tools: int | None = Field(default=None, description="Tool cap; None uses the global default")
    default_servers: list[str] = Field(
        default_factory=list,
        description="Servers enabled when the request does not list any",
    )


AGENT_PRESETS: dict[str, AgentPreset] = {
    preset.id: preset
    for preset in [
        AgentPreset(
            id="general",
            name="General Assistant",
            description="Multi-purpose assistant for everyday tasks",
            prompt_file="general.txt",
        ),
        AgentPreset(
            id="incident",
            name="Incident Investigator",
            description="Root cause analysis and incident investigation",
            prompt_file="incident.txt",
            priority_categories=[C.INCIDENT, C.LOGS, C.METRICS, C.KUBERNETES],
            default_servers=["coralogix", "newrelic", "rootly", "kubernetes"],
        ),
        AgentPreset(
            id="incident-commander",
            name="Incident Commander",
            description="Coordinates incident response across on-call, alerts and logs",
            prompt_file="incident.txt",
            priority_categories=[C.INCIDENT, C.ONCALL, C.ALERTS, C.LOGS],
            max_tools=30,
            default_servers=["rootly", "coralogix", "slack"],
        ),
        AgentPreset(
            id="log-analyzer",
            name="Log Analyzer",
            description="Log and trace search, error pattern analysis",
            prompt_file="logs.txt",
            priority_categories=[C.LOGS, C.TRACES, C.METRICS],
            max_tools=25,
            default_servers=["coralogix"],
        ),
        AgentPreset(
            id="metrics-explorer",
            name="Metrics Explorer",
            description="Metrics, dashboards and alert exploration",
            prompt_file="metrics.txt",
            priority_categories=[C.METRICS, C.OBSERVABILITY, C.ALERTS],
            max_tools=25,
            default_servers=["newrelic", "prometheus"],
        ),
        AgentPreset(
            id="quota",
            name="Quota Manager",
            description="Observability cost optimization and quota monitoring",
            prompt_file="quota.txt",
            priority_categories=[C.METRICS, C.OBSERVABILITY, C.LOGS],
            default_servers=["coralogix", "newrelic", "prometheus"],
        ),
        AgentPreset(
            id="security",
            name="Security Analyst",
            description="Vulnerability assessment and security review",
            prompt_file="security.txt",
            priority_categories=[C.CODE, C.REPOSITORY, C.KUBERNETES, C.INFRASTRUCTURE],
        ),
        AgentPreset(
            id="ui-ux",
            name="UI/UX Designer",
            description="Interface design, accessibility and frontend components",
            prompt_file="ui-ux.txt",
            priority_categories=[C.CODE, C.REPOSITORY],
            max_tools=20,
        ),
    ]
}


def get_preset(agent_id: str | None) -> AgentPreset | None:
    if agent_id is None:
        return None
    return AGENT_PRESETS.get(agent_id)


@lru_cache(maxsize=16)
def _read_prompt(file_name: str) -> str:
    return (PROMPTS_DIR / file_name).read_text(encoding="utf-8").strip()


def build_system_prompt(agent_id: str | None = None) -> str:
    """Render the base system prompt with the agent's role block (general when unknown)."""
    preset = get_preset(agent_id) or AGENT_PRESETS[DEFAULT_AGENT_ID]
    template = _read_prompt("system.txt")
    return template.replace("{agent_block}", _read_prompt(preset.prompt_file))


def default_strategy(
    query: str,
    agent_id: str | None = None,
    user_id: str | None = None,
    default_max_tools: int = DEFAULT_MAX_TOOLS,
) -> FilterStrategy:
    """
    Filter strategy for a request: the agent's priority categories and tool
    cap when it has a preset, the general cap otherwise.
    """
    preset = get_preset(agent_id)
    if preset is None:
        return FilterStrategy(
            query=query, max_tools=default_max_tools, agent_id=agent_id, user_id=user_id
        )
    return FilterStrategy(
        query=query,
        priority_categories=[str(C(cat).value) for cat in preset.priority_categories],
        max_tools=preset.max_tools or default_max_tools,
        agent_id=agent_id,
        user_id=user_id,
    )
