"""
Tool categories for context-aware filtering.

Tools are tagged with topic categories from two sources: the domain
categories of the server that owns them, and regex matches against their
own name and description. Queries are tagged by keyword matching. The
relevance filter scores tools by the overlap.
"""

import re
from enum import Enum


class ToolCategory(str, Enum):
    # Observability & monitoring
    OBSERVABILITY = "observability"
    METRICS = "metrics"
    LOGS = "logs"
    TRACES = "traces"
    ALERTS = "alerts"

    # Incident management
    INCIDENT = "incident"
    ONCALL = "oncall"
    RUNBOOK = "runbook"

    # Code & development
    CODE = "code"
    GIT = "git"
    REPOSITORY = "repository"
    PR = "pr"
    ISSUE = "issue"

    # Communication
    SLACK = "slack"
    NOTIFICATION = "notification"

    # Documentation
    WIKI = "wiki"
    CONFLUENCE = "confluence"
    JIRA = "jira"

    # Infrastructure
    INFRASTRUCTURE = "infrastructure"
    DEPLOYMENT = "deployment"
    KUBERNETES = "kubernetes"

    # General
    SEARCH = "search"
    UTILITY = "utility"


C = ToolCategory

TOOL_PATTERNS: dict[ToolCategory, list[re.Pattern]] = {
    category: [re.compile(p, re.IGNORECASE) for p in patterns]
    for category, patterns in {
        C.OBSERVABILITY: [r"query|search|list", r"dashboard|widget", r"monitor"],
        C.METRICS: [r"metric", r"timeseries", r"stat"],
        C.LOGS: [r"log", r"query.*log", r"search.*log"],
        C.TRACES: [r"trace", r"span", r"apm"],
        C.ALERTS: [r"alert", r"notification", r"trigger"],
        C.INCIDENT: [r"incident", r"postmortem", r"retrospective"],
        C.ONCALL: [r"oncall|on.call", r"schedule", r"rotation"],
        C.RUNBOOK: [r"runbook", r"playbook", r"procedure"],
        C.CODE: [r"code|file|source", r"search.*code"],
        C.GIT: [r"git|commit|branch", r"diff|merge"],
        C.REPOSITORY: [r"repo|repository", r"clone|fork"],
        C.PR: [r"pull.request|\bpr\b", r"review"],
        C.ISSUE: [r"issue|ticket", r"bug|task"],
        C.SLACK: [r"slack", r"channel|message|post"],
        C.WIKI: [r"wiki|page|article"],
        C.CONFLUENCE: [r"confluence", r"space|page"],
        C.JIRA: [r"jira", r"epic|story"],
        C.INFRASTRUCTURE: [r"infra|server|host", r"service|resource"],
        C.DEPLOYMENT: [r"deploy", r"release|rollout"],
        C.KUBERNETES: [r"k8s|kubernetes", r"pod|container|namespace"],
        C.SEARCH: [r"search|find|query", r"list|get"],
    }.items()
}

QUERY_KEYWORDS: dict[ToolCategory, list[str]] = {
    C.OBSERVABILITY: ["monitor", "observability", "dashboard", "view", "check"],
    C.METRICS: [
        "metric", "performance", "cpu", "memory", "latency", "throughput",
        "response time", "error rate",
    ],
    C.LOGS: ["log", "logs", "error", "exception", "stack trace", "debug"],
    C.TRACES: ["trace", "tracing", "distributed", "request flow", "latency"],
    C.ALERTS: ["alert", "notification", "alarm", "trigger", "threshold"],
    C.INCIDENT: [
        "incident", "outage", "downtime", "postmortem", "root cause", "issue", "problem",
    ],
    C.ONCALL: ["oncall", "on-call", "schedule", "rotation", "escalation"],
    C.RUNBOOK: ["runbook", "playbook", "procedure", "how to", "steps"],
    C.CODE: ["code", "file", "source", "implementation", "function", "class"],
    C.GIT: ["git", "commit", "branch", "diff", "merge", "version control"],
    C.REPOSITORY: ["repository", "repo", "project", "codebase"],
    C.PR: ["pull request", "pr", "review", "merge request"],
    C.ISSUE: ["issue", "ticket", "bug", "task", "backlog"],
    C.SLACK: ["slack", "message", "channel", "dm", "notify"],
    C.NOTIFICATION: ["notification", "notify", "send", "alert", "broadcast"],
    C.WIKI: ["wiki", "documentation", "docs", "knowledge base"],
    C.CONFLUENCE: ["confluence", "page", "space"],
    C.JIRA: ["jira", "epic", "story", "sprint"],
    C.INFRASTRUCTURE: ["infrastructure", "server", "host", "service", "resource"],
    C.DEPLOYMENT: ["deploy", "deployment", "release", "rollout", "version"],
    C.KUBERNETES: ["kubernetes", "k8s", "pod", "container", "namespace", "cluster"],
    C.SEARCH: ["search", "find", "query", "list", "get", "lookup"],
    C.UTILITY: ["utility", "tool", "helper", "misc", "general"],
}

# Domain categories of well-known servers; a server entry's own
# "categories" list takes precedence over this table.
SERVER_CATEGORIES: dict[str, list[ToolCategory]] = {
    "coralogix": [C.OBSERVABILITY, C.LOGS, C.METRICS, C.TRACES, C.ALERTS],
    "newrelic": [C.OBSERVABILITY, C.METRICS, C.TRACES, C.ALERTS],
    "rootly": [C.INCIDENT, C.ONCALL, C.RUNBOOK],
    "github": [C.CODE, C.GIT, C.REPOSITORY, C.PR, C.ISSUE],
    "slack": [C.SLACK, C.NOTIFICATION],
    "confluence": [C.CONFLUENCE, C.WIKI],
    "jira": [C.JIRA, C.ISSUE],
}

# Cold-start categories when a query names nothing specific
FALLBACK_PRIORITY: list[ToolCategory] = [C.SEARCH, C.OBSERVABILITY, C.INCIDENT, C.LOGS]

_WORD_BOUNDARY_KEYWORDS = {"pr", "dm", "log", "get", "view"}


def categorize_tool(
    tool_name: str,
    description: str | None = None,
    server_id: str | None = None,
    server_categories: list[str] | None = None,
) -> list[str]:
    """
    Categorize a tool from its server's domain and its own name and description.

    Returns category values in a stable order; "utility" when nothing matches.
    """
    categories: dict[str, None] = {}

    if server_categories:
        for cat in server_categories:
            categories[str(cat)] = None
    elif server_id and server_id in SERVER_CATEGORIES:
        for cat in SERVER_CATEGORIES[server_id]:
            categories[cat.value] = None

    text = f"{tool_name} {description or ''}".lower()
    for category, patterns in TOOL_PATTERNS.items():
        if any(p.search(text) for p in patterns):
            categories[category.value] = None

    if not categories:
        categories[C.UTILITY.value] = None
    return list(categories)


def _keyword_in(keyword: str, text: str) -> bool:
    # Very short keywords would otherwise match inside unrelated words ("pr" in "print")
    if keyword in _WORD_BOUNDARY_KEYWORDS:
        return re.search(rf"\b{re.escape(keyword)}s?\b", text) is not None
    return keyword in text


def detect_query_categories(query: str) -> list[str]:
    """Detect relevant categories from a user query by keyword matching."""
    lowered = query.lower()
    return [
        category.value
        for category, keywords in QUERY_KEYWORDS.items()
        if any(_keyword_in(k, lowered) for k in keywords)
    ]


def category_priority(query: str) -> list[str]:
    """Categories for a query, most relevant first, with the cold-start fallback."""
    detected = detect_query_categories(query)
    if not detected:
        return [c.value for c in FALLBACK_PRIORITY]
    return detected
