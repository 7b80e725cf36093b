"""
AgentBridge - agent orchestration runtime for tool-using LLM assistants.

This package drives a multi-turn tool-use loop against an external inference
endpoint, discovers and invokes tools exposed by remote MCP tool servers, keeps
the model's context small with a relevance-based tool filter, routes each
request to a model tier, and streams incremental events to the caller.
"""

__version__ = "0.1.0"
