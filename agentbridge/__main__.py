"""
AgentBridge CLI entry point.

Runs one chat request from the terminal, serves the HTTP streaming API, and
inspects the configured tool servers.
"""

import argparse
import asyncio
import sys
from pathlib import Path

from agentbridge import __version__
from agentbridge.agent.components import AgentComponents
from agentbridge.agent.events import (
    DoneEvent,
    ErrorEvent,
    SessionEvent,
    TextEvent,
    ThinkingEvent,
    ToolEvent,
    ToolResultEvent,
)
from agentbridge.agent.loop import ChatRequest
from agentbridge.agent.presets import AGENT_PRESETS
from agentbridge.config.logging import get_logger, new_request_id, set_request_id, setup_logging
from agentbridge.config.settings import Settings, load_settings
from agentbridge.errors import ConfigError


def create_parser() -> argparse.ArgumentParser:
    """Create and configure argument parser."""
    parser = argparse.ArgumentParser(
        prog="agentbridge",
        description="Streaming agent runtime over MCP tool servers",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"AgentBridge {__version__}",
    )

    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Path to .env file (default: .env in current directory)",
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Override logging level from config",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Chat command
    chat_parser = subparsers.add_parser(
        "chat",
        help="Send one message through the agent loop and stream the reply",
    )
    chat_parser.add_argument(
        "message",
        help='Message to send, e.g. "Any errors in checkout logs in the last hour?"',
    )
    chat_parser.add_argument(
        "--servers",
        default=None,
        help="Comma-separated tool server ids (default: the agent preset's servers)",
    )
    chat_parser.add_argument(
        "--agent",
        choices=sorted(AGENT_PRESETS),
        default=None,
        help="Agent preset (default: general)",
    )
    chat_parser.add_argument(
        "--model",
        default=None,
        help="Model tier preference: cheap, balanced, capable (or haiku, sonnet, opus)",
    )
    chat_parser.add_argument(
        "--verbose",
        action="store_true",
        help="Show tool inputs, result previews and thinking",
    )
    chat_parser.add_argument(
        "--thinking",
        action="store_true",
        help="Enable extended thinking",
    )

    # Serve command
    serve_parser = subparsers.add_parser(
        "serve",
        help="Run the HTTP streaming server",
    )
    serve_parser.add_argument("--host", default=None, help="Override SERVER__HOST")
    serve_parser.add_argument("--port", type=int, default=None, help="Override SERVER__PORT")

    # Servers command
    servers_parser = subparsers.add_parser(
        "servers",
        help="List configured tool servers",
    )
    servers_parser.add_argument(
        "--test",
        action="store_true",
        help="Connect to every server and report its tool count",
    )

    # Config command
    subparsers.add_parser(
        "config",
        help="Show current configuration",
    )

    return parser


def cmd_config(settings: Settings) -> int:
    """Show current configuration."""
    logger = get_logger(__name__)

    logger.info("\n=== AgentBridge Configuration ===\n")
    logger.info(f"Log Level: {settings.log_level}")
    logger.info(f"Log File: {settings.log_file or 'None (console only)'}")
    logger.info(f"\nModels: cheap={settings.llm.cheap_model}")
    logger.info(f"        balanced={settings.llm.balanced_model}")
    logger.info(f"        capable={settings.llm.capable_model}")
    logger.info(f"LLM API Key: {'Set' if settings.llm.api_key else 'Not set (provider env vars)'}")
    logger.info(f"Prompt Caching: {settings.llm.prompt_caching}")
    logger.info(f"\nRouting: enabled={settings.routing.enabled}, profile={settings.routing.profile}")
    logger.info(f"Max Iterations: {settings.agent.max_iterations}")
    logger.info(f"Heartbeat Interval: {settings.agent.heartbeat_interval}s")
    logger.info(f"\nTool Servers File: {settings.tools.servers_file}")
    logger.info(f"Default Max Tools: {settings.tools.default_max_tools}")
    logger.info(f"Max Result Tokens: {settings.tools.max_result_tokens}")
    logger.info(f"\nServer: {settings.server.host}:{settings.server.port}")

    return 0


async def cmd_chat(args, settings: Settings) -> int:
    """
    Run one request through the agent loop, printing events as they arrive.

    Returns:
        Exit code (0 when the stream ends with `done`, 1 on `error`)
    """
    logger = get_logger(__name__)
    set_request_id(new_request_id())

    try:
        components = AgentComponents(settings)
        servers = [s.strip() for s in args.servers.split(",") if s.strip()] if args.servers else []
        request = ChatRequest(
            message=args.message,
            enabled_servers=servers,
            agent_id=args.agent,
            model=args.model,
            verbose=args.verbose or settings.agent.verbose,
            extended_thinking=args.thinking,
        )
    except (ConfigError, ValueError) as e:
        logger.error(f"Invalid request: {e}")
        return 1

    exit_code = 0
    loop = components.create_loop()
    async for event in loop.run(request):
        if isinstance(event, TextEvent):
            print(event.content, end="", flush=True)
        elif isinstance(event, ThinkingEvent):
            print(f"\n[thinking] {event.content}\n", flush=True)
        elif isinstance(event, ToolEvent):
            if event.status == "start":
                print(f"\n→ {event.name}({event.param_summary or ''})", flush=True)
            else:
                outcome = "ok" if event.success else "failed"
                print(f"  ← {event.name} {outcome} ({event.duration_ms or 0:.0f}ms)", flush=True)
        elif isinstance(event, ToolResultEvent):
            print(f"    {event.preview[:200]}", flush=True)
        elif isinstance(event, SessionEvent):
            logger.debug(f"Session {event.session_id} on {event.server_id}")
        elif isinstance(event, DoneEvent):
            usage = event.token_usage
            print(f"\n\n--- {event.iterations} iterations, {len(event.tool_calls)} tool calls ---")
            print(f"Tokens: {usage.total} (input {usage.input_tokens} + output {usage.output_tokens}, "
                  f"cache hits {usage.cache_hits})")
            if event.failed_servers:
                print(f"Unavailable servers: {', '.join(event.failed_servers)}")
        elif isinstance(event, ErrorEvent):
            print(f"\nError: {event.message}", file=sys.stderr)
            exit_code = 1

    return exit_code


async def cmd_servers(args, settings: Settings) -> int:
    """List configured tool servers, optionally testing each connection."""
    logger = get_logger(__name__)

    try:
        components = AgentComponents(settings)
    except ConfigError as e:
        logger.error(f"Could not load servers: {e}")
        return 1

    if not components.server_map:
        print(f"No servers configured in {settings.tools.servers_file}")
        return 0

    print(f"\n=== Tool Servers ({settings.tools.servers_file}) ===\n")
    for server_id, config in components.server_map.items():
        categories = f"  [{', '.join(config.categories)}]" if config.categories else ""
        print(f"  {server_id:<20} {config.type:<6}{categories}")

    if not args.test:
        return 0

    print("\nTesting connections...")
    async with components.create_connector() as connector:
        result = await connector.connect(list(components.server_map))
        for server_id, connection in connector.connections.items():
            if server_id in result.connected_ids:
                print(f"  ✓ {server_id}: {connection.tool_count} tools")
            else:
                print(f"  ✗ {server_id}: {connection.error}")

    return 0 if not result.failed_ids else 1


def cmd_serve(args, settings: Settings) -> int:
    """Start the HTTP streaming server."""
    from agentbridge.server import run_server

    overrides = {}
    if args.host:
        overrides["host"] = args.host
    if args.port:
        overrides["port"] = args.port
    if overrides:
        settings.server = settings.server.model_copy(update=overrides)

    run_server(settings)
    return 0


def main() -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args()

    # Load settings
    try:
        settings = load_settings(env_file=args.env_file)
    except Exception as e:
        print(f"Error loading settings: {e}", file=sys.stderr)
        return 1

    # Override log level if specified
    if args.log_level:
        settings.log_level = args.log_level

    setup_logging(settings)

    if args.command == "config":
        return cmd_config(settings)
    elif args.command == "chat":
        return asyncio.run(cmd_chat(args, settings))
    elif args.command == "servers":
        return asyncio.run(cmd_servers(args, settings))
    elif args.command == "serve":
        return cmd_serve(args, settings)
    else:
        parser.print_help()
        return 0


if __name__ == "__main__":
    sys.exit(main())
