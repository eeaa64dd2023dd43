"""Predefined configurations for popular MCP servers."""

from __future__ import annotations

from dataclasses import dataclass, field

from prompt_supply.models import ServerConfig


@dataclass(frozen=True, slots=True)
class PredefinedServer:
    config: ServerConfig
    tools: list[str] = field(default_factory=list)
    # Human description of the trailing positional argument, if one is needed.
    argument_hint: str = ""


PREDEFINED_SERVERS: dict[str, PredefinedServer] = {
    "github": PredefinedServer(
        config=ServerConfig(
            server_id="github",
            name="GitHub",
            command="npx",
            args=["-y", "@modelcontextprotocol/server-github"],
            description="Access GitHub repositories, issues, and pull requests",
        ),
        tools=["create_repository", "search_repositories", "create_issue", "get_issue"],
    ),
    "filesystem": PredefinedServer(
        config=ServerConfig(
            server_id="filesystem",
            name="File System",
            command="npx",
            args=["-y", "@modelcontextprotocol/server-filesystem"],
            description="Read and write files in allowed directories",
        ),
        tools=["read_file", "write_file", "create_directory", "list_directory"],
        argument_hint="allowed directory",
    ),
    "sqlite": PredefinedServer(
        config=ServerConfig(
            server_id="sqlite",
            name="SQLite Database",
            command="npx",
            args=["-y", "@modelcontextprotocol/server-sqlite"],
            description="Query and manipulate SQLite databases",
        ),
        tools=["read_query", "write_query", "create_table", "list_tables"],
        argument_hint="database file",
    ),
    "brave-search": PredefinedServer(
        config=ServerConfig(
            server_id="brave-search",
            name="Brave Search",
            command="npx",
            args=["-y", "@modelcontextprotocol/server-brave-search"],
            description="Search the web using Brave Search API",
        ),
        tools=["brave_web_search"],
    ),
}


def predefined_server_config(
    server_id: str,
    argument: str = "",
    env: dict[str, str] | None = None,
) -> ServerConfig:
    """Launch config for a predefined server.

    Raises KeyError for unknown ids and ValueError when the server needs an
    argument (a directory or database path) that was not given.
    """
    preset = PREDEFINED_SERVERS[server_id]
    base = preset.config
    if preset.argument_hint and not argument:
        raise ValueError(f"{base.name} needs a path to the {preset.argument_hint}.")
    args = [*base.args, argument] if argument else list(base.args)
    return ServerConfig(
        server_id=base.server_id,
        name=base.name,
        command=base.command,
        args=args,
        env=dict(env or {}),
        description=base.description,
    )
