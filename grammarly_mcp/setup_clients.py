"""Interactive setup that registers the server with local MCP clients.

Reads variables from a ``.env`` file and writes a ``grammarly`` server entry
into the config files of the selected clients (JSON for most, TOML for the
Codex CLI). Existing files are backed up first.

Usage: grammarly-mcp-setup [--env-file PATH]

Server config validation is not run here; an incomplete ``.env`` only
produces warnings.
"""

import argparse
import json
import logging
import os
import re
import shutil
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Literal, Optional

from dotenv import dotenv_values

from .config import configure_logging

logger = logging.getLogger("grammarly-optimizer.setup")

SERVER_NAME = "grammarly"
BINARY_NAME = "grammarly-mcp"

REQUIRED_KEYS = (
    "BROWSER_PROVIDER",
    "BROWSERBASE_API_KEY",
    "BROWSERBASE_PROJECT_ID",
    "BROWSER_USE_API_KEY",
    "BROWSER_USE_PROFILE_ID",
)

OPTIONAL_KEYS = (
    "BROWSERBASE_CONTEXT_ID",
    "BROWSERBASE_SESSION_ID",
    "STAGEHAND_MODEL",
    "STAGEHAND_LLM_PROVIDER",
    "CLAUDE_MODEL",
    "OPENAI_MODEL",
    "GOOGLE_MODEL",
    "ANTHROPIC_MODEL",
    "CLAUDE_API_KEY",
    "OPENAI_API_KEY",
    "GOOGLE_API_KEY",
    "ANTHROPIC_API_KEY",
    "LOG_LEVEL",
    "LLM_REQUEST_TIMEOUT_MS",
    "CONNECT_TIMEOUT_MS",
    "SCORE_TIMEOUT_MS",
    "BROWSER_USE_TIMEOUT_MS",
)


@dataclass(frozen=True)
class ClientConfig:
    name: str
    config_path: Path
    format: Literal["json", "toml"]
    description: str


@dataclass(frozen=True)
class ServerInvocation:
    command: str
    args: List[str]
    note: str


def default_clients(home: Optional[Path] = None, appdata: Optional[str] = None) -> List[ClientConfig]:
    home = home or Path.home()
    appdata_dir = Path(appdata or os.environ.get("APPDATA") or home / "AppData" / "Roaming")
    desktop = "claude_desktop_config.json"
    return [
        ClientConfig("Claude Code CLI", home / ".claude" / "settings.json", "json",
                     "Claude Code command-line tool"),
        ClientConfig("Claude Desktop (macOS)", home / "Library" / "Application Support" / "Claude" / desktop,
                     "json", "Claude Desktop app on macOS"),
        ClientConfig("Claude Desktop (Linux)", home / ".config" / "Claude" / desktop, "json",
                     "Claude Desktop app on Linux"),
        ClientConfig("Claude Desktop (Windows)", appdata_dir / "Claude" / desktop, "json",
                     "Claude Desktop app on Windows"),
        ClientConfig("Cursor", home / ".cursor" / "mcp.json", "json", "Cursor AI editor"),
        ClientConfig("VS Code (GitHub Copilot)", home / ".vscode" / "mcp.json", "json",
                     "VS Code with GitHub Copilot MCP support"),
        ClientConfig("Windsurf", home / ".codeium" / "windsurf" / "mcp_config.json", "json",
                     "Windsurf (Codeium) editor"),
        ClientConfig("Gemini CLI", home / ".gemini" / "settings.json", "json", "Google Gemini CLI"),
        ClientConfig("OpenAI Codex CLI", home / ".codex" / "config.toml", "toml",
                     "OpenAI Codex CLI (uses TOML format)"),
    ]


def filter_clients_for_platform(platform: str, clients: List[ClientConfig]) -> List[ClientConfig]:
    """Drop desktop entries meant for other operating systems."""
    if platform == "darwin":
        excluded = ("(Linux)",)
    elif platform.startswith("linux"):
        excluded = ("(macOS)",)
    else:
        excluded = ("(macOS)", "(Linux)")
    return [c for c in clients if not any(tag in c.name for tag in excluded)]


# ── Environment ──────────────────────────────────────────────────────────────


def parse_env_file(env_path: Path) -> Dict[str, str]:
    if not env_path.exists():
        return {}
    return {k: v for k, v in dotenv_values(env_path).items() if v is not None}


def missing_required(env: Dict[str, str]) -> List[str]:
    """Names of variables the server will refuse to start without."""
    provider = env.get("BROWSER_PROVIDER") or "stagehand"
    if provider == "browser-use":
        needed = ["BROWSER_USE_API_KEY", "BROWSER_USE_PROFILE_ID"]
    else:
        needed = ["BROWSERBASE_API_KEY", "BROWSERBASE_PROJECT_ID"]
    missing = [key for key in needed if not env.get(key)]
    if not env.get("ANTHROPIC_API_KEY") and not env.get("CLAUDE_API_KEY"):
        missing.append("ANTHROPIC_API_KEY")
    return missing


# ── Config generation ────────────────────────────────────────────────────────


def build_mcp_config(invocation: ServerInvocation, env: Dict[str, str]) -> dict:
    """Server entry with only the known, non-empty variables."""
    return {
        "command": invocation.command,
        "args": list(invocation.args),
        "env": {key: env[key] for key in REQUIRED_KEYS + OPTIONAL_KEYS if env.get(key)},
    }


def escape_toml_string(value: str) -> str:
    return (
        value.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\r", "\\r")
        .replace("\t", "\\t")
    )


def generate_json_config(existing: Optional[dict], mcp_config: dict) -> str:
    config = existing if existing is not None else {}
    if not isinstance(config.get("mcpServers"), dict):
        config["mcpServers"] = {}
    config["mcpServers"][SERVER_NAME] = mcp_config
    return json.dumps(config, indent=2)


_OTHER_TABLE = re.compile(rf"^\s*\[(?!mcp_servers\.{SERVER_NAME}\.)")


def generate_toml_config(existing: Optional[str], mcp_config: dict, note: Optional[str] = None) -> str:
    """Replace the server's table (and its sub-tables) and keep everything else."""
    lines: List[str] = []
    if existing:
        in_server_table = False
        for line in existing.split("\n"):
            if line.startswith(f"[mcp_servers.{SERVER_NAME}]"):
                in_server_table = True
                continue
            if in_server_table and _OTHER_TABLE.match(line):
                in_server_table = False
            if not in_server_table:
                lines.append(line)
        while lines and not lines[-1].strip():
            lines.pop()
        if lines:
            lines.append("")

    args = ", ".join(f'"{escape_toml_string(a)}"' for a in mcp_config["args"])
    lines.append(f"[mcp_servers.{SERVER_NAME}]")
    lines.append(f'command = "{escape_toml_string(mcp_config["command"])}"')
    lines.append(f"args = [{args}]")
    lines.append("")
    if note:
        lines.append(f"# {note}")
    lines.append(f"[mcp_servers.{SERVER_NAME}.env]")
    for key, value in mcp_config["env"].items():
        lines.append(f'{key} = "{escape_toml_string(value)}"')
    lines.append("")
    return "\n".join(lines)


def resolve_server_invocation() -> ServerInvocation:
    if shutil.which(BINARY_NAME):
        return ServerInvocation(
            BINARY_NAME, [], f"Using {BINARY_NAME} from PATH so configs survive repository moves."
        )
    return ServerInvocation(
        sys.executable,
        ["-m", "grammarly_mcp.server"],
        "Using this interpreter directly; rerun setup after switching virtualenvs.",
    )


# ── File operations ──────────────────────────────────────────────────────────


def backup_file(path: Path) -> Optional[Path]:
    if not path.exists():
        return None
    backup = path.with_name(f"{path.name}.backup.{int(time.time() * 1000)}")
    shutil.copyfile(path, backup)
    return backup


def read_existing_json(path: Path) -> Optional[dict]:
    if not path.exists():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        logger.warning("Ignoring unreadable config %s: %s", path, e)
        return None
    return data if isinstance(data, dict) else None


def write_client_config(client: ClientConfig, mcp_config: dict, note: Optional[str] = None) -> Optional[Path]:
    """Write the server entry into one client's config. Returns the backup path."""
    backup = backup_file(client.config_path)
    client.config_path.parent.mkdir(parents=True, exist_ok=True)
    if client.format == "json":
        content = generate_json_config(read_existing_json(client.config_path), mcp_config)
    else:
        existing = client.config_path.read_text(encoding="utf-8") if client.config_path.exists() else None
        content = generate_toml_config(existing, mcp_config, note)
    client.config_path.write_text(content, encoding="utf-8")
    return backup


# ── Interactive CLI ──────────────────────────────────────────────────────────


def select_clients(clients: List[ClientConfig], ask: Callable[[str], str] = input) -> List[ClientConfig]:
    """Prompt until at least one valid client is chosen, 'a' for all, or 'q'."""
    print("\n=== Grammarly MCP Server Setup ===\n")
    for i, client in enumerate(clients, start=1):
        exists = " (config exists)" if client.config_path.exists() else ""
        print(f"  {i}. {client.name}{exists}")
        print(f"     {client.description}")
        print(f"     Path: {client.config_path}\n")
    print("  a. Configure all clients")
    print("  q. Quit\n")

    while True:
        answer = ask("Enter client numbers (comma-separated) or 'a' for all: ").strip().lower()
        if answer == "q":
            return []
        if answer == "a":
            return list(clients)

        chosen = []
        for token in (t.strip() for t in answer.split(",")):
            if not token:
                continue
            try:
                index = int(token) - 1
            except ValueError:
                logger.warning("Skipping invalid number: %r", token)
                continue
            if not 0 <= index < len(clients):
                logger.warning("Selection out of range (must be 1-%d): %r", len(clients), token)
                continue
            chosen.append(clients[index])

        if chosen:
            return chosen
        logger.warning("No valid selections detected. Please try again.")


def main(argv: Optional[List[str]] = None, ask: Callable[[str], str] = input) -> int:
    parser = argparse.ArgumentParser(description="Register the Grammarly MCP server with MCP clients")
    parser.add_argument("--env-file", type=Path, default=Path.cwd() / ".env")
    args = parser.parse_args(argv)

    configure_logging(os.environ.get("SETUP_LOG_LEVEL", "info"))

    env = parse_env_file(args.env_file)
    if env:
        logger.info("Found %d environment variables in %s", len(env), args.env_file)
    else:
        logger.warning("No .env found at %s; configs will carry no environment variables", args.env_file)
    missing = missing_required(env)
    if missing:
        logger.warning("Not set: %s. The server will not start until they are provided.", ", ".join(missing))

    clients = filter_clients_for_platform(sys.platform, default_clients())
    selected = select_clients(clients, ask)
    if not selected:
        logger.info("No clients selected. Exiting.")
        return 0

    invocation = resolve_server_invocation()
    logger.info("Server invocation: %s %s", invocation.command, " ".join(invocation.args))
    mcp_config = build_mcp_config(invocation, env)

    failures = 0
    for client in selected:
        try:
            backup = write_client_config(client, mcp_config, invocation.note)
        except OSError as e:
            failures += 1
            logger.error("Error configuring %s: %s", client.name, e)
            continue
        if backup:
            logger.info("Backed up %s to %s", client.config_path, backup)
        logger.info("Configured %s (%s)", client.name, client.config_path)

    logger.info("Restart your MCP clients to load the new configuration.")
    return 1 if failures else 0


if __name__ == "__main__":
    sys.exit(main())
