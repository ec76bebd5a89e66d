"""Local voice commands that are handled without asking the remote assistant."""

import json
import logging
import os
import re
import subprocess
import webbrowser
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

import requests

log = logging.getLogger(__name__)

ACTIONS = ("launch", "url", "http", "callback")


def normalize_text(text: str) -> str:
    """Lower-case, drop punctuation and collapse whitespace"""
    text = re.sub(r"[^a-z0-9\s]", "", text.lower())
    return " ".join(text.split())


@dataclass(frozen=True)
class Command:
    name: str
    phrases: Tuple[str, ...]
    action: str
    target: Any = None
    method: str = "POST"
    payload: Optional[Dict[str, Any]] = None
    timeout: float = 5.0
    exact: bool = False

    def matches(self, text: str) -> bool:
        normalized = normalize_text(text)
        for phrase in self.phrases:
            phrase = normalize_text(phrase)
            if self.exact and normalized == phrase:
                return True
            if not self.exact and re.search(rf"\b{re.escape(phrase)}\b", normalized):
                return True
        return False


@dataclass
class Commands:
    """Registry of commands, matched in registration order."""
    commands: List[Command] = field(default_factory=list)

    @classmethod
    def from_file(cls, config_path: str) -> "Commands":
        """Load commands from a JSON file; a missing or broken file gives an empty registry"""
        registry = cls()
        path = os.path.expanduser(config_path)
        try:
            with open(path, "r", encoding="utf-8") as f:
                config = json.load(f)
        except FileNotFoundError:
            log.info(f"No commands file at {path}, local commands disabled.")
            return registry
        except json.JSONDecodeError as e:
            log.error(f"Invalid JSON in commands file {path}: {e}")
            return registry

        for name, entry in config.get("commands", {}).items():
            try:
                registry.add(
                    name,
                    entry["phrases"],
                    entry["action"],
                    target=entry.get("target"),
                    method=entry.get("method", "POST"),
                    payload=entry.get("payload"),
                    timeout=float(entry.get("timeout", 5.0)),
                    exact=bool(entry.get("exact", False)),
                )
            except (KeyError, TypeError, ValueError) as e:
                log.error(f"Skipping command '{name}': {e}")
        log.info(f"Loaded {len(registry.commands)} commands from {path}")
        return registry

    def add(self, name: str, phrases, action: str, **options) -> Command:
        if action not in ACTIONS:
            raise ValueError(f"unknown action '{action}'")
        if isinstance(phrases, str):
            phrases = [phrases]
        command = Command(name=name, phrases=tuple(phrases), action=action, **options)
        self.commands.append(command)
        return command

    def register(self, name: str, phrases, callback: Callable[[], Any], exact: bool = False) -> Command:
        """Register an in-process command; a falsy return value counts as failure"""
        return self.add(name, phrases, "callback", target=callback, exact=exact)

    def find_command(self, text: str) -> Optional[Command]:
        if not text:
            return None
        for command in self.commands:
            if command.matches(text):
                return command
        return None

    @staticmethod
    def run(command: Command) -> bool:
        """Execute a command. Returns True iff it reported success."""
        try:
            if command.action == "launch":
                args = command.target if isinstance(command.target, list) else [command.target]
                subprocess.Popen(args)
                return True
            if command.action == "url":
                return bool(webbrowser.open(command.target))
            if command.action == "http":
                response = requests.request(
                    command.method, command.target, json=command.payload, timeout=command.timeout
                )
                if not response.ok:
                    log.warning(f"Command '{command.name}' got HTTP {response.status_code}")
                return response.ok
            if command.action == "callback":
                return bool(command.target())
        except (OSError, requests.RequestException) as e:
            log.error(f"Command '{command.name}' failed: {e}")
            return False
        except Exception as e:
            log.error(f"Command '{command.name}' raised: {e}")
            return False
        log.error(f"Command '{command.name}' has unknown action '{command.action}'")
        return False
