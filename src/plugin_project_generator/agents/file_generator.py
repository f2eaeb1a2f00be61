"""PluginCoder agent — writes one plugin file at a time."""

from __future__ import annotations

import logging
from typing import Protocol

import autogen

from ..config import build_role_llm_config
from ..context import ContextSnapshot
from ..errors import GenerationCapabilityError
from ..models import ProjectConfig
from ..tools.content_cleaner import response_text

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """\
You are an expert Minecraft server plugin developer (Bukkit / Spigot API, Java 17).

You write exactly one project file per request. You are given the plugin
details, the file to create, the planned project structure and the complete
contents of every file generated so far.

Rules:
- Use the exact package, class names, command names and config keys that the
  existing files and the project structure already use.
- Only reference project classes that already exist or are listed in the plan.
- The public class name must match the file name; the package must match the path.
- plugin.yml must declare name, version, main and every command the plugin registers.
- Do not redefine a class or command another file already defines.

Return the file content only, without explanations or markdown fences.
"""


class FileGenerator(Protocol):
    """Anything that turns a prompt into raw file text."""

    def generate(self, prompt: str, context: ContextSnapshot) -> str: ...


def make_file_generator(config: ProjectConfig) -> autogen.AssistantAgent:
    """Create the PluginCoder agent."""
    return autogen.AssistantAgent(
        name="PluginCoder",
        system_message=SYSTEM_PROMPT,
        llm_config=build_role_llm_config("generator", config),
    )


class AgentFileGenerator:
    """FileGenerator backed by a single-turn AG2 chat with the PluginCoder agent."""

    def __init__(self, config: ProjectConfig) -> None:
        self.config = config

    def generate(self, prompt: str, context: ContextSnapshot) -> str:
        """Run one generation attempt. *context* is already rendered into *prompt*."""
        # Fresh agents per call: concurrent steps never share chat history
        coder = make_file_generator(self.config)
        orchestrator = autogen.UserProxyAgent(
            name="Orchestrator",
            human_input_mode="NEVER",
            code_execution_config=False,
        )
        try:
            response = orchestrator.initiate_chat(coder, message=prompt, max_turns=1)
        except Exception as e:
            logger.debug("PluginCoder call failed", exc_info=True)
            raise GenerationCapabilityError(f"Generation backend failed: {e}") from e

        text = response_text(response)
        if not text.strip():
            raise GenerationCapabilityError("Generation backend returned an empty reply")
        return text
