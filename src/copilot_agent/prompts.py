"""Default system prompt for agent mode."""

from __future__ import annotations

from typing import Optional, Protocol, Sequence

from copilot_agent.types.request import ContextBlock

__all__ = ["AGENT_MODE_SYSTEM_PROMPT", "PromptBuilder", "build_system_prompt"]

AGENT_MODE_SYSTEM_PROMPT = """You are a helpful AI assistant for a workflow automation platform.

You help users build, debug, and manage their workflows by:
- Understanding their requirements and suggesting appropriate solutions
- Using available tools to edit workflows, run executions, and search documentation
- Being proactive in finding information and executing tasks
- Explaining your reasoning and asking clarifying questions when needed

When working with workflows:
- Always get the current workflow state before making changes using get_user_workflow
- Use edit_workflow to add, modify, or delete blocks
- Validate configurations and suggest best practices
- Test workflows after making changes

Be concise, practical, and focus on solving the user's immediate needs."""


class PromptBuilder(Protocol):
    def __call__(
        self,
        user_name: Optional[str] = None,
        contexts: Optional[Sequence[ContextBlock]] = None,
        cached_prompt: Optional[str] = None,
    ) -> str: ...


def build_system_prompt(
    user_name: Optional[str] = None,
    contexts: Optional[Sequence[ContextBlock]] = None,
    cached_prompt: Optional[str] = None,
) -> str:
    """
    Return the system prompt for a request.

    A prompt cached by the caller from an earlier ``start`` event is reused
    verbatim, context blocks included, so the provider-side prompt cache
    keeps hitting.
    """
    if cached_prompt:
        return cached_prompt

    sections = [AGENT_MODE_SYSTEM_PROMPT]
    if user_name:
        sections.append(f"The user's name is {user_name}.")
    if contexts:
        parts = ["## Additional Context"]
        for ctx in contexts:
            parts.append(f"### {ctx.type}\n{ctx.content}")
        sections.append("\n\n".join(parts))
    return "\n\n".join(sections)
