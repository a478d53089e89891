"""Prompt templates for the assist and remediation requests."""

from __future__ import annotations

from pathlib import Path

ASSIST_SYSTEM_PROMPT = (
    "You are devassist, an engineering assistant working inside the user's project. "
    "You provide expert help with development, debugging, testing and deployment. "
    "When providing code solutions, present them as executable commands (bash) and file snippets "
    "(with specific filenames, e.g. 'create a file named src/index.js') that should be implemented. "
    "Use bracketed placeholders such as [YourAPIKey] or [YourPrivateKey] for secrets instead of inventing values. "
    "Be concise, technical, and helpful."
)

REMEDIATION_SYSTEM_PROMPT = (
    "You are an expert error resolver for command-line operations and code. "
    "Analyze errors and provide practical, immediate solutions. "
    "Output code blocks or commands that should be executed to fix the problem. Be direct and concise. "
    "Focus on common development errors including package installation issues, configuration problems, "
    "missing dependencies and syntax errors. Provide solutions that can be automatically executed. "
    "When providing shell commands, ensure they will work in a single execution; never require user input. "
    "If a command needs input, provide it via arguments or environment variables. "
    "IMPORTANT: If the error involves conflicting configuration formats (like ESLint config files), "
    "choose ONE definitive solution and stick with it rather than offering alternatives."
)


def render_assist_prompt(query: str, project_description: str = "") -> str:
    """Prefix ``query`` with the project description when one is known."""
    description = project_description.strip()
    if not description:
        return query
    return f"{description} {query}"


def render_remediation_prompt(failing_context: str, error_text: str, working_dir: Path) -> str:
    """Build the user prompt asking for exactly one fix of a failed command."""
    return (
        f'I encountered an error while executing this command: "{failing_context}"\n\n'
        f"Error message:\n{error_text}\n\n"
        f"Current directory: {working_dir.as_posix()}\n\n"
        "Please provide a single definitive solution that can be automatically applied."
    )


__all__ = [
    "ASSIST_SYSTEM_PROMPT",
    "REMEDIATION_SYSTEM_PROMPT",
    "render_assist_prompt",
    "render_remediation_prompt",
]
