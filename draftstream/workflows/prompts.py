"""Workflow system prompt and per-workflow instructions."""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from importlib import resources

logger = logging.getLogger(__name__)

WORKFLOW_SYSTEM_PROMPT = """\
You are processing a message for the "{workflow_name}" workflow. \
The message arrived via {source_type}.

## Notion Database Schema

Database ID: {database_id}

The target database has the following properties:
{schema_description}

Property names and option values are case-sensitive: use them exactly as listed.

## Workflow Instructions

{instructions}

## Rules

- Use the provided tools to create a new page in the database above
- Keep the page title short and concise
- Put the body of the message into the page content (children blocks), not into properties
- Fill properties based on the user's message content
- If you cannot determine a value for a property, leave it empty rather than guessing
- Never set system-managed properties (created/edited times and users, formulas, rollups, IDs)
- After creating the page, respond with a brief, human-friendly confirmation of what was stored
- Today's date is {today}
"""

DEFAULT_INSTRUCTIONS = "Process the user's message and store it in the database."

_INSTRUCTIONS_PACKAGE = "draftstream.workflows.instructions"


class PromptBuilder:
    def __init__(self, instructions_package: str = _INSTRUCTIONS_PACKAGE) -> None:
        self._instructions_package = instructions_package
        self._instruction_cache: dict[str, str] = {}

    def build_system_prompt(
        self,
        workflow_name: str,
        database_id: str,
        source_type: str,
        schema_description: str,
        *,
        today: date | None = None,
    ) -> str:
        day = today or datetime.now(timezone.utc).date()
        return WORKFLOW_SYSTEM_PROMPT.format(
            workflow_name=workflow_name,
            source_type=source_type,
            database_id=database_id,
            schema_description=schema_description,
            instructions=self.load_instructions(workflow_name),
            today=day.strftime("%Y-%m-%d (%A)"),
        )

    def load_instructions(self, workflow_name: str) -> str:
        cached = self._instruction_cache.get(workflow_name)
        if cached is not None:
            return cached

        resource = resources.files(self._instructions_package).joinpath(f"{workflow_name}.md")
        try:
            instructions = resource.read_text(encoding="utf-8").strip()
        except (FileNotFoundError, IsADirectoryError):
            logger.debug("No instructions file for workflow '%s', using default", workflow_name)
            instructions = DEFAULT_INSTRUCTIONS

        self._instruction_cache[workflow_name] = instructions
        return instructions
