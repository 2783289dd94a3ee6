"""Schema-driven workflow engine: LLM function calling against the Notion MCP server.

The loop for one message:
1. Fetch the (cached) schema description of the workflow's database
2. Build the system prompt + the user's raw text
3. Call the model with the MCP tool catalog
4. Execute tool calls in order, append results
5. Repeat until the model returns a final text response (max 10 rounds)
6. Reply with the model's confirmation

Any failure is converted into a fallback save and a fixed reply; cancellation
always propagates.
"""

from __future__ import annotations

import logging

from draftstream.fallback.storage import FallbackStorage
from draftstream.llm.client import LlmClient
from draftstream.llm.models import LlmMessage, LlmRequest, LlmToolDefinition
from draftstream.mcp.models import ToolClient
from draftstream.messaging.models import IncomingMessage
from draftstream.workflows.config import WorkflowConfig
from draftstream.workflows.prompts import PromptBuilder
from draftstream.workflows.schema import SchemaDescriptionCache

logger = logging.getLogger(__name__)

MAX_TOOL_LOOP_ITERATIONS = 10

INCOMPLETE_REPLY = "Your message was processed, but the response may be incomplete."
ERROR_REPLY = "Sorry, I couldn't process your message. Please try again."
FALLBACK_WORKFLOW_SAVED_REPLY = (
    "Sorry, I couldn't process your message automatically, but it was saved as-is to the workflow database."
)
FALLBACK_GENERAL_SAVED_REPLY = (
    "Sorry, I couldn't process your message automatically, but it was saved to the fallback inbox."
)


class SchemaWorkflowEngine:
    def __init__(
        self,
        workflow_name: str,
        config: WorkflowConfig,
        llm_client: LlmClient,
        tool_client: ToolClient,
        schema_cache: SchemaDescriptionCache,
        prompt_builder: PromptBuilder | None = None,
        fallback_storage: FallbackStorage | None = None,
        *,
        max_iterations: int = MAX_TOOL_LOOP_ITERATIONS,
    ) -> None:
        self.workflow_name = workflow_name
        self.config = config
        self._llm_client = llm_client
        self._tool_client = tool_client
        self._schema_cache = schema_cache
        self._prompt_builder = prompt_builder or PromptBuilder()
        self._fallback_storage = fallback_storage
        self._max_iterations = max_iterations

    async def handle(self, message: IncomingMessage) -> None:
        logger.info("Processing '%s' workflow message from %s", message.workflow_name, message.sender_name)

        try:
            confirmation = await self.run(message)
        except Exception:
            logger.exception(
                "Failed to process '%s' workflow message from %s: %s",
                message.workflow_name,
                message.sender_name,
                message.text,
            )
            reply = await self._save_after_failure(message)
            await self._send_reply_quietly(message, reply)
            return

        if confirmation and confirmation.strip():
            await self._send_reply_quietly(message, confirmation)

        logger.info("Successfully processed '%s' workflow message from %s", message.workflow_name, message.sender_name)

    async def run(self, message: IncomingMessage) -> str | None:
        """Run the tool loop for one message and return the confirmation text."""
        schema_description = await self._schema_cache.fetch(self.config.database_id)

        system_prompt = self._prompt_builder.build_system_prompt(
            self.workflow_name,
            self.config.database_id,
            message.source_type,
            schema_description,
        )
        tools = await self._tool_client.get_tool_definitions()

        messages = [LlmMessage.system(system_prompt), LlmMessage.user(message.text)]
        return await self.run_tool_loop(messages, tools)

    async def run_tool_loop(self, messages: list[LlmMessage], tools: list[LlmToolDefinition]) -> str | None:
        """Drive model <-> tool rounds; ``messages`` is appended to in place."""
        for iteration in range(self._max_iterations):
            response = await self._llm_client.complete(
                LlmRequest(messages=list(messages), tools=tools, model_override=self.config.model_override)
            )

            # No tool calls: the text is the final confirmation
            if not response.tool_calls:
                return response.content

            messages.append(LlmMessage.assistant(response.content, response.tool_calls))

            for tool_call in response.tool_calls:
                logger.info("Executing MCP tool '%s' (iteration %d)", tool_call.function_name, iteration + 1)

                result = await self._tool_client.call_tool(tool_call.function_name, tool_call.arguments_json)
                if result.is_error:
                    logger.warning("MCP tool '%s' returned an error: %s", tool_call.function_name, result.content)

                messages.append(LlmMessage.tool(result.content, tool_call.id))

        logger.warning(
            "Tool loop reached maximum iterations (%d) without a final response", self._max_iterations
        )
        return INCOMPLETE_REPLY

    # ---------------------------------------------------------------------
    # Failure path
    # ---------------------------------------------------------------------

    async def _save_after_failure(self, message: IncomingMessage) -> str:
        if self._fallback_storage is None:
            return ERROR_REPLY

        saved = await self._fallback_storage.save_to_workflow_database(
            self.config.database_id,
            message.text,
            message.text,
            message.sender_name,
            message.source_type,
            self.workflow_name,
        )
        if saved:
            return FALLBACK_WORKFLOW_SAVED_REPLY

        saved = await self._fallback_storage.save_to_general_fallback(
            message.text,
            message.sender_name,
            message.source_type,
            f"workflow:{self.workflow_name} (processing failed), source:{message.source_type}",
        )
        return FALLBACK_GENERAL_SAVED_REPLY if saved else ERROR_REPLY

    async def _send_reply_quietly(self, message: IncomingMessage, text: str) -> None:
        if not message.can_reply:
            return
        try:
            await message.reply(text)
        except Exception:
            logger.warning("Failed to send reply for '%s' workflow", self.workflow_name, exc_info=True)
