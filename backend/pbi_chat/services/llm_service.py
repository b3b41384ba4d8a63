"""
LLM service - Azure OpenAI chat completions
"""
import json
import logging
import re
from typing import List, Dict, Any, Optional

import openai
from openai import AsyncAzureOpenAI

from pbi_chat.core.config import Settings, settings as default_settings
from pbi_chat.core.exceptions import LLMServiceError, ServiceNotConfiguredError
from pbi_chat.schemas.chat import Message

logger = logging.getLogger(__name__)

# Returned by the generator when a question cannot be answered from the dataset
NOT_DAX_QUERY = "NOT_DAX_QUERY"

_CODE_FENCE = re.compile(r"^```[A-Za-z]*\s*|\s*```$")

DAX_GENERATOR_PROMPT = """You are a DAX query generator for Power BI semantic models.
Convert natural language to DAX queries. Output only the DAX query without explanation. Do not quote the query with any backticks. Here is the metadata: {schema_hint}. Based on the input pick the best matching column.
For example, if the user asks "What were the total sales last year?",
you might output: "EVALUATE ROW(\\"Total Sales\\", CALCULATE(SUM(Sales[Amount]), PREVIOUSYEAR(Calendar[Date])))".
If you cannot generate a DAX query or the question is not data-related, respond with "{sentinel}"."""

DAX_REPAIR_PROMPT = """You are a DAX query generator for Power BI.
Generate valid DAX queries following these rules:
1. Always start with the EVALUATE keyword
2. Use proper DAX syntax (no SQL-like syntax)
3. Make sure all parentheses are balanced
4. Use complete and valid DAX functions
5. Output only the DAX query with no explanation
6. If you cannot create a valid DAX query, respond with "{sentinel}"
Here is the metadata: {schema_hint}."""

EXPLANATION_PROMPT = """You are a data analyst explaining Power BI query results.
The user asked: "{message}".
The DAX query used was: "{dax_query}".
Based on the query results, provide a clear, concise explanation.
Also mention that this data comes from the Power BI semantic model."""

FILTER_PROMPT = """You are a Power BI filter generator. Convert natural language to Power BI filter JSON. Here is the metadata: {schema_hint}. Based on the input pick the best matching column name.

Output JSON with the following structure:

{{
  "filters": [
    {{
      "table": "tableName",
      "column": "columnName",
      "operator": "In/Contains/Equals/etc",
      "values": ["value1", "value2"]
    }}
  ],
  "explanation": "Human-readable explanation of the filter"
}}

For example, "Show sales for last quarter" might output:
{{
  "filters": [
    {{
      "table": "Date",
      "column": "Quarter",
      "operator": "Equals",
      "values": ["Q4"]
    }}
  ],
  "explanation": "Showing sales for the last quarter (Q4)."
}}

Only respond with valid JSON. If you can't generate a filter, return {{"filters": [], "explanation": "I couldn't create a filter from that query."}}"""

ASSISTANT_PROMPT = "You are a helpful assistant."


def strip_code_fences(text: str) -> str:
    """Remove a surrounding markdown code fence, if the model added one"""
    return _CODE_FENCE.sub("", text.strip()).strip()


class LLMService:
    """Azure OpenAI chat completion service"""

    def __init__(self, config: Optional[Settings] = None, client=None):
        self.settings = config or default_settings
        self.client = client

    def _get_client(self):
        """Lazy client initialisation"""
        if self.client is None:
            if not self.settings.openai_configured:
                raise ServiceNotConfiguredError(
                    "Azure OpenAI credentials are not configured. Please set AZURE_OPENAI_API_KEY, "
                    "AZURE_OPENAI_ENDPOINT, and AZURE_OPENAI_DEPLOYMENT_NAME in your .env file"
                )
            self.client = AsyncAzureOpenAI(
                api_key=self.settings.AZURE_OPENAI_API_KEY,
                azure_endpoint=self.settings.AZURE_OPENAI_ENDPOINT,
                api_version=self.settings.AZURE_OPENAI_API_VERSION,
                timeout=self.settings.LLM_TIMEOUT
            )
        return self.client

    async def complete(
        self,
        messages: List[Dict[str, str]],
        temperature: float
    ) -> str:
        """
        Run one chat completion

        Args:
            messages: OpenAI-style role/content messages
            temperature: Sampling temperature

        Returns:
            Content of the first choice

        Raises:
            LLMServiceError: the API call failed
        """
        client = self._get_client()
        try:
            response = await client.chat.completions.create(
                model=self.settings.AZURE_OPENAI_DEPLOYMENT_NAME,
                messages=messages,
                max_tokens=self.settings.LLM_MAX_TOKENS,
                temperature=temperature
            )
        except openai.APIStatusError as e:
            logger.error(f"Azure OpenAI API error ({e.status_code}): {e.message}")
            raise LLMServiceError(e.message, status_code=e.status_code) from e
        except openai.OpenAIError as e:
            logger.error(f"Azure OpenAI request failed: {e}")
            raise LLMServiceError(str(e)) from e

        return response.choices[0].message.content or ""

    async def generate_dax(
        self,
        message: str,
        failed_query: Optional[str] = None,
        error: Optional[str] = None
    ) -> str:
        """
        Translate a question into DAX

        With an error the strict repair prompt is used and the failed query and
        validator message are passed along with the question.

        Returns:
            DAX text, or NOT_DAX_QUERY
        """
        if error is None:
            system_prompt = DAX_GENERATOR_PROMPT.format(
                schema_hint=self.settings.DAX_SCHEMA_HINT,
                sentinel=NOT_DAX_QUERY
            )
            user_content = message
        else:
            system_prompt = DAX_REPAIR_PROMPT.format(
                schema_hint=self.settings.DAX_SCHEMA_HINT,
                sentinel=NOT_DAX_QUERY
            )
            user_content = (
                f"The following DAX query has an error: {failed_query}\n\n"
                f"Error: {error}\n\n"
                f"Please fix the query or generate a new one for: \"{message}\""
            )

        content = await self.complete(
            [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_content}
            ],
            temperature=self.settings.DAX_TEMPERATURE
        )
        return strip_code_fences(content)

    async def explain_results(
        self,
        message: str,
        dax_query: str,
        query_results: Any
    ) -> str:
        """Describe query results in relation to the question"""
        results_json = json.dumps(query_results, indent=2, default=str)
        return await self.complete(
            [
                {
                    "role": "system",
                    "content": EXPLANATION_PROMPT.format(message=message, dax_query=dax_query)
                },
                {
                    "role": "user",
                    "content": f"Here are the query results: {results_json}. "
                               "Please explain these results in relation to the original question."
                }
            ],
            temperature=self.settings.CHAT_TEMPERATURE
        )

    async def answer(self, message: str, history: List[Message] = None) -> str:
        """
        General-knowledge answer without the semantic model

        Args:
            message: User message
            history: Earlier turns of the session; the most recent ones are replayed

        Returns:
            Assistant answer
        """
        messages = [{"role": "system", "content": ASSISTANT_PROMPT}]

        if history:
            window = self.settings.CHAT_HISTORY_WINDOW
            for msg in history[-window:]:
                messages.append({"role": msg.role, "content": msg.content})

        messages.append({"role": "user", "content": message})
        return await self.complete(messages, temperature=self.settings.CHAT_TEMPERATURE)

    async def generate_filters(self, message: str) -> str:
        """Raw filter JSON text for a natural-language filter request"""
        return await self.complete(
            [
                {
                    "role": "system",
                    "content": FILTER_PROMPT.format(schema_hint=self.settings.FILTER_SCHEMA_HINT)
                },
                {"role": "user", "content": message}
            ],
            temperature=self.settings.DAX_TEMPERATURE
        )
