"""
LexFill - Document Agent
========================
Tool-calling assistant that helps a lawyer fill the placeholders of one
document, reusing company data collected from other documents.

Every message of a run (user, assistant, tool) is stored in the chat
thread, so the next run continues where this one stopped.
"""

import json
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from config import Settings, get_settings
from exceptions import LexFillBaseException
from logging_config import get_logger
from metrics import agent_tool_calls_total
from services.chat_service import ChatService
from services.company_service import CompanyService
from services.document_service import DocumentService
from services.llm_factory import LLMService, get_llm_service
from services.reconciliation import merge_company_data, suggest_company_fills

logger = get_logger(__name__)

OPENAI_MESSAGE_KEYS = ("role", "content", "tool_calls", "tool_call_id", "name")

AGENT_INSTRUCTIONS = """You are a legal document processing assistant. Your role is to:
1. Identify placeholders in legal document templates
2. Intelligently match and fill placeholders using existing company data
3. Ask clarifying questions to lawyers about unfilled placeholders
4. Handle company name mentions by finding or creating company records

When a user mentions a company name:
- First, search for existing companies with similar names using searchCompanies
- If several similar companies are found, present them and ask: "I found these similar companies: [list]. Is this the same entity, or should I create a new company?"
- If exactly one company is found, use that company without asking.
- If the user confirms it is an existing company:
  - Use getCompanyData to retrieve the company, its data aggregated from all associated documents and the placeholders it can fill
  - Use populateCompanyDataFromDocuments to store the latest data from all documents on the company record
  - Use linkCompanyToDocument to associate the company with this document
- If the user says it is a new company, or no similar companies are found, use createCompany (it also links the company to this document)
- After the company step, immediately continue with the next unfilled placeholder. Do NOT re-list placeholders or re-explain the process.

When filling placeholders:
- Company data only holds company-level fields: name, address, registration numbers, tax IDs, share information, incorporation details.
- Document-specific fields (contract dates, signing dates, agreement terms, amounts) are never taken from company data.
- Only fill placeholders where the company data clearly matches the placeholder's purpose.
- Before filling placeholders automatically from company data you MUST list every placeholder with the value that will be used and ask: "I can automatically fill the following placeholders from the company data: [list]. Would you like me to proceed with filling these?" Only call updateDocumentData after the user confirms, and adjust the list if asked.
- Then ask directly for the next unfilled placeholder, one placeholder at a time.

Be precise, professional and helpful. Ask for clarification when information is ambiguous.
If the user asks something unrelated to the document, politely decline and ask for a question about the document.
Responses are user facing: do not include technical details such as ids or tool names.
Use getDocument whenever you need to reference the document.
When calling updateDocumentData, only send the placeholders you are changing; never remove placeholders.

The current document id is {document_id}."""


# =============================================================================
# Tool Arguments
# =============================================================================

class NoArguments(BaseModel):
    pass


class PlaceholderUpdate(BaseModel):
    label: str = Field(..., min_length=1)
    description: str = Field(default="")
    value: Optional[str] = None


class UpdateDocumentDataArguments(BaseModel):
    data: List[PlaceholderUpdate]


class SearchCompaniesArguments(BaseModel):
    searchTerm: str = Field(..., description="The company name to search for")


class CompanyIdArguments(BaseModel):
    companyId: str = Field(..., description="The ID of the company")


class CreateCompanyArguments(BaseModel):
    name: str = Field(..., min_length=1, description="The name of the company")
    data: Optional[Dict[str, Any]] = Field(
        default=None,
        description="Additional company data as key-value pairs (e.g., address, registration number)",
    )


class AgentTool:
    """A named coroutine exposed to the model as an OpenAI function."""

    def __init__(
        self,
        name: str,
        description: str,
        arguments: Type[BaseModel],
        handler: Callable[..., Awaitable[Any]],
    ):
        self.name = name
        self.description = description
        self.arguments = arguments
        self.handler = handler

    def to_openai(self) -> Dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.arguments.model_json_schema(),
            },
        }


# =============================================================================
# Agent
# =============================================================================

class DocumentAgent:
    """
    Placeholder filling assistant bound to one document.

    Example:
        ```python
        agent = DocumentAgent(document_id)
        reply = await agent.run(thread_id, prompt="The company is Acme Inc.", user_id=user_id)
        ```
    """

    def __init__(
        self,
        document_id: Any,
        llm: Optional[LLMService] = None,
        settings: Optional[Settings] = None,
        database_url: Optional[str] = None,
    ):
        self.document_id = document_id
        self.settings = settings or get_settings()
        self.llm = llm or get_llm_service(self.settings)
        self.database_url = database_url or self.settings.database_url
        self.tools: Dict[str, AgentTool] = {
            tool.name: tool for tool in self._build_tools()
        }

    def _build_tools(self) -> List[AgentTool]:
        return [
            AgentTool(
                "getDocument",
                "Get the current document with its placeholders",
                NoArguments,
                self.get_document,
            ),
            AgentTool(
                "updateDocumentData",
                "Update placeholders of the current document. Only send the placeholders being changed.",
                UpdateDocumentDataArguments,
                self.update_document_data,
            ),
            AgentTool(
                "searchCompanies",
                "Search for companies by name. Returns companies with similar names, sorted by relevance.",
                SearchCompaniesArguments,
                self.search_companies,
            ),
            AgentTool(
                "getCompanyData",
                "Get a company by its ID, including data aggregated from all documents associated with it "
                "and the placeholders of the current document that this data can fill.",
                CompanyIdArguments,
                self.get_company_data,
            ),
            AgentTool(
                "populateCompanyDataFromDocuments",
                "Update the company record with the company-level values filled in all of its documents.",
                CompanyIdArguments,
                self.populate_company_data,
            ),
            AgentTool(
                "createCompany",
                "Create a new company record and link it to the current document. Use this when the user "
                "confirms a new company or when no similar companies are found.",
                CreateCompanyArguments,
                self.create_company,
            ),
            AgentTool(
                "linkCompanyToDocument",
                "Link an existing company to the current document.",
                CompanyIdArguments,
                self.link_company,
            ),
        ]

    @property
    def system_prompt(self) -> str:
        return AGENT_INSTRUCTIONS.format(document_id=self.document_id)

    def tool_definitions(self) -> List[Dict[str, Any]]:
        return [tool.to_openai() for tool in self.tools.values()]

    # =========================================================================
    # Tools
    # =========================================================================

    async def get_document(self) -> Dict[str, Any]:
        async with DocumentService(self.database_url) as documents:
            doc = await documents.require_document(self.document_id)
            return doc.to_dict()

    async def update_document_data(self, data: List[PlaceholderUpdate]) -> Dict[str, Any]:
        async with DocumentService(self.database_url) as documents:
            doc = await documents.update_data(
                self.document_id,
                [item.model_dump(exclude_none=True) for item in data],
            )
            result = doc.to_dict()
        return {
            "success": True,
            "filled_count": result["filled_count"],
            "placeholder_count": len(result["data"]),
        }

    async def search_companies(self, searchTerm: str) -> List[Dict[str, Any]]:
        async with CompanyService(self.database_url) as companies:
            matches = await companies.search(searchTerm)
            return [company.to_dict() for company in matches]

    async def get_company_data(self, companyId: str) -> Dict[str, Any]:
        async with CompanyService(self.database_url) as companies:
            company = await companies.require_company(companyId)
            aggregated, _ = await companies.aggregate_company_data(company.id)
            doc = await DocumentService.from_session(companies.session).require_document(self.document_id)

            known = merge_company_data(company.data, aggregated)
            suggestions = suggest_company_fills(doc.placeholders, known)
            return {
                **company.to_dict(),
                "aggregatedData": aggregated,
                "suggestedFills": [suggestion.to_dict() for suggestion in suggestions],
            }

    async def populate_company_data(self, companyId: str) -> Dict[str, Any]:
        async with CompanyService(self.database_url) as companies:
            data = await companies.populate_company_data(companyId)
        return {"success": True, "data": data}

    async def create_company(self, name: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        async with CompanyService(self.database_url) as companies:
            documents = DocumentService.from_session(companies.session)
            doc = await documents.require_document(self.document_id)
            company = await companies.create_company(name, handler_id=doc.uploaded_by_id, data=data)
            await documents.link_company(doc.id, company.id)
            return {"companyId": str(company.id), "name": company.name}

    async def link_company(self, companyId: str) -> Dict[str, Any]:
        async with DocumentService(self.database_url) as documents:
            await documents.link_company(self.document_id, companyId)
        return {"success": True}

    # =========================================================================
    # Tool Loop
    # =========================================================================

    async def execute_tool(self, name: str, arguments: Any) -> Any:
        """
        Run one tool call.

        Unknown tools, malformed arguments and domain errors are returned to
        the model as {"error": ...} payloads.
        """
        tool = self.tools.get(name)
        if tool is None:
            agent_tool_calls_total.labels(tool="unknown", outcome="error").inc()
            return {"error": f"Unknown tool: {name}"}

        try:
            raw_arguments = json.loads(arguments) if isinstance(arguments, str) and arguments else arguments
            parsed = tool.arguments.model_validate(raw_arguments or {})
        except (json.JSONDecodeError, PydanticValidationError) as e:
            agent_tool_calls_total.labels(tool=name, outcome="invalid_arguments").inc()
            return {"error": f"Invalid arguments for {name}: {e}"}

        kwargs = {field: getattr(parsed, field) for field in type(parsed).model_fields}
        try:
            result = await tool.handler(**kwargs)
        except LexFillBaseException as e:
            agent_tool_calls_total.labels(tool=name, outcome="error").inc()
            logger.warning("Agent tool failed", tool=name, error=e.message, **e.context)
            return {"error": e.message, **e.context}

        agent_tool_calls_total.labels(tool=name, outcome="success").inc()
        return result

    async def _history(self, thread_id: str) -> List[Dict[str, Any]]:
        async with ChatService(self.database_url) as chat:
            messages = await chat.recent_messages(thread_id, self.settings.agent_history_limit)
        return [
            {key: message[key] for key in OPENAI_MESSAGE_KEYS if message.get(key) is not None}
            for message in messages
        ]

    async def _save(self, thread_id: str, **message: Any) -> None:
        async with ChatService(self.database_url) as chat:
            await chat.save_message(thread_id, **message)

    async def run(
        self,
        thread_id: str,
        prompt: Optional[str] = None,
        user_id: Optional[str] = None,
        instruction: Optional[str] = None,
    ) -> Optional[str]:
        """
        Answer the latest message of a thread, calling tools as needed.

        Args:
            thread_id: Chat thread of the document
            prompt: New user message to store before answering (optional)
            user_id: Author of `prompt`
            instruction: One-off system instruction for this run, not stored

        Returns:
            The final assistant text, or None if the step limit was reached
            while the model was still calling tools.
        """
        if prompt:
            await self._save(thread_id, role="user", content=prompt, user_id=user_id)

        tools = self.tool_definitions()
        for step in range(1, self.settings.agent_max_steps + 1):
            messages = await self._history(thread_id)
            if instruction:
                messages.append({"role": "system", "content": instruction})

            reply = await self.llm.complete_with_tools(
                messages,
                tools=tools,
                system_prompt=self.system_prompt,
            )
            tool_calls = reply.get("tool_calls") or []
            await self._save(
                thread_id,
                role="assistant",
                content=reply.get("content"),
                tool_calls=tool_calls or None,
            )

            if not tool_calls:
                logger.info("Agent run complete", thread_id=thread_id, steps=step)
                return reply.get("content")

            for call in tool_calls:
                function = call.get("function") or {}
                name = function.get("name", "")
                result = await self.execute_tool(name, function.get("arguments"))
                await self._save(
                    thread_id,
                    role="tool",
                    content=json.dumps(result, default=str),
                    tool_call_id=call.get("id"),
                    name=name,
                )

        logger.warning(
            "Agent stopped at step limit",
            thread_id=thread_id,
            max_steps=self.settings.agent_max_steps,
        )
        return None


async def generate_response(document_id: Any, thread_id: str, llm: Optional[LLMService] = None) -> None:
    """Background task: answer the last user message of a document thread."""
    agent = DocumentAgent(document_id, llm=llm)
    try:
        await agent.run(thread_id)
    except LexFillBaseException as e:
        logger.error("Agent response failed", thread_id=thread_id, **e.to_dict())
    finally:
        if llm is None:
            await agent.llm.close()
