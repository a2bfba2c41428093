"""
Integration Tests - Document Agent
==================================
Tool loop with a scripted LLM against a real database.
"""

import json
from uuid import uuid4

import pytest
import pytest_asyncio

from services.agent import DocumentAgent, generate_response
from services.chat_service import ChatService
from services.company_service import CompanyService
from services.document_service import DocumentService

pytestmark = pytest.mark.integration


def _reply(content=None, tool_calls=None) -> dict:
    reply = {"role": "assistant", "content": content}
    if tool_calls:
        reply["tool_calls"] = tool_calls
    return reply


@pytest_asyncio.fixture
async def document(database, sample_docx, sample_placeholders):
    async with DocumentService(database) as documents:
        doc = await documents.create_document(sample_docx.name, str(sample_docx), "lawyer-1")
        await documents.store_extraction(doc.id, "SAFE", "", sample_placeholders)
    async with ChatService(database) as chat:
        thread = await chat.create_thread("lawyer-1")
    async with DocumentService(database) as documents:
        doc = await documents.update_thread(doc.id, thread.id)
    return doc


@pytest_asyncio.fixture
async def company(database):
    async with CompanyService(database) as companies:
        return await companies.create_company(
            "Acme Inc", "lawyer-1", {"company_name": "Acme Inc", "company_address": "1 Main St"},
        )


class TestAgentRun:

    @pytest.mark.asyncio
    async def test_tool_loop(self, database, test_settings, document, company, mock_llm_service, make_tool_call):
        mock_llm_service.complete_with_tools.side_effect = [
            _reply(tool_calls=[make_tool_call("c1", "searchCompanies", '{"searchTerm": "acme inc"}')]),
            _reply(tool_calls=[make_tool_call("c2", "linkCompanyToDocument", json.dumps({"companyId": str(company.id)}))]),
            _reply(tool_calls=[make_tool_call(
                "c3",
                "updateDocumentData",
                '{"data": [{"label": "Company Name", "description": "Legal name of the company", "value": "Acme Inc"}]}',
            )]),
            _reply("What is the investor's legal name?"),
        ]
        agent = DocumentAgent(document.id, llm=mock_llm_service, settings=test_settings)

        reply = await agent.run(document.thread_id, prompt="The company is Acme Inc", user_id="lawyer-1")

        assert reply == "What is the investor's legal name?"
        assert mock_llm_service.complete_with_tools.await_count == 4

        async with DocumentService(database) as documents:
            doc = await documents.require_document(document.id)
        assert doc.company_id == company.id
        assert {item["label"]: item.get("value") for item in doc.data}["Company Name"] == "Acme Inc"

        async with ChatService(database) as chat:
            messages, _ = await chat.list_messages(document.thread_id)
        assert [m.role for m in messages] == [
            "user", "assistant", "tool", "assistant", "tool", "assistant", "tool", "assistant",
        ]
        assert messages[0].user_id == "lawyer-1"
        search_result = json.loads(messages[2].content)
        assert [item["name"] for item in search_result] == ["Acme Inc"]
        assert json.loads(messages[6].content) == {"success": True, "filled_count": 1, "placeholder_count": 5}

    @pytest.mark.asyncio
    async def test_history_is_replayed(self, database, test_settings, document, mock_llm_service):
        agent = DocumentAgent(document.id, llm=mock_llm_service, settings=test_settings)

        await agent.run(document.thread_id, prompt="Hello", user_id="lawyer-1")
        await agent.run(document.thread_id, prompt="Next", user_id="lawyer-1")

        call = mock_llm_service.complete_with_tools.await_args
        assert [m["role"] for m in call.args[0]] == ["user", "assistant", "user"]
        assert all("position" not in m for m in call.args[0])
        assert str(document.id) in call.kwargs["system_prompt"]
        assert {tool["function"]["name"] for tool in call.kwargs["tools"]} == {
            "getDocument",
            "updateDocumentData",
            "searchCompanies",
            "getCompanyData",
            "populateCompanyDataFromDocuments",
            "createCompany",
            "linkCompanyToDocument",
        }

    @pytest.mark.asyncio
    async def test_step_limit(self, test_settings, document, mock_llm_service, make_tool_call):
        settings = test_settings.model_copy(update={"agent_max_steps": 2})
        mock_llm_service.complete_with_tools.return_value = _reply(
            tool_calls=[make_tool_call("loop", "getDocument")],
        )
        agent = DocumentAgent(document.id, llm=mock_llm_service, settings=settings)

        assert await agent.run(document.thread_id) is None
        assert mock_llm_service.complete_with_tools.await_count == 2

    @pytest.mark.asyncio
    async def test_generate_response_logs_llm_errors(self, test_settings, document, mock_llm_service):
        from exceptions import LLMServiceError

        mock_llm_service.complete_with_tools.side_effect = LLMServiceError("LLM down")

        await generate_response(document.id, document.thread_id, llm=mock_llm_service)

        mock_llm_service.close.assert_not_awaited()


class TestAgentTools:

    @pytest.mark.asyncio
    async def test_error_payloads(self, test_settings, document, mock_llm_service):
        agent = DocumentAgent(document.id, llm=mock_llm_service, settings=test_settings)

        assert await agent.execute_tool("deleteEverything", "{}") == {"error": "Unknown tool: deleteEverything"}

        invalid = await agent.execute_tool("createCompany", "{}")
        assert invalid["error"].startswith("Invalid arguments for createCompany")

        broken_json = await agent.execute_tool("searchCompanies", "{not json")
        assert broken_json["error"].startswith("Invalid arguments for searchCompanies")

        missing = await agent.execute_tool("getCompanyData", json.dumps({"companyId": str(uuid4())}))
        assert missing["error"] == "Company not found"

        bad_id = await agent.execute_tool("linkCompanyToDocument", '{"companyId": "acme"}')
        assert bad_id["error"] == "Invalid company_id"

    @pytest.mark.asyncio
    async def test_get_company_data_suggests_fills(self, test_settings, document, company, mock_llm_service):
        agent = DocumentAgent(document.id, llm=mock_llm_service, settings=test_settings)

        result = await agent.execute_tool("getCompanyData", {"companyId": str(company.id)})

        assert result["name"] == "Acme Inc"
        assert result["aggregatedData"] == {}
        assert result["suggestedFills"] == [
            {"label": "Company Name", "key": "company_name", "value": "Acme Inc"},
            {"label": "Registered Office", "key": "company_address", "value": "1 Main St"},
        ]

    @pytest.mark.asyncio
    async def test_create_company_links_document(self, database, test_settings, document, mock_llm_service):
        agent = DocumentAgent(document.id, llm=mock_llm_service, settings=test_settings)

        result = await agent.execute_tool("createCompany", '{"name": "Initech", "data": {"tax_id": "99"}}')

        async with CompanyService(database) as companies:
            created = await companies.require_company(result["companyId"])
        async with DocumentService(database) as documents:
            doc = await documents.require_document(document.id)

        assert result["name"] == "Initech"
        assert created.handler_id == "lawyer-1"
        assert created.data == {"tax_id": "99"}
        assert str(doc.company_id) == result["companyId"]

    @pytest.mark.asyncio
    async def test_populate_company_data(self, database, test_settings, document, company, mock_llm_service):
        agent = DocumentAgent(document.id, llm=mock_llm_service, settings=test_settings)
        await agent.execute_tool("linkCompanyToDocument", {"companyId": str(company.id)})
        await agent.execute_tool("updateDocumentData", {"data": [{"label": "Company Name", "value": "Acme Incorporated"}]})

        result = await agent.execute_tool("populateCompanyDataFromDocuments", {"companyId": str(company.id)})

        assert result == {
            "success": True,
            "data": {"company_address": "1 Main St", "company_name": "Acme Incorporated"},
        }
