"""
End-to-end tests for one chat turn
"""

import pytest
from unittest.mock import Mock


SARAH_NOTE = "Sarah resolved the cooling system failure by replacing the thermal sensor."


@pytest.fixture
def store():
    from keeper.common.store import KnowledgeStore
    with KnowledgeStore(":memory:") as s:
        yield s


@pytest.fixture
def service(store):
    from keeper.retriever.chat import ChatService
    from keeper.retriever.synthesizer import Synthesizer
    return ChatService(store, synthesizer=Synthesizer(choose=lambda t: t[0]))


@pytest.fixture
def sarah(store):
    employee = store.create_employee("Sarah", "Plant Engineer", 12)
    stored = store.create_file(employee.id, "1700-ab.txt", "cooling-incidents.txt", ".txt", len(SARAH_NOTE))
    store.add_knowledge(employee.id, stored.id, SARAH_NOTE)
    return employee


class TestChatScenarios:
    @pytest.mark.asyncio
    async def test_answer_from_knowledge(self, service, store, sarah):
        response = await service.ask("How did Sarah handle cooling system failures?", sarah.id)

        assert response.success
        assert SARAH_NOTE in response.text
        assert response.text == "Based on the knowledge base, " + SARAH_NOTE
        assert response.sources == ["cooling-incidents.txt"]
        assert response.confidence == pytest.approx(0.3)
        assert [d.name for d in response.documents] == ["cooling-incidents.txt"]

        turns = store.get_chat_history(sarah.id)
        assert len(turns) == 1
        assert turns[0].message == "How did Sarah handle cooling system failures?"
        assert turns[0].response == response.text
        assert turns[0].sources == ["cooling-incidents.txt"]

    @pytest.mark.asyncio
    async def test_no_keywords_asks_for_detail(self):
        from keeper.retriever.chat import CLARIFICATION_TEXT, ChatService

        mock_store = Mock()
        response = await ChatService(mock_store).ask("is it ok", "sarah-ab12cd34")

        assert response.success
        assert response.text == CLARIFICATION_TEXT
        assert response.sources == []
        assert response.confidence == 0.0
        assert mock_store.mock_calls == []

    @pytest.mark.asyncio
    async def test_employee_without_records(self, service, store):
        from keeper.retriever.synthesizer import NOT_FOUND_TEXT

        employee = store.create_employee("Bob", "Technician")
        response = await service.ask("Where is the turbine manual?", employee.id)

        assert response.success
        assert response.text == NOT_FOUND_TEXT
        assert response.confidence == 0.0
        assert response.sources == []
        assert response.documents == []
        assert len(store.get_chat_history(employee.id)) == 1


class TestChatErrors:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("message,employee_id", [
        ("", "sarah-ab12cd34"),
        (None, "sarah-ab12cd34"),
        ("How did Sarah fix it?", ""),
        ("How did Sarah fix it?", None),
    ])
    async def test_missing_fields(self, message, employee_id):
        from keeper.retriever.chat import ChatInputError, ChatService

        mock_store = Mock()
        with pytest.raises(ChatInputError):
            await ChatService(mock_store).ask(message, employee_id)
        assert mock_store.mock_calls == []

    @pytest.mark.asyncio
    async def test_store_failure_is_generic(self):
        from keeper.common.store import StoreError
        from keeper.retriever.chat import FAILURE_TEXT, ChatService

        mock_store = Mock()
        mock_store.search_knowledge.side_effect = StoreError("database is locked")

        response = await ChatService(mock_store).ask("pump status", "sarah-ab12cd34")

        assert not response.success
        assert response.error == FAILURE_TEXT
        assert "locked" not in response.to_dict()["error"]
        mock_store.save_chat_history.assert_not_called()

    @pytest.mark.asyncio
    async def test_debug_mode_adds_detail(self):
        from keeper.common.store import StoreError
        from keeper.retriever.chat import FAILURE_TEXT, ChatService

        mock_store = Mock()
        mock_store.search_knowledge.side_effect = StoreError("database is locked")

        response = await ChatService(mock_store, debug=True).ask("pump status", "e")

        assert response.error == f"{FAILURE_TEXT}: database is locked"

    @pytest.mark.asyncio
    async def test_unknown_employee_gets_not_found_answer(self, service, store):
        from keeper.retriever.synthesizer import NOT_FOUND_TEXT

        response = await service.ask("Where is the turbine manual?", "ghost-00000000")

        assert response.success
        assert response.text == NOT_FOUND_TEXT
        assert response.confidence == 0.0
        assert response.sources == []
        assert [t.response for t in store.get_chat_history("ghost-00000000")] == [NOT_FOUND_TEXT]


def test_response_to_dict():
    from keeper.retriever.chat import ChatResponse
    from keeper.retriever.synthesizer import DocumentExcerpt

    response = ChatResponse(
        success=True,
        text="answer",
        sources=["a.txt"],
        documents=[DocumentExcerpt(name="a.txt", excerpt="quote")],
        confidence=0.5,
    )

    data = response.to_dict()

    assert "error" not in data
    assert data["documents"] == [{"name": "a.txt", "excerpt": "quote"}]
    assert data["timestamp"].endswith("+00:00")
