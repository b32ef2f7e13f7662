"""
Knowledge Keeper MCP Server.

Transport: stdio only.

Expected MCP Tool Return Format:
{
    "ok": bool,
    "results": Any,          # Present if ok is True
    "error": str            # Present if ok is False
}
"""

import argparse
import logging
import signal
from typing import Any, Annotated, Dict, Optional

from dotenv import load_dotenv
from fastmcp import FastMCP
from mcp.types import ToolAnnotations
from pydantic import Field

from ..common.config import ensure_directories, load_config
from ..common.store import KnowledgeStore, StoreError
from ..retriever.chat import ChatInputError, ChatService
from ..retriever.synthesizer import format_answer_for_display

logger = logging.getLogger("keeper.mcp")


class MCPServerApp:
    """
    MCP front end for the knowledge base.

    Exposes question answering and read-only browsing of employees and
    chat history. Uploads are HTTP only.
    """
    def __init__(
            self,
            store: KnowledgeStore,
            chat_service: Optional[ChatService] = None,
            mcp_server_name: str = "knowledge_keeper",
        ) -> None:
        """
        Args:
            store (KnowledgeStore): The knowledge store to read from.
            chat_service (ChatService): Answers questions (default: ChatService over ``store``).
            mcp_server_name (str): The name of the MCP server.
        """
        self.store = store
        self.chat = chat_service or ChatService(store)
        self.mcp = FastMCP(name=mcp_server_name)

        # ---------- MCP Tools: Ask ---------- #
        @self.mcp.tool(
            name="ask",
            description=(
                "Ask a question about one employee's captured documents. "
                "Keywords are taken from the question and matched against the "
                "employee's knowledge base; the answer quotes the best matching "
                "sentence and cites its source files."
            ),
            annotations=ToolAnnotations(readOnlyHint=False, destructiveHint=False)
        )
        async def tool_ask(
            employee_id: Annotated[str, Field(description="id of the employee whose knowledge to search")],
            question: Annotated[str, Field(description="natural language question")],
        ) -> Dict[str, Any]:
            """
            Answers a question and records the turn in chat history.

            Returns:
                Dict[str, Any]: The answer with sources, excerpts and a display-ready rendering.
            """
            try:
                response = await self.chat.ask(question, employee_id)
            except ChatInputError as e:
                return {"ok": False, "error": str(e)}

            if not response.success:
                return {"ok": False, "error": response.error}

            results = response.to_dict()
            results["formatted"] = format_answer_for_display(response)
            return {"ok": True, "results": results}

        # ---------- MCP Tools: List Employees ---------- #
        @self.mcp.tool(
            name="list_employees",
            description="List employees whose knowledge has been captured, newest first.",
            annotations=ToolAnnotations(readOnlyHint=True, destructiveHint=False)
        )
        async def tool_list_employees() -> Dict[str, Any]:
            try:
                employees = self.store.get_employees()
            except StoreError as e:
                logger.error("list_employees failed: %s", e)
                return {"ok": False, "error": str(e)}
            return {"ok": True, "results": [e.model_dump(mode="json") for e in employees]}

        # ---------- MCP Tools: Chat History ---------- #
        @self.mcp.tool(
            name="chat_history",
            description="Get the most recent questions and answers for one employee.",
            annotations=ToolAnnotations(readOnlyHint=True, destructiveHint=False)
        )
        async def tool_chat_history(
            employee_id: Annotated[str, Field(description="employee id")],
            limit: Annotated[int, Field(description="maximum number of turns to return", ge=1)] = 20,
        ) -> Dict[str, Any]:
            try:
                turns = self.store.get_chat_history(employee_id, limit)
            except StoreError as e:
                logger.error("chat_history failed: %s", e)
                return {"ok": False, "error": str(e)}
            return {"ok": True, "results": [t.model_dump(mode="json") for t in turns]}

    def run(self) -> None:
        """Serve over stdio."""
        self.mcp.run(transport="stdio")


def main() -> None:
    load_dotenv()
    config = load_config()

    parser = argparse.ArgumentParser(description="Run the Knowledge Keeper MCP server (stdio).")
    parser.add_argument(
        "--server-name",
        default=config.server.mcp_server_name,
        help="Advertised MCP server name.",
    )
    parser.add_argument(
        "--db-path",
        default=config.store.db_path,
        help="Path to the SQLite knowledge base.",
    )
    args = parser.parse_args()

    # stdout carries the protocol; logs go to stderr
    logging.basicConfig(level=config.server.log_level)

    config.store.db_path = args.db_path
    ensure_directories(config)
    store = KnowledgeStore(config.store.db_path)
    chat_service = ChatService(store, config=config.retriever, debug=config.server.debug)

    app = MCPServerApp(store, chat_service=chat_service, mcp_server_name=args.server_name)

    def _handle_shutdown(signum, frame):
        raise SystemExit(0)
    for sig in (signal.SIGINT, getattr(signal, "SIGTERM", None)):
        if sig is not None:
            signal.signal(sig, _handle_shutdown)

    try:
        app.run()
    finally:
        store.close()


if __name__ == "__main__":
    main()
