"""MCP Server for personal finance tracking: subscriptions and annual payments."""

import json
import logging
import os
from pathlib import Path
from typing import Any

from mcp.server import Server
from mcp.types import Resource, TextContent, Tool

from .analytics import (
    detect_subscriptions,
    get_accounts_resource,
    get_annual_payments,
    get_categories_resource,
    get_sync_status_resource,
    toggle_annual_payment,
)
from .database import Database
from .service_namer import (
    FallbackServiceClassifier,
    KeywordServiceClassifier,
    PerplexityServiceClassifier,
    ServiceClassifier,
)
from .sync_engine import SyncEngine


logger = logging.getLogger(__name__)

# Initialize MCP server
server = Server("finance-tracker-mcp")

# Global state
_db: Database | None = None
_sync_engine: SyncEngine | None = None
_classifier: ServiceClassifier | None = None


def get_db() -> Database:
    """Get or create database instance."""
    global _db
    if _db is None:
        db_path = os.environ.get("FINANCE_TRACKER_DB")
        if db_path is None:
            cache_dir = Path.home() / ".cache" / "finance-tracker-mcp"
            cache_dir.mkdir(parents=True, exist_ok=True)
            db_path = cache_dir / "finance.db"

        _db = Database(db_path)
        _db.init_schema()
    return _db


def get_sync_engine() -> SyncEngine:
    """Get or create sync engine instance."""
    global _sync_engine
    if _sync_engine is None:
        url = os.environ.get("SUPABASE_URL")
        key = os.environ.get("SUPABASE_KEY")
        if not url or not key:
            raise ValueError(
                "SUPABASE_URL and SUPABASE_KEY environment variables are required. "
                "Find them in your Supabase project under Settings → API"
            )
        _sync_engine = SyncEngine(get_db(), url, key)
    return _sync_engine


def get_classifier() -> ServiceClassifier:
    """Get or create the service naming strategy."""
    global _classifier
    if _classifier is None:
        api_key = os.environ.get("PERPLEXITY_API_KEY")
        if api_key:
            _classifier = FallbackServiceClassifier(PerplexityServiceClassifier(api_key))
        else:
            logger.info("PERPLEXITY_API_KEY not configured, naming services by keyword")
            _classifier = KeywordServiceClassifier()
    return _classifier


def init_for_testing(
    db: Database,
    classifier: ServiceClassifier | None = None,
    base_url: str = "https://test.supabase.co",
    api_key: str = "test_key",
) -> None:
    """Initialize server with test database and credentials.

    Args:
        db: Database instance to use.
        classifier: Service naming strategy (keyword lookup by default).
        base_url: Backend URL (can be dummy for testing without API).
        api_key: Backend key (can be dummy for testing without API).
    """
    global _db, _sync_engine, _classifier
    _db = db
    _sync_engine = SyncEngine(db, base_url, api_key)
    _classifier = classifier or KeywordServiceClassifier()


def _as_text(result: dict[str, Any]) -> list[TextContent]:
    return [TextContent(type="text", text=json.dumps(result, ensure_ascii=False, indent=2))]


# ============================================================================
# Tools
# ============================================================================

@server.list_tools()
async def list_tools() -> list[Tool]:
    """List available tools."""
    return [
        Tool(
            name="sync_data",
            description="Sync accounts, categories and transactions from the finance backend. Use to refresh data before analysis.",
            inputSchema={
                "type": "object",
                "properties": {
                    "force_full": {
                        "type": "boolean",
                        "description": "Force full sync (reset cache)",
                        "default": False,
                    }
                },
            },
        ),
        Tool(
            name="detect_subscriptions",
            description="Detect subscriptions and recurring charges, their cadence and next expected charge. Answers: 'What subscriptions do I pay?', 'When is Spotify charged next?'",
            inputSchema={
                "type": "object",
                "properties": {
                    "lookback_months": {
                        "type": "integer",
                        "description": "Months of history to analyze",
                        "default": 12,
                    },
                    "category_id": {
                        "type": "string",
                        "description": "Only analyze this category UUID",
                    },
                    "min_occurrences": {
                        "type": "integer",
                        "description": "Hide services with fewer payments",
                        "default": 1,
                    },
                },
            },
        ),
        Tool(
            name="get_annual_payments",
            description="List yearly payments of categories flagged for annual tracking (insurance, memberships). Answers: 'When is my insurance due?', 'How much do I pay per year?'",
            inputSchema={
                "type": "object",
                "properties": {
                    "show_inactive": {
                        "type": "boolean",
                        "description": "Include payments marked inactive",
                        "default": False,
                    },
                },
            },
        ),
        Tool(
            name="toggle_annual_payment",
            description="Mark a tracked annual payment as active or inactive. Inactive payments are excluded from the annual total.",
            inputSchema={
                "type": "object",
                "properties": {
                    "category_id": {
                        "type": "string",
                        "description": "Category UUID of the tracked payment",
                    },
                },
                "required": ["category_id"],
            },
        ),
    ]


@server.call_tool()
async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
    """Handle tool calls."""
    db = get_db()

    if name == "sync_data":
        engine = get_sync_engine()
        force_full = arguments.get("force_full", False)
        result = await engine.sync(force_full=force_full)
        return _as_text(result)

    elif name == "detect_subscriptions":
        result = await detect_subscriptions(
            db,
            classifier=get_classifier(),
            lookback_months=arguments.get("lookback_months", 12),
            category_id=arguments.get("category_id"),
            min_occurrences=arguments.get("min_occurrences", 1),
        )
        return _as_text(result)

    elif name == "get_annual_payments":
        result = get_annual_payments(
            db,
            show_inactive=arguments.get("show_inactive", False),
        )
        return _as_text(result)

    elif name == "toggle_annual_payment":
        result = toggle_annual_payment(db, category_id=arguments.get("category_id"))
        return _as_text(result)

    else:
        raise ValueError(f"Unknown tool: {name}")


# ============================================================================
# Resources
# ============================================================================

@server.list_resources()
async def list_resources() -> list[Resource]:
    """List available resources."""
    return [
        Resource(
            uri="finance://accounts",
            name="Accounts",
            description="Accounts with currency and opening balance",
            mimeType="application/json",
        ),
        Resource(
            uri="finance://categories",
            name="Categories",
            description="Category tree by type, with tracking flags",
            mimeType="application/json",
        ),
        Resource(
            uri="finance://sync-status",
            name="Sync Status",
            description="Sync state and cache statistics",
            mimeType="application/json",
        ),
    ]


@server.read_resource()
async def read_resource(uri: str) -> str:
    """Read resource content."""
    db = get_db()
    uri = str(uri)

    if uri == "finance://accounts":
        result = get_accounts_resource(db)
    elif uri == "finance://categories":
        result = get_categories_resource(db)
    elif uri == "finance://sync-status":
        result = get_sync_status_resource(db)
    else:
        raise ValueError(f"Unknown resource: {uri}")

    return json.dumps(result, ensure_ascii=False, indent=2)


# ============================================================================
# Main
# ============================================================================

def main() -> None:
    """Run the MCP server."""
    import asyncio

    from mcp.server.stdio import stdio_server

    # stdout carries the MCP protocol
    logging.basicConfig(
        level=os.environ.get("FINANCE_TRACKER_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    async def run():
        async with stdio_server() as (read_stream, write_stream):
            await server.run(read_stream, write_stream, server.create_initialization_options())

    asyncio.run(run())


if __name__ == "__main__":
    main()
