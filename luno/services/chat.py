"""
Financial chat assistant.

The assistant runs a tool-calling loop against an OpenAI-compatible chat
completions client. It always has the database tools below and, when the
user has a live Tool Router session, the MCP tools exposed by it (prefixed
`toolRouter_`).
"""
import json
from contextlib import AsyncExitStack
from datetime import date, timedelta
from typing import Any, Awaitable, Callable, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from sqlmodel import Session, select

from luno.config import get_settings
from luno.db.models import Account, Category, Goal, Transaction
from luno.errors import LunoError
from luno.logger import get_logger
from luno.security.validation import MAX_AMOUNT
from luno.services import analytics, tool_router
from luno.services.budgets import get_budgets_with_progress
from luno.services.currency import plain_number
from luno.services.records import create_transaction, goal_progress

logger = get_logger(__name__)

OPENAI_MODELS = {"gpt-5-nano", "gpt-5-pro", "gpt-4.1"}
OPENAI_FALLBACK = "gpt-5-nano"

GEMINI_MODELS = {
    "gemini-2.5-pro",
    "gemini-2.5-flash",
    "gemini-2.5-flash-lite",
    "gemini-2.0-flash",
    "gemini-2.0-flash-lite",
}
GEMINI_FALLBACK = "gemini-2.0-flash"

MCP_PREFIX = "toolRouter_"

SYSTEM_PROMPT = """You are Luno, a financial assistant that helps people manage their money.

You can work with two kinds of tools:
1. Database tools for the user's own data:
   - getTransactions: list and filter transactions
   - getAccounts: account balances and details
   - getCategories: income and expense categories
   - getBudgets: budget status and spending
   - getGoals: progress on savings goals
   - createTransaction: record a new transaction
   - getSpendingAnalytics: spending breakdowns and trends
2. Tool Router tools (names starting with toolRouter_) for connected external
   services such as banks, email, receipt scanning and payments.

Guidelines:
- Look at the user's data with the database tools before answering questions about it.
- Use Tool Router tools only for actions in external services.
- If a question needs data, fetch it and give an analysis rather than asking the user.
- Split multi-step requests into tool calls made one after another.
- Format money amounts clearly, with their currency.
- Before creating a transaction, look up the account and category IDs you need.
- Finish with concrete, actionable suggestions when the data supports them.

Examples:
- "Add a $50 grocery expense": getAccounts, getCategories, then createTransaction.
- "What did I spend this month?": getTransactions, then getSpendingAnalytics.
- "What is my balance?": getAccounts.
- "How are my budgets?": getBudgets."""


def resolve_model(provider: str, model_id: Optional[str]) -> str:
    """Map a requested model id to a supported one for the provider."""
    if provider == "openai":
        return model_id if model_id in OPENAI_MODELS else OPENAI_FALLBACK
    return model_id if model_id in GEMINI_MODELS else GEMINI_FALLBACK


# === Tool arguments ===

class _ToolArgs(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class GetTransactionsArgs(_ToolArgs):
    start_date: Optional[date] = Field(
        default=None, alias="startDate",
        description="Start date (YYYY-MM-DD). Defaults to 30 days ago.",
    )
    end_date: Optional[date] = Field(
        default=None, alias="endDate",
        description="End date (YYYY-MM-DD). Defaults to today.",
    )
    type: Optional[Literal["income", "expense", "transfer"]] = Field(
        default=None, description="Filter by transaction type",
    )
    category_id: Optional[int] = Field(default=None, alias="categoryId", description="Filter by category ID")
    account_id: Optional[int] = Field(default=None, alias="accountId", description="Filter by account ID")
    limit: int = Field(default=50, ge=1, le=100, description="Maximum number of transactions to return")


class GetAccountsArgs(_ToolArgs):
    include_inactive: bool = Field(default=False, alias="includeInactive", description="Include inactive accounts")


class GetCategoriesArgs(_ToolArgs):
    pass


class GetBudgetsArgs(_ToolArgs):
    active_only: bool = Field(default=True, alias="activeOnly", description="Return only active budgets")


class GetGoalsArgs(_ToolArgs):
    status: Optional[Literal["active", "completed", "cancelled"]] = Field(
        default=None, description="Filter by goal status",
    )


class CreateTransactionArgs(_ToolArgs):
    amount: float = Field(gt=0, le=MAX_AMOUNT, description="Transaction amount")
    type: Literal["income", "expense", "transfer"] = Field(description="Transaction type")
    description: str = Field(min_length=1, max_length=500, description="Transaction description")
    account_id: int = Field(alias="accountId", description="Account ID")
    category_id: Optional[int] = Field(default=None, alias="categoryId", description="Category ID (optional)")
    transaction_date: date = Field(alias="transactionDate", description="Transaction date (YYYY-MM-DD)")
    notes: Optional[str] = Field(default=None, max_length=1000, description="Additional notes")


class GetSpendingAnalyticsArgs(_ToolArgs):
    start_date: Optional[date] = Field(
        default=None, alias="startDate",
        description="Start date (YYYY-MM-DD). Defaults to 30 days ago.",
    )
    end_date: Optional[date] = Field(
        default=None, alias="endDate",
        description="End date (YYYY-MM-DD). Defaults to today.",
    )
    group_by: Literal["category", "day", "week", "month"] = Field(
        default="category", alias="groupBy",
        description="Group results by category, day, week, or month",
    )


# === Tool implementations ===

def _default_window(start: Optional[date], end: Optional[date]) -> tuple[date, date]:
    end = end or date.today()
    return start or (end - timedelta(days=30)), end


def _dump(row: Any) -> dict[str, Any]:
    return row.model_dump(mode="json")


def get_transactions(session: Session, user_id: int, args: GetTransactionsArgs) -> dict[str, Any]:
    start, end = _default_window(args.start_date, args.end_date)
    statement = (
        select(Transaction, Account, Category)
        .join(Account, Account.id == Transaction.account_id, isouter=True)
        .join(Category, Category.id == Transaction.category_id, isouter=True)
        .where(
            Transaction.user_id == user_id,
            Transaction.transaction_date >= start,
            Transaction.transaction_date <= end,
        )
    )
    if args.type:
        statement = statement.where(Transaction.type == args.type)
    if args.category_id is not None:
        statement = statement.where(Transaction.category_id == args.category_id)
    if args.account_id is not None:
        statement = statement.where(Transaction.account_id == args.account_id)
    statement = statement.order_by(Transaction.transaction_date.desc()).limit(args.limit)

    transactions = []
    for t, account, category in session.exec(statement).all():
        item = _dump(t)
        item["account"] = _dump(account) if account else None
        item["category"] = _dump(category) if category else None
        transactions.append(item)
    return {"transactions": transactions}


def get_accounts(session: Session, user_id: int, args: GetAccountsArgs) -> dict[str, Any]:
    statement = select(Account).where(Account.user_id == user_id)
    if not args.include_inactive:
        statement = statement.where(Account.is_active == True)  # noqa: E712
    accounts = session.exec(statement.order_by(Account.name)).all()
    return {
        "accounts": [_dump(a) for a in accounts],
        "totalBalance": sum(a.balance or 0 for a in accounts),
        "count": len(accounts),
    }


def get_categories(session: Session, user_id: int, args: GetCategoriesArgs) -> dict[str, Any]:
    categories = [
        _dump(c)
        for c in session.exec(
            select(Category).where(Category.user_id == user_id).order_by(Category.name)
        ).all()
    ]
    return {
        "categories": categories,
        "rootCategories": [c for c in categories if c["parent_category_id"] is None],
        "subCategories": [c for c in categories if c["parent_category_id"] is not None],
        "count": len(categories),
    }


def get_budgets(session: Session, user_id: int, args: GetBudgetsArgs) -> dict[str, Any]:
    budgets = []
    for budget, progress in get_budgets_with_progress(session, user_id, active_only=args.active_only):
        item = _dump(budget)
        item.update(
            spent=progress["spent"],
            remaining=progress["remaining"],
            percentage=round(progress["percentage"]),
            isOverBudget=progress["is_over_budget"],
        )
        budgets.append(item)
    return {"budgets": budgets, "count": len(budgets)}


def get_goals(session: Session, user_id: int, args: GetGoalsArgs) -> dict[str, Any]:
    statement = select(Goal).where(Goal.user_id == user_id)
    if args.status:
        statement = statement.where(Goal.status == args.status)
    goals = []
    for goal in session.exec(statement.order_by(Goal.created_at.desc())).all():
        item = _dump(goal)
        progress = goal_progress(goal)
        item.update(
            progress=progress["progress"],
            remaining=progress["remaining"],
            daysRemaining=progress["days_remaining"],
        )
        goals.append(item)
    return {"goals": goals, "count": len(goals)}


def create_transaction_tool(session: Session, user_id: int, args: CreateTransactionArgs) -> dict[str, Any]:
    transaction = create_transaction(
        session,
        user_id,
        {
            "account_id": args.account_id,
            "category_id": args.category_id,
            "amount": args.amount,
            "type": args.type,
            "description": args.description,
            "transaction_date": args.transaction_date,
            "notes": args.notes,
        },
    )
    return {
        "success": True,
        "transaction": _dump(transaction),
        "message": f"{args.type} transaction of {plain_number(args.amount)} created successfully",
    }


def get_spending_analytics(session: Session, user_id: int, args: GetSpendingAnalyticsArgs) -> dict[str, Any]:
    start, end = _default_window(args.start_date, args.end_date)
    return analytics.get_spending_analytics(session, user_id, start, end, args.group_by)


DatabaseTool = tuple[str, type[_ToolArgs], Callable[[Session, int, Any], dict[str, Any]]]

DATABASE_TOOLS: dict[str, DatabaseTool] = {
    "getTransactions": (
        "Get the user's transactions, optionally filtered by date range, type, category or account. "
        "Use it to analyze spending, find transactions or show history.",
        GetTransactionsArgs,
        get_transactions,
    ),
    "getAccounts": (
        "Get the user's accounts (checking, savings, credit cards, etc.) with balances.",
        GetAccountsArgs,
        get_accounts,
    ),
    "getCategories": (
        "Get the user's income and expense categories, including the category hierarchy and IDs.",
        GetCategoriesArgs,
        get_categories,
    ),
    "getBudgets": (
        "Get the user's budgets with spending progress.",
        GetBudgetsArgs,
        get_budgets,
    ),
    "getGoals": (
        "Get the user's financial goals with progress.",
        GetGoalsArgs,
        get_goals,
    ),
    "createTransaction": (
        "Create a new income, expense or transfer transaction.",
        CreateTransactionArgs,
        create_transaction_tool,
    ),
    "getSpendingAnalytics": (
        "Get spending totals and breakdowns by category, day, week or month.",
        GetSpendingAnalyticsArgs,
        get_spending_analytics,
    ),
}


def _strip_titles(schema: Any) -> Any:
    if isinstance(schema, dict):
        return {k: _strip_titles(v) for k, v in schema.items() if k != "title"}
    if isinstance(schema, list):
        return [_strip_titles(v) for v in schema]
    return schema


def _function_tool(name: str, description: str, parameters: dict[str, Any]) -> dict[str, Any]:
    return {
        "type": "function",
        "function": {"name": name, "description": description, "parameters": parameters},
    }


def database_tool_definitions() -> list[dict[str, Any]]:
    """Database tools in the chat completions `tools` format."""
    return [
        _function_tool(name, description, _strip_titles(args_model.model_json_schema(by_alias=True)))
        for name, (description, args_model, _) in DATABASE_TOOLS.items()
    ]


def run_database_tool(session: Session, user_id: int, name: str, arguments: dict[str, Any]) -> dict[str, Any]:
    """
    Validate arguments and run a database tool for the user.

    Raises:
        KeyError: unknown tool name
        ValidationError: arguments do not match the tool's schema
        LunoError: the underlying service refused the operation
    """
    _, args_model, handler = DATABASE_TOOLS[name]
    return handler(session, user_id, args_model.model_validate(arguments))


# === Tool loop ===

McpCaller = Callable[[str, dict[str, Any]], Awaitable[dict[str, Any]]]


async def _load_mcp_tools(stack: AsyncExitStack, session: Session, user_id: int) -> tuple[list[dict[str, Any]], Optional[McpCaller]]:
    """Open the user's Tool Router MCP session, if there is one."""
    if not get_settings().tool_router_configured:
        return [], None

    record = tool_router.get_active_session(session, user_id)
    if record is None:
        return [], None

    client = await stack.enter_async_context(tool_router.open_mcp_session(record.session_url))
    tools = await tool_router.list_mcp_tools(client)
    definitions = [
        _function_tool(f"{MCP_PREFIX}{tool['name']}", tool["description"], tool["input_schema"])
        for tool in tools
    ]

    async def call(name: str, arguments: dict[str, Any]) -> dict[str, Any]:
        return await tool_router.call_mcp_tool(client, name, arguments)

    return definitions, call


async def _execute_tool_call(
    session: Session,
    user_id: int,
    name: str,
    raw_arguments: Optional[str],
    mcp_call: Optional[McpCaller],
) -> dict[str, Any]:
    """Run one tool call; failures become an `error` entry for the model."""
    record: dict[str, Any] = {"name": name, "arguments": {}, "result": None, "error": None}
    try:
        arguments = json.loads(raw_arguments or "{}")
    except json.JSONDecodeError:
        record["error"] = "Arguments were not valid JSON"
        return record
    record["arguments"] = arguments if isinstance(arguments, dict) else {}

    try:
        if name.startswith(MCP_PREFIX):
            if mcp_call is None:
                raise KeyError(name)
            record["result"] = await mcp_call(name[len(MCP_PREFIX):], record["arguments"])
        else:
            record["result"] = run_database_tool(session, user_id, name, record["arguments"])
    except KeyError:
        record["error"] = f"Unknown tool: {name}"
    except ValidationError as e:
        record["error"] = f"Invalid arguments: {e.errors(include_url=False)}"
    except LunoError as e:
        record["error"] = e.message
    except Exception as e:
        logger.error("chat_tool_failed", tool=name, user_id=user_id, error=str(e))
        record["error"] = "Tool execution failed"
    return record


def _completion_options(provider: str, model: str) -> dict[str, Any]:
    settings = get_settings()
    if provider == "openai":
        options: dict[str, Any] = {"max_completion_tokens": settings.CHAT_MAX_TOKENS}
        # gpt-5 models only accept the default temperature
        if not model.startswith("gpt-5"):
            options["temperature"] = settings.CHAT_TEMPERATURE
        return options
    return {"max_tokens": settings.CHAT_MAX_TOKENS, "temperature": settings.CHAT_TEMPERATURE}


async def run_chat(
    client: Any,
    session: Session,
    user_id: int,
    messages: list[dict[str, str]],
    provider: str,
    model_id: Optional[str] = None,
) -> dict[str, Any]:
    """
    Answer a conversation, calling tools until the model produces text.

    Args:
        client: AsyncOpenAI-compatible client for the provider
        session: Database session
        user_id: Authenticated user
        messages: Conversation as [{role, content}]
        provider: "openai" or "google"
        model_id: Requested model (mapped with resolve_model)

    Returns:
        {message, model, provider, toolCalls, steps}
    """
    settings = get_settings()
    model = resolve_model(provider, model_id)
    options = _completion_options(provider, model)

    conversation: list[dict[str, Any]] = [{"role": "system", "content": SYSTEM_PROMPT}]
    conversation.extend({"role": m["role"], "content": m["content"]} for m in messages)

    tool_calls: list[dict[str, Any]] = []
    reply = ""
    steps = 0

    async with AsyncExitStack() as stack:
        tools = database_tool_definitions()
        mcp_call: Optional[McpCaller] = None
        try:
            mcp_tools, mcp_call = await _load_mcp_tools(stack, session, user_id)
            tools.extend(mcp_tools)
        except Exception as e:
            logger.warning("tool_router_mcp_unavailable", user_id=user_id, error=str(e))
            mcp_call = None

        while steps < settings.CHAT_MAX_STEPS:
            steps += 1
            response = await client.chat.completions.create(
                model=model,
                messages=conversation,
                tools=tools,
                **options,
            )
            message = response.choices[0].message
            reply = message.content or ""

            if not message.tool_calls:
                break

            conversation.append({
                "role": "assistant",
                "content": message.content,
                "tool_calls": [
                    {
                        "id": call.id,
                        "type": "function",
                        "function": {"name": call.function.name, "arguments": call.function.arguments},
                    }
                    for call in message.tool_calls
                ],
            })
            for call in message.tool_calls:
                record = await _execute_tool_call(
                    session, user_id, call.function.name, call.function.arguments, mcp_call
                )
                tool_calls.append(record)
                output = {"error": record["error"]} if record["error"] else record["result"]
                conversation.append({
                    "role": "tool",
                    "tool_call_id": call.id,
                    "content": json.dumps(output, default=str),
                })

    logger.info("chat_completed", user_id=user_id, model=model, steps=steps, tool_calls=len(tool_calls))
    return {
        "message": reply,
        "model": model,
        "provider": provider,
        "toolCalls": tool_calls,
        "steps": steps,
    }
