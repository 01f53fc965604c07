"""Tool execution engine for the quote wizard.

Provides:
- WIZARD_TOOL_SCHEMAS: JSON schemas offered to the reasoning service
- partition(): split catalog searches (resolved locally) from the rest
- apply_tool_calls(): pure application of domain tool calls to a draft
- describe(): one-line human summary of a tool call

apply_tool_calls() is the single place tool kinds are matched. Catalog
searches never reach it; UI-mode kinds switch interaction mode instead of
touching the draft; unknown kinds are logged and skipped.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from quotecat.wizard.schemas import (
    AddItem,
    ApplyMarkup,
    DraftItem,
    DraftQuote,
    SearchCatalog,
    SetClientName,
    SetLabor,
    SetQuoteName,
    ShowEditQuantity,
    ShowRemoveItem,
    SuggestAssembly,
    ToolCall,
    UiMode,
    UnknownToolCall,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Tool schemas (Anthropic tool definition format)
# ---------------------------------------------------------------------------

WIZARD_TOOL_SCHEMAS: dict[str, dict[str, Any]] = {
    "searchCatalog": {
        "type": "object",
        "description": (
            "Search the product catalog for materials with real prices. "
            "Results come back as the next user message."
        ),
        "properties": {
            "query": {"type": "string", "description": "Free-text product search, e.g. 'tile'"},
            "category": {"type": "string", "description": "Optional category filter"},
            "limit": {"type": "integer", "description": "Max results (default 5)"},
        },
        "required": ["query"],
    },
    "addItem": {
        "type": "object",
        "description": "Add a catalog product to the quote as a new line item.",
        "properties": {
            "productId": {"type": "string"},
            "productName": {"type": "string"},
            "qty": {"type": "number"},
            "unitPrice": {"type": "number"},
        },
        "required": ["productName", "qty", "unitPrice"],
    },
    "setLabor": {
        "type": "object",
        "description": "Set labor as hours at an hourly rate.",
        "properties": {
            "hours": {"type": "number"},
            "rate": {"type": "number"},
        },
        "required": ["hours", "rate"],
    },
    "applyMarkup": {
        "type": "object",
        "description": "Apply a markup percentage to the quote subtotal.",
        "properties": {"percent": {"type": "number"}},
        "required": ["percent"],
    },
    "setQuoteName": {
        "type": "object",
        "description": "Name the quote (short project description).",
        "properties": {"name": {"type": "string"}},
        "required": ["name"],
    },
    "setClientName": {
        "type": "object",
        "description": "Set the client the quote is for.",
        "properties": {"name": {"type": "string"}},
        "required": ["name"],
    },
    "suggestAssembly": {
        "type": "object",
        "description": "Suggest a saved assembly (bundle of items) the user may want to use.",
        "properties": {
            "assemblyId": {"type": "string"},
            "assemblyName": {"type": "string"},
        },
        "required": ["assemblyId", "assemblyName"],
    },
    "showRemoveItem": {
        "type": "object",
        "description": "Ask the app to let the user tap an item to remove it.",
        "properties": {},
        "required": [],
    },
    "showEditQuantity": {
        "type": "object",
        "description": "Ask the app to let the user tap an item to change its quantity.",
        "properties": {},
        "required": [],
    },
}


def tool_definitions() -> list[dict[str, Any]]:
    """Return all wizard tool definitions in Anthropic API format."""
    return [
        {
            "name": name,
            "description": schema.get("description", ""),
            "input_schema": {k: v for k, v in schema.items() if k != "description"},
        }
        for name, schema in WIZARD_TOOL_SCHEMAS.items()
    ]


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


def partition(tool_calls: list[ToolCall]) -> tuple[list[SearchCatalog], list[ToolCall]]:
    """Split tool calls into (catalog searches, everything else), order kept."""
    searches: list[SearchCatalog] = []
    others: list[ToolCall] = []
    for call in tool_calls:
        if isinstance(call, SearchCatalog):
            searches.append(call)
        else:
            others.append(call)
    return searches, others


def _fmt_number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else f"{value:g}"


def describe(call: ToolCall) -> str:
    """Short human-readable summary, empty for kinds with nothing to say."""
    if isinstance(call, AddItem):
        return f"Added {_fmt_number(call.qty)}x {call.product_name}"
    if isinstance(call, SetLabor):
        return f"Set labor to {_fmt_number(call.hours)}hrs @ ${_fmt_number(call.rate)}/hr"
    if isinstance(call, ApplyMarkup):
        return f"Applied {_fmt_number(call.percent)}% markup"
    if isinstance(call, SetClientName):
        return f'Set client to "{call.name}"'
    if isinstance(call, SetQuoteName):
        return f'Named quote "{call.name}"'
    if isinstance(call, SuggestAssembly):
        return f"Suggested assembly: {call.assembly_name}"
    if isinstance(call, SearchCatalog):
        return f'Searched catalog for "{call.query}"'
    return ""


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------


@dataclass
class ApplyResult:
    """Outcome of applying a batch of tool calls to a draft."""

    draft: DraftQuote
    ui_mode: UiMode = UiMode.NORMAL
    applied: list[ToolCall] = field(default_factory=list)
    summaries: list[str] = field(default_factory=list)


def apply_tool_calls(
    draft: DraftQuote,
    tool_calls: list[ToolCall],
    ui_mode: UiMode = UiMode.NORMAL,
) -> ApplyResult:
    """Apply domain tool calls to draft and return the new draft.

    Pure: the input draft is never modified. Total: unknown kinds and
    stray catalog searches are skipped, never raised. The last UI-mode
    call in the batch wins.
    """
    result = ApplyResult(draft=draft, ui_mode=ui_mode)

    for call in tool_calls:
        current = result.draft

        if isinstance(call, SetQuoteName):
            result.draft = current.model_copy(update={"name": call.name.strip()})
        elif isinstance(call, SetClientName):
            result.draft = current.model_copy(update={"client_name": call.name.strip()})
        elif isinstance(call, AddItem):
            seq = current.item_seq + 1
            item = DraftItem(
                id=f"item-{seq}",
                product_id=call.product_id,
                name=call.product_name,
                qty=call.qty,
                unit_price=call.unit_price,
            )
            # Appended, never merged: repeated additions of one product accumulate
            result.draft = current.model_copy(
                update={"items": (*current.items, item), "item_seq": seq}
            )
        elif isinstance(call, SetLabor):
            result.draft = current.model_copy(update={
                "labor": call.hours * call.rate,
                "labor_hours": call.hours,
                "labor_rate": call.rate,
            })
        elif isinstance(call, ApplyMarkup):
            result.draft = current.model_copy(update={"markup_percent": call.percent})
        elif isinstance(call, SuggestAssembly):
            if call.assembly_name not in current.suggested_assemblies:
                result.draft = current.model_copy(update={
                    "suggested_assemblies": (*current.suggested_assemblies, call.assembly_name),
                })
        elif isinstance(call, ShowRemoveItem):
            result.ui_mode = UiMode.REMOVE_ITEM
        elif isinstance(call, ShowEditQuantity):
            result.ui_mode = UiMode.EDIT_QUANTITY
        elif isinstance(call, SearchCatalog):
            logger.warning("searchCatalog reached apply_tool_calls; skipped (query=%r)", call.query)
            continue
        elif isinstance(call, UnknownToolCall):
            logger.warning("Ignoring unknown tool call kind: %s", call.kind)
            continue
        else:  # pragma: no cover - closed union
            logger.warning("Ignoring unsupported tool call: %r", call)
            continue

        result.applied.append(call)
        summary = describe(call)
        if summary:
            result.summaries.append(summary)

    return result
