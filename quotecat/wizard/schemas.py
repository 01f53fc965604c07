"""Pydantic DTOs for the quote wizard.

Defines the conversation transcript, the closed set of tool calls the
reasoning service may request, the draft quote they mutate, and the
per-turn outcome handed back to callers.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Annotated, Any, Literal, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from quotecat.wizard.errors import ReasoningError


def _new_id() -> str:
    return uuid4().hex[:12]


class Role(StrEnum):
    USER = "user"
    ASSISTANT = "assistant"


class ScreenState(StrEnum):
    INTRO = "intro"
    CHAT = "chat"
    DONE = "done"
    UPGRADE = "upgrade"


class UiMode(StrEnum):
    NORMAL = "normal"
    REMOVE_ITEM = "remove_item"
    EDIT_QUANTITY = "edit_quantity"


# ---------------------------------------------------------------------------
# Transcript
# ---------------------------------------------------------------------------


class Turn(BaseModel):
    """One message-equivalent unit of the transcript.

    display_text is what the user sees. api_text, when set, is what is
    sent to the reasoning service instead. Hidden turns carry machine
    content only (catalog results) and are left out of the display view.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    role: Role
    display_text: str
    api_text: str | None = None
    hidden: bool = False

    @property
    def outbound_text(self) -> str:
        return self.api_text if self.api_text is not None else self.display_text


def display_view(transcript: list[Turn]) -> list[Turn]:
    """Turns as rendered to the user."""
    return [t for t in transcript if not t.hidden]


def outbound_view(transcript: list[Turn]) -> list[dict[str, str]]:
    """Turns as sent to the reasoning service: [{"role", "content"}]."""
    return [{"role": t.role.value, "content": t.outbound_text} for t in transcript]


# ---------------------------------------------------------------------------
# Tool calls (closed tagged union on "kind")
# ---------------------------------------------------------------------------


class _ToolCallBase(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


class SetQuoteName(_ToolCallBase):
    kind: Literal["setQuoteName"] = "setQuoteName"
    name: str


class SetClientName(_ToolCallBase):
    kind: Literal["setClientName"] = "setClientName"
    name: str


class AddItem(_ToolCallBase):
    kind: Literal["addItem"] = "addItem"
    product_id: str | None = Field(None, alias="productId")
    product_name: str = Field(alias="productName")
    qty: float = Field(gt=0)
    unit_price: float = Field(ge=0, alias="unitPrice")


class SetLabor(_ToolCallBase):
    kind: Literal["setLabor"] = "setLabor"
    hours: float = Field(ge=0)
    rate: float = Field(ge=0)


class ApplyMarkup(_ToolCallBase):
    kind: Literal["applyMarkup"] = "applyMarkup"
    percent: float


class SuggestAssembly(_ToolCallBase):
    kind: Literal["suggestAssembly"] = "suggestAssembly"
    assembly_id: str = Field(alias="assemblyId")
    assembly_name: str = Field(alias="assemblyName")


class SearchCatalog(_ToolCallBase):
    kind: Literal["searchCatalog"] = "searchCatalog"
    query: str
    category: str | None = None
    limit: int | None = Field(None, ge=1)


class ShowRemoveItem(_ToolCallBase):
    kind: Literal["showRemoveItem"] = "showRemoveItem"


class ShowEditQuantity(_ToolCallBase):
    kind: Literal["showEditQuantity"] = "showEditQuantity"


class UnknownToolCall(_ToolCallBase):
    """A kind this client does not know. Carried through, never applied."""

    kind: str
    payload: dict[str, Any] = Field(default_factory=dict)


KnownToolCall = Annotated[
    Union[
        SetQuoteName,
        SetClientName,
        AddItem,
        SetLabor,
        ApplyMarkup,
        SuggestAssembly,
        SearchCatalog,
        ShowRemoveItem,
        ShowEditQuantity,
    ],
    Field(discriminator="kind"),
]

ToolCall = Union[
    SetQuoteName,
    SetClientName,
    AddItem,
    SetLabor,
    ApplyMarkup,
    SuggestAssembly,
    SearchCatalog,
    ShowRemoveItem,
    ShowEditQuantity,
    UnknownToolCall,
]

TOOL_KINDS = frozenset({
    "setQuoteName",
    "setClientName",
    "addItem",
    "setLabor",
    "applyMarkup",
    "suggestAssembly",
    "searchCatalog",
    "showRemoveItem",
    "showEditQuantity",
})

_known_adapter: TypeAdapter[Any] = TypeAdapter(KnownToolCall)


def parse_tool_call(raw: dict[str, Any]) -> ToolCall:
    """Normalize a wire tool call into a ToolCall.

    Accepts {"type": kind, ...fields}, {"name": kind, "input": {...}} and
    {"name": kind, "arguments": {...}}. Unknown kinds become UnknownToolCall.
    Raises ReasoningError when a known kind carries invalid fields.
    """
    if not isinstance(raw, dict):
        raise ReasoningError(f"Tool call must be an object, got {type(raw).__name__}")

    kind_key = next((k for k in ("type", "name", "kind") if raw.get(k)), None)
    kind = raw.get(kind_key) if kind_key else None
    if not isinstance(kind, str) or not kind:
        raise ReasoningError(f"Tool call without a kind: {raw!r}")

    args = raw.get("input") if isinstance(raw.get("input"), dict) else None
    if args is None and isinstance(raw.get("arguments"), dict):
        args = raw["arguments"]
    if args is None:
        # Flat form: only the key the kind came from is metadata; "name" stays a field
        args = {k: v for k, v in raw.items() if k not in (kind_key, "id")}

    if kind not in TOOL_KINDS:
        return UnknownToolCall(kind=kind, payload=dict(args))

    try:
        return _known_adapter.validate_python({**args, "kind": kind})
    except ValidationError as e:
        raise ReasoningError(f"Invalid {kind} tool call: {e.errors(include_url=False)}") from e


# ---------------------------------------------------------------------------
# Draft quote
# ---------------------------------------------------------------------------


class DraftItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    product_id: str | None = None
    name: str
    qty: float
    unit_price: float

    @property
    def line_total(self) -> float:
        return self.qty * self.unit_price


class DraftQuote(BaseModel):
    """The in-progress quote assembled across a conversation."""

    model_config = ConfigDict(frozen=True)

    name: str = ""
    client_name: str = ""
    items: tuple[DraftItem, ...] = ()
    labor: float = 0.0
    markup_percent: float = 0.0
    labor_hours: float | None = None
    labor_rate: float | None = None
    suggested_assemblies: tuple[str, ...] = ()
    # Monotonic counter so item ids are deterministic
    item_seq: int = 0

    @property
    def subtotal(self) -> float:
        return sum(i.line_total for i in self.items) + self.labor

    @property
    def total(self) -> float:
        return self.subtotal * (1 + self.markup_percent / 100)

    @property
    def is_empty(self) -> bool:
        return not self.name.strip() and not self.items

    def summary(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "client_name": self.client_name,
            "items": [
                {
                    "id": i.id,
                    "product_id": i.product_id,
                    "name": i.name,
                    "qty": i.qty,
                    "unit_price": i.unit_price,
                    "line_total": round(i.line_total, 2),
                }
                for i in self.items
            ],
            "labor": round(self.labor, 2),
            "labor_hours": self.labor_hours,
            "labor_rate": self.labor_rate,
            "markup_percent": self.markup_percent,
            "suggested_assemblies": list(self.suggested_assemblies),
            "subtotal": round(self.subtotal, 2),
            "total": round(self.total, 2),
        }


# ---------------------------------------------------------------------------
# Reasoning service contract
# ---------------------------------------------------------------------------


class SessionState(BaseModel):
    """Opaque, service-owned conversation state.

    Echoed back verbatim on every call. The only field read client-side
    is ``phase``; nothing here may be written by the client.
    """

    model_config = ConfigDict(frozen=True)

    raw: dict[str, Any] = Field(default_factory=dict)

    @property
    def phase(self) -> str | None:
        phase = self.raw.get("phase")
        return phase if isinstance(phase, str) else None


class UserDefaults(BaseModel):
    model_config = ConfigDict(frozen=True)

    default_markup_percent: float | None = None
    default_labor_rate: float | None = None

    def to_wire(self) -> dict[str, float]:
        out: dict[str, float] = {}
        if self.default_markup_percent is not None:
            out["defaultMarkupPercent"] = self.default_markup_percent
        if self.default_labor_rate is not None:
            out["defaultLaborRate"] = self.default_labor_rate
        return out


class DisplayProduct(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    price: float = 0.0
    unit: str = ""
    suggested_qty: float = Field(1.0, alias="suggestedQty")
    category: str | None = None


class AddedItem(BaseModel):
    name: str
    qty: float


class DisplayPayload(BaseModel):
    """Structured content rendered alongside the reply text."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: str
    products: list[DisplayProduct] = Field(default_factory=list)
    added_items: list[AddedItem] = Field(default_factory=list, alias="addedItems")
    checklist: list[dict[str, Any]] = Field(default_factory=list)


class ReasoningReply(BaseModel):
    """One response from the reasoning service."""

    message: str = ""
    tool_calls: list[ToolCall] = Field(default_factory=list)
    quick_replies: list[str] | None = None
    display: DisplayPayload | None = None
    state: SessionState | None = None


class TurnOutcome(BaseModel):
    """Result of one run_turn() invocation."""

    final_reply: str
    applied_tool_calls: list[ToolCall] = Field(default_factory=list)
    summaries: list[str] = Field(default_factory=list)
    quick_replies: list[str] = Field(default_factory=list)
    updated_transcript: list[Turn] = Field(default_factory=list)
    draft: DraftQuote = Field(default_factory=DraftQuote)
    display: DisplayPayload | None = None
    session_state: SessionState | None = None
    ui_mode: UiMode = UiMode.NORMAL
    iterations: int = 0
    exhausted: bool = False
    failed: bool = False
    cancelled: bool = False
    error: str | None = None
