"""
Conversation session state.

Each state is keyed by ``step`` and carries only the fields that step needs,
so nothing from a finished flow leaks into the next one. States are stored
as JSON and parsed back through ``SESSION_ADAPTER``.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter

from qshare.models.base import utcnow
from qshare.schemas.listings import BrowseSort, ShareMethod


class BaseState(BaseModel):
    updated_at: datetime = Field(default_factory=utcnow)


class Idle(BaseState):
    step: Literal["idle"] = "idle"


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------

class CollectFullName(BaseState):
    step: Literal["collect_full_name"] = "collect_full_name"


class CollectEmail(BaseState):
    step: Literal["collect_email"] = "collect_email"
    full_name: str


class VerifyCode(BaseState):
    step: Literal["verify_code"] = "verify_code"
    full_name: str
    email: str
    code: str


# ---------------------------------------------------------------------------
# Listing wizard
# ---------------------------------------------------------------------------

class AddCategory(BaseState):
    step: Literal["add_category"] = "add_category"


class AddSubcategory(BaseState):
    step: Literal["add_subcategory"] = "add_subcategory"
    category: str


class AddPlan(BaseState):
    step: Literal["add_plan"] = "add_plan"
    category: str
    subcategory: str


class AddSlots(BaseState):
    step: Literal["add_slots"] = "add_slots"
    category: str
    subcategory: str
    plan: str
    amount: int


class AddShareMethod(AddSlots):
    step: Literal["add_share_method"] = "add_share_method"
    slots: int


class AddLoginEmail(AddShareMethod):
    step: Literal["add_login_email"] = "add_login_email"


class AddLoginPassword(AddShareMethod):
    step: Literal["add_login_password"] = "add_login_password"
    login_email: str


class AddPhone(AddShareMethod):
    step: Literal["add_phone"] = "add_phone"


class AddDuration(AddShareMethod):
    step: Literal["add_duration"] = "add_duration"
    share_method: ShareMethod
    secret: dict[str, str]


class AddConfirm(AddDuration):
    step: Literal["add_confirm"] = "add_confirm"
    duration_months: int
    public_id: str


# ---------------------------------------------------------------------------
# Discovery & payment
# ---------------------------------------------------------------------------

class Browse(BaseState):
    step: Literal["browse"] = "browse"
    category: Optional[str] = None
    subcategory: Optional[str] = None
    page: int = 0
    sort: BrowseSort = BrowseSort.NEWEST


class ViewListing(BaseState):
    step: Literal["view_listing"] = "view_listing"
    public_id: str
    category: str
    subcategory: str
    page: int = 0
    sort: BrowseSort = BrowseSort.NEWEST


class AwaitPayment(BaseState):
    step: Literal["await_payment"] = "await_payment"
    public_id: str
    reference: str
    authorization_url: str
    renewal: bool = False


# ---------------------------------------------------------------------------
# Membership management
# ---------------------------------------------------------------------------

class MyListings(BaseState):
    step: Literal["my_listings"] = "my_listings"
    page: int = 0


class MyMemberships(BaseState):
    step: Literal["my_memberships"] = "my_memberships"
    page: int = 0


class UpdateMenu(BaseState):
    step: Literal["update_menu"] = "update_menu"
    public_id: str


class UpdateSlots(BaseState):
    step: Literal["update_slots"] = "update_slots"
    public_id: str


class UpdateDuration(BaseState):
    step: Literal["update_duration"] = "update_duration"
    public_id: str


class UpdateShareMethod(BaseState):
    step: Literal["update_share_method"] = "update_share_method"
    public_id: str


class UpdateLoginEmail(BaseState):
    step: Literal["update_login_email"] = "update_login_email"
    public_id: str


class UpdateLoginPassword(BaseState):
    step: Literal["update_login_password"] = "update_login_password"
    public_id: str
    login_email: str


class UpdatePhone(BaseState):
    step: Literal["update_phone"] = "update_phone"
    public_id: str


class ConfirmLeave(BaseState):
    step: Literal["confirm_leave"] = "confirm_leave"
    public_id: str


# ---------------------------------------------------------------------------
# Profile & support
# ---------------------------------------------------------------------------

class EditName(BaseState):
    step: Literal["edit_name"] = "edit_name"


class EditEmail(BaseState):
    step: Literal["edit_email"] = "edit_email"


class VerifyNewEmail(BaseState):
    step: Literal["verify_new_email"] = "verify_new_email"
    email: str
    code: str


class Faq(BaseState):
    step: Literal["faq"] = "faq"
    page: int = 0


SessionState = Annotated[
    Union[
        Idle,
        CollectFullName,
        CollectEmail,
        VerifyCode,
        AddCategory,
        AddSubcategory,
        AddPlan,
        AddSlots,
        AddShareMethod,
        AddLoginEmail,
        AddLoginPassword,
        AddPhone,
        AddDuration,
        AddConfirm,
        Browse,
        ViewListing,
        AwaitPayment,
        MyListings,
        MyMemberships,
        UpdateMenu,
        UpdateSlots,
        UpdateDuration,
        UpdateShareMethod,
        UpdateLoginEmail,
        UpdateLoginPassword,
        UpdatePhone,
        ConfirmLeave,
        EditName,
        EditEmail,
        VerifyNewEmail,
        Faq,
    ],
    Field(discriminator="step"),
]

SESSION_ADAPTER: TypeAdapter[SessionState] = TypeAdapter(SessionState)


def parse_state(data: dict) -> SessionState:
    return SESSION_ADAPTER.validate_python(data)


def dump_state(state: BaseState) -> dict:
    return state.model_dump(mode="json")


def advance(state: BaseState, target: type[BaseState], **fields) -> BaseState:
    """Build ``target`` from the fields of ``state`` that it declares, plus ``fields``."""
    carried = {
        name: value
        for name, value in state.model_dump(exclude={"step", "updated_at"}).items()
        if name in target.model_fields
    }
    carried.update(fields)
    return target(**carried)
