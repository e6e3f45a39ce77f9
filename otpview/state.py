from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from otpview.store import CredentialRecord


class Page(Enum):
    MAIN = "main"
    QRCODE = "qrcode"
    INFO = "info"


class Focus(Enum):
    MAIN_PAGE = "main_page"
    SEARCH_BAR = "search_bar"
    POPUP = "popup"


@dataclass(frozen=True)
class Delete:
    index: int


@dataclass(frozen=True)
class Edit:
    index: int
    record: CredentialRecord


PopupAction = Union[Delete, Edit]


@dataclass(frozen=True)
class Popup:
    """Confirmation prompt; cannot exist without the action it confirms."""
    text: str
    action: PopupAction

    def __post_init__(self):
        if not isinstance(self.action, (Delete, Edit)):
            raise ValueError(f"A popup needs a pending action, got {self.action!r}")


@dataclass
class SessionState:
    page: Page = Page.MAIN
    search_query: str = ""
    dirty: bool = False
    running: bool = True
    # Text shown on the progress line instead of the percentage
    label_text: str = ""
    print_percentage: bool = True
    popup: Optional[Popup] = None
    search_focused: bool = False

    @property
    def focus(self) -> Focus:
        if self.popup is not None:
            return Focus.POPUP
        return Focus.SEARCH_BAR if self.search_focused else Focus.MAIN_PAGE

    @property
    def popup_text(self) -> str:
        return self.popup.text if self.popup else ""

    @property
    def pending_action(self) -> Optional[PopupAction]:
        return self.popup.action if self.popup else None

    def open_popup(self, text: str, action: PopupAction) -> None:
        self.popup = Popup(text, action)
        self.search_focused = False

    def close_popup(self) -> Optional[PopupAction]:
        action = self.pending_action
        self.popup = None
        return action

    def focus_search(self) -> None:
        self.search_focused = True

    def focus_main(self) -> None:
        self.popup = None
        self.search_focused = False

    def show_label(self, text: str) -> None:
        self.label_text = text
        self.print_percentage = False

    def show_percentage(self) -> None:
        self.label_text = ""
        self.print_percentage = True
