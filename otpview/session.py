"""Session state machine: the single authority for user input.

Keys arrive as the integers returned by ``getch``.  Each key is handled to
completion (state change plus any view rebuild) before the host renders.
"""
import curses
import logging
from typing import Callable, Optional

import pyperclip

from otpview import __version__
from otpview import render as render_dispatcher
from otpview.clock import RefreshClock
from otpview.errors import ComputationError, IndexOutOfRange
from otpview.filtered_view import FilteredView
from otpview.state import Delete, Edit, Focus, Page, SessionState
from otpview.store import CredentialRecord, CredentialStore

logger = logging.getLogger(__name__)

KEY_CTRL_C = 3
KEY_CTRL_D = 4
KEY_CTRL_F = 6
KEY_TAB = 9
KEY_CTRL_W = 23
KEY_ESC = 27
ENTER_KEYS = (10, 13, curses.KEY_ENTER)
BACKSPACE_KEYS = (8, 127, curses.KEY_BACKSPACE)

Editor = Callable[[CredentialRecord], Optional[CredentialRecord]]


class Session:
    def __init__(
        self,
        store: CredentialStore,
        clock: Optional[RefreshClock] = None,
        clipboard: Optional[Callable[[str], None]] = None,
        editor: Optional[Editor] = None,
    ):
        self.store = store
        self.state = SessionState()
        self.view = FilteredView()
        self.clock = clock or RefreshClock()
        self.clipboard = clipboard or pyperclip.copy
        self.editor = editor
        self.title = f"otpview v{__version__}"
        self.view.refresh(self.store, self.state.search_query, force=True)

    @property
    def running(self) -> bool:
        return self.state.running

    @property
    def dirty(self) -> bool:
        return self.state.dirty

    def tick(self, force: bool = False) -> None:
        """Called once per loop iteration; rebuilds codes on window wrap."""
        if self.clock.tick(force):
            self.view.refresh(self.store, self.state.search_query, force=True)

    def render(self, win, colors=None) -> None:
        render_dispatcher.render(win, self, colors)

    def quit(self) -> None:
        self.state.running = False

    def handle_key(self, key: int) -> None:
        if key == KEY_CTRL_C:
            self.quit()
            return
        if key == curses.KEY_RESIZE:
            return

        if self.state.page != Page.MAIN:
            # QR code and info pages: any key goes back to the table
            self.state.page = Page.MAIN
            self.state.focus_main()
            return

        focus = self.state.focus
        if focus == Focus.POPUP:
            self._handle_popup_key(key)
        elif focus == Focus.SEARCH_BAR:
            self._handle_search_key(key)
        else:
            self._handle_main_key(key)

    # --- Main page ---

    def _handle_main_key(self, key: int) -> None:
        self.state.show_percentage()

        if key in (ord('q'), KEY_CTRL_D, KEY_ESC):
            self.quit()
        elif key in (KEY_CTRL_F, ord('/')):
            self.state.focus_search()
        elif key == KEY_CTRL_W:
            self._set_query("")
        elif key == curses.KEY_UP:
            self.view.select_previous()
        elif key == curses.KEY_DOWN:
            self.view.select_next()
        elif key == ord('k'):
            if self.view.selected_row() is not None:
                self.state.page = Page.QRCODE
        elif key in (ord('i'), ord('?')):
            self.state.page = Page.INFO
        elif key == ord('+'):
            self._change_counter(self.store.increment_counter)
        elif key == ord('-'):
            self._change_counter(self.store.decrement_counter)
        elif key in ENTER_KEYS:
            self._copy_selected()
        elif key in (ord('d'), curses.KEY_DC):
            self.request_delete()
        elif key == ord('e'):
            self.request_edit()

    def _change_counter(self, mutate) -> None:
        index = self.view.selected_index()
        if index is None:
            return
        if self.store.elements()[index].type != "hotp":
            self.state.show_label("Only HOTP codes have a counter")
            return
        try:
            mutate(index)
        except IndexOutOfRange as e:
            self._mutation_failed(e)
            return
        self.state.dirty = True
        self._sync()

    def _copy_selected(self) -> None:
        index = self.view.selected_index()
        if index is None:
            return
        try:
            code = self.store.current_code(index)
            self.clipboard(code)
        except ComputationError as e:
            logger.debug(f"Nothing to copy: {e}")
            self.state.show_label("Cannot compute this code")
            return
        except pyperclip.PyperclipException as e:
            logger.warning(f"Clipboard unavailable: {e}")
            self.state.show_label("Cannot copy to the clipboard")
            return
        self.state.show_label("Copied!")

    def request_delete(self) -> None:
        index = self.view.selected_index()
        if index is None:
            return
        record = self.store.elements()[index]
        self.state.open_popup(
            f"Do you want to delete {record.issuer} - {record.label}? (y/n)",
            Delete(index),
        )

    def request_edit(self) -> None:
        index = self.view.selected_index()
        if index is None:
            return
        if self.editor is None:
            self.state.show_label("Editing is not available")
            return
        record = self.store.elements()[index]
        edited = self.editor(record)
        if edited is None or edited == record:
            return
        self.state.open_popup(
            f"Save changes to {record.issuer} - {record.label}? (y/n)",
            Edit(index, edited),
        )

    # --- Search bar ---

    def _handle_search_key(self, key: int) -> None:
        query = self.state.search_query
        if key in ENTER_KEYS or key in (KEY_ESC, KEY_TAB):
            self.state.focus_main()
        elif key == KEY_CTRL_W:
            self._set_query("")
        elif key in BACKSPACE_KEYS:
            if query:
                self._set_query(query[:-1])
        elif key == curses.KEY_UP:
            self.view.select_previous()
        elif key == curses.KEY_DOWN:
            self.view.select_next()
        elif 32 <= key < 127:
            self._set_query(query + chr(key))

    def _set_query(self, query: str) -> None:
        self.state.search_query = query
        self.view.refresh(self.store, query)

    # --- Popup ---

    def _handle_popup_key(self, key: int) -> None:
        if key in (ord('y'), ord('Y')) or key in ENTER_KEYS:
            self.confirm()
        elif key in (ord('n'), ord('N'), KEY_ESC):
            self.cancel()

    def confirm(self) -> None:
        action = self.state.close_popup()
        self.state.focus_main()
        try:
            if isinstance(action, Delete):
                removed = self.store.delete(action.index)
                logger.info(f"Deleted {removed.issuer} - {removed.label}")
            elif isinstance(action, Edit):
                self.store.edit(action.index, action.record)
                logger.info(f"Edited element {action.index + 1}")
            else:
                return
        except IndexOutOfRange as e:
            self._mutation_failed(e)
            return
        self.state.dirty = True
        self._sync()

    def cancel(self) -> None:
        self.state.close_popup()
        self.state.focus_main()

    def _mutation_failed(self, error: IndexOutOfRange) -> None:
        logger.warning(f"Store mutation failed: {error}")
        self.state.focus_main()
        self.state.show_label(f"Error: {error}")
        self._sync()

    def _sync(self) -> None:
        # Store generation changed, so this rebuilds and clamps the selection
        self.view.refresh(self.store, self.state.search_query)
