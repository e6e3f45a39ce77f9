import curses
import random
import unittest
from dataclasses import replace
from unittest.mock import MagicMock

import pyperclip

from otpview.clock import RefreshClock
from otpview.session import Session, KEY_CTRL_C, KEY_CTRL_F, KEY_CTRL_W, KEY_ESC
from otpview.state import Delete, Edit, Focus, Page, Popup
from otpview.store import CredentialRecord, CredentialStore

SECRET = "GEZDGNBVGY3TQOJQGEZDGNBVGY3TQOJQ"


def make_session(records=None, editor=None, clock_samples=None):
    if records is None:
        records = [
            CredentialRecord(issuer="GitHub", label="alice", secret=SECRET),
            CredentialRecord(issuer="Google", label="bob", secret=SECRET, type="hotp"),
            CredentialRecord(issuer="Mail", label="git-ops", secret=SECRET),
        ]
    source = MagicMock(side_effect=clock_samples) if clock_samples else MagicMock(return_value=50)
    clipboard = MagicMock()
    session = Session(CredentialStore(records), clock=RefreshClock(source), clipboard=clipboard, editor=editor)
    return session, clipboard


def type_keys(session, keys):
    for key in keys:
        session.handle_key(ord(key) if isinstance(key, str) else key)


class TestSearch(unittest.TestCase):

    def test_typing_filters_and_clearing_restores(self):
        session, _ = make_session()
        self.assertEqual(len(session.view.rows), 3)

        type_keys(session, ['/', 'g', 'i', 't'])
        self.assertEqual(session.state.focus, Focus.SEARCH_BAR)
        self.assertEqual(session.state.search_query, "git")
        self.assertEqual([r.index for r in session.view.rows], [0, 2])

        type_keys(session, [KEY_CTRL_W])
        self.assertEqual(session.state.search_query, "")
        self.assertEqual(len(session.view.rows), 3)

    def test_every_keystroke_rebuilds(self):
        session, _ = make_session()
        type_keys(session, [KEY_CTRL_F, 'G', 'o'])
        self.assertEqual([r.issuer for r in session.view.rows], ["Google"])
        type_keys(session, [curses.KEY_BACKSPACE])
        self.assertEqual(session.state.search_query, "G")
        self.assertEqual(len(session.view.rows), 3)

    def test_leaving_search_bar_keeps_query(self):
        session, _ = make_session()
        type_keys(session, ['/', 'm', KEY_ESC])
        self.assertEqual(session.state.focus, Focus.MAIN_PAGE)
        self.assertEqual(session.state.search_query, "m")
        self.assertTrue(session.running)

    def test_no_match_clears_selection(self):
        session, _ = make_session()
        type_keys(session, ['/', 'z', 'z'])
        self.assertIsNone(session.view.selected)


class TestPopupWorkflow(unittest.TestCase):

    def test_delete_confirm(self):
        session, _ = make_session()
        type_keys(session, [curses.KEY_DOWN, 'd'])
        self.assertEqual(session.state.focus, Focus.POPUP)
        self.assertEqual(session.state.pending_action, Delete(1))
        self.assertIn("Google - bob", session.state.popup_text)

        type_keys(session, ['y'])
        self.assertEqual(len(session.store), 2)
        self.assertTrue(session.dirty)
        self.assertEqual(session.state.focus, Focus.MAIN_PAGE)
        self.assertEqual([r.issuer for r in session.view.rows], ["GitHub", "Mail"])

    def test_delete_cancel(self):
        session, _ = make_session()
        type_keys(session, [curses.KEY_DOWN, 'd', 'n'])
        self.assertEqual(len(session.store), 3)
        self.assertFalse(session.dirty)
        self.assertEqual(session.state.focus, Focus.MAIN_PAGE)
        self.assertIsNone(session.state.pending_action)

    def test_deleting_last_selected_row_reclamps(self):
        session, _ = make_session()
        type_keys(session, [curses.KEY_DOWN, curses.KEY_DOWN, 'd', 'y'])
        self.assertEqual(session.view.selected, 1)
        type_keys(session, ['d', 'y', 'd', 'y'])
        self.assertEqual(len(session.store), 0)
        self.assertIsNone(session.view.selected)
        # Nothing selected: no popup can be opened
        type_keys(session, ['d'])
        self.assertEqual(session.state.focus, Focus.MAIN_PAGE)

    def test_stale_action_reports_error_without_dirtying(self):
        session, _ = make_session()
        session.state.open_popup("Do you want to delete?", Delete(9))
        type_keys(session, ['y'])
        self.assertFalse(session.dirty)
        self.assertEqual(session.state.focus, Focus.MAIN_PAGE)
        self.assertFalse(session.state.print_percentage)
        self.assertTrue(session.state.label_text.startswith("Error:"))
        self.assertEqual(len(session.store), 3)

    def test_edit_confirm_commits_staged_record(self):
        editor = MagicMock(side_effect=lambda record: replace(record, label="alice@work"))
        session, _ = make_session(editor=editor)
        type_keys(session, ['e'])
        action = session.state.pending_action
        self.assertIsInstance(action, Edit)
        self.assertEqual(action.index, 0)
        self.assertEqual(session.store.elements()[0].label, "alice")

        type_keys(session, ['y'])
        self.assertEqual(session.store.elements()[0].label, "alice@work")
        self.assertEqual(session.view.rows[0].label, "alice@work")
        self.assertTrue(session.dirty)

    def test_edit_aborted_by_editor_opens_no_popup(self):
        session, _ = make_session(editor=MagicMock(return_value=None))
        type_keys(session, ['e'])
        self.assertEqual(session.state.focus, Focus.MAIN_PAGE)

    def test_edit_without_editor(self):
        session, _ = make_session()
        type_keys(session, ['e'])
        self.assertEqual(session.state.focus, Focus.MAIN_PAGE)
        self.assertEqual(session.state.label_text, "Editing is not available")

    def test_popup_requires_action(self):
        with self.assertRaises(ValueError):
            Popup("Are you sure?", None)

    def test_popup_focus_always_has_action(self):
        keys = [ord(c) for c in "dyneq/gi+-k?"] + [curses.KEY_UP, curses.KEY_DOWN, KEY_ESC, KEY_CTRL_W, 10]
        rng = random.Random(1234)
        for _ in range(50):
            editor = MagicMock(side_effect=lambda record: replace(record, issuer=record.issuer + "!"))
            session, _ = make_session(editor=editor)
            for _ in range(40):
                session.handle_key(rng.choice(keys))
                if session.state.focus == Focus.POPUP:
                    self.assertIsNotNone(session.state.pending_action)
                selected = session.view.selected
                if selected is not None:
                    self.assertLess(selected, len(session.view.rows))
                if not session.running:
                    break


class TestNavigation(unittest.TestCase):

    def test_qrcode_page_needs_selection(self):
        session, _ = make_session()
        type_keys(session, ['k'])
        self.assertEqual(session.state.page, Page.QRCODE)
        type_keys(session, ['x'])
        self.assertEqual(session.state.page, Page.MAIN)
        self.assertEqual(session.state.focus, Focus.MAIN_PAGE)

        empty, _ = make_session(records=[])
        type_keys(empty, ['k'])
        self.assertEqual(empty.state.page, Page.MAIN)

    def test_info_page_and_back(self):
        session, _ = make_session()
        type_keys(session, ['i'])
        self.assertEqual(session.state.page, Page.INFO)
        type_keys(session, ['q'])
        self.assertEqual(session.state.page, Page.MAIN)
        self.assertTrue(session.running)

    def test_quit_from_every_state(self):
        for prefix in ([], ['/'], ['d'], ['k'], ['i']):
            session, _ = make_session()
            type_keys(session, prefix + [KEY_CTRL_C])
            self.assertFalse(session.running, prefix)

        session, _ = make_session()
        type_keys(session, ['q'])
        self.assertFalse(session.running)

    def test_counter_only_for_hotp(self):
        session, _ = make_session()
        type_keys(session, ['+'])
        self.assertFalse(session.dirty)
        self.assertEqual(session.state.label_text, "Only HOTP codes have a counter")

        type_keys(session, [curses.KEY_DOWN, '+'])
        self.assertTrue(session.dirty)
        self.assertEqual(session.store.elements()[1].counter, 1)
        self.assertEqual(session.view.rows[1].code, "287082")

        type_keys(session, ['-'])
        self.assertEqual(session.view.rows[1].code, "755224")


class TestClipboardAndTick(unittest.TestCase):

    def test_enter_copies_selected_code(self):
        session, clipboard = make_session()
        type_keys(session, [curses.KEY_DOWN, 10])
        clipboard.assert_called_once_with("755224")
        self.assertEqual(session.state.label_text, "Copied!")
        self.assertFalse(session.state.print_percentage)

        type_keys(session, [curses.KEY_UP])
        self.assertTrue(session.state.print_percentage)

    def test_clipboard_failure_is_not_fatal(self):
        session, clipboard = make_session()
        clipboard.side_effect = pyperclip.PyperclipException("no clipboard")
        type_keys(session, [10])
        self.assertTrue(session.running)
        self.assertEqual(session.state.label_text, "Cannot copy to the clipboard")

    def test_tick_rebuilds_only_on_wrap(self):
        # First sample is taken when the clock is built
        session, _ = make_session(clock_samples=[40, 70, 95, 10])
        session.view.refresh = MagicMock()
        session.tick()
        session.tick()
        session.view.refresh.assert_not_called()
        session.tick()
        session.view.refresh.assert_called_once_with(session.store, "", force=True)

    def test_forced_tick_rebuilds(self):
        session, _ = make_session()
        session.view.refresh = MagicMock()
        session.tick(force=True)
        session.view.refresh.assert_called_once()


if __name__ == '__main__':
    unittest.main()
