import unittest

from otpview.errors import ComputationError
from otpview.filtered_view import CODE_PLACEHOLDER, FilteredView
from otpview.store import CredentialRecord, CredentialStore

SECRET = "GEZDGNBVGY3TQOJQGEZDGNBVGY3TQOJQ"


def make_records():
    return [
        CredentialRecord(issuer="GitHub", label="alice", secret=SECRET),
        CredentialRecord(issuer="Google", label="bob", secret=SECRET),
        CredentialRecord(issuer="Mail", label="git-ops", secret=SECRET),
    ]


class TestFilteredViewRebuild(unittest.TestCase):

    def test_empty_query_keeps_store_order(self):
        view = FilteredView()
        rows = view.rebuild(make_records(), "")
        self.assertEqual([r.index for r in rows], [0, 1, 2])
        self.assertEqual([r.issuer for r in rows], ["GitHub", "Google", "Mail"])

    def test_query_matches_issuer_or_label_case_insensitively(self):
        view = FilteredView()
        rows = view.rebuild(make_records(), "GIT")
        self.assertEqual([r.index for r in rows], [0, 2])

        rows = view.rebuild(make_records(), "Bo")
        self.assertEqual([r.label for r in rows], ["bob"])

    def test_filter_matches_brute_force_for_many_queries(self):
        records = make_records()
        view = FilteredView()
        for query in ["", "g", "o", "li", "OPS", "xyz", "-", "mail"]:
            expected = [
                i for i, r in enumerate(records)
                if query.lower() in r.issuer.lower() or query.lower() in r.label.lower()
            ]
            self.assertEqual([r.index for r in view.rebuild(records, query)], expected, query)

    def test_failing_code_becomes_placeholder(self):
        def code_for(index):
            if index == 1:
                raise ComputationError("bad secret")
            return "123456"

        rows = FilteredView().rebuild(make_records(), "", code_for)
        self.assertEqual([r.code for r in rows], ["123456", CODE_PLACEHOLDER, "123456"])


class TestFilteredViewSelection(unittest.TestCase):

    def test_fresh_view_selects_first_row(self):
        view = FilteredView()
        view.rebuild(make_records(), "")
        self.assertEqual(view.selected, 0)

    def test_selection_is_clamped_after_rebuild(self):
        view = FilteredView()
        view.rebuild(make_records(), "")
        view.select_next()
        view.select_next()
        self.assertEqual(view.selected, 2)

        view.rebuild(make_records(), "git")
        self.assertEqual(view.selected, 1)
        self.assertEqual(view.selected_index(), 2)

    def test_empty_result_clears_selection(self):
        view = FilteredView()
        view.rebuild(make_records(), "")
        view.rebuild(make_records(), "nothing matches")
        self.assertIsNone(view.selected)
        self.assertIsNone(view.selected_row())
        self.assertIsNone(view.selected_index())

    def test_navigation_stays_in_bounds(self):
        view = FilteredView()
        view.rebuild(make_records(), "")
        view.select_previous()
        self.assertEqual(view.selected, 0)
        for _ in range(5):
            view.select_next()
        self.assertEqual(view.selected, 2)


class TestFilteredViewRefresh(unittest.TestCase):

    def test_refresh_is_cached_by_query_and_generation(self):
        store = CredentialStore(make_records())
        view = FilteredView()
        self.assertTrue(view.refresh(store, ""))
        self.assertFalse(view.refresh(store, ""))
        self.assertTrue(view.refresh(store, "git"))

        store.delete(0)
        self.assertTrue(view.refresh(store, "git"))
        self.assertEqual([r.index for r in view.rows], [1])

    def test_forced_refresh_recomputes(self):
        store = CredentialStore(make_records())
        view = FilteredView()
        view.refresh(store, "")
        self.assertTrue(view.refresh(store, "", force=True))

    def test_deleting_selected_last_row_reclamps(self):
        store = CredentialStore(make_records())
        view = FilteredView()
        view.refresh(store, "")
        view.select_next()
        view.select_next()
        store.delete(view.selected_index())
        view.refresh(store, "")
        self.assertEqual(view.selected, 1)

        store.delete(0)
        store.delete(0)
        view.refresh(store, "")
        self.assertIsNone(view.selected)


if __name__ == '__main__':
    unittest.main()
