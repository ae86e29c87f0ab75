"""
Tests for the detection registry and the batch view.
"""

import unittest

from tests.test_framework import BaseTestCase, page_html, table_html
from controller.batch import BatchGrouper
from controller.registry import DetectionRegistry, ADDED, UPDATED, REMOVED
from extraction.detector import TableDetector
from extraction.dom import HostDocument
from utils.errors import DetachedElementError


def numbered_table(number: int, key: str = None) -> str:
    attrs = f'id="t{number}"' + (f' data-tw-key="{key}"' if key else "")
    return table_html(["Item", "Value"], [[f"item {number}", str(number)]], attrs=attrs)


class FailingDetector(TableDetector):
    """Detector whose scan always fails."""

    def find_tables(self, document, source=None):
        raise RuntimeError("scan exploded")


class ForgetfulDetector(TableDetector):
    """Detector that stops reporting tables after the first scan."""

    def __init__(self, settings):
        super().__init__(settings)
        self.calls = 0

    def find_tables(self, document, source=None):
        self.calls += 1
        if self.calls == 1:
            return super().find_tables(document, source)
        return []

    def extract(self, document, element):
        raise DetachedElementError(document.key_for(element))


class TestDetectionRegistry(BaseTestCase):
    """Test case for rescan reconciliation."""

    def test_three_tables_then_one_removed(self):
        document = self.make_document(numbered_table(1), numbered_table(2), numbered_table(3))
        registry = DetectionRegistry(document, self.settings)

        events = registry.rescan()

        self.assertEqual(len(registry), 3)
        self.assertEqual([event.kind for event in events], [ADDED] * 3)

        document.remove("#t2")
        events = registry.rescan()

        self.assertEqual(len(registry), 2)
        self.assertEqual([event.kind for event in events], [REMOVED])
        self.assertEqual(events[0].result.data.rows, [["item 2", "2"]])

    def test_rescan_is_idempotent(self):
        document = self.make_document(numbered_table(1), numbered_table(2))
        registry = DetectionRegistry(document, self.settings)
        registry.rescan()
        ids = [table.id for table in registry.tables()]

        events = registry.rescan()

        self.assertEqual(events, [])
        self.assertEqual([table.id for table in registry.tables()], ids)

    def test_hidden_table_removed(self):
        document = self.make_document(numbered_table(1))
        registry = DetectionRegistry(document, self.settings)
        registry.rescan()

        document.set_attribute("#t1", "style", "display:none")
        events = registry.rescan()

        self.assertEqual([event.kind for event in events], [REMOVED])
        self.assertEqual(len(registry), 0)

    def test_content_change_updates_in_place(self):
        document = self.make_document(numbered_table(1))
        registry = DetectionRegistry(document, self.settings)
        registry.rescan()
        table = document.select_one("#t1")
        original = registry.get(table)

        document.set_text(table.select("td")[1], "99")
        events = registry.rescan()

        self.assertEqual([event.kind for event in events], [UPDATED])
        updated = registry.get(table)
        self.assertEqual(updated.id, original.id)
        self.assertEqual(updated.rows, [["item 1", "99"]])
        self.assertEqual(len(registry), 1)

    def test_streamed_prose_replaced_by_table(self):
        document = self.make_document(
            '<div data-message-author-role="assistant"><div class="markdown">'
            "<p>| A | B |\n|---|---|\n| 1 | 2 |\n| 3 | 4 |</p>"
            "</div></div>",
            url="https://chatgpt.com/c/1",
        )
        registry = DetectionRegistry(document, self.settings)
        registry.rescan()
        self.assertEqual([result.element.name for result in registry.results()], ["div"])

        document.remove(".markdown p")
        document.append_html(table_html(["A", "B"], [["1", "2"], ["3", "4"]]), parent=".markdown")
        events = registry.rescan()

        self.assertEqual(sorted(event.kind for event in events), [ADDED, REMOVED])
        self.assertEqual([result.element.name for result in registry.results()], ["table"])
        self.assertEqual(BatchGrouper(registry, self.settings).snapshot().count, 1)

    def test_emptied_table_removed(self):
        document = self.make_document(numbered_table(1), numbered_table(2))
        registry = DetectionRegistry(document, self.settings)
        registry.rescan()

        document.set_text("#t1", "")
        events = registry.rescan()

        self.assertEqual([event.kind for event in events], [REMOVED])
        self.assertEqual(events[0].result.data.rows, [["item 1", "1"]])
        self.assertEqual(len(registry), 1)

    def test_snapshot_reload_keeps_tracking(self):
        html = page_html(numbered_table(1, key="10"), numbered_table(2, key="11"))
        document = HostDocument(html, "https://example.com")
        registry = DetectionRegistry(document, self.settings)
        registry.rescan()
        ids = [table.id for table in registry.tables()]

        document.load(html)
        events = registry.rescan()

        self.assertEqual(events, [])
        self.assertEqual([table.id for table in registry.tables()], ids)
        self.assertTrue(registry.has_table(document.select_one("#t1")))

    def test_snapshot_reload_without_table(self):
        document = HostDocument(page_html(numbered_table(1, key="10"), numbered_table(2, key="11")))
        registry = DetectionRegistry(document, self.settings)
        registry.rescan()

        document.load(page_html(numbered_table(2, key="11")))
        events = registry.rescan()

        self.assertEqual([event.kind for event in events], [REMOVED])
        self.assertEqual(events[0].key, "k10")
        self.assertEqual(len(registry), 1)

    def test_queries(self):
        document = self.make_document(numbered_table(1), "<p>text</p>")
        registry = DetectionRegistry(document, self.settings)
        registry.rescan()
        table = document.select_one("table")

        self.assertTrue(registry.has_table(table))
        self.assertFalse(registry.has_table(document.select_one("p")))
        self.assertIsNone(registry.get(document.select_one("p")))
        result = registry.get_by_id(registry.get(table).id)
        self.assertIs(result.element, table)
        self.assertIsNone(registry.get_by_id("table_0_0"))

    def test_listener_receives_events(self):
        document = self.make_document(numbered_table(1))
        registry = DetectionRegistry(document, self.settings)
        received = []
        remove = registry.add_listener(received.append)

        registry.rescan("manual")
        registry.rescan("manual")
        remove()
        document.remove("#t1")
        registry.rescan("manual")

        self.assertEqual(len(received), 1)
        self.assertEqual(received[0][0].kind, ADDED)
        self.assertEqual(received[0][0].reason, "manual")
        self.assertEqual(received[0][0].to_dict()["event"], "added")

    def test_failing_listener_isolated(self):
        document = self.make_document(numbered_table(1))
        registry = DetectionRegistry(document, self.settings)
        received = []

        def broken(events):
            raise RuntimeError("listener bug")

        registry.add_listener(broken)
        registry.add_listener(received.append)

        events = registry.rescan()

        self.assertEqual(len(events), 1)
        self.assertEqual(len(received), 1)

    def test_detector_failure_logged(self):
        document = self.make_document(numbered_table(1))
        registry = DetectionRegistry(document, self.settings, detector=FailingDetector(self.settings))

        with self.assertLogs("controller.registry", level="ERROR"):
            events = registry.rescan()

        self.assertEqual(events, [])
        self.assertEqual(len(registry), 0)

    def test_detached_during_reextract_removed(self):
        document = self.make_document(numbered_table(1))
        registry = DetectionRegistry(document, self.settings, detector=ForgetfulDetector(self.settings))
        registry.rescan()

        events = registry.rescan()

        self.assertEqual([event.kind for event in events], [REMOVED])
        self.assertEqual(len(registry), 0)

    def test_clear(self):
        document = self.make_document(numbered_table(1), numbered_table(2))
        registry = DetectionRegistry(document, self.settings)
        registry.rescan()

        events = registry.clear()

        self.assertEqual([event.kind for event in events], [REMOVED, REMOVED])
        self.assertEqual(len(registry), 0)


class TestBatchGrouper(BaseTestCase):
    """Test case for the batch view."""

    def test_threshold(self):
        document = self.make_document(numbered_table(1))
        registry = DetectionRegistry(document, self.settings)
        grouper = BatchGrouper(registry, self.settings)
        registry.rescan()

        self.assertFalse(grouper.is_batch_available())
        self.assertTrue(grouper.is_batch_available(min_count=1))

        document.append_html(numbered_table(2))
        registry.rescan()

        self.assertTrue(grouper.is_batch_available())

    def test_snapshot(self):
        document = self.make_document(numbered_table(1), numbered_table(2), url="https://chatgpt.com/c/1")
        document.append_html(
            f'<div data-message-author-role="assistant">{numbered_table(3)}</div>'
        )
        registry = DetectionRegistry(document, self.settings)
        registry.rescan()

        batch = BatchGrouper(registry, self.settings).snapshot()

        self.assertEqual(batch.count, 1)
        self.assertEqual(batch.source, "chatgpt")
        self.assertEqual(batch.chat_title, "ChatGPT_Chat")
        self.assertEqual(batch.to_dict()["count"], 1)
        self.assertEqual(batch.tables[0].data.rows, [["item 3", "3"]])

    def test_snapshot_carries_elements_and_positions(self):
        document = self.make_document(
            numbered_table(1).replace("<table ", '<table data-tw-x="12" data-tw-y="40" ')
        )
        registry = DetectionRegistry(document, self.settings)
        registry.rescan()

        batch = BatchGrouper(registry, self.settings).snapshot()

        result = batch.tables[0]
        self.assertIs(result.element, document.select_one("#t1"))
        self.assertEqual(result.position, {"x": 12.0, "y": 40.0})
        self.assertEqual(batch.to_dict()["tables"][0]["position"], {"x": 12.0, "y": 40.0})

    def test_watch(self):
        document = self.make_document(numbered_table(1))
        registry = DetectionRegistry(document, self.settings)
        batches = []
        stop = BatchGrouper(registry, self.settings).watch(batches.append)

        registry.rescan()
        document.append_html(numbered_table(2))
        registry.rescan()
        stop()
        document.append_html(numbered_table(3))
        registry.rescan()

        self.assertEqual([batch.count for batch in batches], [1, 2])


if __name__ == "__main__":
    unittest.main()
