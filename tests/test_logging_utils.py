import json
import logging
import unittest

from heritage_catalog import PROCESSING_ERROR, SKIPPED_INVALID, RowDiagnostic
from logging_utils import log_event, log_row_diagnostics


def _payload(line: str) -> dict:
    return json.loads(line.split(":", 2)[2])


class LogEventTests(unittest.TestCase):
    def setUp(self) -> None:
        self.logger = logging.getLogger("heritage.tests")

    def test_event_keeps_non_ascii_names_readable(self) -> None:
        with self.assertLogs(self.logger, level=logging.INFO) as logs:
            log_event(self.logger, logging.INFO, "catalog_built", city="Agra", note="Taj Mahal…")

        self.assertIn("Taj Mahal…", logs.output[0])
        self.assertEqual(
            _payload(logs.output[0]),
            {"event": "catalog_built", "city": "Agra", "note": "Taj Mahal…"},
        )

    def test_diagnostics_map_to_levels_and_events(self) -> None:
        diagnostics = [
            RowDiagnostic(2, ["Delhi", "", "10"], SKIPPED_INVALID, "empty required fields: monument"),
            RowDiagnostic(5, ["Goa"], PROCESSING_ERROR, "RuntimeError: corrupt cell"),
        ]

        with self.assertLogs(self.logger, level=logging.WARNING) as logs:
            emitted = log_row_diagnostics(self.logger, diagnostics)

        self.assertEqual(emitted, 2)
        self.assertEqual([record.levelno for record in logs.records], [logging.WARNING, logging.ERROR])
        first, second = (_payload(line) for line in logs.output)
        self.assertEqual(first["event"], "row_skipped_invalid")
        self.assertEqual(first["index"], 2)
        self.assertEqual(first["row"], ["Delhi", "", "10"])
        self.assertEqual(second["event"], "row_processing_error")
        self.assertEqual(second["reason"], "RuntimeError: corrupt cell")


if __name__ == "__main__":
    unittest.main()
