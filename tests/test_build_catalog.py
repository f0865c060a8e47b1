import json
import logging
import tempfile
import unittest
from contextlib import redirect_stdout
from io import StringIO
from pathlib import Path

import pandas as pd

from build_catalog import build_heritage_catalog, main
from catalog_config import DEFAULT_METRIC_CONFIG
from image_service import ImageResolver

ROWS = [
    ["Agra", "Taj Mahal", "4429710"],
    ["Agra", "Agra Fort", "1603208"],
    ["Delhi", "Red Fort", "2157812"],
    ["Goa", "Se Cathedral", "610938"],
    ["Goa", "", "12"],
    ["Pune", "Shaniwar Wada", "many"],
    ["Total", "", "8801680"],
]


class BuildCatalogScriptTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.root = Path(self.tmp.name)
        self.dataset = self.root / "monuments.json"
        self.dataset.write_text(json.dumps({"data": ROWS}), encoding="utf-8")

    def test_build_logs_skipped_rows(self) -> None:
        with self.assertLogs("build_catalog", level=logging.WARNING) as logs:
            result = build_heritage_catalog(
                dataset=str(self.dataset),
                cache_file=None,
                config=DEFAULT_METRIC_CONFIG,
                resolver=ImageResolver(local_cities=set(), curated={}),
            )

        self.assertEqual(result.source, "local")
        self.assertEqual([record.name for record in result.catalog], ["Agra", "Delhi", "Goa"])
        self.assertEqual([item.index for item in result.diagnostics], [4, 5])
        self.assertEqual(result.summary["total_cities"], 3)
        self.assertEqual(result.summary["cities_with_custom_images"], 0)
        self.assertEqual(len(logs.records), 2)
        self.assertIn("row_skipped_invalid", logs.output[0])
        self.assertIn('"index": 4', logs.output[0])

    def test_main_writes_csv_export(self) -> None:
        output_dir = self.root / "out"
        with redirect_stdout(StringIO()) as stdout:
            code = main(
                [
                    "--dataset",
                    str(self.dataset),
                    "--output-dir",
                    str(output_dir),
                    "--metrics",
                    "reference_visitors=6000000",
                    "--log-level",
                    "ERROR",
                ]
            )

        self.assertEqual(code, 0)
        frame = pd.read_csv(output_dir / "heritage_catalog.csv")
        self.assertEqual(frame["name"].tolist(), ["Agra", "Delhi", "Goa"])
        self.assertEqual(frame["popularity_score"].tolist(), [100, 36, 10])
        self.assertEqual(frame["is_new"].tolist(), [True, True, True])
        self.assertIn("Cities: 3", stdout.getvalue())

    def test_main_writes_json_export(self) -> None:
        output_dir = self.root / "out"
        with redirect_stdout(StringIO()):
            main(
                [
                    "--dataset",
                    str(self.dataset),
                    "--output-dir",
                    str(output_dir),
                    "--output",
                    "catalog.json",
                    "--log-level",
                    "ERROR",
                ]
            )

        exported = json.loads((output_dir / "catalog.json").read_text(encoding="utf-8"))
        self.assertEqual(exported[0]["name"], "Agra")
        self.assertEqual(exported[0]["travelers"], "6.0M")

    def test_invalid_arguments_exit(self) -> None:
        with self.assertRaises(SystemExit):
            main(["--dataset", str(self.dataset), "--output", "catalog.xlsx"])
        with self.assertRaises(SystemExit):
            main(["--dataset", str(self.dataset), "--metrics", "cost_base=cheap"])
        with self.assertRaises(SystemExit):
            main(["--dataset", str(self.root / "missing.json"), "--output-dir", str(self.root)])


if __name__ == "__main__":
    unittest.main()
