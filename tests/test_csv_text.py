from __future__ import annotations

import unittest

from app.parsing.csv_text import read_csv_text, sniff_delimiter


class TestSniffDelimiter(unittest.TestCase):
    def test_picks_most_frequent_candidate(self) -> None:
        self.assertEqual(sniff_delimiter("ID;Server;Timestamp"), ";")
        self.assertEqual(sniff_delimiter("ID\tServer\tTimestamp"), "\t")
        self.assertEqual(sniff_delimiter("ID|Server|Name, Jr"), "|")

    def test_defaults_to_comma(self) -> None:
        self.assertEqual(sniff_delimiter("ID"), ",")


class TestReadCsvText(unittest.TestCase):
    def test_parses_semicolon_export_with_bom_and_crlf(self) -> None:
        text = "\ufeffID;Server;Name\r\n1; EU5 ;Hero\r\n\r\n2;EU5;\"A;B\"\r\n"
        table = read_csv_text(text)

        self.assertEqual(table.headers, ["ID", "Server", "Name"])
        self.assertEqual(
            table.rows,
            [
                {"ID": "1", "Server": "EU5", "Name": "Hero"},
                {"ID": "2", "Server": "EU5", "Name": "A;B"},
            ],
        )

    def test_blank_headers_get_positional_names_and_short_rows_pad(self) -> None:
        table = read_csv_text("ID,,Name\n1,x\n")
        self.assertEqual(table.headers, ["ID", "col1", "Name"])
        self.assertEqual(table.rows, [{"ID": "1", "col1": "x", "Name": ""}])

    def test_empty_text_has_no_headers(self) -> None:
        self.assertEqual(read_csv_text("  \n").headers, [])


if __name__ == "__main__":
    unittest.main()
