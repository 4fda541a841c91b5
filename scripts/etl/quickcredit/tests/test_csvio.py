import unittest
from pathlib import Path
from tempfile import TemporaryDirectory

from scripts.etl.quickcredit.csvio import parse_text, pick, read_rows


class TestParseText(unittest.TestCase):
    def test_quoted_commas_and_doubled_quotes(self):
        rows = parse_text('Name,Amount,Notes\n"Doe, John","1,200,000","said ""hi"""\n')
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0]["Name"], "Doe, John")
        self.assertEqual(rows[0]["Amount"], "1,200,000")
        self.assertEqual(rows[0]["Notes"], 'said "hi"')

    def test_headers_trimmed_and_blank_lines_skipped(self):
        rows = parse_text(" Loan ID , Amount \n\nL001,500\n,\n\nL002,700\n")
        self.assertEqual([r["Loan ID"] for r in rows], ["L001", "L002"])
        self.assertEqual(rows[1]["Amount"], "700")

    def test_missing_trailing_cells_read_as_empty(self):
        rows = parse_text("A,B,C\n1\n")
        self.assertEqual(rows[0], {"A": "1", "B": "", "C": ""})

    def test_bom_stripped(self):
        rows = parse_text("\ufeffBorrower ID,Name\nB001,Jane\n")
        self.assertIn("Borrower ID", rows[0])

    def test_empty_text(self):
        self.assertEqual(parse_text(""), [])


class TestReadRows(unittest.TestCase):
    def test_reads_utf8_sig_file(self):
        with TemporaryDirectory() as tmp:
            path = Path(tmp) / "Borrowers.csv"
            path.write_text("Name,District\r\nAkello Grace,Gulu\r\n", encoding="utf-8-sig")
            rows = read_rows(path)
        self.assertEqual(rows, [{"Name": "Akello Grace", "District": "Gulu"}])


class TestPick(unittest.TestCase):
    def test_first_non_empty_alias_wins(self):
        row = {"Phone Number": "  ", "Phone": " 0772 123456 "}
        self.assertEqual(pick(row, "Phone Number", "Phone"), "0772 123456")

    def test_default_when_all_blank(self):
        self.assertEqual(pick({"Name": ""}, "Name", "Full Name", default="Unknown"), "Unknown")
        self.assertEqual(pick({}, "Missing"), "")


if __name__ == "__main__":
    unittest.main()
