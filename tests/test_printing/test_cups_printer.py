"""Tests for the CUPS printing backend and label layout."""

import subprocess
from unittest.mock import MagicMock, patch

import pytest

from queueprint.printing import cups_printer
from queueprint.printing.base import LABEL_LAYOUT, PrinterError, PrintLayout
from queueprint.printing.cups_printer import CupsPrinter, cups_options


@pytest.fixture
def lp_printer(monkeypatch):
    """CupsPrinter forced onto the lp command fallback."""
    monkeypatch.setattr(cups_printer, "CUPS_AVAILABLE", False)
    return CupsPrinter("Label_Printer")


class TestPrintLayout:
    """Tests for label layout options."""

    def test_default_label(self):
        """The default label is 4x6.5in, one borderless monochrome portrait copy."""
        assert LABEL_LAYOUT.media == "Custom.4x6.5in"
        assert LABEL_LAYOUT.copies == 1
        assert LABEL_LAYOUT.landscape is False
        assert LABEL_LAYOUT.monochrome is True
        assert LABEL_LAYOUT.borderless is True

    def test_overrides(self):
        """Per-job overrides produce a new layout."""
        layout = LABEL_LAYOUT.with_overrides(copies=2, paper_size="A6", orientation="Landscape")

        assert layout.copies == 2
        assert layout.media == "A6"
        assert layout.landscape is True
        assert LABEL_LAYOUT.copies == 1

    def test_no_overrides(self):
        """Empty overrides keep the layout."""
        assert LABEL_LAYOUT.with_overrides() == LABEL_LAYOUT

    def test_cups_options(self):
        """Layouts translate to CUPS job options."""
        options = cups_options(LABEL_LAYOUT)

        assert options["copies"] == "1"
        assert options["media"] == "Custom.4x6.5in"
        assert options["orientation-requested"] == "3"
        assert options["print-color-mode"] == "monochrome"
        assert options["page-left"] == "0"

    def test_cups_options_landscape_color(self):
        """Landscape and color layouts drop the monochrome and margin options."""
        options = cups_options(PrintLayout(landscape=True, monochrome=False, borderless=False))

        assert options["orientation-requested"] == "4"
        assert "print-color-mode" not in options
        assert "page-left" not in options


class TestLpFallback:
    """Tests for printing through the lp command."""

    def test_print_file_builds_lp_command(self, lp_printer, tmp_path):
        """The lp command carries the printer, copies and layout options."""
        label = tmp_path / "label.pdf"
        label.write_bytes(b"%PDF")

        with patch("subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(returncode=0, stdout="request id is Label_Printer-12")
            assert lp_printer.print_file(label, "Zebra", layout=PrintLayout(copies=2)) is True

        cmd = mock_run.call_args[0][0]
        assert cmd[0] == "lp"
        assert cmd[cmd.index("-d") + 1] == "Zebra"
        assert cmd[cmd.index("-n") + 1] == "2"
        assert "media=Custom.4x6.5in" in cmd
        assert cmd[-1] == str(label)

    def test_lp_failure(self, lp_printer, tmp_path):
        """A non-zero lp exit raises PrinterError."""
        with patch("subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(returncode=1, stderr="unknown printer")
            with pytest.raises(PrinterError, match="unknown printer"):
                lp_printer.print_file(tmp_path / "label.pdf", "Nope")

    def test_lp_missing(self, lp_printer, tmp_path):
        """A missing lp binary raises PrinterError."""
        with patch("subprocess.run", side_effect=FileNotFoundError):
            with pytest.raises(PrinterError, match="lp command not found"):
                lp_printer.print_file(tmp_path / "label.pdf", "Zebra")

    def test_lp_timeout(self, lp_printer, tmp_path):
        """A hung lp command raises PrinterError."""
        with patch("subprocess.run", side_effect=subprocess.TimeoutExpired("lp", 30)):
            with pytest.raises(PrinterError, match="timed out"):
                lp_printer.print_file(tmp_path / "label.pdf", "Zebra")

    def test_get_printers_from_lpstat(self, lp_printer):
        """lpstat output is parsed into printer dicts."""
        stdout = "printer Zebra is idle.\nprinter Office is idle.\n"
        with patch("subprocess.run", return_value=MagicMock(stdout=stdout)):
            names = [p["name"] for p in lp_printer.get_printers()]

        assert names == ["Zebra", "Office"]

    def test_default_printer_from_lpstat(self, lp_printer):
        """lpstat -d output yields the default printer."""
        stdout = "system default destination: Zebra\n"
        with patch("subprocess.run", return_value=MagicMock(stdout=stdout)):
            assert lp_printer.get_default_printer() == "Zebra"


class TestCupsConnection:
    """Tests for printing through a pycups connection."""

    @pytest.fixture
    def printer(self, monkeypatch):
        monkeypatch.setattr(cups_printer, "JOB_POLL_INTERVAL", 0)
        printer = CupsPrinter.__new__(CupsPrinter)
        printer.printer_name = "Zebra"
        printer._connection = MagicMock()
        printer._connection.printFile.return_value = 42
        return printer

    def test_submit_without_wait(self, printer, tmp_path):
        """Submission returns as soon as CUPS accepts the job."""
        assert printer.print_file(tmp_path / "label.pdf", "Zebra") is True

        name, path, title, options = printer._connection.printFile.call_args[0]
        assert name == "Zebra"
        assert options["media"] == "Custom.4x6.5in"
        printer._connection.getJobAttributes.assert_not_called()

    def test_wait_for_completion(self, printer, tmp_path):
        """With wait, the job is polled until it completes."""
        printer._connection.getJobAttributes.side_effect = [
            {"job-state": 5},
            {"job-state": 9},
        ]

        assert printer.print_file(tmp_path / "label.pdf", "Zebra", wait=True) is True
        assert printer._connection.getJobAttributes.call_count == 2

    def test_wait_for_aborted_job(self, printer, tmp_path):
        """Canceled or aborted jobs report failure."""
        printer._connection.getJobAttributes.return_value = {"job-state": 8}

        assert printer.print_file(tmp_path / "label.pdf", "Zebra", wait=True) is False

    def test_printer_status(self, printer):
        """CUPS printer states map to status strings."""
        printer._connection.getPrinters.return_value = {"Zebra": {"printer-state": 5}}

        assert printer.get_printer_status("Zebra") == "offline"
        assert printer.get_printer_status("Missing") == "offline"
