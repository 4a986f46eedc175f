"""Tests for the preview surface helpers."""

import subprocess
from unittest.mock import MagicMock, patch

import pytest

from queueprint.errors import DeliveryError
from queueprint.preview import TkPreviewSurface, rasterize_first_page


class TestRasterizeFirstPage:
    """Tests for pdftoppm rasterization."""

    def test_command(self, tmp_path):
        """The first page is rendered to a single PNG."""
        with patch("subprocess.run", return_value=MagicMock(returncode=0)) as mock_run:
            image = rasterize_first_page(tmp_path / "label.pdf", tmp_path, dpi=72)

        cmd = mock_run.call_args[0][0]
        assert cmd[0] == "pdftoppm"
        assert "-singlefile" in cmd
        assert cmd[cmd.index("-r") + 1] == "72"
        assert image == tmp_path / "preview.png"

    def test_missing_pdftoppm(self, tmp_path):
        """A missing binary is a delivery error."""
        with patch("subprocess.run", side_effect=FileNotFoundError):
            with pytest.raises(DeliveryError, match="pdftoppm not found"):
                rasterize_first_page(tmp_path / "label.pdf", tmp_path)

    def test_timeout(self, tmp_path):
        """A hung rasterizer is a delivery error."""
        with patch("subprocess.run", side_effect=subprocess.TimeoutExpired("pdftoppm", 30)):
            with pytest.raises(DeliveryError, match="timed out"):
                rasterize_first_page(tmp_path / "label.pdf", tmp_path)

    def test_failure(self, tmp_path):
        """A non-zero exit is a delivery error."""
        with patch("subprocess.run", return_value=MagicMock(returncode=1, stderr="bad pdf")):
            with pytest.raises(DeliveryError, match="bad pdf"):
                rasterize_first_page(tmp_path / "label.pdf", tmp_path)


class TestTkPreviewSurface:
    """Tests for surface behaviour that does not need a display."""

    def test_print_before_load(self, fake_printer):
        """Printing an empty surface fails."""
        with pytest.raises(DeliveryError, match="Nothing loaded"):
            TkPreviewSurface().print(fake_printer, "Zebra", None)

    def test_print_waits_for_completion(self, fake_printer, tmp_path):
        """The loaded document is submitted with wait=True."""
        surface = TkPreviewSurface()
        surface._source = tmp_path / "label.pdf"

        assert surface.print(fake_printer, "Zebra", None) is True
        assert fake_printer.calls[0]["wait"] is True
        assert fake_printer.calls[0]["printer_name"] == "Zebra"

    def test_render_error_is_raised(self):
        """Errors on the window thread surface from wait_until_rendered."""
        surface = TkPreviewSurface()
        surface._error = RuntimeError("no display")
        surface._rendered.set()

        with pytest.raises(DeliveryError, match="no display"):
            surface.wait_until_rendered(0.01)

    def test_render_timeout(self):
        """No render signal within the timeout returns False."""
        assert TkPreviewSurface().wait_until_rendered(0.01) is False

    def test_close_without_load(self):
        """Closing an unused surface is harmless."""
        TkPreviewSurface().close()
