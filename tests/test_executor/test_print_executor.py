"""Tests for label download and delivery."""

from unittest.mock import MagicMock

import pytest
import requests

from queueprint.errors import ConfigurationError, DeliveryError, RenderTimeoutError
from queueprint.executor import PrintExecutor, downloaded_artifact
from queueprint.printing.base import LABEL_LAYOUT, PrinterError, PrintLayout

PDF_BYTES = b"%PDF-1.4 label"
LABEL_URL = "https://labels.example.com/label.pdf"


class FakeSurface:
    """Preview surface that renders instantly (or never)."""

    def __init__(self, rendered=True, printed=True):
        self.rendered = rendered
        self.printed = printed
        self.loaded = None
        self.printed_with = None
        self.closed = False

    def load(self, path, layout):
        self.loaded = (path, path.exists(), layout)

    def wait_until_rendered(self, timeout):
        return self.rendered

    def print(self, printer, printer_name, layout):
        self.printed_with = (printer_name, layout)
        return self.printed

    def close(self):
        self.closed = True


@pytest.fixture
def session():
    """Session whose downloads return a small PDF."""
    session = MagicMock()
    session.get.return_value.content = PDF_BYTES
    return session


@pytest.fixture
def executor_factory(tmp_path, session, fake_printer):
    """Build executors writing temp files under tmp_path."""
    temp_dir = tmp_path / "spool"
    temp_dir.mkdir()

    def _build(**kwargs):
        kwargs.setdefault("printer", fake_printer)
        kwargs.setdefault("default_printer_name", "Label_Printer")
        kwargs.setdefault("temp_dir", temp_dir)
        kwargs.setdefault("session", session)
        kwargs.setdefault("settle_seconds", 0)
        return PrintExecutor(**kwargs)

    _build.temp_dir = temp_dir
    return _build


class TestDownloadedArtifact:
    """Tests for the temporary label file."""

    def test_file_removed_after_block(self, tmp_path, session):
        """The temp file exists inside the block and is gone after."""
        with downloaded_artifact(LABEL_URL, tmp_path, session) as path:
            assert path.read_bytes() == PDF_BYTES
            assert path.name.startswith("label-")
            assert path.suffix == ".pdf"

        assert not path.exists()

    def test_file_removed_on_error(self, tmp_path, session):
        """Errors inside the block still clean up."""
        with pytest.raises(RuntimeError):
            with downloaded_artifact(LABEL_URL, tmp_path, session) as path:
                raise RuntimeError("printer exploded")

        assert not path.exists()

    def test_unique_names(self, tmp_path, session):
        """Concurrent artifacts never share a file."""
        with downloaded_artifact(LABEL_URL, tmp_path, session) as first:
            with downloaded_artifact(LABEL_URL, tmp_path, session) as second:
                assert first != second

    def test_file_url(self, tmp_path):
        """file:// URLs are copied without HTTP."""
        source = tmp_path / "local label.pdf"
        source.write_bytes(PDF_BYTES)
        spool = tmp_path / "spool"
        spool.mkdir()

        with downloaded_artifact(source.as_uri(), spool) as path:
            assert path.read_bytes() == PDF_BYTES

        assert list(spool.iterdir()) == []

    def test_download_error(self, tmp_path, session):
        """HTTP failures become DeliveryError."""
        session.get.side_effect = requests.ConnectionError("no route")

        with pytest.raises(DeliveryError, match="no route"):
            with downloaded_artifact(LABEL_URL, tmp_path, session):
                pass

        assert list(tmp_path.iterdir()) == []

    def test_http_status_error(self, tmp_path, session):
        """Non-2xx responses become DeliveryError."""
        session.get.return_value.raise_for_status.side_effect = requests.HTTPError("404")

        with pytest.raises(DeliveryError):
            with downloaded_artifact(LABEL_URL, tmp_path, session):
                pass

    def test_empty_body(self, tmp_path, session):
        """An empty download is not printable."""
        session.get.return_value.content = b""

        with pytest.raises(DeliveryError, match="Empty response"):
            with downloaded_artifact(LABEL_URL, tmp_path, session):
                pass


class TestSilentDelivery:
    """Tests for direct printing."""

    def test_prints_downloaded_file(self, executor_factory, fake_printer):
        """The printer receives the downloaded label and the file is removed."""
        executor = executor_factory()

        executor.deliver(LABEL_URL, silent=True)

        call = fake_printer.calls[0]
        assert call["existed"]
        assert call["content"] == PDF_BYTES
        assert call["printer_name"] == "Label_Printer"
        assert call["layout"] == LABEL_LAYOUT
        assert not call["path"].exists()
        assert list(executor_factory.temp_dir.iterdir()) == []

    def test_printer_override(self, executor_factory, fake_printer):
        """A job printer overrides the default."""
        executor_factory().deliver(LABEL_URL, printer_name="Zebra_GK420d")

        assert fake_printer.calls[0]["printer_name"] == "Zebra_GK420d"

    def test_layout_passed_through(self, executor_factory, fake_printer):
        """The requested layout reaches the printer backend."""
        layout = PrintLayout(copies=3)

        executor_factory().deliver(LABEL_URL, layout=layout)

        assert fake_printer.calls[0]["layout"].copies == 3

    def test_missing_url(self, executor_factory, fake_printer):
        """A missing URL is a configuration error and nothing is fetched."""
        with pytest.raises(ConfigurationError, match="Label URL"):
            executor_factory().deliver(None)

        assert fake_printer.calls == []

    def test_missing_printer(self, executor_factory, session):
        """No job printer and no default is a configuration error."""
        executor = executor_factory(default_printer_name=None)

        with pytest.raises(ConfigurationError, match="printer"):
            executor.deliver(LABEL_URL)

        session.get.assert_not_called()

    def test_printer_rejects(self, executor_factory, make_printer):
        """A False verdict from the backend is a delivery error."""
        executor = executor_factory(printer=make_printer(results=[False]))

        with pytest.raises(DeliveryError, match="rejected"):
            executor.deliver(LABEL_URL)

        assert list(executor_factory.temp_dir.iterdir()) == []

    def test_printer_error_cleans_up(self, executor_factory, make_printer):
        """Backend exceptions propagate and the temp file is still removed."""
        executor = executor_factory(printer=make_printer(results=[PrinterError("offline")]))

        with pytest.raises(PrinterError):
            executor.deliver(LABEL_URL)

        assert list(executor_factory.temp_dir.iterdir()) == []


class TestInteractiveDelivery:
    """Tests for printing through the preview surface."""

    def test_renders_then_prints(self, executor_factory, fake_printer):
        """The surface loads the file, prints it and is closed."""
        surface = FakeSurface()
        executor = executor_factory(surface_factory=lambda: surface)

        executor.deliver(LABEL_URL, silent=False)

        path, existed, layout = surface.loaded
        assert existed
        assert layout == LABEL_LAYOUT
        assert surface.printed_with == ("Label_Printer", LABEL_LAYOUT)
        assert surface.closed
        assert not path.exists()
        assert fake_printer.calls == []

    def test_render_timeout(self, executor_factory):
        """A surface that never renders times out and is still closed."""
        surface = FakeSurface(rendered=False)
        executor = executor_factory(surface_factory=lambda: surface, render_timeout=0.01)

        with pytest.raises(RenderTimeoutError, match="timeout"):
            executor.deliver(LABEL_URL, silent=False)

        assert surface.printed_with is None
        assert surface.closed
        assert list(executor_factory.temp_dir.iterdir()) == []

    def test_render_timeout_is_delivery_error(self):
        """Render timeouts are transient delivery failures."""
        assert issubclass(RenderTimeoutError, DeliveryError)

    def test_print_failure(self, executor_factory):
        """A failed print from the surface is a delivery error."""
        surface = FakeSurface(printed=False)
        executor = executor_factory(surface_factory=lambda: surface)

        with pytest.raises(DeliveryError, match="Print failed"):
            executor.deliver(LABEL_URL, silent=False)

        assert surface.closed
