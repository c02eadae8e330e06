import logging

from receipts.logging import configure_logging


class TestConfigureLogging:
    def test_root_uses_plain_text_formatter(self):
        configure_logging()
        console = [
            h for h in logging.getLogger().handlers if type(h) is logging.StreamHandler
        ]
        assert len(console) == 1
        formatter = console[0].formatter
        assert type(formatter) is logging.Formatter
        assert formatter._fmt == "%(asctime)s %(levelname)s [%(name)s] %(message)s"

    def test_noisy_clients_are_quieted(self):
        configure_logging()
        assert logging.getLogger("botocore").level == logging.WARNING
        assert logging.getLogger("httpx").level == logging.WARNING
