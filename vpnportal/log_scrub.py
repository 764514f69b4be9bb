import logging
import re

IPV4_RE = re.compile(r"\b(?:(?:25[0-5]|2[0-4]\d|1?\d?\d)\.){3}(?:25[0-5]|2[0-4]\d|1?\d?\d)\b")
# Full eight-group form, or any compressed form containing "::"
IPV6_RE = re.compile(
    r"(?<![\w:])(?:"
    r"(?:[A-F0-9]{1,4}:){7}[A-F0-9]{1,4}"
    r"|(?:[A-F0-9]{1,4}:){0,6}[A-F0-9]{0,4}::(?:[A-F0-9]{1,4}:){0,6}[A-F0-9]{0,4}"
    r")(?![\w:])",
    re.IGNORECASE,
)
MASK = "[FILTERED_IP]"


def scrub_ips(text: str) -> str:
    return IPV6_RE.sub(MASK, IPV4_RE.sub(MASK, text))


class IPScrubFilter(logging.Filter):
    """Masks IPv4/IPv6 addresses so client IPs never reach the log output."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        scrubbed = scrub_ips(message)
        if scrubbed != message:
            record.msg = scrubbed
            record.args = None
        return True


def install_ip_scrubber(logger: logging.Logger) -> None:
    for handler in [*logger.handlers, *logging.getLogger().handlers]:
        if not any(isinstance(f, IPScrubFilter) for f in handler.filters):
            handler.addFilter(IPScrubFilter())
