from abc import ABC, abstractmethod
import logging

from marketplace.domain.models import SaleNotice
from marketplace.domain.pricing import to_money

logger = logging.getLogger(__name__)


class SaleNotifier(ABC):
    """Delivers "sale occurred" messages to an organizer's sales contacts."""

    @abstractmethod
    def send(self, recipient: str, notice: SaleNotice) -> None:
        ...


class LoggingSaleNotifier(SaleNotifier):
    """Default notifier: records the notice in the application log."""

    def __init__(self, sender: str = ""):
        self.sender = sender

    def send(self, recipient: str, notice: SaleNotice) -> None:
        logger.info(
            "New sale: %s booking_id=%s customer=%s total=%s to=%s from=%s",
            notice.item_title,
            notice.booking_id,
            notice.buyer_email,
            to_money(notice.grand_total),
            recipient,
            self.sender or "-",
        )


def dispatch_sale_notice(notifier: SaleNotifier, notice: SaleNotice) -> int:
    """
    Best-effort fan-out; a failing recipient never affects the booking or
    the other recipients. Returns how many sends succeeded.
    """
    delivered = 0
    for recipient in notice.recipients:
        if not recipient:
            continue
        try:
            notifier.send(recipient, notice)
            delivered += 1
        except Exception:
            logger.warning(
                "Sale notification failed. booking_id=%s recipient=%s",
                notice.booking_id,
                recipient,
                exc_info=True,
            )
    return delivered
