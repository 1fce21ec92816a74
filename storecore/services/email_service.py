import logging
import random
import smtplib
from email.message import EmailMessage
from typing import Dict, List, Optional

from .logging import log_event


def mock_tracking_number(rng: Optional[random.Random] = None) -> str:
    """USPS-style tracking number: ``9400 dddd dddd dddd dd``."""
    rng = rng or random.Random()
    digits = "".join(str(rng.randint(0, 9)) for _ in range(14))
    return f"9400 {digits[0:4]} {digits[4:8]} {digits[8:12]} {digits[12:14]}"


def render_order_email(order_id: str, customer: Dict, lines: List[Dict], totals: Dict, tracking: str) -> str:
    out = [
        f"Hi {customer.get('first_name', '')},",
        "",
        f"Thank you for your order {order_id}.",
        "",
    ]
    for line in lines:
        weight = f" ({line['selected_weight']})" if line.get("selected_weight") else ""
        out.append(f"  {line['quantity']} x {line['product_name']}{weight}  ${line['line_total']:.2f}")
    out += [
        "",
        f"Subtotal: ${totals['subtotal']:.2f}",
        f"Discount: -${totals['discount']:.2f}",
        f"Shipping: ${totals['shipping']:.2f}",
        f"Total: ${totals['total']:.2f}",
        "",
        f"Ship to: {customer.get('address', '')}, {customer.get('city', '')}, "
        f"{customer.get('state', '')} {customer.get('zip', '')}",
        f"Tracking number: {tracking}",
    ]
    return "\n".join(out)


class EmailService:
    """Order confirmation mail over SMTP; without an SMTP host mails are only logged."""

    def __init__(
        self,
        *,
        host: str = "",
        port: int = 587,
        username: str = "",
        password: str = "",
        sender: str = "orders@localhost",
        timeout: float = 15.0,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.sender = sender
        self.timeout = timeout
        self.logger = logging.getLogger(__name__)

    def send_order_confirmation(self, to: str, order_id: str, customer: Dict, lines: List[Dict], totals: Dict) -> bool:
        if not to:
            return False
        tracking = mock_tracking_number()
        body = render_order_email(order_id, customer, lines, totals, tracking)
        if not self.host:
            log_event("info", "email.skipped", to=to, order_id=order_id, tracking=tracking)
            return False

        msg = EmailMessage()
        msg["Subject"] = f"Order confirmation {order_id}"
        msg["From"] = self.sender
        msg["To"] = to
        msg.set_content(body)
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
                smtp.starttls()
                if self.username:
                    smtp.login(self.username, self.password)
                smtp.send_message(msg)
        except (smtplib.SMTPException, OSError) as exc:
            self.logger.error("Failed to send order email for %s: %s", order_id, exc)
            return False
        log_event("info", "email.sent", to=to, order_id=order_id)
        return True
