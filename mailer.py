import logging
import smtplib
from dataclasses import dataclass, asdict
from datetime import datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

from config import Config

logger = logging.getLogger(__name__)

SENDER_NAME = "SERATUS STUDIO"
SUPPORT_EMAIL = "support@seratusstudio.com"


@dataclass
class NotificationResult:
    sent: bool
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


def send_email(to_email: str, subject: str, text_body: str, html_body: Optional[str] = None) -> NotificationResult:
    """Send a message over SMTP. Transport failures are logged and reported, never raised."""
    if not Config.EMAIL_USER or not Config.EMAIL_PASS:
        logger.warning("Email transport not configured; skipped mail to %s", to_email)
        return NotificationResult(sent=False, error="Email transport not configured")

    msg = MIMEMultipart("alternative")
    msg["From"] = f"{SENDER_NAME} <{Config.EMAIL_USER}>"
    msg["To"] = to_email
    msg["Subject"] = subject
    msg.attach(MIMEText(text_body, "plain", "utf-8"))
    if html_body:
        msg.attach(MIMEText(html_body, "html", "utf-8"))

    try:
        server = smtplib.SMTP(Config.SMTP_HOST, Config.SMTP_PORT, timeout=30)
        try:
            server.starttls()
            server.login(Config.EMAIL_USER, Config.EMAIL_PASS)
            server.sendmail(Config.EMAIL_USER, [to_email], msg.as_string())
        finally:
            server.quit()
    except (smtplib.SMTPException, OSError) as e:
        logger.exception(f"Failed to send email to {to_email}: {e}")
        return NotificationResult(sent=False, error=str(e) or e.__class__.__name__)

    logger.info("Email sent to %s: %s", to_email, subject)
    return NotificationResult(sent=True)


def absolute_link(url: str) -> str:
    if "://" in url:
        return url
    return Config.PUBLIC_BASE_URL.rstrip("/") + "/" + url.lstrip("/")


def format_rupiah(amount: int) -> str:
    return "Rp " + f"{amount:,}".replace(",", ".")


WATERMARK_LABELS = {
    "none": "Tidak ada",
    "custom": "Custom watermark",
    "default": "Default watermark",
}


def send_download_ready(order: dict, product: dict, download_url: str,
                        expires_at: datetime, watermark_option: Optional[str]) -> NotificationResult:
    """Tell the customer their download is ready. No watermark line for plain file links."""
    link = absolute_link(download_url)
    title = product["title"]
    expires = expires_at.strftime("%d/%m/%Y")
    watermark = WATERMARK_LABELS.get(watermark_option, watermark_option) if watermark_option else None
    watermark_text = f"Watermark: {watermark}\n" if watermark else ""
    watermark_html = f"<p><strong>Watermark:</strong> {watermark}</p>" if watermark else ""
    total = format_rupiah(order["total_amount"])

    subject = f"Download Ready - {title}"
    text_body = (
        f"Halo {order['customer_name']},\n\n"
        "Terima kasih atas pembelian Anda! File digital Anda sudah siap untuk didownload.\n\n"
        f"Produk: {title}\n"
        f"Jumlah: {order['quantity']}\n"
        f"Total: {total}\n"
        f"{watermark_text}\n"
        f"Download: {link}\n\n"
        f"Link download akan kedaluwarsa pada {expires}.\n"
        f"Jika ada masalah, hubungi kami di {SUPPORT_EMAIL}\n"
    )
    html_body = f"""
      <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
        <h2 style="color: #333;">Download Ready - {title}</h2>
        <p>Halo {order['customer_name']},</p>
        <p>Terima kasih atas pembelian Anda! File digital Anda sudah siap untuk didownload.</p>
        <div style="background: #f5f5f5; padding: 20px; border-radius: 8px; margin: 20px 0;">
          <h3 style="margin-top: 0;">Detail Pesanan:</h3>
          <p><strong>Produk:</strong> {title}</p>
          <p><strong>Jumlah:</strong> {order['quantity']}</p>
          <p><strong>Total:</strong> {total}</p>
          {watermark_html}
        </div>
        <div style="text-align: center; margin: 30px 0;">
          <a href="{link}" style="background: #007bff; color: white; padding: 15px 30px; text-decoration: none; border-radius: 5px; display: inline-block;">
            Download File
          </a>
        </div>
        <p style="color: #666; font-size: 14px;">
          <strong>Catatan Penting:</strong><br>
          &bull; Link download akan kedaluwarsa pada {expires}<br>
          &bull; Simpan file di tempat yang aman<br>
          &bull; Jika ada masalah, hubungi kami di {SUPPORT_EMAIL}
        </p>
      </div>
    """
    return send_email(order["customer_email"], subject, text_body, html_body)


def send_file_link(to_email: str, subject: Optional[str] = None, file_link: Optional[str] = None) -> NotificationResult:
    subject = subject or "File dari SERATUS STUDIO"
    text_body = "Halo,\n\nTerima kasih sudah menggunakan layanan kami.\n\nSaya sudah menyiapkan file yang kamu butuhkan."
    button = ""
    if file_link:
        text_body += f" Kamu bisa mengaksesnya melalui link berikut:\n{file_link}"
        button = f"""
          <div style="text-align: center; margin: 30px 0;">
            <a href="{file_link}" style="display: inline-block; padding: 15px 30px; background: #667eea; color: white; text-decoration: none; border-radius: 25px; font-weight: bold;">Akses File</a>
          </div>"""
    text_body += "\n\nSemoga bermanfaat ya. Jika ada kendala, jangan ragu untuk membalas email ini.\n\nSalam hangat,\nTim SERATUS STUDIO"
    html_body = f"""
      <div style="max-width: 600px; margin: 0 auto; font-family: Arial, sans-serif;">
        <h1 style="color: #333; text-align: center;">SERATUS STUDIO</h1>
        <p>Halo,</p>
        <p>Terima kasih sudah menggunakan layanan kami.</p>
        <p>Saya sudah menyiapkan file yang kamu butuhkan.</p>{button}
        <p>Semoga bermanfaat ya. Jika ada kendala, jangan ragu untuk membalas email ini.</p>
        <p>Salam hangat,<br><strong>Tim SERATUS STUDIO</strong></p>
      </div>
    """
    return send_email(to_email, subject, text_body, html_body)
