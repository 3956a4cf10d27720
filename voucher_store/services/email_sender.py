"""Outgoing email: bilingual order confirmation after payment and voucher delivery."""
import logging
import smtplib
from collections.abc import Callable
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from html import escape

from voucher_store.core.config import settings
from voucher_store.models import Certificate, Invoice, Order, Voucher
from voucher_store.services.pricing import StoreSettings

log = logging.getLogger("vouchers.email")

# (order, invoice, store) -> sent?
PaidOrderNotifier = Callable[[Order, Invoice | None, StoreSettings], bool]
# (voucher, order, certificate, store) -> sent?
VoucherMailer = Callable[[Voucher, Order, Certificate | None, StoreSettings], bool]


def build_order_paid_email(order: Order, invoice: Invoice | None, store: StoreSettings) -> tuple[str, str]:
    """(subject, html_body), English then Arabic in one message."""
    subject = f"Payment received / تم استلام الدفع - {order.order_number}"
    invoice_line_en = f"Invoice number: <strong>{escape(invoice.invoice_number)}</strong>" if invoice else ""
    invoice_line_ar = f"رقم الفاتورة: <strong>{escape(invoice.invoice_number)}</strong>" if invoice else ""
    link = f"{settings.app_url}/en/success/{order.id}"
    name = escape(order.contact_name)
    html = f"""<!DOCTYPE html>
<html>
<head>
  <meta charset="UTF-8" />
  <title>{escape(subject)}</title>
</head>
<body style="margin:0;padding:0;background-color:#f1f5f9;font-family:'Segoe UI',system-ui,-apple-system,sans-serif;">
  <table role="presentation" width="100%" cellspacing="0" cellpadding="0" style="background-color:#f1f5f9;">
    <tr>
      <td align="center" style="padding:32px 16px;">
        <table role="presentation" width="100%" cellspacing="0" cellpadding="0" style="max-width:520px;background:#ffffff;border-radius:16px;overflow:hidden;">
          <tr>
            <td style="background:#0f766e;padding:24px;text-align:center;font-size:18px;font-weight:600;color:#ffffff;">
              {escape(store.company_name_en)}
            </td>
          </tr>
          <tr>
            <td style="padding:24px;font-size:15px;line-height:1.6;color:#334155;">
              <p style="margin:0 0 12px;">Hello {name},</p>
              <p style="margin:0 0 12px;">We received your payment of <strong>{order.total_amount:,.2f} SAR</strong>
                for order <strong>{escape(order.order_number)}</strong> ({order.quantity} voucher(s)).
                Your exam vouchers will be sent to this address once assigned.</p>
              <p style="margin:0 0 12px;">{invoice_line_en}</p>
            </td>
          </tr>
          <tr>
            <td dir="rtl" style="padding:0 24px 24px;font-size:15px;line-height:1.8;color:#334155;text-align:right;">
              <p style="margin:0 0 12px;">مرحباً {name}،</p>
              <p style="margin:0 0 12px;">تم استلام دفعتك بمبلغ <strong>{order.total_amount:,.2f} ريال</strong>
                للطلب <strong>{escape(order.order_number)}</strong> ({order.quantity} قسيمة).
                سيتم إرسال قسائم الاختبار إلى هذا البريد بعد تخصيصها.</p>
              <p style="margin:0 0 12px;">{invoice_line_ar}</p>
            </td>
          </tr>
          <tr>
            <td style="padding:0 24px 24px;text-align:center;">
              <a href="{link}" style="display:inline-block;padding:12px 24px;background:#0d9488;color:#ffffff!important;text-decoration:none;font-weight:600;border-radius:10px;">View order / عرض الطلب</a>
            </td>
          </tr>
        </table>
      </td>
    </tr>
  </table>
</body>
</html>"""
    return subject, html


def is_mail_configured() -> bool:
    return bool((settings.smtp_host or "").strip())


def send_email(to: str, subject: str, html_body: str) -> bool:
    """Sends one HTML email. True on success."""
    if not is_mail_configured():
        log.warning("SMTP not configured; email not sent to %s", to)
        return False
    host = settings.smtp_host.strip()
    from_addr = settings.smtp_from.strip()
    from_name = settings.smtp_from_name.strip()
    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = f"{from_name} <{from_addr}>" if from_name else from_addr
    msg["To"] = to
    msg.attach(MIMEText(html_body, "html", "utf-8"))
    try:
        with smtplib.SMTP(host, settings.smtp_port, timeout=15) as smtp:
            if settings.smtp_use_tls:
                smtp.starttls()
            if settings.smtp_user and settings.smtp_password:
                smtp.login(settings.smtp_user, settings.smtp_password)
            smtp.sendmail(from_addr, [to], msg.as_string())
        log.info("Email sent to %s subject=%s", to, subject[:50])
        return True
    except (smtplib.SMTPException, OSError) as e:
        log.exception("Failed to send email to %s: %s", to, e)
        return False


def send_order_paid_email(order: Order, invoice: Invoice | None, store: StoreSettings) -> bool:
    subject, html = build_order_paid_email(order, invoice, store)
    return send_email(order.email, subject, html)


def get_notifier() -> PaidOrderNotifier:
    """FastAPI dependency; tests override it with a recorder."""
    return send_order_paid_email


def build_voucher_email(
    voucher: Voucher,
    order: Order,
    certificate: Certificate | None,
    store: StoreSettings,
) -> tuple[str, str]:
    """One voucher code per message, addressed to its recipient."""
    exam_en = certificate.name_en if certificate else "certification exam"
    exam_ar = certificate.name_ar if certificate else "اختبار الشهادة"
    subject = f"Your exam voucher / قسيمة الاختبار - {exam_en}"
    name = escape(voucher.recipient_name or order.contact_name)
    code = escape(voucher.code)
    expires = f"{voucher.expires_at:%Y-%m-%d}"
    html = f"""<!DOCTYPE html>
<html>
<head>
  <meta charset="UTF-8" />
  <title>{escape(subject)}</title>
</head>
<body style="margin:0;padding:0;background-color:#f1f5f9;font-family:'Segoe UI',system-ui,-apple-system,sans-serif;">
  <table role="presentation" width="100%" cellspacing="0" cellpadding="0" style="background-color:#f1f5f9;">
    <tr>
      <td align="center" style="padding:32px 16px;">
        <table role="presentation" width="100%" cellspacing="0" cellpadding="0" style="max-width:520px;background:#ffffff;border-radius:16px;overflow:hidden;">
          <tr>
            <td style="background:#0f766e;padding:24px;text-align:center;font-size:18px;font-weight:600;color:#ffffff;">
              {escape(store.company_name_en)}
            </td>
          </tr>
          <tr>
            <td style="padding:24px;font-size:15px;line-height:1.6;color:#334155;">
              <p style="margin:0 0 12px;">Hello {name},</p>
              <p style="margin:0 0 12px;">Here is your voucher for <strong>{escape(exam_en)}</strong>
                (order {escape(order.order_number)}). Use it when booking your exam before <strong>{expires}</strong>.</p>
            </td>
          </tr>
          <tr>
            <td style="padding:0 24px 24px;text-align:center;">
              <div style="display:inline-block;padding:14px 24px;border:2px dashed #0d9488;border-radius:10px;font-family:monospace;font-size:20px;letter-spacing:2px;color:#0f172a;">{code}</div>
            </td>
          </tr>
          <tr>
            <td dir="rtl" style="padding:0 24px 24px;font-size:15px;line-height:1.8;color:#334155;text-align:right;">
              <p style="margin:0 0 12px;">مرحباً {name}،</p>
              <p style="margin:0 0 12px;">هذه قسيمة <strong>{escape(exam_ar)}</strong> الخاصة بك
                (الطلب {escape(order.order_number)}). استخدمها عند حجز الاختبار قبل <strong>{expires}</strong>.</p>
            </td>
          </tr>
        </table>
      </td>
    </tr>
  </table>
</body>
</html>"""
    return subject, html


def send_voucher_email(voucher: Voucher, order: Order, certificate: Certificate | None, store: StoreSettings) -> bool:
    subject, html = build_voucher_email(voucher, order, certificate, store)
    return send_email(voucher.recipient_email or order.email, subject, html)


def get_voucher_mailer() -> VoucherMailer:
    """FastAPI dependency; tests override it with a recorder."""
    return send_voucher_email
