# portal/notifications/email_templates.py
from datetime import datetime


def _layout(title, accent, body, footer):
    return f"""
        <!DOCTYPE html>
        <html>
        <head>
            <meta charset="utf-8">
            <style>
                body {{ font-family: Arial, sans-serif; line-height: 1.6; color: #333; }}
                .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
                .header {{ background: {accent}; color: white; padding: 30px; text-align: center; border-radius: 8px 8px 0 0; }}
                .content {{ background: #f9fafb; padding: 30px; border-radius: 0 0 8px 8px; }}
                .info-box {{ background: white; border-left: 4px solid {accent}; padding: 15px; margin: 20px 0; border-radius: 4px; }}
                .button {{ display: inline-block; padding: 12px 24px; background: {accent}; color: white; text-decoration: none; border-radius: 6px; margin: 20px 0; }}
                .footer {{ text-align: center; padding: 20px; color: #6b7280; font-size: 14px; }}
            </style>
        </head>
        <body>
            <div class="container">
                <div class="header">
                    <h1>{title}</h1>
                </div>
                <div class="content">
                    {body}
                    <p>Best regards,<br>The Team</p>
                </div>
                <div class="footer">
                    <p>{footer}</p>
                    <p>&copy; {datetime.utcnow().year} All rights reserved.</p>
                </div>
            </div>
        </body>
        </html>
        """


def _format_date(value):
    if not value:
        return "N/A"
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    return value.strftime("%B %d, %Y")


class EmailTemplates:
    """Email template definitions. Each returns ``(subject, html)``."""

    @staticmethod
    def welcome(name, dashboard_url):
        subject = "Welcome to the Platform!"
        body = f"""
                    <p>Hello {name or 'there'},</p>
                    <p>Your account is ready. You are on the <strong>Free Tier</strong>
                    and can upgrade at any time from your dashboard.</p>
                    <a href="{dashboard_url}" class="button">Go to Dashboard</a>
        """
        return subject, _layout("Welcome!", "#4f46e5", body, "You received this email because you signed up.")

    @staticmethod
    def payment_receipt(tier_name, amount, invoice_url=None):
        subject = f"Payment Receipt - {tier_name}"
        invoice_link = f'<a href="{invoice_url}" class="button">View Invoice</a>' if invoice_url else ""
        body = f"""
                    <p>Your payment has been processed successfully!</p>
                    <div class="info-box">
                        <p><strong>Plan:</strong> {tier_name}</p>
                        <p><strong>Amount:</strong> ${amount:.2f}</p>
                        <p><strong>Status:</strong> Paid</p>
                    </div>
                    {invoice_link}
                    <p>Thank you for your subscription!</p>
        """
        return subject, _layout("Payment Successful", "#10b981", body, "This is an automated receipt for your payment.")

    @staticmethod
    def payment_failed(tier_name, amount, dashboard_url):
        subject = "Payment Failed - Action Required"
        body = f"""
                    <p>We were unable to process your payment for <strong>{tier_name}</strong>.</p>
                    <div class="info-box">
                        <p><strong>Amount:</strong> ${amount:.2f}</p>
                        <p><strong>Action Required:</strong> Please update your payment method to continue your subscription.</p>
                    </div>
                    <p>Your subscription is currently <strong>past due</strong>.</p>
                    <a href="{dashboard_url}" class="button">Update Payment Method</a>
        """
        return subject, _layout("Payment Failed", "#ef4444", body, "This is an automated notification.")

    @staticmethod
    def subscription_canceled(tier_name, access_until, dashboard_url):
        subject = f"Subscription Canceled - {tier_name}"
        body = f"""
                    <p>Your <strong>{tier_name}</strong> subscription has been canceled.</p>
                    <div class="info-box">
                        <p><strong>Access Until:</strong> {_format_date(access_until)}</p>
                    </div>
                    <p>We're sorry to see you go! You can resubscribe anytime.</p>
                    <a href="{dashboard_url}" class="button">Resubscribe</a>
        """
        return subject, _layout("Subscription Canceled", "#6b7280", body, "Thank you for being a member.")

    @staticmethod
    def renewal_reminder(tier_name, renewal_date, amount, dashboard_url):
        subject = f"Subscription Renewal Reminder - {tier_name}"
        body = f"""
                    <p>Your <strong>{tier_name}</strong> subscription will renew soon.</p>
                    <div class="info-box">
                        <p><strong>Renewal Date:</strong> {_format_date(renewal_date)}</p>
                        <p><strong>Amount:</strong> ${amount:.2f}</p>
                    </div>
                    <p>Your payment method will be charged automatically. No action is needed
                    unless you want to update your payment details or cancel.</p>
                    <a href="{dashboard_url}" class="button">Manage Subscription</a>
        """
        return subject, _layout("Subscription Renewal Reminder", "#f59e0b", body, "You can cancel anytime from your dashboard.")
