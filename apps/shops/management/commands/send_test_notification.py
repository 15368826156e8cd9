from django.conf import settings
from django.core.management.base import BaseCommand, CommandError

from apps.shops.services import notification_service


class Command(BaseCommand):
    help = "Send a test notification through the email backend and, optionally, Termii SMS."

    def add_arguments(self, parser):
        parser.add_argument("to", help="Recipient email address")
        parser.add_argument("--sms", metavar="PHONE", help="Also send a test SMS to this number")
        parser.add_argument("--subject", default="MultiMart test notification")

    def handle(self, *args, **options):
        email = notification_service.email
        sms = notification_service.sms

        if email.use_mock:
            self.stdout.write(self.style.WARNING("USE_MOCK_NOTIFICATIONS is on: messages are only logged"))
        elif settings.EMAIL_BACKEND.endswith("smtp.EmailBackend") and not settings.EMAIL_HOST_PASSWORD:
            raise CommandError("EMAIL_HOST_PASSWORD is not set. Set it in your environment or switch EMAIL_BACKEND.")

        sent = email.send_email(
            to_email=options["to"],
            subject=options["subject"],
            message="Seller payout and order notifications are delivered through this backend.",
        )
        if not sent:
            raise CommandError(f"Email to {options['to']} failed, see the log for the backend error")
        self.stdout.write(self.style.SUCCESS(f"Test email sent to {options['to']}"))

        if options["sms"]:
            if not sms.send_sms(options["sms"], "MultiMart test SMS"):
                raise CommandError(f"SMS to {options['sms']} failed")
            self.stdout.write(self.style.SUCCESS(f"Test SMS sent to {options['sms']}"))
