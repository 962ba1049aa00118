from decimal import Decimal

import django.core.validators
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="SiteSettings",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("platform_name", models.CharField(default="Marquee", max_length=100)),
                (
                    "payment_mode",
                    models.CharField(
                        choices=[("simulate", "Simulate"), ("sandbox", "Sandbox"), ("live", "Live")],
                        default="simulate",
                        help_text=(
                            "Simulate skips the payment provider entirely; sandbox and live use Stripe test/live keys."
                        ),
                        max_length=10,
                    ),
                ),
                (
                    "service_fee_percent",
                    models.DecimalField(
                        decimal_places=2,
                        default=Decimal("3.00"),
                        help_text="Platform fee charged on the checkout subtotal, in percent.",
                        max_digits=5,
                        validators=[
                            django.core.validators.MinValueValidator(Decimal("0")),
                            django.core.validators.MaxValueValidator(Decimal("100")),
                        ],
                    ),
                ),
                (
                    "service_fee_flat_cents",
                    models.PositiveIntegerField(default=50, help_text="Platform fee charged per ticket, in cents."),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "verbose_name": "Commerce Settings",
                "verbose_name_plural": "Commerce Settings",
            },
        ),
    ]
