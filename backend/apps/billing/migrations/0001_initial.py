from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Plan",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("deleted_at", models.DateTimeField(blank=True, db_index=True, null=True)),
                ("name", models.CharField(max_length=255)),
                (
                    "type",
                    models.CharField(
                        choices=[("plan", "Plan"), ("add-on", "Add-on")], default="plan", max_length=20
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[("active", "Active"), ("inactive", "Inactive")],
                        db_index=True,
                        default="active",
                        max_length=20,
                    ),
                ),
                (
                    "stripe_price_monthly",
                    models.CharField(blank=True, help_text="Stripe price ID billed monthly, e.g. 'price_xxx'", max_length=255),
                ),
                (
                    "stripe_price_yearly",
                    models.CharField(blank=True, help_text="Stripe price ID billed yearly, e.g. 'price_xxx'", max_length=255),
                ),
                ("trial_period_days", models.PositiveIntegerField(default=15)),
            ],
            options={
                "ordering": ["name"],
            },
        ),
        migrations.CreateModel(
            name="Subscription",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "stripe_subscription_id",
                    models.CharField(help_text="Stripe subscription ID, e.g. 'sub_xxx'", max_length=255, unique=True),
                ),
                (
                    "stripe_customer_id",
                    models.CharField(blank=True, db_index=True, help_text="Stripe customer ID, e.g. 'cus_xxx'", max_length=255),
                ),
                ("stripe_price_id", models.CharField(blank=True, help_text="Stripe price ID, e.g. 'price_xxx'", max_length=255)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("active", "Active"),
                            ("past_due", "Past Due"),
                            ("canceled", "Canceled"),
                            ("incomplete", "Incomplete"),
                            ("incomplete_expired", "Incomplete Expired"),
                            ("trialing", "Trialing"),
                            ("unpaid", "Unpaid"),
                            ("paused", "Paused"),
                        ],
                        db_index=True,
                        default="incomplete",
                        help_text="Subscription status from Stripe",
                        max_length=50,
                    ),
                ),
                ("current_period_start", models.DateTimeField(blank=True, null=True)),
                ("current_period_end", models.DateTimeField(blank=True, null=True)),
                (
                    "cancel_at_period_end",
                    models.BooleanField(default=False, help_text="If True, subscription will cancel at period end"),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "ordering": ["-created_at"],
            },
        ),
    ]
