import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("billing", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Organization",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("deleted_at", models.DateTimeField(blank=True, db_index=True, null=True)),
                ("name", models.CharField(max_length=255)),
                ("slug", models.SlugField(help_text="URL-safe identifier, e.g. 'acme-corp'")),
                (
                    "slug_history",
                    models.JSONField(blank=True, default=list, help_text="Every slug this organization has used, oldest first"),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("active", "Active"),
                            ("inactive", "Inactive"),
                            ("trialing", "Trialing"),
                            ("past_due", "Past Due"),
                            ("unpaid", "Unpaid"),
                            ("canceled", "Canceled"),
                            ("incomplete", "Incomplete"),
                            ("incomplete_expired", "Incomplete Expired"),
                            ("paused", "Paused"),
                        ],
                        db_index=True,
                        default="inactive",
                        max_length=50,
                    ),
                ),
                ("plan_name", models.CharField(blank=True, max_length=255)),
                ("plan_start_date", models.DateTimeField(blank=True, null=True)),
                ("plan_end_date", models.DateTimeField(blank=True, null=True)),
                ("trial_start_date", models.DateTimeField(blank=True, null=True)),
                ("trial_end_date", models.DateTimeField(blank=True, null=True)),
                (
                    "subscription_id",
                    models.CharField(
                        blank=True, help_text="Stripe subscription ID of the primary plan, e.g. 'sub_xxx'", max_length=255
                    ),
                ),
                (
                    "stripe_customer_id",
                    models.CharField(blank=True, db_index=True, help_text="Stripe customer ID, e.g. 'cus_xxx'", max_length=255),
                ),
                (
                    "checkout_session_id",
                    models.CharField(
                        blank=True,
                        help_text="Checkout session that provisioned this organization, e.g. 'cs_xxx'",
                        max_length=255,
                        null=True,
                        unique=True,
                    ),
                ),
                (
                    "owner",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="owned_organizations",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "plan",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="organizations",
                        to="billing.plan",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [models.Index(fields=["status", "deleted_at"], name="org_status_deleted_idx")],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("deleted_at__isnull", True)),
                        fields=("slug",),
                        name="org_slug_unique_active",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="OrganizationAddOn",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "stripe_subscription_id",
                    models.CharField(help_text="Stripe subscription ID of the add-on, e.g. 'sub_xxx'", max_length=255, unique=True),
                ),
                ("stripe_customer_id", models.CharField(blank=True, max_length=255)),
                (
                    "status",
                    models.CharField(
                        choices=[("active", "Active"), ("canceled", "Canceled")], default="active", max_length=20
                    ),
                ),
                ("purchased_at", models.DateTimeField()),
                ("current_period_end", models.DateTimeField(blank=True, null=True)),
                (
                    "organization",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="addons",
                        to="organizations.organization",
                    ),
                ),
                (
                    "plan",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="addon_purchases",
                        to="billing.plan",
                    ),
                ),
            ],
            options={
                "ordering": ["purchased_at"],
            },
        ),
    ]
