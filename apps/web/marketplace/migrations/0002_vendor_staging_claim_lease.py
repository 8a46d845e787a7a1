import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):
    dependencies = [
        ("core", "0001_initial"),
        ("marketplace", "0001_initial"),
    ]

    operations = [
        migrations.RemoveConstraint(
            model_name="stagedproduct",
            name="unique_staged_product",
        ),
        migrations.AddConstraint(
            model_name="stagedproduct",
            constraint=models.UniqueConstraint(
                fields=("account", "marketplace_vendor_code", "pos_product_id"),
                name="unique_staged_product",
            ),
        ),
        migrations.AddField(
            model_name="queuedevent",
            name="claimed_at",
            field=models.DateTimeField(blank=True, null=True),
        ),
        migrations.AlterField(
            model_name="ordersynclog",
            name="account",
            field=models.ForeignKey(
                on_delete=django.db.models.deletion.PROTECT,
                related_name="ordersynclogs",
                to="core.posaccount",
            ),
        ),
        migrations.AlterField(
            model_name="deadlettermessage",
            name="event_type",
            field=models.CharField(
                choices=[
                    ("OrderSync", "Order sync"),
                    ("AvailabilityUpdate", "Availability update"),
                    ("CatalogSync", "Catalog sync"),
                ],
                max_length=30,
            ),
        ),
    ]
