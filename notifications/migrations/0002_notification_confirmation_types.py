from django.db import migrations, models


class Migration(migrations.Migration):
    dependencies = [
        ("notifications", "0001_initial"),
    ]

    operations = [
        migrations.AlterField(
            model_name="notification",
            name="type",
            field=models.CharField(
                choices=[
                    ("new_schedule", "Nova escala"),
                    ("schedule_confirmed", "Escala confirmada"),
                    ("schedule_declined", "Escala recusada"),
                ],
                max_length=50,
            ),
        ),
    ]
