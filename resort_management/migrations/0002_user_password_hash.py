from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ("resort_management", "0001_initial"),
    ]

    operations = [
        migrations.AddField(
            model_name="user",
            name="password_hash",
            field=models.CharField(blank=True, default="", max_length=128),
            preserve_default=False,
        ),
    ]
