from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ('expenses', '0002_seed_default_categories'),
    ]

    operations = [
        migrations.AddConstraint(
            model_name='category',
            constraint=models.UniqueConstraint(
                condition=models.Q(owner__isnull=True),
                fields=('name',),
                name='unique_shared_category',
            ),
        ),
    ]
