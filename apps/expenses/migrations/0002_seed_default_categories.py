from django.db import migrations


DEFAULT_CATEGORIES = [
    'Food',
    'Transport',
    'Shopping',
    'Bills',
    'Entertainment',
    'Health',
    'Other',
]


def seed_categories(apps, schema_editor):
    Category = apps.get_model('expenses', 'Category')
    for name in DEFAULT_CATEGORIES:
        Category.objects.get_or_create(name=name, owner=None)


def unseed_categories(apps, schema_editor):
    Category = apps.get_model('expenses', 'Category')
    Category.objects.filter(owner=None, name__in=DEFAULT_CATEGORIES, expenses__isnull=True).delete()


class Migration(migrations.Migration):

    dependencies = [
        ('expenses', '0001_initial'),
    ]

    operations = [
        migrations.RunPython(seed_categories, unseed_categories),
    ]
