"""
Django Signals for Sharespace.

- post_save(User): every new auth User gets a Profile.
- pre_delete(User): the user's likes and comments cascade away with them,
  so their counters are decremented first via services.release_user_facts().

Fact writes made through services.py update counters explicitly; these
receivers do not fire for them. Signals do not fire on QuerySet.update() or
bulk_create(), so counters are never maintained per fact row here.
"""

from django.contrib.auth.models import User
from django.db.models.signals import post_save, pre_delete
from django.dispatch import receiver

from . import services
from .models import Profile


@receiver(post_save, sender=User)
def create_profile(sender, instance, created, **kwargs):
    """Create the Profile row for a newly created user."""
    if created:
        Profile.objects.get_or_create(user=instance)


@receiver(pre_delete, sender=User)
def release_deleted_user_facts(sender, instance, **kwargs):
    # Runs inside the deletion's transaction, before the cascade
    services.release_user_facts(instance)
