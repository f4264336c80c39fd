"""Signal receivers connected in DjangoDiveopsConfig.ready()."""

from django.db.models.signals import post_delete, post_save
from django.dispatch import receiver

from .models import SafetyAlertRule
from .selectors import clear_rule_cache


@receiver(post_save, sender=SafetyAlertRule)
@receiver(post_delete, sender=SafetyAlertRule)
def invalidate_rule_cache(sender, **kwargs):
    clear_rule_cache()
