"""
Shop App Signals
Give every seller account its shop
"""

import logging

from django.conf import settings
from django.db.models.signals import post_save
from django.dispatch import receiver

from .models import Shop

logger = logging.getLogger(__name__)


@receiver(post_save, sender=settings.AUTH_USER_MODEL)
def create_shop_for_seller_users(sender, instance, created, **kwargs):
    """
    Automatically create a Shop when a seller User is created
    """
    if created and instance.is_seller:
        shop = Shop.objects.create(
            user=instance,
            name=instance.display_name,
            email=instance.email,
            phone=instance.phone,
        )
        logger.info(f'Shop {shop.shop_id} created for seller {instance.email}')
