# apps/core/models.py

from django.db import models


class TimestampedModel(models.Model):
    """Base model for all marketplace models"""
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    
    class Meta:
        abstract = True
