# apps/notifications/urls.py

from django.urls import path

from .views import MarkReadView, NotificationListView

app_name = 'notifications'

urlpatterns = [
    path('', NotificationListView.as_view(), name='list'),
    path('mark-read/', MarkReadView.as_view(), name='mark-read'),
]
