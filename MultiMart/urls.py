"""
Main URL configuration for MultiMart project.
"""
from django.contrib import admin
from django.urls import path, include

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/', include(('apps.shops.urls', 'shops'), namespace='shops')),
]
