"""Root URL configuration.

Only the admin site is routed here; the REST layer lives in front of
``server.apps.vault.logic`` and is deployed separately.
"""

from django.contrib import admin
from django.urls import path

urlpatterns = [
    path('admin/', admin.site.urls),
]
