"""
URL configuration for the campus portal project.

Page rendering lives outside this project; only the Django admin, the
payment gateway webhook and the events iCalendar export are routed here.
"""
from django.contrib import admin
from django.urls import path, include
from django.conf import settings
from django.conf.urls.static import static

urlpatterns = [
    # Django admin
    path('admin/', admin.site.urls),

    # Registrar app - document requests and payments
    path('registrar/', include(('registrar.urls', 'registrar'), namespace='registrar')),

    # Events app - iCalendar export
    path('events/', include(('events.urls', 'events'), namespace='events')),
]

if settings.DEBUG:
    urlpatterns += static(settings.MEDIA_URL, document_root=settings.MEDIA_ROOT)
