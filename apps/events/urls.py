# events/urls.py

from django.urls import path
from . import views

app_name = 'events'

urlpatterns = [
    path('export/all.ics', views.export_upcoming_events, name='export_all'),
    path('<slug:slug>/export.ics', views.export_event, name='export'),
]
