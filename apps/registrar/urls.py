# registrar/urls.py

from django.urls import path
from . import views

app_name = 'registrar'

urlpatterns = [
    path('payments/webhook/', views.payment_webhook, name='payment_webhook'),
]
