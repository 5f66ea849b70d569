from django.urls import path

from . import views

app_name = "payments"
urlpatterns = [
    path("paymob/intentions", views.create_intention_view, name="paymob_intentions"),
    path("paymob/webhooks/processed", views.paymob_processed_webhook, name="paymob_processed"),
    path("paymob/webhooks/redirect", views.paymob_redirect_webhook, name="paymob_redirect"),
]
