from django.urls import path

from . import views

app_name = "accounts"
urlpatterns = [
    path("mobile-login", views.mobile_login_view, name="mobile_login"),
]
