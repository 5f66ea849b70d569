from django.urls import path

from . import views

app_name = "coupons"
urlpatterns = [
    path("verify", views.verify_coupon_view, name="verify"),
    path("current", views.current_coupon_view, name="current"),
    path("remove", views.remove_coupon_view, name="remove"),
    path("active", views.active_coupons_view, name="active"),
    path("quote", views.quote_view, name="quote"),
]
